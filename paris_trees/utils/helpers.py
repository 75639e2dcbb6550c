"""Shared helper functions used across stages and analyses."""

from __future__ import annotations

import math
import re

import numpy as np

_WHITESPACE = re.compile(r"\s+")

_TRUE_MARKERS = frozenset({"oui", "yes", "true", "1", "o", "y"})
_FALSE_MARKERS = frozenset({"non", "no", "false", "0", "n"})


def normalise_text(value: object) -> str:
    """Strip and collapse whitespace; missing values become ``""``."""
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    return _WHITESPACE.sub(" ", str(value)).strip()


def boolish(value: object) -> bool | None:
    """Map ``OUI``/``NON`` style flags to booleans, ``None`` when unknown."""
    if isinstance(value, bool):
        return value
    if value is None:
        return None
    if isinstance(value, int | float):
        if isinstance(value, float) and math.isnan(value):
            return None
        return bool(value)
    text = str(value).strip().lower()
    if text in _TRUE_MARKERS:
        return True
    if text in _FALSE_MARKERS:
        return False
    return None


def distance_grid(r_max: float, r_step: float) -> np.ndarray:
    """Distances ``0, r_step, 2 r_step, …`` up to and including *r_max*.

    *r_max* is always the last value, even when it is not a multiple
    of *r_step*.  Values are rounded to 1e-9 so floating steps never
    leave a near-duplicate of *r_max*.
    """
    grid = np.round(np.arange(0.0, r_max + r_step / 2, r_step), 9)
    grid = np.minimum(grid, r_max)
    return np.unique(np.round(np.append(grid, r_max), 9))
