"""Tsallis entropy and Hill numbers.

HCDT (Tsallis) entropy of order q and its deformed exponential, the Hill
number or effective number of species:

- q = 0: richness minus one / species richness,
- q = 1: Shannon entropy / exponential of Shannon,
- q = 2: Gini–Simpson index / inverse Simpson.

Every function accepts abundances (counts or weights); zero abundances
are ignored.  Estimates are plug-in: no bias correction is applied.
"""

from __future__ import annotations

import numpy as np

_Q_TOLERANCE = 1e-12


def is_shannon(q: float) -> bool:
    """Whether *q* is the Shannon order (q = 1)."""
    return abs(q - 1.0) < _Q_TOLERANCE


def lnq(x: np.ndarray | float, q: float) -> np.ndarray | float:
    """Deformed logarithm of order *q*: ``(x^(1-q) - 1) / (1-q)``."""
    x = np.asarray(x, dtype=float)
    if is_shannon(q):
        return np.log(x)
    return (np.power(x, 1.0 - q) - 1.0) / (1.0 - q)


def expq(x: np.ndarray | float, q: float) -> np.ndarray | float:
    """Deformed exponential of order *q*, the inverse of ``lnq``."""
    x = np.asarray(x, dtype=float)
    if is_shannon(q):
        return np.exp(x)
    base = 1.0 + (1.0 - q) * x
    with np.errstate(divide="ignore"):
        return np.where(base > 0, np.power(np.maximum(base, 0.0), 1.0 / (1.0 - q)), np.inf)


def tsallis_entropies(abundances: np.ndarray, q: float) -> np.ndarray:
    """Tsallis entropy of order *q* of every row of *abundances*.

    Args:
        abundances: 2-D array, one community per row, one species per column.
        q: Order of entropy (>= 0).

    Returns:
        1-D array of entropies; NaN for empty rows.
    """
    a = np.atleast_2d(np.asarray(abundances, dtype=float))
    totals = a.sum(axis=1)
    with np.errstate(divide="ignore", invalid="ignore"):
        p = a / totals[:, None]
    present = p > 0
    safe_p = np.where(present, p, 1.0)
    if is_shannon(q):
        entropy = -np.where(present, p * np.log(safe_p), 0.0).sum(axis=1)
    else:
        entropy = (1.0 - np.where(present, np.power(safe_p, q), 0.0).sum(axis=1)) / (q - 1.0)
    return np.where(totals > 0, entropy, np.nan)


def hill_numbers(abundances: np.ndarray, q: float) -> np.ndarray:
    """Hill number of order *q* of every row of *abundances*."""
    return expq(tsallis_entropies(abundances, q), q)


def tsallis(abundances: np.ndarray, q: float) -> float:
    """Tsallis entropy of order *q* of one community."""
    return float(tsallis_entropies(np.asarray(abundances, dtype=float)[None, :], q)[0])


def hill(abundances: np.ndarray, q: float) -> float:
    """Hill number (effective number of species) of order *q* of one community."""
    return float(expq(tsallis(abundances, q), q))


def sample_coverage(abundances: np.ndarray) -> float:
    """Estimated sample coverage of a community (Chao's estimator).

    Uses singletons and doubletons; falls back to the Good–Turing
    estimator ``1 - f1/n`` form for samples without doubletons.
    Returns NaN for an empty sample.
    """
    counts = np.asarray(abundances, dtype=float)
    counts = counts[counts > 0]
    n = counts.sum()
    if n == 0:
        return float("nan")
    f1 = float(np.sum(counts == 1))
    f2 = float(np.sum(counts == 2))
    if f1 == 0:
        return 1.0
    if n == 1:
        return 0.0
    if f2 > 0:
        a = (n - 1) * f1 / ((n - 1) * f1 + 2 * f2)
    else:
        a = (n - 1) * (f1 - 1) / ((n - 1) * (f1 - 1) + 2)
    return float(1.0 - f1 / n * a)
