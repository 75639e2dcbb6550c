"""Spatial join stage: assign each tree to its district.

Uses a shapely ``STRtree`` over the district polygons and a vectorised
point-in-polygon query.  Trees outside the city window (the inventory
includes cemeteries and nurseries in neighbouring towns) are dropped.
A tree lying exactly on a shared border goes to the lowest district
number.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from paris_trees.models import trees as schema

if TYPE_CHECKING:
    import pandas as pd

    from paris_trees.models.window import CityWindow

logger = logging.getLogger("paris_trees.stages.spatial_join")


@dataclass(frozen=True, slots=True)
class JoinResult:
    """Outcome of ``join_districts``.

    Attributes:
        trees: Trees inside the window, ``district`` filled.
        kept: Number of trees kept.
        dropped: Number of trees outside every district.
    """

    trees: pd.DataFrame
    kept: int
    dropped: int


def join_districts(trees: pd.DataFrame, window: CityWindow) -> JoinResult:
    """Fill the ``district`` column and drop trees outside the window.

    Args:
        trees: Tree table with projected ``x``/``y``.
        window: City window in the same CRS.

    Returns:
        A ``JoinResult``.
    """
    import shapely
    from shapely import STRtree

    numbers = np.array([d.number for d in window.districts], dtype="int64")
    index = STRtree([d.geometry for d in window.districts])
    points = shapely.points(trees[schema.X].to_numpy(), trees[schema.Y].to_numpy())

    point_idx, district_idx = index.query(points, predicate="intersects")

    # Districts are sorted by number, so the first hit of a point is
    # the lowest district number.
    order = np.lexsort((district_idx, point_idx))
    point_idx, district_idx = point_idx[order], district_idx[order]
    unique_points, first = np.unique(point_idx, return_index=True)

    district = np.full(len(trees), -1, dtype="int64")
    district[unique_points] = numbers[district_idx[first]]
    inside = district >= 0

    joined = trees.loc[inside].copy()
    joined[schema.DISTRICT] = district[inside]
    joined = schema.conform(joined)

    dropped = int((~inside).sum())
    logger.info(
        "trees joined to districts | kept=%d | dropped_outside=%d | districts=%d",
        len(joined),
        dropped,
        joined[schema.DISTRICT].nunique(),
    )
    return JoinResult(trees=joined, kept=len(joined), dropped=dropped)
