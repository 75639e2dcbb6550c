"""Neighbour pairs of a point pattern.

Both spatial analyses need, for every point, the points closer than a
set of distances.  Pairs are computed once with a k-d tree up to the
largest distance and binned on the distance grid; random-labelling
simulations then reuse them, since locations never move.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True, slots=True)
class NeighbourPairs:
    """Ordered pairs ``(i, j)``, ``i != j``, at distance ``<= r_max``.

    Each unordered pair appears twice, once in each direction.

    Attributes:
        i: Index of the reference point.
        j: Index of the neighbour.
        distance: Euclidean distance between them.
        n_points: Size of the point pattern.
    """

    i: np.ndarray
    j: np.ndarray
    distance: np.ndarray
    n_points: int

    def __len__(self) -> int:
        return int(self.i.size)

    def bins(self, r: np.ndarray) -> np.ndarray:
        """Index of the smallest distance of *r* that includes each pair.

        A pair with bin ``k`` counts as neighbours at ``r[k]`` and every
        larger distance.  *r* must be sorted in increasing order.
        """
        return np.searchsorted(np.asarray(r, dtype=float), self.distance, side="left")


def neighbour_pairs(x: np.ndarray, y: np.ndarray, r_max: float) -> NeighbourPairs:
    """All ordered pairs of points closer than *r_max* (inclusive)."""
    from scipy.spatial import cKDTree

    xy = np.column_stack([np.asarray(x, dtype=float), np.asarray(y, dtype=float)])
    n = len(xy)
    if n < 2:
        empty = np.empty(0, dtype=np.intp)
        return NeighbourPairs(i=empty, j=empty, distance=np.empty(0), n_points=n)

    pairs = cKDTree(xy).query_pairs(r_max, output_type="ndarray")
    first, second = pairs[:, 0], pairs[:, 1]
    # query_pairs already tested d <= r_max; keep rounding from crossing it
    distance = np.minimum(np.hypot(*(xy[first] - xy[second]).T), r_max)
    return NeighbourPairs(
        i=np.concatenate([first, second]),
        j=np.concatenate([second, first]),
        distance=np.concatenate([distance, distance]),
        n_points=n,
    )
