"""Spatially explicit diversity accumulation in one park.

Around every tree, the neighbourhood of radius r is the tree itself plus
every tree closer than r, each contributing its weight.  The Hill number
of each neighbourhood is the local diversity of the tree at that radius;
the accumulation curve is the mean local diversity over all trees, as a
function of r.

At r = 0 every neighbourhood holds a single species, so the curve starts
at 1.  When r exceeds the park diameter every neighbourhood is the whole
park and the curve reaches the park's diversity.

A random-labelling envelope (species and weights permuted over the fixed
tree locations) shows whether species are spatially structured: a curve
below the envelope means neighbours are more alike than by chance.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd

from paris_trees.analysis.entropy import hill_numbers
from paris_trees.analysis.neighbours import NeighbourPairs, neighbour_pairs
from paris_trees.core.constants import DEFAULT_Q_VALUES
from paris_trees.core.exceptions import AnalysisError
from paris_trees.models import trees as schema

logger = logging.getLogger("paris_trees.analysis.accumulation")

R = "r"
Q = "q"
DIVERSITY = "diversity"
LOWER = "lower"
UPPER = "upper"


@dataclass(frozen=True, slots=True)
class AccumulationResult:
    """Diversity accumulation of a park.

    Attributes:
        park: Park name as requested.
        curves: Long table with columns ``r``, ``q``, ``diversity`` and,
            when simulated, ``lower`` and ``upper``.
        local: One row per tree: ``x``, ``y``, ``species`` and the local
            diversity ``D<q>`` at *local_radius*.
        local_radius: Radius of the local diversity (metres).
        n_trees: Number of trees in the park.
        n_species: Number of species in the park.
        n_simulations: Random-labelling simulations run.
    """

    park: str
    curves: pd.DataFrame
    local: pd.DataFrame
    local_radius: float
    n_trees: int
    n_species: int
    n_simulations: int = 0

    def curve(self, q: float) -> pd.DataFrame:
        """Rows of the accumulation curve of order *q*."""
        return self.curves[np.isclose(self.curves[Q], q)].reset_index(drop=True)


def select_park(trees: pd.DataFrame, park: str) -> pd.DataFrame:
    """Trees whose address contains *park* (case-insensitive).

    Raises:
        AnalysisError: If fewer than two trees match.
    """
    address = trees[schema.ADDRESS].astype(str).str.casefold()
    mask = address.str.contains(park.strip().casefold(), regex=False)
    selected = trees[mask.to_numpy(dtype=bool, na_value=False)]
    if len(selected) < 2:
        msg = f"Park {park!r} matches {len(selected)} tree(s); at least 2 needed"
        raise AnalysisError(msg)
    logger.info(
        "park selected | park=%s | trees=%d | addresses=%d",
        park,
        len(selected),
        selected[schema.ADDRESS].nunique(),
    )
    return selected.reset_index(drop=True)


def diversity_accumulation(
    x: np.ndarray,
    y: np.ndarray,
    species: np.ndarray,
    r: np.ndarray,
    q_values: tuple[float, ...] = DEFAULT_Q_VALUES,
    weights: np.ndarray | None = None,
    *,
    pairs: NeighbourPairs | None = None,
) -> np.ndarray:
    """Mean local Hill number at each radius and order.

    Args:
        x: Planar x coordinates (metres).
        y: Planar y coordinates (metres).
        species: Species label of each tree.
        r: Increasing radii (metres).
        q_values: Orders of diversity.
        weights: Tree weights; ``None`` gives every tree a weight of 1.
        pairs: Precomputed neighbour pairs up to ``r[-1]``.

    Returns:
        Array of shape ``(len(q_values), len(r))``.
    """
    r = np.asarray(r, dtype=float)
    if pairs is None:
        pairs = neighbour_pairs(x, y, float(r[-1]))
    _, codes = np.unique(np.asarray(species, dtype=str), return_inverse=True)
    w = np.ones(pairs.n_points) if weights is None else np.asarray(weights, dtype=float)
    local = local_diversity(pairs, pairs.bins(r), codes, w, r.size, q_values)
    return np.nanmean(local, axis=1)


def local_diversity(
    pairs: NeighbourPairs,
    bins: np.ndarray,
    codes: np.ndarray,
    weights: np.ndarray,
    n_r: int,
    q_values: tuple[float, ...],
) -> np.ndarray:
    """Hill number of every neighbourhood.

    Returns:
        Array of shape ``(len(q_values), n_points, n_r)``.
    """
    from scipy import sparse

    n = pairs.n_points
    n_species = int(codes.max()) + 1 if codes.size else 0
    result = np.empty((len(q_values), n, n_r))

    inside = bins < n_r
    i, j, b = pairs.i[inside], pairs.j[inside], bins[inside]
    neighbourhood = sparse.coo_matrix(
        (weights, (np.arange(n), codes)), shape=(n, n_species)
    ).toarray()
    # pairs sorted by bin: slice k holds the neighbours entering at r[k]
    order = np.argsort(b, kind="stable")
    i, j, b = i[order], j[order], b[order]
    edges = np.searchsorted(b, np.arange(n_r + 1), side="left")
    for k in range(n_r):
        lo, hi = edges[k], edges[k + 1]
        if hi > lo:
            step = sparse.coo_matrix(
                (weights[j[lo:hi]], (i[lo:hi], codes[j[lo:hi]])), shape=(n, n_species)
            )
            neighbourhood += step.toarray()
        for m, q in enumerate(q_values):
            result[m, :, k] = hill_numbers(neighbourhood, q)
    return result


def park_accumulation(
    trees: pd.DataFrame,
    park: str,
    r: np.ndarray,
    q_values: tuple[float, ...] = DEFAULT_Q_VALUES,
    *,
    weight_column: str = "",
    local_radius: float = 20.0,
    n_simulations: int = 0,
    alpha: float = 0.05,
    seed: int | None = None,
) -> AccumulationResult:
    """Diversity accumulation of the trees of *park*.

    *local_radius* is added to the radius grid if absent, so the local
    diversity map always shares the computation of the curves.

    Raises:
        AnalysisError: If the park has fewer than two trees with usable
            weights or the weight column is unknown.
    """
    if weight_column and weight_column not in trees.columns:
        msg = f"Unknown weight column: {weight_column!r}"
        raise AnalysisError(msg)

    selected = select_park(trees, park)
    weights = schema.point_weights(selected, weight_column)
    usable = (weights.notna() & (weights > 0)).to_numpy(dtype=bool)
    if not usable.all():
        logger.warning(
            "Park trees without usable weight left out | park=%s | column=%s | count=%d",
            park,
            weight_column,
            int((~usable).sum()),
        )
    selected = selected[usable].reset_index(drop=True)
    if len(selected) < 2:
        msg = f"Park {park!r} has {len(selected)} tree(s) with usable weight"
        raise AnalysisError(msg)

    radii = np.union1d(np.asarray(r, dtype=float), [local_radius])
    x = selected[schema.X].to_numpy(dtype=float)
    y = selected[schema.Y].to_numpy(dtype=float)
    labels = selected[schema.SPECIES].astype(str).to_numpy()
    _, codes = np.unique(labels, return_inverse=True)
    w = weights[usable].to_numpy(dtype=float)

    pairs = neighbour_pairs(x, y, float(radii[-1]))
    bins = pairs.bins(radii)
    observed = local_diversity(pairs, bins, codes, w, radii.size, q_values)
    mean = observed.mean(axis=1)

    lower = upper = None
    if n_simulations > 0:
        rng = np.random.default_rng(seed)
        simulated = np.empty((n_simulations, len(q_values), radii.size))
        for s in range(n_simulations):
            order = rng.permutation(pairs.n_points)
            simulated[s] = local_diversity(
                pairs, bins, codes[order], w[order], radii.size, q_values
            ).mean(axis=1)
        lower = np.quantile(simulated, alpha / 2, axis=0)
        upper = np.quantile(simulated, 1 - alpha / 2, axis=0)

    rows = []
    for m, q in enumerate(q_values):
        for k, radius in enumerate(radii):
            row = {R: radius, Q: float(q), DIVERSITY: mean[m, k]}
            if lower is not None and upper is not None:
                row[LOWER] = lower[m, k]
                row[UPPER] = upper[m, k]
            rows.append(row)
    curves = pd.DataFrame(rows)

    at = int(np.searchsorted(radii, local_radius))
    local = pd.DataFrame({schema.X: x, schema.Y: y, schema.SPECIES: labels})
    for m, q in enumerate(q_values):
        local[f"D{q:g}"] = observed[m, :, at]

    result = AccumulationResult(
        park=park,
        curves=curves,
        local=local,
        local_radius=float(local_radius),
        n_trees=len(selected),
        n_species=int(codes.max()) + 1,
        n_simulations=n_simulations,
    )
    logger.info(
        "diversity accumulated | park=%s | trees=%d | species=%d | pairs=%d | "
        "r_max=%.0f m | simulations=%d",
        park,
        result.n_trees,
        result.n_species,
        len(pairs),
        radii[-1],
        n_simulations,
    )
    return result
