"""Point-pattern concentration of one species: the M function.

M (Marcon & Puech) is a cumulative, distance-based and weighted measure
of the relative concentration of focal points.  Around each focal tree,
the weight share of focal neighbours within r is compared with the
share of the focal species in the whole city:

    M(r) = Σ_{i∈F} [ Σ_{j∈F, j≠i, d≤r} w_j / Σ_{j≠i, d≤r} w_j ]
           / Σ_{i∈F} [ (W_F − w_i) / (W − w_i) ]

M = 1 means no spatial structure, M > 1 concentration, M < 1 dispersion.
M needs no edge-effect correction, so the city window only limits which
trees enter the pattern.

Focal trees with no neighbour within r are left out of both sums at that
distance, and M is NaN where no focal tree has neighbours.

The confidence envelope is built under the random-labelling null
hypothesis: marks (focal type and weight) are permuted over the fixed
tree locations.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass

import numpy as np
import pandas as pd

from paris_trees.analysis.neighbours import NeighbourPairs, neighbour_pairs
from paris_trees.core.exceptions import AnalysisError
from paris_trees.models import trees as schema

logger = logging.getLogger("paris_trees.analysis.concentration")

DEFAULT_N_SIMULATIONS = 99
DEFAULT_ALPHA = 0.05


@dataclass(frozen=True, slots=True)
class ConcentrationResult:
    """M function of a focal species with its confidence envelope.

    Attributes:
        species: Focal species name.
        r: Distances (metres).
        observed: Observed M at each distance.
        lower: Lower bound of the local envelope (``None`` without simulations).
        upper: Upper bound of the local envelope (``None`` without simulations).
        n_focal: Number of focal trees.
        n_points: Number of trees in the pattern.
        n_simulations: Random-labelling simulations run.
        alpha: Risk level of the envelope.
    """

    species: str
    r: np.ndarray
    observed: np.ndarray
    lower: np.ndarray | None = None
    upper: np.ndarray | None = None
    n_focal: int = 0
    n_points: int = 0
    n_simulations: int = 0
    alpha: float = DEFAULT_ALPHA

    def to_frame(self) -> pd.DataFrame:
        """Tabular form: ``r``, ``M``, ``centred``, ``lower``, ``upper``."""
        frame = pd.DataFrame({"r": self.r, "M": self.observed, "centred": self.centred})
        if self.lower is not None and self.upper is not None:
            frame["lower"] = self.lower
            frame["upper"] = self.upper
        return frame

    @property
    def centred(self) -> np.ndarray:
        """M minus its value under independence (1)."""
        return self.observed - 1.0

    def significant(self) -> np.ndarray:
        """Sign of the departure from the envelope at each distance.

        ``1`` above the envelope (concentration), ``-1`` below
        (dispersion), ``0`` inside or without envelope.
        """
        if self.lower is None or self.upper is None:
            return np.zeros(self.r.size, dtype=int)
        return np.where(self.observed > self.upper, 1, np.where(self.observed < self.lower, -1, 0))


def m_function(
    x: np.ndarray,
    y: np.ndarray,
    is_focal: np.ndarray,
    r: np.ndarray,
    weights: np.ndarray | None = None,
    *,
    pairs: NeighbourPairs | None = None,
) -> np.ndarray:
    """Weighted M function of the focal points at each distance of *r*.

    Args:
        x: Planar x coordinates (metres).
        y: Planar y coordinates (metres).
        is_focal: Boolean mask of the focal points.
        r: Increasing distances (metres).
        weights: Point weights; ``None`` gives every point a weight of 1.
        pairs: Precomputed neighbour pairs up to ``r[-1]``.

    Returns:
        M at each distance (NaN where undefined).
    """
    r = np.asarray(r, dtype=float)
    if pairs is None:
        pairs = neighbour_pairs(x, y, float(r[-1]))
    w = np.ones(pairs.n_points) if weights is None else np.asarray(weights, dtype=float)
    return _m_values(pairs, pairs.bins(r), np.asarray(is_focal, dtype=bool), w, r.size)


def m_envelope(
    x: np.ndarray,
    y: np.ndarray,
    is_focal: np.ndarray,
    r: np.ndarray,
    weights: np.ndarray | None = None,
    *,
    n_simulations: int = DEFAULT_N_SIMULATIONS,
    alpha: float = DEFAULT_ALPHA,
    seed: int | None = None,
    species: str = "",
) -> ConcentrationResult:
    """Observed M and its local random-labelling envelope.

    The envelope bounds are the ``alpha/2`` and ``1 - alpha/2`` quantiles
    of the simulated values at each distance.
    """
    r = np.asarray(r, dtype=float)
    focal = np.asarray(is_focal, dtype=bool)
    pairs = neighbour_pairs(x, y, float(r[-1]))
    w = np.ones(pairs.n_points) if weights is None else np.asarray(weights, dtype=float)
    bins = pairs.bins(r)

    observed = _m_values(pairs, bins, focal, w, r.size)

    lower = upper = None
    if n_simulations > 0:
        rng = np.random.default_rng(seed)
        simulated = np.empty((n_simulations, r.size))
        for k in range(n_simulations):
            order = rng.permutation(pairs.n_points)
            simulated[k] = _m_values(pairs, bins, focal[order], w[order], r.size)
        with warnings.catch_warnings():
            # distances where no simulation has focal neighbours stay NaN
            warnings.simplefilter("ignore", RuntimeWarning)
            lower = np.nanquantile(simulated, alpha / 2, axis=0)
            upper = np.nanquantile(simulated, 1 - alpha / 2, axis=0)

    logger.info(
        "M computed | species=%s | points=%d | focal=%d | pairs=%d | r_max=%.0f m | "
        "simulations=%d",
        species,
        pairs.n_points,
        int(focal.sum()),
        len(pairs),
        r[-1],
        n_simulations,
    )
    return ConcentrationResult(
        species=species,
        r=r,
        observed=observed,
        lower=lower,
        upper=upper,
        n_focal=int(focal.sum()),
        n_points=pairs.n_points,
        n_simulations=n_simulations,
        alpha=alpha,
    )


def concentration_for_species(
    trees: pd.DataFrame,
    species: str,
    r: np.ndarray,
    *,
    weight_column: str = "",
    n_simulations: int = DEFAULT_N_SIMULATIONS,
    alpha: float = DEFAULT_ALPHA,
    seed: int | None = None,
) -> ConcentrationResult:
    """M function of *species* over the whole tree table.

    Trees with a missing or non-positive weight are left out of the
    pattern.

    Raises:
        AnalysisError: If the species has fewer than two trees or the
            weight column is unknown.
    """
    if weight_column and weight_column not in trees.columns:
        msg = f"Unknown weight column: {weight_column!r}"
        raise AnalysisError(msg)

    weights = schema.point_weights(trees, weight_column)
    usable = weights.notna() & (weights > 0)
    if not usable.all():
        logger.warning(
            "Trees without usable weight left out | column=%s | count=%d",
            weight_column,
            int((~usable).sum()),
        )
    pattern = trees.loc[usable]
    is_focal = (pattern[schema.SPECIES] == species).to_numpy(dtype=bool, na_value=False)
    if is_focal.sum() < 2:
        msg = f"Focal species {species!r} has {int(is_focal.sum())} tree(s); at least 2 needed"
        raise AnalysisError(msg)

    return m_envelope(
        pattern[schema.X].to_numpy(dtype=float),
        pattern[schema.Y].to_numpy(dtype=float),
        is_focal,
        r,
        weights.loc[usable].to_numpy(dtype=float) if weight_column else None,
        n_simulations=n_simulations,
        alpha=alpha,
        seed=seed,
        species=species,
    )


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _m_values(
    pairs: NeighbourPairs,
    bins: np.ndarray,
    is_focal: np.ndarray,
    weights: np.ndarray,
    n_r: int,
) -> np.ndarray:
    """M at each distance bin for one labelling of the points."""
    n_focal = int(is_focal.sum())
    focal_rank = np.cumsum(is_focal) - 1

    from_focal = is_focal[pairs.i] & (bins < n_r)
    rows = focal_rank[pairs.i[from_focal]]
    cols = bins[from_focal]
    w_j = weights[pairs.j[from_focal]]
    j_focal = is_focal[pairs.j[from_focal]]

    flat = rows * n_r + cols
    size = n_focal * n_r
    all_weight = np.bincount(flat, weights=w_j, minlength=size).reshape(n_focal, n_r)
    focal_weight = np.bincount(flat, weights=w_j * j_focal, minlength=size).reshape(
        n_focal, n_r
    )
    all_weight = np.cumsum(all_weight, axis=1)
    focal_weight = np.cumsum(focal_weight, axis=1)

    w_focal_points = weights[is_focal]
    total = weights.sum()
    total_focal = w_focal_points.sum()
    expected = (total_focal - w_focal_points) / (total - w_focal_points)

    has_neighbours = all_weight > 0
    with np.errstate(divide="ignore", invalid="ignore"):
        ratio = np.where(has_neighbours, focal_weight / all_weight, 0.0)
        numerator = ratio.sum(axis=0)
        denominator = np.where(has_neighbours, expected[:, None], 0.0).sum(axis=0)
        return np.where(denominator > 0, numerator / denominator, np.nan)
