"""Diversity partitioning across streets.

Total (gamma) diversity of a set of communities is split into the mean
within-community (alpha) diversity and the between-community (beta)
diversity, in the framework of HCDT entropy:

- gamma entropy: entropy of the pooled, weighted species distribution;
- alpha entropy: weighted mean of community entropies;
- beta entropy: gamma minus alpha entropy;
- diversities are the deformed exponentials of the entropies, and
  beta diversity is gamma over alpha diversity (an effective number of
  communities).

Community weights default to community sizes, so the pooled distribution
is the species distribution of all trees together.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd

from paris_trees.analysis.entropy import expq, hill_numbers, tsallis_entropies
from paris_trees.core.constants import DEFAULT_Q_VALUES, STREET_DOMAIN
from paris_trees.core.exceptions import AnalysisError
from paris_trees.models import trees as schema

logger = logging.getLogger("paris_trees.analysis.partition")

TREES = "trees"
RICHNESS = "richness"


@dataclass(frozen=True, slots=True)
class DiversityPartition:
    """Gamma/alpha/beta decomposition at one order of diversity."""

    q: float
    gamma_entropy: float
    alpha_entropy: float
    beta_entropy: float
    gamma_diversity: float
    alpha_diversity: float
    beta_diversity: float
    n_communities: int
    n_species: int

    def as_row(self) -> dict[str, float]:
        return {
            "q": self.q,
            "gamma": self.gamma_diversity,
            "alpha": self.alpha_diversity,
            "beta": self.beta_diversity,
            "gamma_entropy": self.gamma_entropy,
            "alpha_entropy": self.alpha_entropy,
            "beta_entropy": self.beta_entropy,
        }


@dataclass(frozen=True, slots=True)
class StreetPartition:
    """Partition of street-tree diversity.

    Attributes:
        partitions: One partition per diversity order.
        profile: ``diversity_profile`` table of the partitions.
        communities: One row per street: number of trees, richness and
            Hill number at each order.
        abundances: Street × species abundance table.
    """

    partitions: tuple[DiversityPartition, ...]
    profile: pd.DataFrame
    communities: pd.DataFrame
    abundances: pd.DataFrame


def partition_diversity(
    abundances: pd.DataFrame | np.ndarray,
    q: float,
    weights: np.ndarray | None = None,
) -> DiversityPartition:
    """Partition the diversity of order *q* of a community × species table.

    Args:
        abundances: One row per community, one column per species.
        q: Order of diversity (>= 0).
        weights: Community weights; defaults to community sizes.

    Raises:
        AnalysisError: If fewer than two non-empty communities are given
            or the weights do not match the communities.
    """
    a = np.asarray(abundances, dtype=float)
    if a.ndim != 2:
        msg = f"Abundance table must be 2-D, got {a.ndim} dimension(s)"
        raise AnalysisError(msg)

    sizes = a.sum(axis=1)
    keep = sizes > 0
    if keep.sum() < 2:
        msg = f"At least 2 non-empty communities needed, got {int(keep.sum())}"
        raise AnalysisError(msg)

    if weights is None:
        w = sizes[keep]
    else:
        w = np.asarray(weights, dtype=float)
        if w.shape != sizes.shape:
            msg = f"Got {w.size} weights for {sizes.size} communities"
            raise AnalysisError(msg)
        w = w[keep]
    a = a[keep]
    w = w / w.sum()

    frequencies = a / a.sum(axis=1)[:, None]
    pooled = (w[:, None] * frequencies).sum(axis=0)

    gamma_entropy = float(tsallis_entropies(pooled, q)[0])
    alpha_entropy = float(np.sum(w * tsallis_entropies(a, q)))
    gamma_diversity = float(expq(gamma_entropy, q))
    alpha_diversity = float(expq(alpha_entropy, q))

    return DiversityPartition(
        q=float(q),
        gamma_entropy=gamma_entropy,
        alpha_entropy=alpha_entropy,
        beta_entropy=gamma_entropy - alpha_entropy,
        gamma_diversity=gamma_diversity,
        alpha_diversity=alpha_diversity,
        beta_diversity=gamma_diversity / alpha_diversity,
        n_communities=int(a.shape[0]),
        n_species=int(np.sum(pooled > 0)),
    )


def diversity_profile(
    abundances: pd.DataFrame | np.ndarray,
    q_values: tuple[float, ...] = DEFAULT_Q_VALUES,
    weights: np.ndarray | None = None,
) -> pd.DataFrame:
    """Gamma, alpha and beta diversity (and entropy) for each order.

    Returns:
        DataFrame indexed from 0 with columns ``q``, ``gamma``, ``alpha``,
        ``beta``, ``gamma_entropy``, ``alpha_entropy``, ``beta_entropy``.
    """
    return pd.DataFrame(
        [partition_diversity(abundances, q, weights).as_row() for q in q_values]
    )


def street_abundances(
    trees: pd.DataFrame,
    *,
    min_trees: int = 10,
    domain: str = STREET_DOMAIN,
) -> pd.DataFrame:
    """Street × species abundance table of alignment trees.

    Streets are identified by the ``address`` of trees in *domain*;
    streets with fewer than *min_trees* trees are left out.
    """
    street_trees = trees[
        (trees[schema.DOMAIN].str.casefold() == domain.casefold()).fillna(False)
        & (trees[schema.ADDRESS].fillna("") != "")
    ]
    table = pd.crosstab(
        street_trees[schema.ADDRESS].astype(str),
        street_trees[schema.SPECIES].astype(str),
    )
    table = table[table.sum(axis=1) >= min_trees]
    table = table.loc[:, table.sum(axis=0) > 0]
    table.index.name = schema.ADDRESS
    table.columns.name = schema.SPECIES
    logger.info(
        "street communities built | domain=%s | street_trees=%d | streets=%d | "
        "kept_trees=%d | species=%d",
        domain,
        len(street_trees),
        table.shape[0],
        int(table.to_numpy().sum()),
        table.shape[1],
    )
    return table


def street_partition(
    trees: pd.DataFrame,
    q_values: tuple[float, ...] = DEFAULT_Q_VALUES,
    *,
    min_trees: int = 10,
    domain: str = STREET_DOMAIN,
) -> StreetPartition:
    """Partition the diversity of street trees among streets.

    Raises:
        AnalysisError: If fewer than two streets reach *min_trees*.
    """
    table = street_abundances(trees, min_trees=min_trees, domain=domain)
    if table.shape[0] < 2:
        msg = (
            f"Only {table.shape[0]} street(s) of domain {domain!r} have at least "
            f"{min_trees} trees; at least 2 needed"
        )
        raise AnalysisError(msg)

    partitions = tuple(partition_diversity(table, q) for q in q_values)
    profile = pd.DataFrame([p.as_row() for p in partitions])

    values = table.to_numpy(dtype=float)
    communities = pd.DataFrame(
        {TREES: values.sum(axis=1).astype(int), RICHNESS: (values > 0).sum(axis=1)},
        index=table.index,
    )
    for q in q_values:
        communities[f"D{q:g}"] = hill_numbers(values, q)
    communities = communities.sort_values(TREES, ascending=False)

    for p in partitions:
        logger.info(
            "diversity partitioned | q=%g | gamma=%.3f | alpha=%.3f | beta=%.3f",
            p.q,
            p.gamma_diversity,
            p.alpha_diversity,
            p.beta_diversity,
        )
    return StreetPartition(
        partitions=partitions, profile=profile, communities=communities, abundances=table
    )
