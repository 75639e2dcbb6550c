"""Species abundance counts.

Counts trees per species over the whole city or per sector/district, and
summarises the abundance distribution (richness, rare species, sample
coverage, Hill numbers).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import numpy as np
import pandas as pd

from paris_trees.analysis.entropy import hill, sample_coverage
from paris_trees.core.constants import DEFAULT_Q_VALUES
from paris_trees.core.exceptions import AnalysisError
from paris_trees.models import trees as schema

logger = logging.getLogger("paris_trees.analysis.abundance")

COUNT = "count"
FREQUENCY = "frequency"
OTHER_SPECIES = "Other species"


@dataclass(frozen=True, slots=True)
class AbundanceSummary:
    """Summary of a species abundance distribution.

    Attributes:
        n_trees: Number of trees.
        richness: Number of species observed.
        singletons: Species represented by a single tree.
        doubletons: Species represented by exactly two trees.
        coverage: Estimated sample coverage.
        hill: Hill number per diversity order.
    """

    n_trees: int
    richness: int
    singletons: int
    doubletons: int
    coverage: float
    hill: dict[float, float] = field(default_factory=dict)


def species_abundance(trees: pd.DataFrame, top: int | None = None) -> pd.DataFrame:
    """Number and relative frequency of trees per species.

    Args:
        trees: Tree table.
        top: Keep only the *top* most abundant species.

    Returns:
        DataFrame with ``species``, ``count`` and ``frequency`` columns,
        sorted by decreasing count then species name.

    Raises:
        AnalysisError: If the table is empty.
    """
    if trees.empty:
        msg = "Cannot count species of an empty tree table"
        raise AnalysisError(msg)

    counts = (
        trees.groupby(schema.SPECIES, observed=True)
        .size()
        .rename(COUNT)
        .reset_index()
        .sort_values([COUNT, schema.SPECIES], ascending=[False, True], ignore_index=True)
    )
    counts[schema.SPECIES] = counts[schema.SPECIES].astype(str)
    counts[FREQUENCY] = counts[COUNT] / counts[COUNT].sum()
    if top is not None:
        counts = counts.head(top)
    return counts


def abundance_by(trees: pd.DataFrame, column: str, top: int = 10) -> pd.DataFrame:
    """Cross-table of the *top* species by *column* (sector, district…).

    Species outside the *top* are pooled in an ``"Other species"`` row.
    """
    if column not in trees.columns:
        msg = f"Unknown grouping column: {column!r}"
        raise AnalysisError(msg)

    leaders = species_abundance(trees, top=top)[schema.SPECIES].tolist()
    label = trees[schema.SPECIES].astype(str).where(
        trees[schema.SPECIES].isin(leaders), OTHER_SPECIES
    )
    table = pd.crosstab(label, trees[column])
    order = [s for s in leaders if s in table.index]
    if OTHER_SPECIES in table.index:
        order.append(OTHER_SPECIES)
    table = table.loc[order]
    table.index.name = schema.SPECIES
    return table


def abundance_summary(
    counts: pd.Series | np.ndarray,
    q_values: tuple[float, ...] = DEFAULT_Q_VALUES,
) -> AbundanceSummary:
    """Summarise a vector of species abundances."""
    values = np.asarray(counts, dtype=float)
    values = values[values > 0]
    summary = AbundanceSummary(
        n_trees=int(values.sum()),
        richness=int(values.size),
        singletons=int(np.sum(values == 1)),
        doubletons=int(np.sum(values == 2)),
        coverage=sample_coverage(values),
        hill={float(q): hill(values, q) for q in q_values} if values.size else {},
    )
    logger.info(
        "abundance summarised | trees=%d | species=%d | singletons=%d | coverage=%.4f",
        summary.n_trees,
        summary.richness,
        summary.singletons,
        summary.coverage,
    )
    return summary
