"""Markdown report summarising every table of the document."""

from __future__ import annotations

import io
import logging
import math
from pathlib import Path
from typing import TYPE_CHECKING

import pandas as pd

if TYPE_CHECKING:
    from paris_trees.analysis.abundance import AbundanceSummary
    from paris_trees.analysis.accumulation import AccumulationResult
    from paris_trees.analysis.concentration import ConcentrationResult
    from paris_trees.analysis.partition import StreetPartition
    from paris_trees.models.window import CityWindow

logger = logging.getLogger("paris_trees.report.markdown")


def write_report(
    path: Path,
    *,
    window: CityWindow,
    summary: AbundanceSummary,
    counts: pd.DataFrame,
    by_district: pd.DataFrame,
    concentration: ConcentrationResult | None,
    partition: StreetPartition | None,
    accumulation: AccumulationResult | None,
    figures: dict[str, Path],
) -> Path:
    """Write ``report.md``.

    Analyses that could not run are passed as ``None`` and reported as
    skipped.  Figure paths are linked relative to the report.
    """
    path = Path(path)
    buf = io.StringIO()
    buf.write("# Paris trees\n\n")

    buf.write("## Data\n\n")
    buf.write(f"- Trees: **{summary.n_trees}**\n")
    buf.write(f"- Species: **{summary.richness}**\n")
    buf.write(f"- Districts: **{window.district_count}**\n")
    buf.write(f"- Window area: **{window.area_km2:.2f} km²** ({window.crs})\n\n")
    _figure(buf, figures, "window_map", "City window", path)

    buf.write("## Species abundance\n\n")
    buf.write(f"- Singletons: {summary.singletons}, doubletons: {summary.doubletons}\n")
    buf.write(f"- Sample coverage: {_number(summary.coverage)}\n")
    for q, value in summary.hill.items():
        buf.write(f"- Hill number of order {q:g}: {_number(value)}\n")
    buf.write("\n")
    buf.write(markdown_table(counts))
    _figure(buf, figures, "top_species", "Most abundant species", path)
    _figure(buf, figures, "rank_abundance", "Rank-abundance curve", path)
    buf.write("### By district\n\n")
    buf.write(markdown_table(by_district, index=True))

    buf.write("## Concentration\n\n")
    if concentration is None:
        buf.write("_Skipped: the focal species could not be analysed._\n\n")
    else:
        buf.write(
            f"M function of *{concentration.species}* ({concentration.n_focal} trees "
            f"out of {concentration.n_points}).\n\n"
        )
        buf.write(markdown_table(concentration.to_frame()))
        _figure(buf, figures, "m_function", "M function", path)

    buf.write("## Diversity partitioning among streets\n\n")
    if partition is None:
        buf.write("_Skipped: not enough streets to partition._\n\n")
    else:
        buf.write(f"{partition.abundances.shape[0]} streets, ")
        buf.write(f"{partition.abundances.shape[1]} species.\n\n")
        buf.write(markdown_table(partition.profile))
        buf.write("### Most planted streets\n\n")
        buf.write(markdown_table(partition.communities.head(10), index=True))
        _figure(buf, figures, "diversity_profile", "Diversity profile", path)

    buf.write("## Diversity accumulation\n\n")
    if accumulation is None:
        buf.write("_Skipped: the park could not be analysed._\n\n")
    else:
        buf.write(
            f"{accumulation.park}: {accumulation.n_trees} trees, "
            f"{accumulation.n_species} species.\n\n"
        )
        buf.write(markdown_table(accumulation.curves))
        _figure(buf, figures, "accumulation", "Accumulation curves", path)
        _figure(buf, figures, "local_diversity", "Local diversity", path)

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(buf.getvalue(), encoding="utf-8")
    logger.info("report written | path=%s | figures=%d", path, len(figures))
    return path


def markdown_table(frame: pd.DataFrame, *, index: bool = False) -> str:
    """Render *frame* as a GitHub pipe table with ``DataFrame.to_markdown``.

    Float columns are formatted with four significant digits, NaN as
    ``NA`` and infinities as ``∞``; pipes in text cells are escaped.
    """
    view = frame.reset_index() if index else frame.copy()
    for column in view.columns:
        if pd.api.types.is_float_dtype(view[column]):
            view[column] = view[column].map(_number)
        elif not pd.api.types.is_numeric_dtype(view[column]):
            view[column] = view[column].map(_escape)
    return view.to_markdown(index=False, floatfmt=".4g") + "\n\n"


def _escape(value: object) -> object:
    if isinstance(value, str):
        return value.replace("|", "\\|")
    if pd.isna(value):
        return "NA"
    return value


def _number(value: float) -> str:
    if pd.isna(value):
        return "NA"
    if math.isinf(value):
        return "∞"
    return f"{value:.4g}"


def _figure(buf: io.StringIO, figures: dict[str, Path], key: str, title: str, report: Path) -> None:
    figure = figures.get(key)
    if figure is None:
        return
    try:
        target = Path(figure).relative_to(report.parent)
    except ValueError:
        target = Path(figure)
    buf.write(f"![{title}]({target.as_posix()})\n\n")
