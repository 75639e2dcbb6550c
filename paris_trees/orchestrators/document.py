"""Phase helpers rendering the Paris trees document.

The document is rendered once per run by two sequential phases, each
returning a typed result contract.

Phases
------
1. **Preparation**: download the open-data exports, parse them,
   harmonise the tree columns, project to the metric CRS, build the city
   window, join trees to districts and cache the result.  Skipped when
   the cache holds both the tree table and the window, unless a refresh
   is requested.
2. **Analysis**: species abundance, concentration of the focal species,
   diversity partitioning among streets, diversity accumulation in the
   park, then figures and the Markdown report.

An analysis whose parameters do not fit the data (unknown species, park
not found, too few streets) is logged and reported as skipped; every
other failure aborts the render.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING, TypedDict

from paris_trees.analysis.abundance import abundance_by, abundance_summary, species_abundance
from paris_trees.analysis.accumulation import park_accumulation
from paris_trees.analysis.concentration import concentration_for_species
from paris_trees.analysis.partition import street_partition
from paris_trees.core.constants import (
    FIGURES_DIR_NAME,
    METADATA_FILE,
    RAW_DIR_NAME,
    RAW_DISTRICTS_FILE,
    RAW_TREES_FILE,
    REPORT_FILE,
)
from paris_trees.core.exceptions import AnalysisError
from paris_trees.models import trees as schema
from paris_trees.models.metadata import RunMetadataRecord
from paris_trees.report import figures
from paris_trees.report.markdown import write_report
from paris_trees.stages.cache import TreeCache
from paris_trees.stages.download import download_dataset
from paris_trees.stages.harmonize import harmonize_trees
from paris_trees.stages.parse_geojson import read_points, read_polygons
from paris_trees.stages.prepare_window import build_city_window, project_points
from paris_trees.stages.spatial_join import join_districts
from paris_trees.utils.helpers import distance_grid

if TYPE_CHECKING:
    import pandas as pd

    from paris_trees.analysis.abundance import AbundanceSummary
    from paris_trees.analysis.accumulation import AccumulationResult
    from paris_trees.analysis.concentration import ConcentrationResult
    from paris_trees.analysis.partition import StreetPartition
    from paris_trees.core.config import DocumentConfig
    from paris_trees.models.window import CityWindow

logger = logging.getLogger("paris_trees.orchestrators.document")


# ---------------------------------------------------------------------------
# Phase result contracts
# ---------------------------------------------------------------------------


class PreparationResult(TypedDict):
    """Output contract for the preparation phase."""

    trees: pd.DataFrame
    window: CityWindow
    from_cache: bool
    raw_count: int
    kept_count: int
    dropped_count: int


class AnalysisResult(TypedDict):
    """Output contract for the analysis phase."""

    summary: AbundanceSummary
    counts: pd.DataFrame
    by_district: pd.DataFrame
    concentration: ConcentrationResult | None
    partition: StreetPartition | None
    accumulation: AccumulationResult | None
    figures: dict[str, Path]
    report_path: Path
    skipped: list[str]


# ---------------------------------------------------------------------------
# Phase 1: Preparation
# ---------------------------------------------------------------------------


def run_preparation_phase(config: DocumentConfig) -> PreparationResult:
    """Download → parse → harmonise → project → window → join → cache.

    Returns the cached table and window instead when the cache exists
    and ``config.refresh`` is false.
    """
    phase_start = time.monotonic()
    cache = TreeCache(config.cache_dir)

    if cache.exists() and not config.refresh:
        trees, window = cache.load()
        logger.info(
            "phase=preparation completed | from_cache=true | trees=%d | districts=%d | "
            "duration=%.1fs",
            len(trees),
            window.district_count,
            time.monotonic() - phase_start,
        )
        return PreparationResult(
            trees=trees,
            window=window,
            from_cache=True,
            raw_count=len(trees),
            kept_count=len(trees),
            dropped_count=0,
        )

    raw_dir = Path(config.cache_dir) / RAW_DIR_NAME
    trees_file = download_dataset(
        config.trees_url,
        raw_dir / RAW_TREES_FILE,
        timeout_s=config.http_timeout_s,
        max_retries=config.download_max_retries,
        refresh=config.refresh,
    )
    districts_file = download_dataset(
        config.districts_url,
        raw_dir / RAW_DISTRICTS_FILE,
        timeout_s=config.http_timeout_s,
        max_retries=config.download_max_retries,
        refresh=config.refresh,
    )

    raw = read_points(trees_file.path)
    trees = harmonize_trees(raw)
    x, y = project_points(
        trees[schema.X].to_numpy(), trees[schema.Y].to_numpy(), config.projected_crs
    )
    trees[schema.X] = x
    trees[schema.Y] = y

    window = build_city_window(read_polygons(districts_file.path), config.projected_crs)
    joined = join_districts(trees, window)

    cache.save(joined.trees, window)

    logger.info(
        "phase=preparation completed | from_cache=false | raw=%d | harmonised=%d | "
        "kept=%d | dropped=%d | districts=%d | duration=%.1fs",
        len(raw),
        len(trees),
        joined.kept,
        joined.dropped,
        window.district_count,
        time.monotonic() - phase_start,
    )
    return PreparationResult(
        trees=joined.trees,
        window=window,
        from_cache=False,
        raw_count=len(raw),
        kept_count=joined.kept,
        dropped_count=joined.dropped,
    )


# ---------------------------------------------------------------------------
# Phase 2: Analysis
# ---------------------------------------------------------------------------


def run_analysis_phase(
    trees: pd.DataFrame,
    window: CityWindow,
    config: DocumentConfig,
) -> AnalysisResult:
    """Abundance → concentration → partitioning → accumulation → report."""
    phase_start = time.monotonic()
    output_dir = Path(config.output_dir)
    figures_dir = output_dir / FIGURES_DIR_NAME
    skipped: list[str] = []

    all_counts = species_abundance(trees)
    summary = abundance_summary(all_counts["count"], config.q_values)
    counts = all_counts.head(config.top_n)
    by_district = abundance_by(trees, schema.DISTRICT, top=min(config.top_n, 10))

    concentration: ConcentrationResult | None = None
    try:
        concentration = concentration_for_species(
            trees,
            config.focal_species,
            distance_grid(config.concentration_r_max_m, config.concentration_r_step_m),
            weight_column=config.weight_column,
            n_simulations=config.n_simulations,
            alpha=config.alpha,
            seed=config.random_seed,
        )
    except AnalysisError as exc:
        _skip("concentration", exc, skipped)

    partition: StreetPartition | None = None
    try:
        partition = street_partition(
            trees,
            config.q_values,
            min_trees=config.partition_min_trees,
            domain=config.partition_domain,
        )
    except AnalysisError as exc:
        _skip("partition", exc, skipped)

    accumulation: AccumulationResult | None = None
    try:
        accumulation = park_accumulation(
            trees,
            config.park,
            distance_grid(config.accumulation_r_max_m, config.accumulation_r_step_m),
            config.q_values,
            weight_column=config.weight_column,
            local_radius=config.local_radius_m,
            n_simulations=config.n_simulations,
            alpha=config.alpha,
            seed=config.random_seed,
        )
    except AnalysisError as exc:
        _skip("accumulation", exc, skipped)

    written = render_figures(
        figures_dir,
        window=window,
        trees=trees,
        counts=counts,
        all_counts=all_counts,
        focal_species=config.focal_species,
        concentration=concentration,
        partition=partition,
        accumulation=accumulation,
        q_values=config.q_values,
    )
    report_path = write_report(
        output_dir / REPORT_FILE,
        window=window,
        summary=summary,
        counts=counts,
        by_district=by_district,
        concentration=concentration,
        partition=partition,
        accumulation=accumulation,
        figures=written,
    )

    logger.info(
        "phase=analysis completed | trees=%d | species=%d | figures=%d | skipped=%s | "
        "duration=%.1fs | report=%s",
        summary.n_trees,
        summary.richness,
        len(written),
        ",".join(skipped) or "none",
        time.monotonic() - phase_start,
        report_path,
    )
    return AnalysisResult(
        summary=summary,
        counts=counts,
        by_district=by_district,
        concentration=concentration,
        partition=partition,
        accumulation=accumulation,
        figures=written,
        report_path=report_path,
        skipped=skipped,
    )


def render_figures(
    figures_dir: Path,
    *,
    window: CityWindow,
    trees: pd.DataFrame,
    counts: pd.DataFrame,
    all_counts: pd.DataFrame,
    focal_species: str,
    concentration: ConcentrationResult | None,
    partition: StreetPartition | None,
    accumulation: AccumulationResult | None,
    q_values: tuple[float, ...],
) -> dict[str, Path]:
    """Draw every available figure; returns figure key → PNG path."""
    written = {
        "window_map": figures.plot_window_map(
            window, trees, focal_species, figures_dir / figures.WINDOW_MAP_FILE
        ),
        "top_species": figures.plot_top_species(counts, figures_dir / figures.TOP_SPECIES_FILE),
        "rank_abundance": figures.plot_rank_abundance(
            all_counts, figures_dir / figures.RANK_ABUNDANCE_FILE
        ),
    }
    if concentration is not None:
        written["m_function"] = figures.plot_m_function(
            concentration, figures_dir / figures.M_FUNCTION_FILE
        )
    if partition is not None:
        written["diversity_profile"] = figures.plot_diversity_profile(
            partition.profile, figures_dir / figures.DIVERSITY_PROFILE_FILE
        )
    if accumulation is not None:
        written["accumulation"] = figures.plot_accumulation(
            accumulation, figures_dir / figures.ACCUMULATION_FILE
        )
        mapped_q = 1.0 if 1.0 in q_values else q_values[0]
        written["local_diversity"] = figures.plot_local_diversity(
            accumulation, mapped_q, figures_dir / figures.LOCAL_DIVERSITY_FILE
        )
    return written


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------


def run_document(config: DocumentConfig) -> dict[str, object]:
    """Render the whole document, write its run metadata and return a summary."""
    start = time.monotonic()
    preparation = run_preparation_phase(config)
    analysis = run_analysis_phase(preparation["trees"], preparation["window"], config)

    record = RunMetadataRecord.from_run(
        config, preparation, analysis, duration_s=time.monotonic() - start
    )
    metadata_path = record.write(Path(config.output_dir) / METADATA_FILE)
    logger.info("run metadata written | path=%s", metadata_path)

    return {
        "status": "partial" if analysis["skipped"] else "completed",
        "from_cache": preparation["from_cache"],
        "trees": preparation["kept_count"],
        "dropped": preparation["dropped_count"],
        "species": analysis["summary"].richness,
        "figures": sorted(analysis["figures"]),
        "report": str(analysis["report_path"]),
        "metadata": str(metadata_path),
        "skipped": analysis["skipped"],
        "message": (
            f"Rendered {len(analysis['figures'])} figure(s) from "
            f"{preparation['kept_count']} tree(s) "
            f"({'cache' if preparation['from_cache'] else 'download'}); "
            f"skipped={','.join(analysis['skipped']) or 'none'}."
        ),
    }


def _skip(analysis: str, exc: AnalysisError, skipped: list[str]) -> None:
    logger.warning(
        "phase=analysis step=%s skipped | code=%s | error=%s", analysis, exc.code, exc.message
    )
    skipped.append(analysis)
