"""Pydantic run metadata record.

Written as ``run_metadata.json`` next to ``report.md`` after every
render: which sources were read, which parameters were used, and how the
run went.  The record makes a rendered document traceable without
re-reading the log.

The record is split into three nested sections:
- **data**: Source URLs, row counts through preparation, window summary
- **parameters**: Analysis parameters taken from the configuration
- **processing**: Timestamp, duration, status, skipped analyses, outputs
"""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from paris_trees.core.config import DocumentConfig
    from paris_trees.orchestrators.document import AnalysisResult, PreparationResult

SCHEMA_VERSION = "paris-trees-run-v1"


class DataMetadata(BaseModel):
    """Data section of the run metadata.

    Attributes:
        trees_url: Source of the tree inventory.
        districts_url: Source of the district boundaries.
        from_cache: Whether the prepared table came from the cache.
        raw_count: Features read from the tree export.
        kept_count: Trees inside the city window.
        dropped_count: Trees outside every district.
        species: Number of distinct species kept.
        districts: Number of districts in the window.
        window_area_km2: Area of the city window.
        crs: Projected CRS of every coordinate.
    """

    trees_url: str = ""
    districts_url: str = ""
    from_cache: bool = False
    raw_count: int = 0
    kept_count: int = 0
    dropped_count: int = 0
    species: int = 0
    districts: int = 0
    window_area_km2: float = 0.0
    crs: str = ""


class ParametersMetadata(BaseModel):
    """Analysis parameters of the run."""

    focal_species: str = ""
    park: str = ""
    weight_column: str = ""
    q_values: list[float] = Field(default_factory=list)
    n_simulations: int = 0
    alpha: float = 0.05
    random_seed: int = 0
    partition_min_trees: int = 0
    partition_domain: str = ""
    local_radius_m: float = 0.0


class ProcessingMetadata(BaseModel):
    """Processing section of the run metadata.

    Attributes:
        timestamp: End of the run (ISO 8601, UTC).
        duration_s: Wall-clock duration of both phases in seconds.
        status: ``"completed"`` or ``"partial"``.
        skipped: Analyses that could not run on the data.
        figures: Figure keys written.
        report_path: Path of ``report.md``.
    """

    timestamp: str = ""
    duration_s: float = 0.0
    status: str = "pending"
    skipped: list[str] = Field(default_factory=list)
    figures: list[str] = Field(default_factory=list)
    report_path: str = ""


class RunMetadataRecord(BaseModel):
    """Top-level run metadata record.

    Attributes:
        schema_version: Schema identifier for forward compatibility.
        data: Sources and preparation counts.
        parameters: Analysis parameters.
        processing: Run outcome.
    """

    schema_version: str = Field(default=SCHEMA_VERSION, alias="$schema")
    data: DataMetadata = Field(default_factory=DataMetadata)
    parameters: ParametersMetadata = Field(default_factory=ParametersMetadata)
    processing: ProcessingMetadata = Field(default_factory=ProcessingMetadata)

    model_config = {"populate_by_name": True}

    @classmethod
    def from_run(
        cls,
        config: DocumentConfig,
        preparation: PreparationResult,
        analysis: AnalysisResult,
        *,
        duration_s: float = 0.0,
        timestamp: str = "",
    ) -> RunMetadataRecord:
        """Build the record of a finished run.

        Args:
            config: Configuration of the run.
            preparation: Result of the preparation phase.
            analysis: Result of the analysis phase.
            duration_s: Duration of both phases in seconds.
            timestamp: End of the run (ISO 8601).  If empty, uses the
                current UTC time.
        """
        if not timestamp:
            timestamp = datetime.now(UTC).isoformat()

        window = preparation["window"]
        return cls(
            data=DataMetadata(
                trees_url=config.trees_url,
                districts_url=config.districts_url,
                from_cache=preparation["from_cache"],
                raw_count=preparation["raw_count"],
                kept_count=preparation["kept_count"],
                dropped_count=preparation["dropped_count"],
                species=analysis["summary"].richness,
                districts=window.district_count,
                window_area_km2=round(window.area_km2, 3),
                crs=window.crs,
            ),
            parameters=ParametersMetadata(
                focal_species=config.focal_species,
                park=config.park,
                weight_column=config.weight_column,
                q_values=list(config.q_values),
                n_simulations=config.n_simulations,
                alpha=config.alpha,
                random_seed=config.random_seed,
                partition_min_trees=config.partition_min_trees,
                partition_domain=config.partition_domain,
                local_radius_m=config.local_radius_m,
            ),
            processing=ProcessingMetadata(
                timestamp=timestamp,
                duration_s=round(duration_s, 3),
                status="partial" if analysis["skipped"] else "completed",
                skipped=list(analysis["skipped"]),
                figures=sorted(analysis["figures"]),
                report_path=str(analysis["report_path"]),
            ),
        )

    def to_json(self, *, indent: int = 2) -> str:
        """Serialise to a JSON string.

        Uses the ``$schema`` alias for the schema version field.
        """
        return self.model_dump_json(indent=indent, by_alias=True)

    def to_dict(self) -> dict[str, object]:
        """Serialise to a plain dict."""
        return self.model_dump(by_alias=True)  # type: ignore[return-value]

    def write(self, path: Path | str) -> Path:
        """Write the record as JSON to *path* and return the path."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_json(), encoding="utf-8")
        return path
