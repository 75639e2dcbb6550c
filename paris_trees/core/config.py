"""Document configuration loaded from environment variables.

All configuration values have defaults reproducing the published
figures.  ``PARIS_TREES_*`` environment variables override them, and the
command line overrides the environment with ``dataclasses.replace``.

Fail-fast validation:
    ``from_env()`` raises ``ConfigValidationError`` if any numeric
    value is out of its valid range.  This catches bad configuration
    before any download starts.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from paris_trees.core.constants import (
    DEFAULT_FOCAL_SPECIES,
    DEFAULT_PARK,
    DEFAULT_Q_VALUES,
    DISTRICTS_URL,
    PROJECTED_CRS,
    STREET_DOMAIN,
    TREES_URL,
)
from paris_trees.core.exceptions import PipelineError

ENV_PREFIX = "PARIS_TREES_"


class ConfigValidationError(PipelineError):
    """Raised when configuration values are out of valid range.

    Attributes:
        key: The configuration key that failed validation.
        value: The invalid value.
        message: Human-readable description of the valid range.
    """

    default_stage = "config"
    default_code = "CONFIG_VALIDATION_FAILED"

    def __init__(self, key: str, value: object, message: str) -> None:
        self.key = key
        self.value = value
        super().__init__(f"Invalid configuration {key}={value!r}: {message}")


@dataclass(frozen=True, slots=True)
class DocumentConfig:
    """Immutable document configuration.

    Loaded once by the command line and threaded through both phases.

    Attributes:
        trees_url: GeoJSON export of the tree inventory.
        districts_url: GeoJSON export of the district boundaries.
        cache_dir: Directory holding raw downloads and prepared data.
        output_dir: Directory receiving figures and the Markdown report.
        projected_crs: Metric CRS used for every distance computation.
        http_timeout_s: Per-request timeout in seconds.
        download_max_retries: Retries after a transient download failure.
        focal_species: Species whose concentration is measured.
        weight_column: Tree table column used as point weight; empty
            string means every tree weighs 1.
        concentration_r_max_m: Largest distance of the M function (metres).
        concentration_r_step_m: Distance step of the M function (metres).
        n_simulations: Random-labelling simulations for envelopes.
        alpha: Risk level of the confidence envelopes.
        random_seed: Seed of the simulation random generator.
        partition_min_trees: Minimum trees for a street to be a community.
        partition_domain: Management domain defining street trees.
        q_values: Diversity orders reported by every diversity analysis.
        park: Name (or part of the name) of the park studied.
        accumulation_r_max_m: Largest neighbourhood radius (metres).
        accumulation_r_step_m: Neighbourhood radius step (metres).
        local_radius_m: Radius of the mapped local diversity (metres).
        top_n: Number of species shown in abundance tables and charts.
        refresh: Ignore every cache file and download again.
    """

    trees_url: str = TREES_URL
    districts_url: str = DISTRICTS_URL
    cache_dir: str = "cache"
    output_dir: str = "output"
    projected_crs: str = PROJECTED_CRS
    http_timeout_s: float = 120.0
    download_max_retries: int = 3
    focal_species: str = DEFAULT_FOCAL_SPECIES
    weight_column: str = ""
    concentration_r_max_m: float = 100.0
    concentration_r_step_m: float = 5.0
    n_simulations: int = 99
    alpha: float = 0.05
    random_seed: int = 42
    partition_min_trees: int = 10
    partition_domain: str = STREET_DOMAIN
    q_values: tuple[float, ...] = DEFAULT_Q_VALUES
    park: str = DEFAULT_PARK
    accumulation_r_max_m: float = 50.0
    accumulation_r_step_m: float = 5.0
    local_radius_m: float = 20.0
    top_n: int = 20
    refresh: bool = False

    @classmethod
    def from_env(cls) -> DocumentConfig:
        """Load and validate configuration from environment variables.

        Raises:
            ConfigValidationError: If a numeric value is out of range
                or a required string value is empty.
            ValueError: If a numeric environment variable cannot be
                parsed (e.g. ``PARIS_TREES_ALPHA=abc``).
        """
        defaults = cls()
        config = cls(
            trees_url=_env("TREES_URL", defaults.trees_url),
            districts_url=_env("DISTRICTS_URL", defaults.districts_url),
            cache_dir=_env("CACHE_DIR", defaults.cache_dir),
            output_dir=_env("OUTPUT_DIR", defaults.output_dir),
            projected_crs=_env("PROJECTED_CRS", defaults.projected_crs),
            http_timeout_s=float(_env("HTTP_TIMEOUT_S", str(defaults.http_timeout_s))),
            download_max_retries=int(
                _env("DOWNLOAD_MAX_RETRIES", str(defaults.download_max_retries))
            ),
            focal_species=_env("FOCAL_SPECIES", defaults.focal_species),
            weight_column=_env("WEIGHT_COLUMN", defaults.weight_column),
            concentration_r_max_m=float(
                _env("CONCENTRATION_R_MAX_M", str(defaults.concentration_r_max_m))
            ),
            concentration_r_step_m=float(
                _env("CONCENTRATION_R_STEP_M", str(defaults.concentration_r_step_m))
            ),
            n_simulations=int(_env("N_SIMULATIONS", str(defaults.n_simulations))),
            alpha=float(_env("ALPHA", str(defaults.alpha))),
            random_seed=int(_env("RANDOM_SEED", str(defaults.random_seed))),
            partition_min_trees=int(
                _env("PARTITION_MIN_TREES", str(defaults.partition_min_trees))
            ),
            partition_domain=_env("PARTITION_DOMAIN", defaults.partition_domain),
            q_values=parse_q_values(_env("Q_VALUES", "")) or defaults.q_values,
            park=_env("PARK", defaults.park),
            accumulation_r_max_m=float(
                _env("ACCUMULATION_R_MAX_M", str(defaults.accumulation_r_max_m))
            ),
            accumulation_r_step_m=float(
                _env("ACCUMULATION_R_STEP_M", str(defaults.accumulation_r_step_m))
            ),
            local_radius_m=float(_env("LOCAL_RADIUS_M", str(defaults.local_radius_m))),
            top_n=int(_env("TOP_N", str(defaults.top_n))),
            refresh=_env("REFRESH", "0").strip().lower() in {"1", "true", "yes"},
        )
        validate(config)
        return config


def parse_q_values(raw: str) -> tuple[float, ...]:
    """Parse a comma-separated list of diversity orders (``"0,1,2"``).

    Returns an empty tuple for an empty string.

    Raises:
        ValueError: If an element is not a number.
    """
    return tuple(float(part) for part in raw.split(",") if part.strip())


def validate(config: DocumentConfig) -> None:
    """Validate configuration ranges.  Raises ``ConfigValidationError``."""
    for key, value in (
        ("TREES_URL", config.trees_url),
        ("DISTRICTS_URL", config.districts_url),
        ("CACHE_DIR", config.cache_dir),
        ("OUTPUT_DIR", config.output_dir),
        ("PROJECTED_CRS", config.projected_crs),
        ("FOCAL_SPECIES", config.focal_species),
        ("PARK", config.park),
    ):
        if not value.strip():
            raise ConfigValidationError(ENV_PREFIX + key, value, "must not be empty")

    _validate_crs(config.projected_crs)

    if config.http_timeout_s <= 0:
        raise ConfigValidationError(
            ENV_PREFIX + "HTTP_TIMEOUT_S", config.http_timeout_s, "must be > 0 (seconds)"
        )

    if config.download_max_retries < 0:
        raise ConfigValidationError(
            ENV_PREFIX + "DOWNLOAD_MAX_RETRIES", config.download_max_retries, "must be >= 0"
        )

    _validate_distances(
        "CONCENTRATION", config.concentration_r_max_m, config.concentration_r_step_m
    )
    _validate_distances(
        "ACCUMULATION", config.accumulation_r_max_m, config.accumulation_r_step_m
    )

    if config.local_radius_m < 0:
        raise ConfigValidationError(
            ENV_PREFIX + "LOCAL_RADIUS_M", config.local_radius_m, "must be >= 0 (metres)"
        )

    if config.n_simulations < 0:
        raise ConfigValidationError(
            ENV_PREFIX + "N_SIMULATIONS", config.n_simulations, "must be >= 0"
        )

    if not 0.0 < config.alpha < 1.0:
        raise ConfigValidationError(
            ENV_PREFIX + "ALPHA", config.alpha, "must be strictly between 0 and 1"
        )

    if config.partition_min_trees < 1:
        raise ConfigValidationError(
            ENV_PREFIX + "PARTITION_MIN_TREES", config.partition_min_trees, "must be >= 1"
        )

    if not config.q_values or any(q < 0 for q in config.q_values):
        raise ConfigValidationError(
            ENV_PREFIX + "Q_VALUES", config.q_values, "must be a non-empty list of orders >= 0"
        )

    if config.top_n < 1:
        raise ConfigValidationError(ENV_PREFIX + "TOP_N", config.top_n, "must be >= 1")


def _validate_crs(value: str) -> None:
    from pyproj import CRS
    from pyproj.exceptions import CRSError

    try:
        crs = CRS.from_user_input(value)
    except CRSError as exc:
        raise ConfigValidationError(ENV_PREFIX + "PROJECTED_CRS", value, "unknown CRS") from exc
    if not crs.is_projected:
        raise ConfigValidationError(
            ENV_PREFIX + "PROJECTED_CRS", value, "must be a projected CRS in metres"
        )


def _validate_distances(name: str, r_max: float, r_step: float) -> None:
    if r_max <= 0:
        raise ConfigValidationError(
            f"{ENV_PREFIX}{name}_R_MAX_M", r_max, "must be > 0 (metres)"
        )
    if not 0 < r_step <= r_max:
        raise ConfigValidationError(
            f"{ENV_PREFIX}{name}_R_STEP_M", r_step, f"must be > 0 and <= {r_max} (metres)"
        )


def _env(key: str, default: str) -> str:
    return os.getenv(ENV_PREFIX + key, default)
