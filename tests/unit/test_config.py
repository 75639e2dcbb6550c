"""Tests for document configuration.

Covers:
- Default values reproducing the published figures
- Loading from ``PARIS_TREES_*`` environment variables
- Type coercion (string env vars → numeric fields)
- Fail-fast range validation
"""

from __future__ import annotations

import dataclasses
import os
from unittest.mock import patch

import pytest

from paris_trees.core.config import (
    ConfigValidationError,
    DocumentConfig,
    parse_q_values,
    validate,
)


class TestDocumentConfigDefaults:
    """Verify default configuration values."""

    def test_default_directories(self) -> None:
        cfg = DocumentConfig()
        assert cfg.cache_dir == "cache"
        assert cfg.output_dir == "output"

    def test_default_crs_is_lambert93(self) -> None:
        assert DocumentConfig().projected_crs == "EPSG:2154"

    def test_default_focal_species_and_park(self) -> None:
        cfg = DocumentConfig()
        assert cfg.focal_species == "Platanus x hispanica"
        assert cfg.park == "PARC MONTSOURIS"

    def test_default_q_values(self) -> None:
        assert DocumentConfig().q_values == (0.0, 1.0, 2.0)

    def test_default_unit_weights(self) -> None:
        assert DocumentConfig().weight_column == ""

    def test_defaults_are_valid(self) -> None:
        validate(DocumentConfig())

    def test_frozen(self) -> None:
        cfg = DocumentConfig()
        with pytest.raises(dataclasses.FrozenInstanceError):
            cfg.park = "X"  # type: ignore[misc]


class TestDocumentConfigFromEnv:
    """Verify loading from environment variables."""

    def test_loads_from_environment(self) -> None:
        env = {
            "PARIS_TREES_CACHE_DIR": "/tmp/c",
            "PARIS_TREES_OUTPUT_DIR": "/tmp/o",
            "PARIS_TREES_FOCAL_SPECIES": "Tilia cordata",
            "PARIS_TREES_N_SIMULATIONS": "19",
            "PARIS_TREES_ALPHA": "0.1",
            "PARIS_TREES_Q_VALUES": "0, 0.5, 1",
            "PARIS_TREES_PARK": "BOIS DE VINCENNES",
            "PARIS_TREES_CONCENTRATION_R_MAX_M": "200",
            "PARIS_TREES_REFRESH": "yes",
        }
        with patch.dict(os.environ, env, clear=False):
            cfg = DocumentConfig.from_env()

        assert cfg.cache_dir == "/tmp/c"
        assert cfg.output_dir == "/tmp/o"
        assert cfg.focal_species == "Tilia cordata"
        assert cfg.n_simulations == 19
        assert cfg.alpha == 0.1
        assert cfg.q_values == (0.0, 0.5, 1.0)
        assert cfg.park == "BOIS DE VINCENNES"
        assert cfg.concentration_r_max_m == 200.0
        assert cfg.refresh is True

    def test_defaults_when_env_missing(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            cfg = DocumentConfig.from_env()
        assert cfg == DocumentConfig()

    def test_unparseable_number_raises_value_error(self) -> None:
        with (
            patch.dict(os.environ, {"PARIS_TREES_ALPHA": "abc"}, clear=False),
            pytest.raises(ValueError),
        ):
            DocumentConfig.from_env()

    def test_out_of_range_env_fails_fast(self) -> None:
        with (
            patch.dict(os.environ, {"PARIS_TREES_TOP_N": "0"}, clear=False),
            pytest.raises(ConfigValidationError) as exc_info,
        ):
            DocumentConfig.from_env()
        assert exc_info.value.key == "PARIS_TREES_TOP_N"


class TestParseQValues:
    def test_parses_list(self) -> None:
        assert parse_q_values("0,1,2") == (0.0, 1.0, 2.0)

    def test_empty_string(self) -> None:
        assert parse_q_values("") == ()

    def test_rejects_garbage(self) -> None:
        with pytest.raises(ValueError):
            parse_q_values("0,one")


class TestValidation:
    """Fail-fast range validation."""

    @pytest.mark.parametrize(
        ("changes", "key"),
        [
            ({"http_timeout_s": 0.0}, "PARIS_TREES_HTTP_TIMEOUT_S"),
            ({"download_max_retries": -1}, "PARIS_TREES_DOWNLOAD_MAX_RETRIES"),
            ({"concentration_r_max_m": 0.0}, "PARIS_TREES_CONCENTRATION_R_MAX_M"),
            ({"concentration_r_step_m": 500.0}, "PARIS_TREES_CONCENTRATION_R_STEP_M"),
            ({"accumulation_r_step_m": 0.0}, "PARIS_TREES_ACCUMULATION_R_STEP_M"),
            ({"n_simulations": -1}, "PARIS_TREES_N_SIMULATIONS"),
            ({"alpha": 1.0}, "PARIS_TREES_ALPHA"),
            ({"partition_min_trees": 0}, "PARIS_TREES_PARTITION_MIN_TREES"),
            ({"q_values": ()}, "PARIS_TREES_Q_VALUES"),
            ({"q_values": (0.0, -1.0)}, "PARIS_TREES_Q_VALUES"),
            ({"local_radius_m": -5.0}, "PARIS_TREES_LOCAL_RADIUS_M"),
            ({"park": "  "}, "PARIS_TREES_PARK"),
        ],
    )
    def test_invalid_values_rejected(self, changes: dict[str, object], key: str) -> None:
        cfg = dataclasses.replace(DocumentConfig(), **changes)
        with pytest.raises(ConfigValidationError) as exc_info:
            validate(cfg)
        assert exc_info.value.key == key
        assert exc_info.value.stage == "config"
        assert exc_info.value.code == "CONFIG_VALIDATION_FAILED"

    def test_zero_simulations_allowed(self) -> None:
        validate(dataclasses.replace(DocumentConfig(), n_simulations=0))

    @pytest.mark.parametrize("crs", ["EPSG:999999", "not a crs"])
    def test_unknown_crs_rejected(self, crs: str) -> None:
        with pytest.raises(ConfigValidationError) as exc_info:
            validate(dataclasses.replace(DocumentConfig(), projected_crs=crs))
        assert exc_info.value.key == "PARIS_TREES_PROJECTED_CRS"
        assert "unknown CRS" in exc_info.value.message

    def test_geographic_crs_rejected(self) -> None:
        with pytest.raises(ConfigValidationError) as exc_info:
            validate(dataclasses.replace(DocumentConfig(), projected_crs="EPSG:4326"))
        assert "projected" in exc_info.value.message

    def test_other_projected_crs_accepted(self) -> None:
        validate(dataclasses.replace(DocumentConfig(), projected_crs="EPSG:32631"))
