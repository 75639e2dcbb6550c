"""Tests for projection and city window preparation."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest
from shapely.geometry import Point, box

from paris_trees.core.exceptions import PipelineError
from paris_trees.stages.parse_geojson import read_polygons
from paris_trees.stages.prepare_window import (
    WindowError,
    build_city_window,
    project_geometry,
    project_points,
)

# Notre-Dame de Paris in WGS 84 and Lambert-93 (metres)
NOTRE_DAME_LONLAT = (2.3499, 48.8530)
NOTRE_DAME_L93 = (652_470.0, 6_861_780.0)


class TestProjectPoints:
    def test_projects_to_lambert93(self) -> None:
        x, y = project_points(np.array([NOTRE_DAME_LONLAT[0]]), np.array([NOTRE_DAME_LONLAT[1]]))
        assert x[0] == pytest.approx(NOTRE_DAME_L93[0], abs=1_000)
        assert y[0] == pytest.approx(NOTRE_DAME_L93[1], abs=1_000)

    def test_returns_float_arrays(self) -> None:
        x, y = project_points([2.3, 2.4], [48.8, 48.9])
        assert x.dtype == np.float64
        assert y.shape == (2,)

    def test_distances_in_metres(self) -> None:
        # 0.001 degree of latitude is about 111 m
        x, y = project_points([2.35, 2.35], [48.850, 48.851])
        assert np.hypot(x[1] - x[0], y[1] - y[0]) == pytest.approx(111.0, rel=0.02)

    def test_unknown_crs_raises_window_error(self) -> None:
        with pytest.raises(WindowError) as exc_info:
            project_points(np.array([2.35]), np.array([48.85]), "EPSG:999999")
        assert isinstance(exc_info.value, PipelineError)
        assert exc_info.value.to_error_dict()["stage"] == "prepare_window"
        assert exc_info.value.__cause__ is not None


class TestProjectGeometry:
    def test_polygon_projected(self) -> None:
        projected = project_geometry(box(2.30, 48.84, 2.34, 48.87))
        assert projected.bounds[0] > 600_000
        assert projected.area / 1e6 == pytest.approx(9.8, rel=0.1)

    def test_point_projected(self) -> None:
        projected = project_geometry(Point(*NOTRE_DAME_LONLAT))
        assert projected.x == pytest.approx(NOTRE_DAME_L93[0], abs=1_000)

    def test_unknown_crs_raises_window_error(self) -> None:
        with pytest.raises(WindowError, match="not-a-crs"):
            project_geometry(Point(*NOTRE_DAME_LONLAT), "not-a-crs")


class TestBuildCityWindow:
    def test_window_from_districts(self, districts_geojson: Path) -> None:
        window = build_city_window(read_polygons(districts_geojson))
        assert window.crs == "EPSG:2154"
        assert window.district_count == 2
        assert [d.number for d in window.districts] == [14, 15]
        assert [d.name for d in window.districts] == ["Observatoire", "Vaugirard"]
        assert window.polygon.geom_type == "Polygon"
        assert window.area_km2 == pytest.approx(
            sum(d.geometry.area for d in window.districts) / 1e6, rel=1e-6
        )

    def test_districts_sorted_by_number(self) -> None:
        polygons = [
            ({"c_ar": 2, "l_ar": "Bourse"}, box(2.34, 48.86, 2.35, 48.87)),
            ({"c_ar": 1, "l_ar": "Louvre"}, box(2.33, 48.86, 2.34, 48.87)),
        ]
        window = build_city_window(polygons)
        assert [d.number for d in window.districts] == [1, 2]

    def test_fallback_number_and_name(self) -> None:
        window = build_city_window([({}, box(2.33, 48.86, 2.34, 48.87))])
        assert window.districts[0].number == 1
        assert window.districts[0].name == "District 1"

    def test_no_polygon_raises(self) -> None:
        with pytest.raises(WindowError) as exc_info:
            build_city_window([])
        assert exc_info.value.stage == "prepare_window"
