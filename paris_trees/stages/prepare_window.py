"""Geometry projection and city window stage.

Projects tree coordinates and district polygons from WGS 84 to the
metric CRS of the document (Lambert-93 by default) and builds the city
window as the union of the districts.

All distances of the later analyses are planar metres in this CRS,
never degrees.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import numpy as np

from paris_trees.core.constants import PROJECTED_CRS, SOURCE_CRS
from paris_trees.core.exceptions import PermanentError
from paris_trees.models.window import CityWindow, District

if TYPE_CHECKING:
    from shapely.geometry.base import BaseGeometry

logger = logging.getLogger("paris_trees.stages.prepare_window")

#: District number and label fields, in order of preference.
DISTRICT_NUMBER_FIELDS = ("c_ar", "arrondissement", "number", "code")
DISTRICT_NAME_FIELDS = ("l_ar", "l_aroff", "name", "nom")


class WindowError(PermanentError):
    """Raised when the city window cannot be built."""

    default_stage = "prepare_window"
    default_code = "WINDOW_FAILED"


# ---------------------------------------------------------------------------
# Projection
# ---------------------------------------------------------------------------


def project_points(
    lon: np.ndarray,
    lat: np.ndarray,
    crs: str = PROJECTED_CRS,
) -> tuple[np.ndarray, np.ndarray]:
    """Project WGS 84 longitude/latitude arrays to *crs*.

    Returns:
        ``(x, y)`` float arrays in the units of *crs* (metres).

    Raises:
        WindowError: If *crs* is unknown or the transformation fails.
    """
    from pyproj.exceptions import ProjError

    to_crs = _transformer(crs)
    try:
        x, y = to_crs.transform(np.asarray(lon, dtype=float), np.asarray(lat, dtype=float))
    except ProjError as exc:
        msg = f"Cannot project points to {crs}: {exc}"
        raise WindowError(msg) from exc
    return np.asarray(x, dtype=float), np.asarray(y, dtype=float)


def project_geometry(geom: BaseGeometry, crs: str = PROJECTED_CRS) -> BaseGeometry:
    """Project a WGS 84 shapely geometry to *crs*.  Raises ``WindowError``."""
    from pyproj.exceptions import ProjError
    from shapely.ops import transform

    to_crs = _transformer(crs)
    try:
        return transform(to_crs.transform, geom)
    except ProjError as exc:
        msg = f"Cannot project geometry to {crs}: {exc}"
        raise WindowError(msg) from exc


def _transformer(crs: str) -> Any:
    from pyproj import Transformer
    from pyproj.exceptions import CRSError, ProjError

    try:
        return Transformer.from_crs(SOURCE_CRS, crs, always_xy=True)
    except (CRSError, ProjError) as exc:
        msg = f"Unknown projected CRS {crs!r}: {exc}"
        raise WindowError(msg) from exc


# ---------------------------------------------------------------------------
# City window
# ---------------------------------------------------------------------------


def build_city_window(
    polygons: list[tuple[dict[str, Any], BaseGeometry]],
    crs: str = PROJECTED_CRS,
) -> CityWindow:
    """Project district polygons and merge them into the city window.

    Args:
        polygons: ``(properties, geometry)`` pairs from ``read_polygons``,
            geometries in WGS 84.
        crs: Target metric CRS.

    Returns:
        A ``CityWindow`` whose polygon is the union of all districts.

    Raises:
        WindowError: If no polygon is supplied or the union is empty.
    """
    from shapely import union_all

    if not polygons:
        msg = "No district polygon available to build the city window"
        raise WindowError(msg)

    districts: list[District] = []
    for idx, (properties, geom) in enumerate(polygons):
        number = _district_number(properties, default=idx + 1)
        name = _district_name(properties, default=f"District {number}")
        districts.append(District(number=number, name=name, geometry=project_geometry(geom, crs)))
    districts.sort(key=lambda d: d.number)

    polygon = union_all([d.geometry for d in districts])
    if polygon.is_empty:
        msg = "Union of the district polygons is empty"
        raise WindowError(msg)

    window = CityWindow(polygon=polygon, crs=crs, districts=tuple(districts))
    logger.info(
        "window prepared | crs=%s | districts=%d | area=%.2f km2 | "
        "bounds=[%.0f, %.0f, %.0f, %.0f]",
        crs,
        window.district_count,
        window.area_km2,
        *window.bounds,
    )
    return window


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _district_number(properties: dict[str, Any], *, default: int) -> int:
    for key in DISTRICT_NUMBER_FIELDS:
        value = properties.get(key)
        if value is None:
            continue
        try:
            return int(float(value))
        except (TypeError, ValueError):
            continue
    return default


def _district_name(properties: dict[str, Any], *, default: str) -> str:
    for key in DISTRICT_NAME_FIELDS:
        value = properties.get(key)
        if value:
            return str(value)
    return default
