"""GeoJSON parsing stage: read point and polygon features with fiona.

Parses the downloaded exports using fiona (OGR GeoJSON driver):

- **Points** (trees): every property plus ``lon`` / ``lat`` columns in a
  ``pandas.DataFrame``.
- **Polygons** (districts): ``(properties, shapely geometry)`` pairs;
  MultiPolygon features are kept whole and invalid rings are repaired
  with ``make_valid``.

Features with a null geometry, an unexpected geometry type, or
coordinates outside WGS 84 bounds are logged and skipped, so one bad
record never discards the rest of the file.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import pandas as pd

from paris_trees.core.exceptions import PipelineError

logger = logging.getLogger("paris_trees.stages.parse_geojson")

# WGS 84 coordinate bounds
MIN_LONGITUDE = -180.0
MAX_LONGITUDE = 180.0
MIN_LATITUDE = -90.0
MAX_LATITUDE = 90.0

LON = "lon"
LAT = "lat"

POLYGON_TYPES = frozenset({"Polygon", "MultiPolygon"})


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class GeoJsonParseError(PipelineError):
    """Raised when a GeoJSON file cannot be read."""

    default_stage = "parse_geojson"
    default_code = "GEOJSON_PARSE_FAILED"


class InvalidCoordinateError(GeoJsonParseError):
    """Raised when coordinates are outside valid WGS 84 bounds."""

    default_code = "GEOJSON_COORDINATE_INVALID"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def read_points(path: Path | str) -> pd.DataFrame:
    """Read Point features into a DataFrame.

    Args:
        path: GeoJSON file on disk.

    Returns:
        One row per valid point: every feature property plus ``lon`` and
        ``lat`` (WGS 84 degrees).

    Raises:
        GeoJsonParseError: If the file is missing, empty or unreadable.
    """
    path = Path(path)
    rows: list[dict[str, Any]] = []
    skipped = 0

    for idx, geometry, properties in _iter_features(path):
        if geometry is None or geometry.type != "Point":
            skipped += 1
            continue
        try:
            lon, lat = _point_coordinates(geometry.coordinates)
            validate_lon_lat(lon, lat, f"feature {idx}")
        except InvalidCoordinateError as exc:
            logger.warning("Skipping invalid point in %s: %s", path.name, exc)
            skipped += 1
            continue
        row = dict(properties)
        row[LON] = lon
        row[LAT] = lat
        rows.append(row)

    logger.info(
        "points parsed | file=%s | points=%d | skipped=%d", path.name, len(rows), skipped
    )
    frame = pd.DataFrame(rows)
    if frame.empty:
        frame = pd.DataFrame(columns=[LON, LAT])
    return frame


def read_polygons(path: Path | str) -> list[tuple[dict[str, Any], Any]]:
    """Read Polygon and MultiPolygon features as shapely geometries.

    Args:
        path: GeoJSON file on disk.

    Returns:
        ``(properties, geometry)`` pairs in file order.

    Raises:
        GeoJsonParseError: If the file is missing, empty or unreadable.
    """
    from shapely.geometry import shape
    from shapely.validation import make_valid

    path = Path(path)
    polygons: list[tuple[dict[str, Any], Any]] = []
    skipped = 0

    for idx, geometry, properties in _iter_features(path):
        if geometry is None or geometry.type not in POLYGON_TYPES:
            skipped += 1
            continue
        geom = shape(geometry)
        min_lon, min_lat, max_lon, max_lat = geom.bounds
        try:
            validate_lon_lat(min_lon, min_lat, f"feature {idx}")
            validate_lon_lat(max_lon, max_lat, f"feature {idx}")
        except InvalidCoordinateError as exc:
            logger.warning("Skipping invalid polygon in %s: %s", path.name, exc)
            skipped += 1
            continue
        if not geom.is_valid:
            logger.warning("Repairing invalid polygon %d in %s", idx, path.name)
            geom = make_valid(geom)
        polygons.append((dict(properties), geom))

    logger.info(
        "polygons parsed | file=%s | polygons=%d | skipped=%d",
        path.name,
        len(polygons),
        skipped,
    )
    return polygons


def validate_lon_lat(lon: float, lat: float, context: str) -> None:
    """Check a coordinate pair against WGS 84 bounds.

    Raises:
        InvalidCoordinateError: If longitude or latitude is out of range.
    """
    if not MIN_LONGITUDE <= lon <= MAX_LONGITUDE:
        msg = f"Longitude {lon} out of range [{MIN_LONGITUDE}, {MAX_LONGITUDE}] in {context}"
        raise InvalidCoordinateError(msg)
    if not MIN_LATITUDE <= lat <= MAX_LATITUDE:
        msg = f"Latitude {lat} out of range [{MIN_LATITUDE}, {MAX_LATITUDE}] in {context}"
        raise InvalidCoordinateError(msg)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _iter_features(path: Path):
    """Yield ``(index, geometry, properties)`` for every feature of *path*.

    Raises:
        GeoJsonParseError: If the file is missing, empty or unreadable.
    """
    import fiona
    from fiona.errors import FionaError

    if not path.exists():
        msg = f"GeoJSON file not found: {path}"
        raise GeoJsonParseError(msg)
    if path.stat().st_size == 0:
        msg = f"GeoJSON file is empty: {path}"
        raise GeoJsonParseError(msg)

    try:
        with fiona.open(str(path), driver="GeoJSON") as collection:
            for idx, record in enumerate(collection):
                yield idx, record.geometry, record.properties or {}
    except FionaError as exc:
        msg = f"Cannot read GeoJSON file {path.name}: {exc}"
        raise GeoJsonParseError(msg) from exc


def _point_coordinates(coords: object) -> tuple[float, float]:
    """Convert Point coordinates to ``(lon, lat)``, dropping altitude.

    Raises:
        InvalidCoordinateError: If the coordinates are malformed.
    """
    if not isinstance(coords, list | tuple) or len(coords) < 2:
        msg = f"Malformed point coordinates: {coords!r}"
        raise InvalidCoordinateError(msg)
    try:
        return float(coords[0]), float(coords[1])
    except (TypeError, ValueError) as exc:
        msg = f"Malformed point coordinates: {coords!r}"
        raise InvalidCoordinateError(msg) from exc
