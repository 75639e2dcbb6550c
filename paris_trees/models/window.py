"""Data model for the city window.

The window is the polygonal study area of every point-pattern analysis:
the union of the Paris districts, projected to a metric CRS.  The
individual district polygons are kept for the spatial join.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from shapely.geometry import mapping, shape
from shapely.geometry.base import BaseGeometry

SQ_METRES_PER_SQ_KM = 1_000_000.0


@dataclass(frozen=True, slots=True)
class District:
    """One administrative district of the city window.

    Attributes:
        number: District number (1 to 20 for Paris).
        name: Official district label.
        geometry: Projected polygon or multipolygon.
    """

    number: int
    name: str
    geometry: BaseGeometry


@dataclass(frozen=True, slots=True)
class CityWindow:
    """The projected city boundary and its districts.

    Attributes:
        polygon: Union of all district geometries (projected CRS).
        crs: CRS of ``polygon`` and ``districts`` (e.g. ``"EPSG:2154"``).
        districts: District polygons, sorted by number.
    """

    polygon: BaseGeometry
    crs: str
    districts: tuple[District, ...] = field(default_factory=tuple)

    @property
    def area_km2(self) -> float:
        """Planar area of the window in square kilometres."""
        return self.polygon.area / SQ_METRES_PER_SQ_KM

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        """``(min_x, min_y, max_x, max_y)`` in the projected CRS."""
        return tuple(self.polygon.bounds)  # type: ignore[return-value]

    @property
    def district_count(self) -> int:
        return len(self.districts)

    def to_geojson(self) -> dict[str, Any]:
        """Serialise to a GeoJSON FeatureCollection for the cache.

        Coordinates stay in the projected CRS, recorded in the ``crs``
        member.
        """
        return {
            "type": "FeatureCollection",
            "crs": self.crs,
            "features": [
                {
                    "type": "Feature",
                    "properties": {"number": d.number, "name": d.name},
                    "geometry": mapping(d.geometry),
                }
                for d in self.districts
            ],
        }

    @classmethod
    def from_geojson(cls, data: dict[str, Any]) -> CityWindow:
        """Deserialise a FeatureCollection written by ``to_geojson``.

        Raises:
            TypeError: If ``features`` is not a list or ``crs`` is missing.
        """
        from shapely import union_all

        features = data.get("features")
        if not isinstance(features, list):
            msg = f"features must be a list, got {type(features).__name__}"
            raise TypeError(msg)
        crs = data.get("crs")
        if not isinstance(crs, str) or not crs:
            msg = "crs must be a non-empty string"
            raise TypeError(msg)

        districts = tuple(
            sorted(
                (
                    District(
                        number=int(f["properties"]["number"]),
                        name=str(f["properties"].get("name", "")),
                        geometry=shape(f["geometry"]),
                    )
                    for f in features
                ),
                key=lambda d: d.number,
            )
        )
        polygon = union_all([d.geometry for d in districts])
        return cls(polygon=polygon, crs=crs, districts=districts)
