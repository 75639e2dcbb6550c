"""Shared document constants: single source of truth.

Centralises data source URLs, coordinate reference systems, cache file
names and plausibility bounds used across stages and analyses.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Data sources (Paris open data, GeoJSON exports)
# ---------------------------------------------------------------------------

TREES_URL: str = (
    "https://opendata.paris.fr/api/explore/v2.1/catalog/datasets/les-arbres/exports/geojson"
)
"""Inventory of trees managed by the City of Paris."""

DISTRICTS_URL: str = (
    "https://opendata.paris.fr/api/explore/v2.1/catalog/datasets/arrondissements/exports/geojson"
)
"""Administrative districts (arrondissements) of Paris."""

# ---------------------------------------------------------------------------
# Coordinate reference systems
# ---------------------------------------------------------------------------

SOURCE_CRS: str = "EPSG:4326"
"""GeoJSON coordinates are always WGS 84 longitude/latitude."""

PROJECTED_CRS: str = "EPSG:2154"
"""RGF93 / Lambert-93, the French metric reference projection."""

# ---------------------------------------------------------------------------
# Cache layout
# ---------------------------------------------------------------------------

RAW_DIR_NAME: str = "raw"
RAW_TREES_FILE: str = "trees.geojson"
RAW_DISTRICTS_FILE: str = "districts.geojson"
TREES_CACHE_FILE: str = "trees.parquet"
WINDOW_CACHE_FILE: str = "window.geojson"

FIGURES_DIR_NAME: str = "figures"
REPORT_FILE: str = "report.md"
METADATA_FILE: str = "run_metadata.json"

# ---------------------------------------------------------------------------
# Plausibility bounds for tree measurements
# ---------------------------------------------------------------------------

MAX_GIRTH_CM: float = 1_500.0
"""Girths above 15 m are data-entry errors in the inventory."""

MAX_HEIGHT_M: float = 50.0
"""No tree in Paris is taller than 50 m."""

# ---------------------------------------------------------------------------
# Analysis defaults
# ---------------------------------------------------------------------------

DEFAULT_FOCAL_SPECIES: str = "Platanus x hispanica"
DEFAULT_PARK: str = "PARC MONTSOURIS"
STREET_DOMAIN: str = "Alignement"
DEFAULT_Q_VALUES: tuple[float, ...] = (0.0, 1.0, 2.0)
