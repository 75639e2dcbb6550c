"""Shared pytest fixtures for the Paris trees test suite.

The fixtures write tiny synthetic GeoJSON exports shaped like the Paris
open-data files: two square districts side by side and a handful of
trees, one of them outside both districts.  No test touches the network.
"""

from __future__ import annotations

import json
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from paris_trees.core.config import DocumentConfig
from paris_trees.models import trees as schema

# ---------------------------------------------------------------------------
# Synthetic districts (WGS 84)
# ---------------------------------------------------------------------------

WEST_DISTRICT = [[2.30, 48.84], [2.34, 48.84], [2.34, 48.87], [2.30, 48.87], [2.30, 48.84]]
EAST_DISTRICT = [[2.34, 48.84], [2.38, 48.84], [2.38, 48.87], [2.34, 48.87], [2.34, 48.84]]


def _district(number: int, name: str, ring: list[list[float]]) -> dict[str, object]:
    return {
        "type": "Feature",
        "properties": {"c_ar": number, "l_ar": name},
        "geometry": {"type": "Polygon", "coordinates": [ring]},
    }


def _tree(
    idbase: int,
    lon: float,
    lat: float,
    genre: str,
    espece: str,
    adresse: str,
    *,
    domanialite: str = "Alignement",
    circonference: float = 120.0,
    hauteur: float = 12.0,
    remarquable: str = "NON",
) -> dict[str, object]:
    return {
        "type": "Feature",
        "properties": {
            "idbase": idbase,
            "genre": genre,
            "espece": espece,
            "libellefrancais": genre,
            "arrondissement": "PARIS 14E ARRDT",
            "domanialite": domanialite,
            "adresse": adresse,
            "circonferenceencm": circonference,
            "hauteurenm": hauteur,
            "remarquable": remarquable,
        },
        "geometry": {"type": "Point", "coordinates": [lon, lat]},
    }


def sample_tree_features() -> list[dict[str, object]]:
    """Twelve trees: two streets, one park, one unidentified, one outside."""
    return [
        # Street A, west district
        _tree(1, 2.310, 48.850, "Platanus", "x hispanica", "Rue des Lilas"),
        _tree(2, 2.3102, 48.850, "Platanus", "x hispanica", "Rue des Lilas"),
        _tree(3, 2.3104, 48.850, "Tilia", "cordata", "Rue des Lilas"),
        # Street B, east district
        _tree(4, 2.350, 48.860, "Aesculus", "hippocastanum", "Avenue du Parc"),
        _tree(5, 2.3502, 48.860, "Aesculus", "hippocastanum", "Avenue du Parc"),
        _tree(6, 2.3504, 48.860, "Platanus", "x hispanica", "Avenue du Parc"),
        # Park, east district
        _tree(7, 2.360, 48.845, "Quercus", "robur", "Parc Montsouris", domanialite="Jardin"),
        _tree(8, 2.3601, 48.845, "Quercus", "robur", "Parc Montsouris", domanialite="Jardin"),
        _tree(
            9,
            2.3602,
            48.845,
            "Taxus",
            "baccata",
            "Parc Montsouris",
            domanialite="Jardin",
            remarquable="OUI",
            hauteur=900.0,
        ),
        # Unidentified genus
        _tree(10, 2.320, 48.855, "Non spécifié", "", "Rue des Lilas"),
        # Outside both districts
        _tree(11, 2.500, 48.900, "Platanus", "x hispanica", "Rue Lointaine"),
        # Unknown epithet
        _tree(12, 2.3106, 48.850, "Prunus", "n. sp.", "Rue des Lilas"),
    ]


def sample_district_features() -> list[dict[str, object]]:
    return [
        _district(14, "Observatoire", WEST_DISTRICT),
        _district(15, "Vaugirard", EAST_DISTRICT),
    ]


def _write_collection(path: Path, features: list[dict[str, object]]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps({"type": "FeatureCollection", "features": features}), encoding="utf-8"
    )
    return path


# ---------------------------------------------------------------------------
# GeoJSON file fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def trees_geojson(tmp_path: Path) -> Path:
    """Path to a synthetic tree export (12 features)."""
    return _write_collection(tmp_path / "trees.geojson", sample_tree_features())


@pytest.fixture()
def districts_geojson(tmp_path: Path) -> Path:
    """Path to a synthetic district export (2 squares)."""
    return _write_collection(tmp_path / "districts.geojson", sample_district_features())


@pytest.fixture()
def raw_cache_dir(tmp_path: Path) -> Path:
    """Cache directory with both raw exports already downloaded."""
    cache_dir = tmp_path / "cache"
    _write_collection(cache_dir / "raw" / "trees.geojson", sample_tree_features())
    _write_collection(cache_dir / "raw" / "districts.geojson", sample_district_features())
    return cache_dir


@pytest.fixture()
def document_config(raw_cache_dir: Path, tmp_path: Path) -> DocumentConfig:
    """Configuration sized for the synthetic exports, without network."""
    return DocumentConfig(
        trees_url="https://example.invalid/trees.geojson",
        districts_url="https://example.invalid/districts.geojson",
        cache_dir=str(raw_cache_dir),
        output_dir=str(tmp_path / "output"),
        concentration_r_max_m=50.0,
        concentration_r_step_m=10.0,
        n_simulations=5,
        partition_min_trees=2,
        accumulation_r_max_m=20.0,
        accumulation_r_step_m=5.0,
        local_radius_m=10.0,
        top_n=5,
    )


# ---------------------------------------------------------------------------
# Tree table fixtures
# ---------------------------------------------------------------------------


def make_tree_table(
    species: list[str],
    x: list[float],
    y: list[float],
    *,
    address: list[str] | None = None,
    domain: list[str] | None = None,
    district: list[int] | None = None,
) -> pd.DataFrame:
    """Build a conformed tree table from a few columns."""
    n = len(species)
    frame = pd.DataFrame(
        {
            schema.TREE_ID: [str(i) for i in range(n)],
            schema.SPECIES: species,
            schema.GENUS: [s.split(" ")[0] for s in species],
            schema.FRENCH_NAME: [""] * n,
            schema.SECTOR: [""] * n,
            schema.DOMAIN: domain if domain is not None else ["Alignement"] * n,
            schema.ADDRESS: address if address is not None else ["RUE"] * n,
            schema.GIRTH_CM: np.full(n, 100.0),
            schema.HEIGHT_M: np.full(n, 10.0),
            schema.REMARKABLE: [False] * n,
            schema.X: x,
            schema.Y: y,
            schema.DISTRICT: district if district is not None else [1] * n,
        }
    )
    return schema.conform(frame)


@pytest.fixture()
def street_trees() -> pd.DataFrame:
    """Two streets with disjoint species and one park."""
    species = ["A a", "A a", "B b", "B b", "C c", "C c", "D d", "D d", "E e", "F f"]
    address = ["RUE UN"] * 4 + ["RUE DEUX"] * 4 + ["PARC MONTSOURIS"] * 2
    domain = ["Alignement"] * 8 + ["Jardin"] * 2
    x = [0.0, 1.0, 2.0, 3.0, 100.0, 101.0, 102.0, 103.0, 500.0, 503.0]
    y = [0.0] * 10
    return make_tree_table(species, x, y, address=address, domain=domain)


@pytest.fixture()
def tree_table():
    """Factory building a conformed tree table (see ``make_tree_table``)."""
    return make_tree_table
