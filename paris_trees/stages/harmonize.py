"""Column harmonisation stage: raw tree properties to the tree table.

The Paris open-data export has changed field names over time
(``libellefrancais`` / ``libelle_francais``, ``lieu`` / ``adresse``, …).
This stage maps every known alias to the canonical schema of
``paris_trees.models.trees``, builds the species name, coerces types,
and applies plausibility bounds to the measurements.

Rows are dropped when the genus is unknown or the coordinates are
missing; measurements outside plausible bounds are set to NaN rather
than dropping the tree, so abundance counts stay complete.
"""

from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from paris_trees.core.constants import MAX_GIRTH_CM, MAX_HEIGHT_M
from paris_trees.core.exceptions import ContractError
from paris_trees.models import trees as schema
from paris_trees.stages.parse_geojson import LAT, LON
from paris_trees.utils.helpers import boolish, normalise_text

logger = logging.getLogger("paris_trees.stages.harmonize")

#: Source field name → canonical column.
COLUMN_ALIASES: dict[str, str] = {
    "idbase": schema.TREE_ID,
    "id_base": schema.TREE_ID,
    "libellefrancais": schema.FRENCH_NAME,
    "libelle_francais": schema.FRENCH_NAME,
    "genre": schema.GENUS,
    "espece": "species_epithet",
    "arrondissement": schema.SECTOR,
    "domanialite": schema.DOMAIN,
    "lieu": schema.ADDRESS,
    "adresse": schema.ADDRESS,
    "circonferenceencm": schema.GIRTH_CM,
    "circonference_en_cm": schema.GIRTH_CM,
    "circonference_cm": schema.GIRTH_CM,
    "hauteurenm": schema.HEIGHT_M,
    "hauteur_en_m": schema.HEIGHT_M,
    "hauteur_m": schema.HEIGHT_M,
    "remarquable": schema.REMARKABLE,
}

#: Canonical columns the source must provide (after aliasing).
REQUIRED_SOURCE_COLUMNS: tuple[str, ...] = (
    schema.GENUS,
    schema.ADDRESS,
    schema.GIRTH_CM,
    schema.HEIGHT_M,
    LON,
    LAT,
)

#: Genus values meaning "not identified" in the inventory.
UNIDENTIFIED_MARKERS = frozenset({"", "non specifie", "non spécifié", "inconnu", "nan", "none"})

#: Epithet values meaning "species not identified".
UNKNOWN_EPITHETS = frozenset({"", "n. sp.", "n.sp.", "sp.", "sp", "non specifie", "non spécifié"})


class DatasetSchemaError(ContractError):
    """Raised when the source export lacks columns the tree table needs."""

    default_stage = "harmonize"
    default_code = "DATASET_SCHEMA_MISMATCH"


def harmonize_trees(raw: pd.DataFrame) -> pd.DataFrame:
    """Convert raw tree properties into the typed tree table.

    Args:
        raw: Output of ``read_points`` (source properties + ``lon``/``lat``).

    Returns:
        A DataFrame with the tree schema columns.  ``x``/``y`` hold the
        WGS 84 longitude/latitude until the projection stage replaces
        them; ``district`` is empty until the spatial join.

    Raises:
        DatasetSchemaError: If a required source column is missing.
    """
    frame = raw.rename(columns=lambda c: COLUMN_ALIASES.get(str(c).strip().lower(), c))
    frame = frame.loc[:, ~frame.columns.duplicated()].copy()

    absent = [c for c in REQUIRED_SOURCE_COLUMNS if c not in frame.columns]
    if absent:
        msg = f"Tree export is missing required fields: {', '.join(absent)}"
        raise DatasetSchemaError(msg)

    n_raw = len(frame)
    out = pd.DataFrame(index=frame.index)

    if schema.TREE_ID in frame.columns:
        out[schema.TREE_ID] = frame[schema.TREE_ID].map(_id_text)
    else:
        out[schema.TREE_ID] = frame.index.map(str)

    genus = frame[schema.GENUS].map(normalise_text).str.capitalize()
    epithet = (
        frame["species_epithet"].map(normalise_text).str.lower()
        if "species_epithet" in frame.columns
        else pd.Series("", index=frame.index)
    )
    out[schema.GENUS] = genus
    out[schema.SPECIES] = [species_name(g, e) for g, e in zip(genus, epithet, strict=True)]

    for column in (schema.FRENCH_NAME, schema.SECTOR, schema.DOMAIN):
        out[column] = (
            frame[column].map(normalise_text) if column in frame.columns else ""
        )
    out[schema.ADDRESS] = frame[schema.ADDRESS].map(normalise_text).str.upper()

    out[schema.GIRTH_CM] = _bounded(frame[schema.GIRTH_CM], MAX_GIRTH_CM)
    out[schema.HEIGHT_M] = _bounded(frame[schema.HEIGHT_M], MAX_HEIGHT_M)

    if schema.REMARKABLE in frame.columns:
        out[schema.REMARKABLE] = frame[schema.REMARKABLE].map(boolish).astype("boolean")
    else:
        out[schema.REMARKABLE] = pd.Series(pd.NA, index=frame.index, dtype="boolean")

    out[schema.X] = pd.to_numeric(frame[LON], errors="coerce")
    out[schema.Y] = pd.to_numeric(frame[LAT], errors="coerce")
    out[schema.DISTRICT] = pd.Series(pd.NA, index=frame.index, dtype="Int64")

    unidentified = out[schema.GENUS].str.lower().isin(UNIDENTIFIED_MARKERS)
    no_coords = out[schema.X].isna() | out[schema.Y].isna()
    out = out[~unidentified & ~no_coords]

    table = schema.conform(out)
    logger.info(
        "trees harmonised | raw=%d | kept=%d | unidentified=%d | no_coordinates=%d | "
        "species=%d | girth_missing=%d | height_missing=%d",
        n_raw,
        len(table),
        int(unidentified.sum()),
        int((no_coords & ~unidentified).sum()),
        table[schema.SPECIES].nunique(),
        int(table[schema.GIRTH_CM].isna().sum()),
        int(table[schema.HEIGHT_M].isna().sum()),
    )
    return table


def species_name(genus: str, epithet: str) -> str:
    """Build a binomial name, ``"<Genus> sp."`` when the epithet is unknown.

    >>> species_name("Platanus", "x hispanica")
    'Platanus x hispanica'
    >>> species_name("Prunus", "n. sp.")
    'Prunus sp.'
    """
    if epithet.strip().lower() in UNKNOWN_EPITHETS:
        return f"{genus} sp."
    return f"{genus} {epithet.strip()}"


def _bounded(values: pd.Series, upper: float) -> pd.Series:
    """Numeric values in ``(0, upper]``, NaN elsewhere."""
    numeric = pd.to_numeric(values, errors="coerce").astype("float64")
    return numeric.where((numeric > 0) & (numeric <= upper), np.nan)


def _id_text(value: object) -> str:
    """Identifiers come as floats from some exports (``12345.0``)."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return normalise_text(value)
