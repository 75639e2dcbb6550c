"""Schema of the tree table.

The tree table is a single denormalised ``pandas.DataFrame`` with one row
per tree.  It is produced once by the preparation phase, cached as
Parquet, and read-only afterwards.

Columns are listed in ``TREE_COLUMNS`` with their pandas dtypes; the
harmonisation stage guarantees this exact layout and the cache checks it
on reload.
"""

from __future__ import annotations

import pandas as pd

TREE_ID = "tree_id"
SPECIES = "species"
GENUS = "genus"
FRENCH_NAME = "french_name"
SECTOR = "sector"
DOMAIN = "domain"
ADDRESS = "address"
GIRTH_CM = "girth_cm"
HEIGHT_M = "height_m"
REMARKABLE = "remarkable"
X = "x"
Y = "y"
DISTRICT = "district"

#: Column name → pandas dtype, in table order.
TREE_COLUMNS: dict[str, str] = {
    TREE_ID: "string",
    SPECIES: "string",
    GENUS: "string",
    FRENCH_NAME: "string",
    SECTOR: "string",
    DOMAIN: "string",
    ADDRESS: "string",
    GIRTH_CM: "float64",
    HEIGHT_M: "float64",
    REMARKABLE: "boolean",
    X: "float64",
    Y: "float64",
    DISTRICT: "Int64",
}


def missing_columns(frame: pd.DataFrame) -> list[str]:
    """Columns of the tree schema absent from *frame*."""
    return [name for name in TREE_COLUMNS if name not in frame.columns]


def conform(frame: pd.DataFrame) -> pd.DataFrame:
    """Reorder *frame* to the tree schema and cast every column.

    Raises:
        KeyError: If a schema column is missing.
    """
    absent = missing_columns(frame)
    if absent:
        msg = f"tree table is missing columns: {', '.join(absent)}"
        raise KeyError(msg)
    return frame[list(TREE_COLUMNS)].astype(TREE_COLUMNS).reset_index(drop=True)


def point_weights(trees: pd.DataFrame, column: str = "") -> pd.Series:
    """Point weights for the spatial analyses.

    An empty *column* gives every tree a weight of 1; otherwise the
    column values are returned as floats (NaN where unknown).
    """
    if not column:
        return pd.Series(1.0, index=trees.index)
    return pd.to_numeric(trees[column], errors="coerce").astype("float64")
