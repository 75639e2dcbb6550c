"""Cache stage: persist the prepared tree table and city window.

The tree table is written as Parquet (``pyarrow`` engine) and the window
as GeoJSON in the projected CRS.  When both files exist the preparation
phase is skipped entirely; nothing else is ever recovered.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pandas as pd

from paris_trees.core.constants import TREES_CACHE_FILE, WINDOW_CACHE_FILE
from paris_trees.core.exceptions import PermanentError
from paris_trees.models import trees as schema
from paris_trees.models.window import CityWindow

logger = logging.getLogger("paris_trees.stages.cache")


class CacheError(PermanentError):
    """Raised when a cache file exists but cannot be read or written."""

    default_stage = "cache"
    default_code = "CACHE_FAILED"


class TreeCache:
    """Prepared-data cache in a single directory.

    Example usage::

        cache = TreeCache("cache")
        if cache.exists():
            trees, window = cache.load()
        else:
            cache.save(trees, window)
    """

    def __init__(self, cache_dir: Path | str) -> None:
        self.cache_dir = Path(cache_dir)

    @property
    def trees_path(self) -> Path:
        return self.cache_dir / TREES_CACHE_FILE

    @property
    def window_path(self) -> Path:
        return self.cache_dir / WINDOW_CACHE_FILE

    def exists(self) -> bool:
        """Whether both the table and the window are cached."""
        return self.trees_path.exists() and self.window_path.exists()

    def save(self, trees: pd.DataFrame, window: CityWindow) -> None:
        """Write the tree table and the window.

        Raises:
            CacheError: If a file cannot be written.
        """
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        try:
            schema.conform(trees).to_parquet(self.trees_path, engine="pyarrow", index=False)
            self.window_path.write_text(json.dumps(window.to_geojson()), encoding="utf-8")
        except (OSError, ValueError, KeyError) as exc:
            msg = f"Cannot write cache in {self.cache_dir}: {exc}"
            raise CacheError(msg) from exc
        logger.info(
            "cache written | trees=%s | rows=%d | window=%s",
            self.trees_path,
            len(trees),
            self.window_path,
        )

    def load(self) -> tuple[pd.DataFrame, CityWindow]:
        """Read the tree table and the window.

        Raises:
            CacheError: If a file is missing, unreadable or does not match
                the tree schema.
        """
        try:
            trees = schema.conform(pd.read_parquet(self.trees_path, engine="pyarrow"))
            window = CityWindow.from_geojson(
                json.loads(self.window_path.read_text(encoding="utf-8"))
            )
        except (OSError, ValueError, KeyError, TypeError) as exc:
            msg = f"Cannot read cache in {self.cache_dir}: {exc}"
            raise CacheError(msg) from exc
        logger.info(
            "cache loaded | trees=%d | districts=%d | path=%s",
            len(trees),
            window.district_count,
            self.cache_dir,
        )
        return trees, window
