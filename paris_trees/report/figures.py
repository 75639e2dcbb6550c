"""Figures of the document, rendered with matplotlib (``Agg`` backend).

Every function draws one figure, writes it as PNG to the given path and
closes it, so a render never keeps figures open.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402
import shapely  # noqa: E402

from paris_trees.models import trees as schema  # noqa: E402

if TYPE_CHECKING:
    import pandas as pd
    from matplotlib.axes import Axes
    from matplotlib.figure import Figure

    from paris_trees.analysis.accumulation import AccumulationResult
    from paris_trees.analysis.concentration import ConcentrationResult
    from paris_trees.models.window import CityWindow

logger = logging.getLogger("paris_trees.report.figures")

DPI = 150
TOP_SPECIES_FILE = "top_species.png"
RANK_ABUNDANCE_FILE = "rank_abundance.png"
WINDOW_MAP_FILE = "window_map.png"
M_FUNCTION_FILE = "m_function.png"
DIVERSITY_PROFILE_FILE = "diversity_profile.png"
ACCUMULATION_FILE = "accumulation.png"
LOCAL_DIVERSITY_FILE = "local_diversity.png"


def plot_top_species(counts: pd.DataFrame, path: Path) -> Path:
    """Horizontal bar chart of the most abundant species."""
    fig, ax = plt.subplots(figsize=(8, max(3.0, 0.3 * len(counts))))
    ax.barh(counts[schema.SPECIES][::-1], counts["count"][::-1], color="forestgreen")
    ax.set_xlabel("Number of trees")
    ax.set_title("Most abundant species")
    return _save(fig, path)


def plot_rank_abundance(counts: pd.DataFrame, path: Path) -> Path:
    """Rank-abundance (Whittaker) curve, log-scaled abundances."""
    fig, ax = plt.subplots(figsize=(7, 4.5))
    rank = np.arange(1, len(counts) + 1)
    ax.plot(rank, counts["count"], marker=".", linestyle="-")
    ax.set_yscale("log")
    ax.set_xlabel("Rank")
    ax.set_ylabel("Number of trees")
    ax.set_title("Rank-abundance curve")
    return _save(fig, path)


def plot_window_map(
    window: CityWindow,
    trees: pd.DataFrame,
    focal_species: str,
    path: Path,
) -> Path:
    """District outlines with every tree and the focal species highlighted."""
    fig, ax = plt.subplots(figsize=(9, 7))
    for district in window.districts:
        _outline(ax, district.geometry, color="grey", linewidth=0.5)
    _outline(ax, window.polygon, color="black", linewidth=1.0)
    ax.scatter(trees[schema.X], trees[schema.Y], s=0.2, color="lightgrey", label="All trees")
    focal = trees[(trees[schema.SPECIES] == focal_species).fillna(False)]
    ax.scatter(focal[schema.X], focal[schema.Y], s=0.5, color="forestgreen", label=focal_species)
    ax.set_aspect("equal")
    ax.set_axis_off()
    ax.legend(loc="lower left", markerscale=10)
    ax.set_title(f"City window ({window.crs}, {window.area_km2:.1f} km²)")
    return _save(fig, path)


def plot_m_function(result: ConcentrationResult, path: Path) -> Path:
    """Observed M with its random-labelling envelope and the null value 1."""
    fig, ax = plt.subplots(figsize=(7, 4.5))
    if result.lower is not None and result.upper is not None:
        ax.fill_between(
            result.r,
            result.lower,
            result.upper,
            color="lightgrey",
            label=f"Envelope ({1 - result.alpha:.0%}, {result.n_simulations} simulations)",
        )
    ax.plot(result.r, result.observed, color="black", label="Observed M")
    ax.axhline(1.0, linestyle=":", color="red", label="Independence")
    ax.set_xlabel("Distance r (m)")
    ax.set_ylabel("M(r)")
    ax.set_title(f"Concentration of {result.species}")
    ax.legend(loc="best")
    return _save(fig, path)


def plot_diversity_profile(profile: pd.DataFrame, path: Path) -> Path:
    """Gamma, alpha and beta diversity against the order q."""
    fig, ax = plt.subplots(figsize=(7, 4.5))
    for column in ("gamma", "alpha", "beta"):
        ax.plot(profile["q"], profile[column], marker="o", label=column.capitalize())
    ax.set_xlabel("Order q")
    ax.set_ylabel("Effective number")
    ax.set_title("Diversity partitioning among streets")
    ax.legend(loc="best")
    return _save(fig, path)


def plot_accumulation(result: AccumulationResult, path: Path) -> Path:
    """Mean local diversity against the neighbourhood radius, one line per q."""
    fig, ax = plt.subplots(figsize=(7, 4.5))
    for q in sorted(result.curves["q"].unique()):
        curve = result.curve(q)
        (line,) = ax.plot(curve["r"], curve["diversity"], label=f"q = {q:g}")
        if "lower" in curve.columns:
            ax.fill_between(
                curve["r"], curve["lower"], curve["upper"], color=line.get_color(), alpha=0.2
            )
    ax.set_xlabel("Radius r (m)")
    ax.set_ylabel("Mean local diversity")
    ax.set_title(f"Diversity accumulation, {result.park}")
    ax.legend(loc="best")
    return _save(fig, path)


def plot_local_diversity(result: AccumulationResult, q: float, path: Path) -> Path:
    """Map of the local diversity of order *q* of every park tree."""
    column = f"D{q:g}"
    fig, ax = plt.subplots(figsize=(7, 7))
    points = ax.scatter(
        result.local[schema.X], result.local[schema.Y], c=result.local[column], s=8, cmap="viridis"
    )
    fig.colorbar(points, ax=ax, label=f"Local diversity (q = {q:g})")
    ax.set_aspect("equal")
    ax.set_title(f"{result.park}, radius {result.local_radius:g} m")
    return _save(fig, path)


def _outline(ax: Axes, geometry: object, **kwargs: object) -> None:
    """Draw the exterior rings of a (multi)polygon."""
    for part in shapely.get_parts(geometry):
        if part.geom_type == "Polygon":
            ax.plot(*part.exterior.xy, **kwargs)


def _save(fig: Figure, path: Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.tight_layout()
    fig.savefig(path, dpi=DPI)
    plt.close(fig)
    logger.debug("figure written | path=%s", path)
    return path
