"""Tests for the spatial diversity accumulation of a park."""

from __future__ import annotations

from collections.abc import Callable

import numpy as np
import pandas as pd
import pytest

from paris_trees.analysis.accumulation import (
    diversity_accumulation,
    park_accumulation,
    select_park,
)
from paris_trees.core.exceptions import AnalysisError

# Three species on a line, 10 m apart
X = np.array([0.0, 10.0, 20.0])
Y = np.zeros(3)
SPECIES = np.array(["A a", "B b", "C c"])


class TestDiversityAccumulation:
    def test_radius_zero_gives_one(self) -> None:
        curves = diversity_accumulation(X, Y, SPECIES, np.array([0.0]))
        assert curves.shape == (3, 1)
        assert curves[:, 0].tolist() == pytest.approx([1.0, 1.0, 1.0])

    def test_large_radius_gives_pooled_diversity(self) -> None:
        curves = diversity_accumulation(X, Y, SPECIES, np.array([0.0, 1_000.0]), (0.0, 1.0, 2.0))
        assert curves[:, -1].tolist() == pytest.approx([3.0, 3.0, 3.0])

    def test_intermediate_radius(self) -> None:
        # at 10 m the ends see one neighbour, the middle tree sees two
        curves = diversity_accumulation(X, Y, SPECIES, np.array([10.0]), (0.0,))
        assert curves[0, 0] == pytest.approx((2 + 3 + 2) / 3)

    def test_weights_change_non_zero_orders(self) -> None:
        r = np.array([1_000.0])
        even = diversity_accumulation(X, Y, SPECIES, r, (2.0,))
        uneven = diversity_accumulation(X, Y, SPECIES, r, (2.0,), np.array([10.0, 1.0, 1.0]))
        assert uneven[0, 0] < even[0, 0]

    def test_same_species_everywhere(self) -> None:
        curves = diversity_accumulation(X, Y, np.array(["A a"] * 3), np.array([1_000.0]))
        assert curves[:, 0].tolist() == pytest.approx([1.0, 1.0, 1.0])

    def test_non_decreasing_in_richness(self) -> None:
        rng = np.random.default_rng(4)
        x, y = rng.uniform(0, 50, 30), rng.uniform(0, 50, 30)
        species = rng.choice(["A", "B", "C", "D"], 30)
        curve = diversity_accumulation(x, y, species, np.arange(0.0, 60.0, 5.0), (0.0,))[0]
        assert np.all(np.diff(curve) >= -1e-12)


class TestSelectPark:
    def test_case_insensitive_match(self, street_trees: pd.DataFrame) -> None:
        park = select_park(street_trees, "parc montsouris")
        assert len(park) == 2
        assert park.index.tolist() == [0, 1]

    def test_partial_name(self, street_trees: pd.DataFrame) -> None:
        assert len(select_park(street_trees, "MONTSOURIS")) == 2

    def test_not_found_raises(self, street_trees: pd.DataFrame) -> None:
        with pytest.raises(AnalysisError, match="Buttes"):
            select_park(street_trees, "Buttes-Chaumont")


class TestParkAccumulation:
    def test_curves_and_local_diversity(self, street_trees: pd.DataFrame) -> None:
        result = park_accumulation(
            street_trees, "PARC MONTSOURIS", np.array([0.0, 5.0]), (0.0, 1.0), local_radius=10.0
        )
        assert result.n_trees == 2
        assert result.n_species == 2
        assert sorted(result.curves["r"].unique()) == [0.0, 5.0, 10.0]
        assert list(result.curves.columns) == ["r", "q", "diversity"]
        assert result.curve(0.0)["diversity"].tolist() == pytest.approx([1.0, 2.0, 2.0])
        assert list(result.local.columns) == ["x", "y", "species", "D0", "D1"]
        assert result.local["D0"].tolist() == pytest.approx([2.0, 2.0])

    def test_envelope(self, tree_table: Callable[..., pd.DataFrame]) -> None:
        rng = np.random.default_rng(2)
        n = 25
        trees = tree_table(
            list(rng.choice(["A a", "B b", "C c"], n)),
            list(rng.uniform(0, 40, n)),
            list(rng.uniform(0, 40, n)),
            address=["PARC MONTSOURIS"] * n,
        )
        result = park_accumulation(
            trees, "PARC MONTSOURIS", np.array([0.0, 5.0, 10.0]), (0.0, 2.0),
            n_simulations=9, seed=5,
        )
        assert {"lower", "upper"} <= set(result.curves.columns)
        assert np.all(result.curves["lower"] <= result.curves["upper"])
        assert result.n_simulations == 9

    def test_unknown_weight_column_raises(self, street_trees: pd.DataFrame) -> None:
        with pytest.raises(AnalysisError, match="weight column"):
            park_accumulation(
                street_trees, "PARC MONTSOURIS", np.array([5.0]), weight_column="nope"
            )
