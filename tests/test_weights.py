"""
Tests for neighbor graphs, contiguity detection and weights construction.
"""

import geopandas as gpd
import numpy as np
import pandas as pd
import pytest
from shapely.geometry import box

from censusspatial.weights import (
    ConfigurationError,
    ContiguityFinder,
    NeighborGraph,
    build_weights,
)
from conftest import grid_gdf, lattice_graph


class TestNeighborGraph:
    """Invariants checked when a graph is built."""

    def test_from_mapping(self):
        graph = NeighborGraph.from_mapping(["a", "b", "c"], {"a": ["b"], "b": ["a", "c"], "c": ["b"]})
        assert graph.n == 3
        assert graph.neighbors == ((1,), (0, 2), (1,))
        assert graph.to_mapping() == {"a": ["b"], "b": ["a", "c"], "c": ["b"]}
        assert graph.n_edges == 4

    def test_asymmetric_rejected(self):
        with pytest.raises(ValueError, match="symmetric"):
            NeighborGraph.from_mapping(["a", "b"], {"a": ["b"]})

    def test_self_loop_rejected(self):
        with pytest.raises(ValueError, match="itself"):
            NeighborGraph(ids=("a", "b"), neighbors=((0, 1), (0,)))

    def test_unknown_neighbor_rejected(self):
        with pytest.raises(ValueError, match="unknown neighbor"):
            NeighborGraph.from_mapping(["a", "b"], {"a": ["z"], "b": []})

    def test_unknown_unit_rejected(self):
        with pytest.raises(ValueError, match="Unknown unit"):
            NeighborGraph.from_mapping(["a"], {"z": []})

    def test_duplicate_ids_rejected(self):
        with pytest.raises(ValueError, match="unique"):
            NeighborGraph(ids=("a", "a"), neighbors=((), ()))

    def test_islands_and_cardinalities(self):
        graph = NeighborGraph.from_mapping(["a", "b", "c"], {"a": ["b"], "b": ["a"]})
        assert graph.islands == ["c"]
        assert graph.cardinalities.tolist() == [1, 1, 0]

    def test_lattice_helper_is_symmetric(self):
        graph = lattice_graph(4, 5, rule="queen")
        mapping = graph.to_mapping()
        for i, nbrs in mapping.items():
            for j in nbrs:
                assert i in mapping[j]


class TestContiguityFinder:
    """Polygon contiguity through libpysal."""

    def test_queen_2x2_every_unit_has_three_neighbors(self):
        graph = ContiguityFinder("queen").find(grid_gdf(2, 2))
        assert graph.cardinalities.tolist() == [3, 3, 3, 3]

    def test_rook_2x2_drops_diagonals(self):
        graph = ContiguityFinder("rook").find(grid_gdf(2, 2))
        assert graph.cardinalities.tolist() == [2, 2, 2, 2]
        # top-left touches top-right and bottom-left only
        assert graph.neighbors[0] == (1, 2)

    def test_queen_3x3_center_and_corner(self):
        graph = ContiguityFinder("queen").find(grid_gdf(3, 3))
        assert graph.cardinalities[4] == 8
        assert graph.cardinalities[0] == 3

    def test_rook_3x3_center(self):
        graph = ContiguityFinder("rook").find(grid_gdf(3, 3))
        assert graph.cardinalities[4] == 4
        assert graph.cardinalities[0] == 2

    def test_matches_lattice(self):
        for rule in ("queen", "rook"):
            found = ContiguityFinder(rule).find(grid_gdf(4, 3))
            assert found.neighbors == lattice_graph(4, 3, rule=rule).neighbors

    def test_ids_follow_row_order(self):
        gdf = grid_gdf(2, 3)
        gdf.index = [10, 20, 30, 40, 50, 60]
        graph = ContiguityFinder("rook").find(gdf)
        assert graph.ids == tuple(gdf["GEOID"])

    def test_isolated_polygon_is_an_island(self):
        gdf = grid_gdf(2, 2)
        island = gpd.GeoDataFrame({"GEOID": ["24510999999"]}, geometry=[box(10, 10, 11, 11)])
        gdf = pd.concat([gdf, island], ignore_index=True)
        graph = ContiguityFinder("queen").find(gdf)
        assert graph.islands == ["24510999999"]

    @pytest.mark.parametrize("rule", ["queen", "rook"])
    def test_edge_contact_without_shared_vertex(self, rule):
        # the short box touches the tall one along x = 1 but has no vertex in common
        gdf = gpd.GeoDataFrame(
            {"GEOID": ["a", "b", "c"]},
            geometry=[box(0, 0.25, 1, 0.75), box(1, 0, 2, 1), box(2, 0, 3, 1)],
        )
        graph = ContiguityFinder(rule).find(gdf)
        assert graph.to_mapping() == {"a": ["b"], "b": ["a", "c"], "c": ["b"]}
        assert graph.islands == []

    def test_unknown_rule(self):
        with pytest.raises(ConfigurationError):
            ContiguityFinder("bishop")

    def test_missing_id_field(self):
        with pytest.raises(ValueError, match="Identifier"):
            ContiguityFinder().find(grid_gdf(2, 2), id_field="TRACT")


class TestBuildWeights:
    """Weights styles and the zero policy."""

    def test_row_standardized_rows_sum_to_one(self):
        w = build_weights(lattice_graph(5, 5, rule="queen"), style="R")
        np.testing.assert_allclose(w.row_sums, 1.0)

    def test_queen_2x2_weights_are_one_third(self):
        w = build_weights(ContiguityFinder("queen").find(grid_gdf(2, 2)), style="R")
        dense = w.to_dense()
        expected = np.full((4, 4), 1 / 3)
        np.fill_diagonal(expected, 0.0)
        np.testing.assert_allclose(dense, expected)

    def test_binary(self):
        graph = lattice_graph(3, 3, rule="rook")
        w = build_weights(graph, style="B")
        assert set(np.unique(w.matrix.data)) == {1.0}
        assert w.s0 == graph.n_edges

    def test_globally_standardized_sums_to_n(self):
        w = build_weights(lattice_graph(3, 4, rule="queen"), style="C")
        assert w.s0 == pytest.approx(12.0)

    def test_style_is_case_insensitive(self):
        assert build_weights(lattice_graph(2, 2), style="r").style == "R"

    def test_unknown_style(self):
        with pytest.raises(ConfigurationError):
            build_weights(lattice_graph(2, 2), style="V")

    def test_island_is_fatal_without_zero_policy(self):
        graph = NeighborGraph.from_mapping(["a", "b", "c"], {"a": ["b"], "b": ["a"]})
        with pytest.raises(ConfigurationError, match="zero_policy"):
            build_weights(graph, style="R", zero_policy=False)

    def test_island_gets_zero_row_with_zero_policy(self):
        graph = NeighborGraph.from_mapping(["a", "b", "c"], {"a": ["b"], "b": ["a"]})
        w = build_weights(graph, style="R", zero_policy=True)
        np.testing.assert_allclose(w.row_sums, [1.0, 1.0, 0.0])
        assert w.islands == ["c"]

    def test_moments_rook_2x2(self):
        # each unit has two neighbours at 0.5; W is symmetric
        w = build_weights(lattice_graph(2, 2, rule="rook"), style="R")
        assert w.s0 == pytest.approx(4.0)
        assert w.s1 == pytest.approx(4.0)
        assert w.s2 == pytest.approx(16.0)

    def test_moments_match_dense_definitions(self):
        w = build_weights(lattice_graph(4, 4, rule="queen"), style="R")
        dense = w.to_dense()
        s1 = 0.5 * ((dense + dense.T) ** 2).sum()
        s2 = ((dense.sum(axis=1) + dense.sum(axis=0)) ** 2).sum()
        assert w.s1 == pytest.approx(s1)
        assert w.s2 == pytest.approx(s2)

    def test_lag(self):
        w = build_weights(lattice_graph(1, 3, rule="rook"), style="R")
        np.testing.assert_allclose(w.lag([1.0, 2.0, 4.0]), [2.0, 2.5, 2.0])

    def test_lag_length_mismatch(self):
        w = build_weights(lattice_graph(1, 3, rule="rook"), style="R")
        with pytest.raises(ValueError):
            w.lag([1.0, 2.0])
