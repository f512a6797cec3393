"""
Tests for Global Moran's I.

Synthetic lattices with known structure: checkerboards (dispersion), solid
blocks (clustering) and the 2x2 grid worked through by hand.
"""

import numpy as np
import pytest

from censusspatial.autocorrelation import Alternative, moran_global, p_value
from censusspatial.weights import ContiguityFinder, NeighborGraph, build_weights
from conftest import block, checkerboard, grid_gdf, lattice_graph


def dense_moran(x, dense):
    """Reference Moran's I and normality variance from explicit sums."""
    x = np.asarray(x, dtype=float)
    n = len(x)
    z = x - x.mean()
    s0 = dense.sum()
    num = sum(dense[i, j] * z[i] * z[j] for i in range(n) for j in range(n))
    index = n / s0 * num / (z @ z)
    s1 = 0.5 * sum((dense[i, j] + dense[j, i]) ** 2 for i in range(n) for j in range(n))
    s2 = sum((dense[i, :].sum() + dense[:, i].sum()) ** 2 for i in range(n))
    e = -1.0 / (n - 1)
    var_n = (n * n * s1 - n * s2 + 3 * s0 * s0) / ((n * n - 1) * s0 * s0) - e * e
    return index, var_n


class TestMoranGlobal:
    """Global Moran's I on synthetic patterns."""

    def test_checkerboard_is_dispersed(self):
        w = build_weights(lattice_graph(6, 6, rule="rook"), style="R")
        result = moran_global(checkerboard(6, 6), w, alternative="less")

        # every rook neighbour has the opposite colour
        assert result.index == pytest.approx(-1.0)
        assert result.z_score < 0
        assert result.p_value < 0.001

    def test_block_is_clustered(self):
        w = build_weights(lattice_graph(6, 6, rule="queen"), style="R")
        result = moran_global(block(6, 6, range(0, 3), range(0, 3)), w)

        assert result.index > 0
        assert result.z_score > 0
        assert result.p_value < 0.05

    def test_expected_value(self):
        w = build_weights(lattice_graph(5, 5, rule="queen"), style="R")
        result = moran_global(np.arange(25.0), w)
        assert result.expected == pytest.approx(-1.0 / 24)
        assert result.n == 25

    def test_matches_explicit_sums(self):
        rng = np.random.default_rng(11)
        x = rng.normal(10, 3, size=25)
        w = build_weights(lattice_graph(5, 5, rule="queen"), style="R")
        index, var_n = dense_moran(x, w.to_dense())

        result = moran_global(x, w, assumption="normality")
        assert result.index == pytest.approx(index)
        assert result.variance == pytest.approx(var_n)
        assert result.z_score == pytest.approx((index + 1 / 24) / np.sqrt(var_n))

    def test_matches_explicit_sums_binary(self):
        rng = np.random.default_rng(3)
        x = rng.gamma(2.0, 2.0, size=20)
        w = build_weights(lattice_graph(4, 5, rule="rook"), style="B")
        index, _ = dense_moran(x, w.to_dense())
        assert moran_global(x, w).index == pytest.approx(index)

    def test_index_does_not_depend_on_assumption(self):
        x = block(5, 5, range(0, 2), range(0, 5))
        w = build_weights(lattice_graph(5, 5, rule="queen"), style="R")
        norm = moran_global(x, w, assumption="normality")
        rand = moran_global(x, w, assumption="randomization")
        assert norm.index == pytest.approx(rand.index)
        assert norm.variance != pytest.approx(rand.variance)

    def test_invariant_to_affine_rescaling(self):
        rng = np.random.default_rng(5)
        x = rng.normal(size=16)
        w = build_weights(lattice_graph(4, 4, rule="queen"), style="R")
        a = moran_global(x, w)
        b = moran_global(3.0 * x + 7.0, w)
        assert a.index == pytest.approx(b.index)
        assert a.z_score == pytest.approx(b.z_score)

    def test_alternatives(self):
        x = block(6, 6, range(0, 3), range(0, 3))
        w = build_weights(lattice_graph(6, 6, rule="queen"), style="R")
        greater = moran_global(x, w, alternative="greater")
        less = moran_global(x, w, alternative=Alternative.LESS)
        two = moran_global(x, w, alternative="two.sided")

        assert greater.p_value + less.p_value == pytest.approx(1.0)
        assert two.p_value == pytest.approx(2 * min(greater.p_value, less.p_value))
        assert greater.alternative == "greater"

    def test_deterministic(self):
        x = checkerboard(4, 4)
        w = build_weights(lattice_graph(4, 4, rule="queen"), style="R")
        assert moran_global(x, w) == moran_global(x, w)


class TestMoranGlobalTwoByTwo:
    """Four units, top row high [10, 10], bottom row low [1, 1]."""

    values = [10.0, 10.0, 1.0, 1.0]

    def test_rook_gives_positive_z(self):
        w = build_weights(ContiguityFinder("rook").find(grid_gdf(2, 2)), style="R")
        result = moran_global(self.values, w)

        # each unit sees one like and one unlike neighbour
        assert result.index == pytest.approx(0.0, abs=1e-12)
        assert result.index > result.expected
        assert result.z_score > 0

    def test_rook_normality_variance_by_hand(self):
        w = build_weights(lattice_graph(2, 2, rule="rook"), style="R")
        result = moran_global(self.values, w, assumption="normality")
        # (16*4 - 4*16 + 3*16) / (15*16) - 1/9
        assert result.variance == pytest.approx(0.2 - 1 / 9)

    def test_queen_complete_graph_is_degenerate(self):
        # under queen contiguity every unit neighbours every other unit, so I == E[I] for any data
        w = build_weights(ContiguityFinder("queen").find(grid_gdf(2, 2)), style="R")
        np.testing.assert_allclose(w.row_sums, 1.0)
        with pytest.raises(ValueError, match="non-positive"):
            moran_global(self.values, w)
        with pytest.raises(ValueError, match="non-positive"):
            moran_global(self.values, w, assumption="normality")


class TestMoranGlobalErrors:
    """Inputs the statistic refuses."""

    def test_constant_vector(self):
        w = build_weights(lattice_graph(3, 3, rule="queen"), style="R")
        with pytest.raises(ValueError, match="constant"):
            moran_global([4.2] * 9, w)

    def test_length_mismatch(self):
        w = build_weights(lattice_graph(3, 3, rule="queen"), style="R")
        with pytest.raises(ValueError, match="weights matrix has 9"):
            moran_global(np.arange(8.0), w)

    def test_missing_values(self):
        w = build_weights(lattice_graph(2, 2, rule="rook"), style="R")
        with pytest.raises(ValueError, match="missing"):
            moran_global([1.0, np.nan, 2.0, 3.0], w)

    def test_randomization_needs_four_units(self):
        w = build_weights(lattice_graph(1, 3, rule="rook"), style="R")
        with pytest.raises(ValueError, match="at least 4"):
            moran_global([1.0, 2.0, 4.0], w)

    def test_normality_works_with_three_units(self):
        w = build_weights(lattice_graph(1, 3, rule="rook"), style="R")
        result = moran_global([1.0, 2.0, 4.0], w, assumption="normality")
        assert result.variance == pytest.approx(0.125)

    def test_all_islands(self):
        graph = NeighborGraph.from_mapping(["a", "b", "c", "d"], {})
        w = build_weights(graph, style="R", zero_policy=True)
        with pytest.raises(ValueError, match="S0"):
            moran_global([1.0, 2.0, 3.0, 4.0], w)

    def test_unknown_alternative(self):
        w = build_weights(lattice_graph(2, 2, rule="rook"), style="R")
        with pytest.raises(ValueError):
            moran_global([1.0, 2.0, 3.0, 4.0], w, alternative="bigger")

    def test_conditional_is_local_only(self):
        w = build_weights(lattice_graph(2, 2, rule="rook"), style="R")
        with pytest.raises(ValueError, match="local"):
            moran_global([1.0, 2.0, 3.0, 4.0], w, assumption="conditional")


class TestPValue:
    def test_zero_z(self):
        assert p_value(0.0, "greater") == pytest.approx(0.5)
        assert p_value(0.0, "two.sided") == pytest.approx(1.0)

    def test_known_quantiles(self):
        assert p_value(1.959963984540054, "two.sided") == pytest.approx(0.05)
        assert p_value(-1.6448536269514722, "less") == pytest.approx(0.05)

    def test_vectorised(self):
        p = p_value(np.array([-1.0, 0.0, 1.0]), "greater")
        assert p.shape == (3,)
        assert p[0] > p[1] > p[2]
