"""Tests for the sparse LAP solver wrapper.

scipy's dense ``linear_sum_assignment`` serves as the optimality reference.
"""

from __future__ import annotations

import numpy as np
import pytest
from scipy.optimize import linear_sum_assignment

from spot_link.linking.association.jaqaman_linker import sparse_from_triplets
from spot_link.linking.association.lap_solver import LAPError, solve_lap


def _from_dense(dense: np.ndarray):
    rows, cols = np.nonzero(np.isfinite(dense))
    return sparse_from_triplets(rows, cols, dense[rows, cols], dense.shape)


def _random_feasible(n: int, density: float, seed: int) -> np.ndarray:
    """Random sparse square matrix with a guaranteed perfect matching."""
    rng = np.random.RandomState(seed)
    dense = np.where(rng.rand(n, n) < density, rng.rand(n, n) * 100.0, np.inf)
    perm = rng.permutation(n)
    dense[np.arange(n), perm] = rng.rand(n) * 100.0
    return dense


def _assert_valid(solution, n):
    assert sorted(solution.row_to_col.tolist()) == list(range(n))
    for i, j in enumerate(solution.row_to_col.tolist()):
        assert solution.col_to_row[j] == i


class TestSmallProblems:

    def test_single_entry(self):
        s = solve_lap(_from_dense(np.array([[3.0]])))
        assert s.row_to_col.tolist() == [0]
        assert s.total_cost == pytest.approx(3.0)

    def test_empty_problem(self):
        s = solve_lap(sparse_from_triplets([], [], [], (0, 0)))
        assert s.row_to_col.size == 0
        assert s.total_cost == 0.0

    def test_greedy_would_be_wrong(self):
        # Row 0 prefers column 0, but the optimum gives it column 1.
        dense = np.array([
            [1.0, 2.0],
            [1.5, 10.0],
        ])
        s = solve_lap(_from_dense(dense))
        assert s.row_to_col.tolist() == [1, 0]
        assert s.total_cost == pytest.approx(3.5)

    def test_forced_by_sparsity(self):
        inf = np.inf
        dense = np.array([
            [0.0, 0.0, inf],
            [0.0, inf, inf],
            [inf, 5.0, 9.0],
        ])
        s = solve_lap(_from_dense(dense))
        assert s.row_to_col.tolist() == [1, 0, 2]
        assert s.total_cost == pytest.approx(9.0)

    def test_zero_costs(self):
        s = solve_lap(_from_dense(np.zeros((4, 4))))
        _assert_valid(s, 4)
        assert s.total_cost == 0.0

    def test_stored_zero_is_an_admissible_entry(self):
        # The only complete assignment runs through the two stored zeros.
        inf = np.inf
        dense = np.array([
            [0.0, inf],
            [7.0, 0.0],
        ])
        s = solve_lap(_from_dense(dense))
        assert s.row_to_col.tolist() == [0, 1]
        assert s.row_costs.tolist() == [0.0, 0.0]
        assert s.total_cost == 0.0

    def test_row_costs_and_inverse_assignment(self):
        dense = np.array([
            [4.0, 1.0, 3.0],
            [2.0, 0.0, 5.0],
            [3.0, 2.0, 2.0],
        ])
        s = solve_lap(_from_dense(dense))
        _assert_valid(s, 3)
        np.testing.assert_array_equal(s.row_costs, dense[np.arange(3), s.row_to_col])
        assert s.total_cost == pytest.approx(s.row_costs.sum())

    def test_negative_costs(self):
        dense = np.array([
            [-5.0, 1.0],
            [1.0, -5.0],
        ])
        s = solve_lap(_from_dense(dense))
        assert s.row_to_col.tolist() == [0, 1]
        assert s.total_cost == pytest.approx(-10.0)


class TestAgainstDenseReference:

    @pytest.mark.parametrize("seed", range(8))
    @pytest.mark.parametrize("n,density", [(6, 0.5), (15, 0.3), (40, 0.1)])
    def test_matches_optimal_cost(self, n, density, seed):
        dense = _random_feasible(n, density, seed)
        solution = solve_lap(_from_dense(dense))
        _assert_valid(solution, n)
        chosen = dense[np.arange(n), solution.row_to_col]
        assert np.all(np.isfinite(chosen))

        rows, cols = linear_sum_assignment(dense)
        assert solution.total_cost == pytest.approx(dense[rows, cols].sum())

    def test_full_dense(self):
        rng = np.random.RandomState(3)
        dense = rng.rand(12, 12)
        solution = solve_lap(_from_dense(dense))
        rows, cols = linear_sum_assignment(dense)
        assert solution.total_cost == pytest.approx(dense[rows, cols].sum())


class TestFailures:

    def test_not_square(self):
        with pytest.raises(LAPError, match="square"):
            solve_lap(sparse_from_triplets([0, 1], [0, 1], [1.0, 1.0], (2, 3)))

    def test_empty_row(self):
        with pytest.raises(LAPError, match="Row 1"):
            solve_lap(sparse_from_triplets([0, 0], [0, 1], [1.0, 1.0], (2, 2)))

    def test_no_complete_assignment(self):
        # Both rows can only use column 0.
        with pytest.raises(LAPError):
            solve_lap(sparse_from_triplets([0, 1], [0, 0], [1.0, 2.0], (2, 2)))
