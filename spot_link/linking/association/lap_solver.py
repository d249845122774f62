"""Sparse linear assignment.

Thin wrapper around scipy's sparse Jonker-Volgenant matching
(``min_weight_full_bipartite_matching``). Only stored entries of the CSR
matrix are admissible assignments, so the dense matrix is never built.
Stored zero costs are legal entries; every cost is shifted by a constant
before solving so no stored entry reaches scipy as zero. A constant shift
changes every complete assignment by the same amount.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np
from scipy.sparse import csr_matrix
from scipy.sparse.csgraph import min_weight_full_bipartite_matching


class LAPError(RuntimeError):
    """The sparse cost matrix admits no complete assignment."""


@dataclass(frozen=True)
class LAPSolution:
    """Complete assignment of a square problem.

    Attributes:
        row_to_col: (n,) column assigned to each row.
        col_to_row: (n,) row assigned to each column.
        row_costs: (n,) stored cost of each row's assignment.
        total_cost: Sum of the assigned costs.
    """

    row_to_col: np.ndarray
    col_to_row: np.ndarray
    row_costs: np.ndarray
    total_cost: float


def solve_lap(matrix: csr_matrix) -> LAPSolution:
    """Minimum-cost complete assignment of a square sparse matrix.

    Raises:
        LAPError: if the matrix is not square, has an empty row, or no
            complete assignment exists.
    """
    matrix = csr_matrix(matrix)
    n, n_cols = matrix.shape
    if n != n_cols:
        raise LAPError(f"Cost matrix must be square, got {n}x{n_cols}")
    if n == 0:
        empty = np.empty(0, dtype=np.int64)
        return LAPSolution(empty, empty, np.empty(0, dtype=np.float64), 0.0)

    empty_rows = np.flatnonzero(np.diff(matrix.indptr) == 0)
    if empty_rows.size:
        raise LAPError(f"Row {int(empty_rows[0])} has no admissible column")

    data = matrix.data.astype(np.float64)
    shifted = csr_matrix(
        (data - data.min() + 1.0, matrix.indices, matrix.indptr), shape=matrix.shape
    )
    try:
        row_ind, col_ind = min_weight_full_bipartite_matching(shifted)
    except ValueError as exc:
        raise LAPError(f"No complete assignment exists: {exc}") from exc

    row_to_col = np.full(n, -1, dtype=np.int64)
    row_to_col[row_ind] = col_ind
    col_to_row = np.full(n, -1, dtype=np.int64)
    col_to_row[row_to_col] = np.arange(n, dtype=np.int64)
    row_costs = np.asarray(matrix[np.arange(n), row_to_col], dtype=np.float64).reshape(-1)

    return LAPSolution(
        row_to_col=row_to_col,
        col_to_row=col_to_row,
        row_costs=row_costs,
        total_cost=float(math.fsum(row_costs)),
    )
