"""Sparse frame-to-frame linking of two spot sets (Jaqaman LAP formulation).

For S sources and T targets the square (S+T) x (S+T) problem is::

        |  T targets          |  S "no link"        |
    ----+---------------------+---------------------+
     S  | linkable costs      | diag: alt. cost     |   source disappears
    ----+---------------------+---------------------+
     T  | diag: alt. cost     | transposed pattern, |   target appears
        |                     | all at min cost     |
    ----+---------------------+---------------------+

Only pairs whose cost does not exceed the threshold are stored, so the
problem stays sparse. The alternative cost is the cutoff percentile of the
linkable costs times the alternative cost factor.
"""

from __future__ import annotations

import logging
import math
import numbers
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence, Tuple

import numpy as np
from scipy.sparse import csr_matrix
from scipy.spatial import cKDTree

from spot_link.data.schema import Spot
from spot_link.linking.association.cost_functions import CostFunction
from spot_link.linking.association.lap_solver import LAPError, solve_lap

logger = logging.getLogger(__name__)

UNASSIGNED = -1

# Relative slack on the k-d tree search radius; the exact cost test decides.
_GATE_RADIUS_SLACK = 1e-9


@dataclass(frozen=True)
class AssignmentResult:
    """Outcome of linking one source set to one target set.

    Attributes:
        assignment: (S,) target index per source, or UNASSIGNED.
        costs: (S,) realized link cost per source, NaN when unassigned.
        target_assignment: (T,) source index per target, or UNASSIGNED.
        alternative_cost: Cost of leaving a spot unlinked; None when no
            pair was linkable.
        error_message: Reason of failure, None on success.
    """

    assignment: np.ndarray
    costs: np.ndarray
    target_assignment: np.ndarray
    alternative_cost: Optional[float] = None
    error_message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error_message is None

    @property
    def n_links(self) -> int:
        return int(np.count_nonzero(self.assignment != UNASSIGNED))

    def links(self) -> Iterator[Tuple[int, int, float]]:
        """Yield ``(source_index, target_index, cost)`` for every link."""
        for s, t in enumerate(self.assignment.tolist()):
            if t != UNASSIGNED:
                yield s, t, float(self.costs[s])

    @classmethod
    def unlinked(
        cls, n_sources: int, n_targets: int, alternative_cost: Optional[float] = None
    ) -> "AssignmentResult":
        return cls(
            assignment=np.full(n_sources, UNASSIGNED, dtype=np.int64),
            costs=np.full(n_sources, np.nan, dtype=np.float64),
            target_assignment=np.full(n_targets, UNASSIGNED, dtype=np.int64),
            alternative_cost=alternative_cost,
        )

    @classmethod
    def failure(cls, message: str) -> "AssignmentResult":
        empty = np.empty(0, dtype=np.int64)
        return cls(
            assignment=empty,
            costs=np.empty(0, dtype=np.float64),
            target_assignment=empty,
            error_message=message,
        )


class CostEvaluationError(ValueError):
    """A candidate pair produced an unusable cost."""


def _candidate_pairs(
    sources: Sequence[Spot],
    targets: Sequence[Spot],
    cost_function: CostFunction,
    cost_threshold: float,
) -> Iterator[Tuple[int, int]]:
    """Pairs worth evaluating, in (source, target) order."""
    if getattr(cost_function, "gated_by_distance", False):
        dims = {s.ndim for s in sources} | {t.ndim for t in targets}
        source_pos = target_pos = None
        if len(dims) == 1:
            source_pos = np.stack([s.position for s in sources])
            target_pos = np.stack([t.position for t in targets])
        if (source_pos is not None and np.all(np.isfinite(source_pos))
                and np.all(np.isfinite(target_pos))):
            tree = cKDTree(target_pos)
            radius = math.sqrt(cost_threshold) * (1.0 + _GATE_RADIUS_SLACK)
            neighbors = tree.query_ball_point(source_pos, r=radius)
            for i, targets_in_range in enumerate(neighbors):
                for j in sorted(targets_in_range):
                    yield i, int(j)
            return
    # Mixed dimensions or non-finite positions: the cost function reports them.
    for i in range(len(sources)):
        for j in range(len(targets)):
            yield i, j


def compute_linkable_costs(
    sources: Sequence[Spot],
    targets: Sequence[Spot],
    cost_function: CostFunction,
    cost_threshold: float,
) -> Tuple[List[int], List[int], List[float]]:
    """Evaluate candidate pairs and keep those with cost <= threshold.

    Raises:
        CostEvaluationError: on a non-real, non-finite or negative cost.
    """
    rows: List[int] = []
    cols: List[int] = []
    costs: List[float] = []
    for i, j in _candidate_pairs(sources, targets, cost_function, cost_threshold):
        try:
            cost = cost_function.cost(sources[i], targets[j])
        except ValueError as exc:
            raise CostEvaluationError(
                f"Cost between source {i} and target {j} failed: {exc}"
            ) from exc
        if not isinstance(cost, numbers.Real) or isinstance(cost, bool):
            raise CostEvaluationError(
                f"Cost between source {i} and target {j} is not a real number: {cost!r}"
            )
        cost = float(cost)
        if not math.isfinite(cost) or cost < 0.0:
            raise CostEvaluationError(
                f"Cost between source {i} and target {j} must be finite and >= 0, got {cost}"
            )
        if cost > cost_threshold:
            continue
        rows.append(i)
        cols.append(j)
        costs.append(cost)
    return rows, cols, costs


def sparse_from_triplets(
    rows: Sequence[int],
    cols: Sequence[int],
    values: Sequence[float],
    shape: Tuple[int, int],
) -> csr_matrix:
    """CSR matrix from (row, col, value) triplets in any order.

    Stored zeros are kept: a zero cost is a legal assignment, an absent
    entry is a forbidden one.

    Raises:
        ValueError: on length mismatch, out-of-range index, duplicate
            entry or non-finite value.
    """
    n_rows, n_cols = int(shape[0]), int(shape[1])
    rows = np.asarray(rows, dtype=np.int64).reshape(-1)
    cols = np.asarray(cols, dtype=np.int64).reshape(-1)
    values = np.asarray(values, dtype=np.float64).reshape(-1)
    if not (rows.shape == cols.shape == values.shape):
        raise ValueError(
            f"Triplet arrays differ in length: {rows.size}, {cols.size}, {values.size}"
        )
    if rows.size:
        if rows.min() < 0 or rows.max() >= n_rows:
            raise ValueError(f"Row index out of range for {n_rows} rows")
        if cols.min() < 0 or cols.max() >= n_cols:
            raise ValueError(f"Column index out of range for {n_cols} columns")
    if not np.all(np.isfinite(values)):
        raise ValueError("Cost values must be finite")

    order = np.lexsort((cols, rows))
    rows, cols, values = rows[order], cols[order], values[order]
    if rows.size > 1:
        dup = (rows[1:] == rows[:-1]) & (cols[1:] == cols[:-1])
        if np.any(dup):
            k = int(np.argmax(dup))
            raise ValueError(f"Duplicate entry at ({rows[k]}, {cols[k]})")

    indptr = np.zeros(n_rows + 1, dtype=np.int64)
    np.cumsum(np.bincount(rows, minlength=n_rows), out=indptr[1:])
    return csr_matrix((values, cols, indptr), shape=(n_rows, n_cols))


def compute_alternative_cost(
    costs: Sequence[float],
    alternative_cost_factor: float,
    cutoff_percentile: float,
) -> float:
    """``factor * percentile(costs, cutoff_percentile)``."""
    return float(alternative_cost_factor * np.percentile(np.asarray(costs), cutoff_percentile))


def build_augmented_matrix(
    rows: Sequence[int],
    cols: Sequence[int],
    costs: Sequence[float],
    n_sources: int,
    n_targets: int,
    alternative_cost: float,
) -> csr_matrix:
    """Square (S+T) sparse LAP matrix allowing any spot to stay unlinked."""
    rows = np.asarray(rows, dtype=np.int64)
    cols = np.asarray(cols, dtype=np.int64)
    costs = np.asarray(costs, dtype=np.float64)
    min_cost = float(costs.min())
    source_idx = np.arange(n_sources, dtype=np.int64)
    target_idx = np.arange(n_targets, dtype=np.int64)

    all_rows = np.concatenate([rows, source_idx, n_sources + target_idx, n_sources + cols])
    all_cols = np.concatenate([cols, n_targets + source_idx, target_idx, n_targets + rows])
    all_costs = np.concatenate([
        costs,
        np.full(n_sources, alternative_cost),
        np.full(n_targets, alternative_cost),
        np.full(costs.shape[0], min_cost),
    ])
    n = n_sources + n_targets
    return sparse_from_triplets(all_rows, all_cols, all_costs, (n, n))


def link_spots(
    sources: Sequence[Spot],
    targets: Sequence[Spot],
    cost_function: CostFunction,
    cost_threshold: float,
    alternative_cost_factor: float,
    cutoff_percentile: float = 90.0,
) -> AssignmentResult:
    """Minimum-cost partial matching of *sources* to *targets*.

    Any source may stay unlinked (it disappears) and any target may stay
    unlinked (it appears). Problems are reported in the returned result,
    never raised.
    """
    errors = []
    if not (isinstance(cost_threshold, numbers.Real) and math.isfinite(cost_threshold)
            and cost_threshold > 0):
        errors.append(f"Cost threshold must be a finite number > 0, got {cost_threshold!r}.")
    if not (isinstance(alternative_cost_factor, numbers.Real)
            and math.isfinite(alternative_cost_factor) and alternative_cost_factor >= 0):
        errors.append(
            f"Alternative cost factor must be a finite number >= 0, got {alternative_cost_factor!r}."
        )
    if not (isinstance(cutoff_percentile, numbers.Real) and 0 <= cutoff_percentile <= 100):
        errors.append(f"Cutoff percentile must be in [0, 100], got {cutoff_percentile!r}.")
    if errors:
        return AssignmentResult.failure(" ".join(errors))

    n_sources, n_targets = len(sources), len(targets)
    if n_sources == 0 or n_targets == 0:
        return AssignmentResult.unlinked(n_sources, n_targets)

    try:
        rows, cols, costs = compute_linkable_costs(sources, targets, cost_function, cost_threshold)
    except CostEvaluationError as exc:
        return AssignmentResult.failure(str(exc))
    if not costs:
        return AssignmentResult.unlinked(n_sources, n_targets)

    alternative_cost = compute_alternative_cost(costs, alternative_cost_factor, cutoff_percentile)
    matrix = build_augmented_matrix(rows, cols, costs, n_sources, n_targets, alternative_cost)
    try:
        solution = solve_lap(matrix)
    except LAPError as exc:
        return AssignmentResult.failure(f"Assignment solver failed: {exc}")

    assignment = np.full(n_sources, UNASSIGNED, dtype=np.int64)
    link_costs = np.full(n_sources, np.nan, dtype=np.float64)
    target_assignment = np.full(n_targets, UNASSIGNED, dtype=np.int64)
    for s in range(n_sources):
        t = int(solution.row_to_col[s])
        if t >= n_targets:
            continue
        assignment[s] = t
        link_costs[s] = solution.row_costs[s]
        target_assignment[t] = s

    logger.debug(
        "Linked %d of %d sources to %d targets (%d candidates, alternative cost %.4g)",
        int(np.count_nonzero(assignment != UNASSIGNED)), n_sources, n_targets,
        len(costs), alternative_cost,
    )
    return AssignmentResult(
        assignment=assignment,
        costs=link_costs,
        target_assignment=target_assignment,
        alternative_cost=alternative_cost,
    )
