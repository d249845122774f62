"""Association module for frame-to-frame spot linking.

Includes the linking cost functions, the sparse LAP solver and the
Jaqaman frame-pair linker.
"""

from spot_link.linking.association.cost_functions import (
    CostFunction,
    DefaultCostFunction,
    FeaturePenaltyCostFunction,
    select_cost_function,
)
from spot_link.linking.association.jaqaman_linker import (
    UNASSIGNED,
    AssignmentResult,
    link_spots,
    sparse_from_triplets,
)
from spot_link.linking.association.lap_solver import LAPError, LAPSolution, solve_lap

__all__ = [
    # Cost functions
    "CostFunction",
    "DefaultCostFunction",
    "FeaturePenaltyCostFunction",
    "select_cost_function",
    # Frame-pair linker
    "UNASSIGNED",
    "AssignmentResult",
    "link_spots",
    "sparse_from_triplets",
    # Sparse LAP
    "LAPError",
    "LAPSolution",
    "solve_lap",
]
