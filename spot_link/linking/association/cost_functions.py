"""Linking cost functions between two spots.

Lower cost means the two spots are more likely the same object.

Two strategies are provided:
1. Default: squared Euclidean distance between positions.
2. Feature-penalized: squared distance scaled by feature dissimilarity,
       cost = d^2 * (1 + sum_f w_f * |a_f - b_f| / |a_f + b_f|)

Both never return less than the squared distance, so they declare
``gated_by_distance`` and the solver can pre-gate candidates spatially.
"""

from __future__ import annotations

from typing import Mapping, Optional, Protocol, runtime_checkable

from spot_link.data.schema import Spot


@runtime_checkable
class CostFunction(Protocol):
    """Pure cost between a source spot and a target spot."""

    gated_by_distance: bool

    def cost(self, source: Spot, target: Spot) -> float:
        ...


class DefaultCostFunction:
    """Squared Euclidean distance between spot positions."""

    gated_by_distance = True

    def cost(self, source: Spot, target: Spot) -> float:
        return source.squared_distance_to(target)

    def __repr__(self) -> str:
        return "DefaultCostFunction()"


def normalized_feature_difference(a: Optional[float], b: Optional[float]) -> float:
    """|a - b| / |a + b|, or 0 when a value is missing or the sum is zero."""
    if a is None or b is None:
        return 0.0
    total = abs(a + b)
    if total == 0.0:
        return 0.0
    return abs(a - b) / total


class FeaturePenaltyCostFunction:
    """Squared distance penalized by differences in selected features.

    Args:
        feature_penalties: ``{feature name: weight}``; weights must be >= 0.
            Only these features are consulted.
    """

    gated_by_distance = True

    def __init__(self, feature_penalties: Mapping[str, float]):
        self.feature_penalties = {str(k): float(w) for k, w in feature_penalties.items()}

    def penalty(self, source: Spot, target: Spot) -> float:
        """Multiplicative penalty factor, >= 1."""
        penalty = 1.0
        for feature, weight in self.feature_penalties.items():
            penalty += weight * normalized_feature_difference(
                source.feature(feature), target.feature(feature)
            )
        return penalty

    def cost(self, source: Spot, target: Spot) -> float:
        return source.squared_distance_to(target) * self.penalty(source, target)

    def __repr__(self) -> str:
        return f"FeaturePenaltyCostFunction({self.feature_penalties!r})"


def select_cost_function(
    feature_penalties: Optional[Mapping[str, float]] = None,
) -> CostFunction:
    """Default cost without penalties, feature-penalized cost otherwise."""
    if not feature_penalties:
        return DefaultCostFunction()
    return FeaturePenaltyCostFunction(feature_penalties)
