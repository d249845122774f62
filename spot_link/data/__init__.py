"""Spot data schema consumed by the linking stage."""

from spot_link.data.schema import Spot, SpotCollection

__all__ = ["Spot", "SpotCollection"]
