"""Graph module for linked spots."""

from spot_link.linking.graph.track_graph import TrackEdge, TrackGraph

__all__ = ["TrackEdge", "TrackGraph"]
