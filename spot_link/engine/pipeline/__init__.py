"""Frame-to-frame linking pipeline module."""

from spot_link.engine.pipeline.frame_to_frame import (
    FrameLinkingResult,
    FrameToFrameTracker,
    build_frame_pairs,
    link_frame_to_frame,
)
from spot_link.engine.pipeline.progress import LoggingProgress, NullProgress, ProgressLogger

__all__ = [
    "FrameLinkingResult",
    "FrameToFrameTracker",
    "build_frame_pairs",
    "link_frame_to_frame",
    "LoggingProgress",
    "NullProgress",
    "ProgressLogger",
]
