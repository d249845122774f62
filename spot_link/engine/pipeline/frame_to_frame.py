"""Frame-to-frame sparse LAP tracker.

Links the spots of every pair of consecutive frames and merges all links
into one :class:`TrackGraph`. Consecutive means adjacent in the frame index
of the collection; frame numbers may have gaps.

Architecture:
    1. Validate the spot collection and the settings (all violations at once).
    2. Build frame pairs (frames[k], frames[k + 1]).
    3. Select the cost function once for the whole run.
    4. Worker threads claim pair indices from a shared counter, solve each
       pair without holding any lock, and merge the links into the graph
       under the graph's lock.
    5. The first failing pair sets an abort flag; workers stop claiming new
       pairs, and the run reports that first failure without a graph.

Usage:
    result = link_frame_to_frame(spots, default_linking_settings())
    if result.ok:
        print(result.graph.number_of_edges)
"""

from __future__ import annotations

import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Tuple, Union

from spot_link.data.schema import Spot, SpotCollection
from spot_link.engine.config.linking_config import LinkingSettings, validate_linking_settings
from spot_link.engine.pipeline.progress import NullProgress, ProgressLogger
from spot_link.linking.association.cost_functions import CostFunction, select_cost_function
from spot_link.linking.association.jaqaman_linker import link_spots
from spot_link.linking.graph.track_graph import TrackGraph

logger = logging.getLogger(__name__)

BASE_ERROR_MESSAGE = "[FrameToFrameTracker] "

FramePair = Tuple[int, int]


@dataclass(frozen=True)
class FrameLinkingResult:
    """Outcome of a frame-to-frame linking run.

    Attributes:
        graph: Linked spots; None whenever the run failed.
        error_message: First failure reason, None on success.
        processing_time_ms: Wall-clock duration of the linking pass.
        n_frame_pairs: Number of frame pairs the run was asked to solve.
    """
    graph: Optional[TrackGraph]
    error_message: Optional[str] = None
    processing_time_ms: float = 0.0
    n_frame_pairs: int = 0

    @property
    def ok(self) -> bool:
        return self.error_message is None


class _AtomicCounter:
    """Lock-protected integer counter."""

    def __init__(self, start: int = 0):
        self._value = start
        self._lock = threading.Lock()

    def get_and_increment(self) -> int:
        with self._lock:
            value = self._value
            self._value += 1
            return value

    def increment_and_get(self) -> int:
        with self._lock:
            self._value += 1
            return self._value


def build_frame_pairs(frames: List[int]) -> List[FramePair]:
    """Pairs of adjacent frames in ascending frame order."""
    ordered = sorted(frames)
    return list(zip(ordered[:-1], ordered[1:]))


def check_spot_collection(spots: Optional[SpotCollection]) -> Optional[str]:
    """Reason why *spots* cannot be linked, or None."""
    if spots is None:
        return "The spot collection is null."
    if len(spots) == 0:
        return "The spot collection is empty."
    if not any(spots.n_spots(frame, visible_only=True) > 0 for frame in spots.frames()):
        return "The spot collection is empty."
    return None


class FrameToFrameTracker:
    """Sparse LAP frame-to-frame tracker.

    Args:
        spots: Per-frame spots; only visible spots are linked.
        settings: Settings mapping (see ``linking_config``) or LinkingSettings.
        num_threads: Worker threads; defaults to the CPU count.
        progress: Status/progress sink; defaults to a no-op.
        cost_function: Explicit cost strategy. When None it is chosen from
            the feature penalties of the settings.
        progress_span: Progress value reported once all pairs are done,
            0.5 when this stage is the first half of a larger pipeline.
    """

    def __init__(
        self,
        spots: Optional[SpotCollection],
        settings: Union[Mapping[str, Any], LinkingSettings, None],
        num_threads: Optional[int] = None,
        progress: Optional[ProgressLogger] = None,
        cost_function: Optional[CostFunction] = None,
        progress_span: float = 1.0,
    ):
        self.spots = spots
        self.settings = settings
        self.num_threads = max(1, int(num_threads or os.cpu_count() or 1))
        self.progress = progress or NullProgress()
        self.cost_function = cost_function
        self.progress_span = float(progress_span)

        self._graph: Optional[TrackGraph] = None
        self._abort = threading.Event()
        self._error_lock = threading.Lock()
        self._error_message: Optional[str] = None

    def process(self) -> FrameLinkingResult:
        """Run the linking pass over every frame pair."""
        error = check_spot_collection(self.spots)
        if error is not None:
            return self._failed(BASE_ERROR_MESSAGE + error)

        raw_settings = (
            self.settings.to_dict() if isinstance(self.settings, LinkingSettings) else self.settings
        )
        errors = validate_linking_settings(raw_settings)
        if errors:
            return self._failed(BASE_ERROR_MESSAGE + "Invalid settings:\n" + "\n".join(errors))
        settings = LinkingSettings.from_mapping(raw_settings)

        start = time.perf_counter()
        frame_pairs = build_frame_pairs(self.spots.frames())
        cost_function = self.cost_function or select_cost_function(
            settings.linking_feature_penalties
        )
        logger.info(
            "Linking %d frame pairs with %r on %d threads (max distance %g)",
            len(frame_pairs), cost_function, min(self.num_threads, max(1, len(frame_pairs))),
            settings.linking_max_distance,
        )

        self._abort.clear()
        self._error_message = None
        self._graph = TrackGraph()
        for frame in self.spots.frames():
            for spot in self.spots.iterate(frame, visible_only=True):
                self._graph.add_vertex(spot)

        work_index = _AtomicCounter()
        completed = _AtomicCounter()

        def _worker() -> None:
            while not self._abort.is_set():
                i = work_index.get_and_increment()
                if i >= len(frame_pairs):
                    return
                try:
                    self._link_pair(frame_pairs[i], settings, cost_function)
                except Exception as exc:
                    logger.warning("Frame pair %s raised", frame_pairs[i], exc_info=True)
                    self._fail(
                        f"Linking frames {frame_pairs[i][0]} -> {frame_pairs[i][1]} raised "
                        f"{type(exc).__name__}: {exc}"
                    )
                    return
                if self._abort.is_set():
                    return
                done = completed.increment_and_get()
                self.progress.set_progress(self.progress_span * done / len(frame_pairs))

        n_threads = min(self.num_threads, max(1, len(frame_pairs)))
        threads = [
            threading.Thread(
                target=_worker,
                name=f"{BASE_ERROR_MESSAGE.strip()} thread {k + 1}/{n_threads}",
                daemon=True,
            )
            for k in range(n_threads)
        ]

        self.progress.set_status("Solving for track segments...")
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        self.progress.set_progress(self.progress_span)
        self.progress.set_status("")

        elapsed_ms = (time.perf_counter() - start) * 1000.0
        if self._abort.is_set():
            logger.warning("Frame-to-frame linking failed: %s", self._error_message)
            self._graph = None
            return FrameLinkingResult(
                graph=None,
                error_message=self._error_message,
                processing_time_ms=elapsed_ms,
                n_frame_pairs=len(frame_pairs),
            )

        logger.info(
            "Linked %d spots with %d edges in %.1f ms",
            self._graph.number_of_vertices, self._graph.number_of_edges, elapsed_ms,
        )
        return FrameLinkingResult(
            graph=self._graph,
            processing_time_ms=elapsed_ms,
            n_frame_pairs=len(frame_pairs),
        )

    def get_result(self) -> Optional[TrackGraph]:
        """Graph of the last successful run, None otherwise."""
        return self._graph

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _link_pair(
        self,
        frame_pair: FramePair,
        settings: LinkingSettings,
        cost_function: CostFunction,
    ) -> None:
        frame0, frame1 = frame_pair
        sources: List[Spot] = list(self.spots.iterate(frame0, visible_only=True))
        targets: List[Spot] = list(self.spots.iterate(frame1, visible_only=True))

        result = link_spots(
            sources,
            targets,
            cost_function,
            cost_threshold=settings.cost_threshold,
            alternative_cost_factor=settings.alternative_linking_cost_factor,
            cutoff_percentile=settings.cutoff_percentile,
        )
        if not result.ok:
            self._fail(f"Linking frames {frame0} -> {frame1} failed: {result.error_message}")
            return

        links = []
        for s, t in enumerate(result.assignment.tolist()):
            # Indices outside the spot lists are dropped, never merged.
            if 0 <= t < len(targets) and s < len(sources):
                links.append((sources[s], targets[t], float(result.costs[s])))

        added = self._graph.merge_links(links, abort=self._abort)
        logger.debug("Frames %d -> %d: %d links", frame0, frame1, added)

    def _fail(self, message: str) -> None:
        with self._error_lock:
            if self._error_message is None:
                self._error_message = BASE_ERROR_MESSAGE + message
        self._abort.set()

    def _failed(self, message: str) -> FrameLinkingResult:
        logger.warning("Frame-to-frame linking not started: %s", message)
        self._graph = None
        return FrameLinkingResult(graph=None, error_message=message)


def link_frame_to_frame(
    spots: Optional[SpotCollection],
    settings: Union[Mapping[str, Any], LinkingSettings, None],
    progress: Optional[ProgressLogger] = None,
    num_threads: Optional[int] = None,
    cost_function: Optional[CostFunction] = None,
    progress_span: float = 1.0,
) -> FrameLinkingResult:
    """Link spots of consecutive frames into a track graph.

    This is the main entry point of the linking stage.
    """
    tracker = FrameToFrameTracker(
        spots,
        settings,
        num_threads=num_threads,
        progress=progress,
        cost_function=cost_function,
        progress_span=progress_span,
    )
    return tracker.process()
