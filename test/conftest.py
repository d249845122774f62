"""Shared fixtures and synthetic data factories for spot-link tests."""

from __future__ import annotations

import threading
from typing import Dict, List, Optional, Sequence

import numpy as np
import pytest

from spot_link.data.schema import Spot, SpotCollection
from spot_link.engine.config.linking_config import default_linking_settings


# ---------------------------------------------------------------------------
# Synthetic data factories
# ---------------------------------------------------------------------------

def make_spot(x: float = 0.0, y: float = 0.0, name: Optional[str] = None, **features) -> Spot:
    """2D spot at (x, y)."""
    return Spot.at(x, y, name=name, **features)


def make_collection(frames: Dict[int, Sequence[Spot]]) -> SpotCollection:
    """Collection with every spot visible."""
    return SpotCollection.from_frames({f: list(spots) for f, spots in frames.items()})


def make_moving_collection(
    n_frames: int = 10,
    n_objects: int = 8,
    spacing: float = 20.0,
    step: float = 1.0,
    noise: float = 0.2,
    seed: int = 0,
) -> SpotCollection:
    """Objects on a grid drifting by *step* per frame, with position noise."""
    rng = np.random.RandomState(seed)
    origins = np.array([[spacing * k, spacing * (k % 3)] for k in range(n_objects)], dtype=float)
    collection = SpotCollection()
    for t in range(n_frames):
        for k in range(n_objects):
            xy = origins[k] + t * step + rng.normal(scale=noise, size=2)
            collection.add(Spot.at(*xy, name=f"obj{k}_t{t}"), t)
    return collection


def dense_costs(matrix, fill_value: float = np.inf) -> np.ndarray:
    """Dense copy of a sparse cost matrix; absent entries take *fill_value*."""
    coo = matrix.tocoo()
    dense = np.full(coo.shape, fill_value, dtype=np.float64)
    dense[coo.row, coo.col] = coo.data
    return dense


def default_settings(**overrides) -> dict:
    settings = default_linking_settings()
    settings.update(overrides)
    return settings


class RecordingProgress:
    """Progress sink keeping every report."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.statuses: List[str] = []
        self.progress: List[float] = []

    def set_status(self, status: str) -> None:
        with self._lock:
            self.statuses.append(status)

    def set_progress(self, progress: float) -> None:
        with self._lock:
            self.progress.append(progress)


@pytest.fixture
def settings() -> dict:
    return default_settings()


@pytest.fixture
def recording_progress() -> RecordingProgress:
    return RecordingProgress()
