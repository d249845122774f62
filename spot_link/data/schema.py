"""Spot and per-frame spot collection schema.

Every linking module consumes :class:`Spot` and :class:`SpotCollection`.
Spots are produced upstream by a detection stage and are read-only here.

Conventions
-----------
- ``Spot.position`` : (D,) float64 coordinates, read-only.
- ``Spot.features`` : read-only mapping feature name -> float.
- Spots compare and hash by identity, never by coordinates.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Dict, Iterator, List, Mapping, Optional, Set

import numpy as np


_SPOT_IDS = itertools.count()


@dataclass(frozen=True, eq=False)
class Spot:
    """One detected object at one frame.

    Attributes:
        position: Coordinates of the object, shape (D,).
        features: Numerical features computed by the detection stage.
        name: Optional human-readable label.
        spot_id: Process-unique identifier, assigned automatically.
    """

    position: np.ndarray
    features: Mapping[str, float] = field(default_factory=dict)
    name: Optional[str] = None
    spot_id: int = field(default_factory=lambda: next(_SPOT_IDS))

    def __post_init__(self) -> None:
        position = np.array(self.position, dtype=np.float64).reshape(-1)
        position.setflags(write=False)
        object.__setattr__(self, "position", position)
        object.__setattr__(self, "features", MappingProxyType(dict(self.features)))

    @classmethod
    def at(cls, *coords: float, name: Optional[str] = None, **features: float) -> "Spot":
        """Shorthand: ``Spot.at(1.0, 2.0, QUALITY=3.0)``."""
        return cls(position=np.asarray(coords, dtype=np.float64), features=features, name=name)

    @property
    def ndim(self) -> int:
        return int(self.position.shape[0])

    def feature(self, name: str, default: Optional[float] = None) -> Optional[float]:
        return self.features.get(name, default)

    def squared_distance_to(self, other: "Spot") -> float:
        """Squared Euclidean distance between the two positions."""
        if self.position.shape != other.position.shape:
            raise ValueError(
                f"Cannot compare spot positions of dimension {self.ndim} and {other.ndim}"
            )
        diff = self.position - other.position
        return float(np.dot(diff, diff))

    def __repr__(self) -> str:
        label = self.name if self.name is not None else f"#{self.spot_id}"
        coords = ", ".join(f"{c:g}" for c in self.position)
        return f"Spot({label} @ ({coords}))"


class SpotCollection:
    """Spots grouped by integer frame, with a per-spot visibility flag.

    Frames are kept in insertion order internally and exposed in ascending
    order by :meth:`frames`. A frame stays in the index once created, even
    if all of its spots are removed later.
    """

    def __init__(self) -> None:
        self._content: Dict[int, List[Spot]] = {}
        self._frame_of: Dict[Spot, int] = {}
        self._hidden: Set[Spot] = set()

    @classmethod
    def from_frames(cls, frames: Mapping[int, List[Spot]]) -> "SpotCollection":
        """Build a collection from ``{frame: [spots]}``, all spots visible."""
        collection = cls()
        for frame, spots in frames.items():
            collection.add_frame(frame)
            for spot in spots:
                collection.add(spot, frame)
        return collection

    # -- mutation ------------------------------------------------------------

    def add_frame(self, frame: int) -> None:
        self._content.setdefault(int(frame), [])

    def add(self, spot: Spot, frame: int, visible: bool = True) -> None:
        if spot in self._frame_of:
            raise ValueError(f"{spot!r} already belongs to frame {self._frame_of[spot]}")
        frame = int(frame)
        self._content.setdefault(frame, []).append(spot)
        self._frame_of[spot] = frame
        if not visible:
            self._hidden.add(spot)

    def remove(self, spot: Spot) -> bool:
        """Remove *spot*; returns False if it is not in the collection."""
        frame = self._frame_of.pop(spot, None)
        if frame is None:
            return False
        self._content[frame].remove(spot)
        self._hidden.discard(spot)
        return True

    def set_visible(self, spot: Spot, visible: bool) -> None:
        if spot not in self._frame_of:
            raise KeyError(spot)
        if visible:
            self._hidden.discard(spot)
        else:
            self._hidden.add(spot)

    def filter(self, predicate: Callable[[Spot], bool]) -> None:
        """Set visibility of every spot to ``predicate(spot)``."""
        for spot in self._frame_of:
            self.set_visible(spot, bool(predicate(spot)))

    # -- queries -------------------------------------------------------------

    def frames(self) -> List[int]:
        """Frame numbers present in the collection, strictly increasing."""
        return sorted(self._content)

    def is_visible(self, spot: Spot) -> bool:
        return spot in self._frame_of and spot not in self._hidden

    def frame_of(self, spot: Spot) -> Optional[int]:
        return self._frame_of.get(spot)

    def iterate(self, frame: int, visible_only: bool = True) -> Iterator[Spot]:
        """Iterate spots of *frame* in insertion order."""
        for spot in self._content.get(frame, ()):
            if visible_only and spot in self._hidden:
                continue
            yield spot

    def n_spots(self, frame: Optional[int] = None, visible_only: bool = True) -> int:
        """Count spots in *frame*, or in the whole collection when frame is None."""
        frames = self._content if frame is None else [frame]
        return sum(
            1
            for f in frames
            for spot in self._content.get(f, ())
            if not (visible_only and spot in self._hidden)
        )

    def __contains__(self, frame: object) -> bool:
        return frame in self._content

    def __len__(self) -> int:
        return len(self._content)

    def __iter__(self) -> Iterator[int]:
        return iter(self.frames())
