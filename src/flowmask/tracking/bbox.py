"""
Bounding-box tracker driven by sparse feature flow.

The region is modelled as a rigid translation: each step shifts the box by the
median displacement of its tracked feature points, then clamps it into the
frame.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

import numpy as np

from ..buffers import BoundingBox, ImageBuffer, to_grayscale
from ..errors import InsufficientFeatures, InvalidDimensions, TrackingLost
from ..flow.sparse import SparseFeatureFlow, estimate_translation

log = logging.getLogger(__name__)

MIN_CORRESPONDENCES = 4
LOST_POLICIES = ("reuse", "raise")


class TrackerStatus(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    TRACKING = "tracking"
    RELEASED = "released"


@dataclass(frozen=True)
class TrackResult:
    """Outcome of one tracking step."""
    box: BoundingBox
    lost: bool = False
    num_points: int = 0
    shift: Tuple[float, float] = (0.0, 0.0)


@dataclass
class _TrackerState:
    prev_gray: np.ndarray
    points: np.ndarray
    box: BoundingBox
    frame_size: Tuple[int, int]


class BoundingBoxTracker:
    """
    Tracks one rectangle across frames.

    Args:
        flow: sparse feature flow used for detection and matching
        min_correspondences: fewer valid point pairs than this means tracking is lost
        on_lost: "reuse" returns the last known box flagged as lost,
                 "raise" raises TrackingLost instead
    """

    def __init__(
        self,
        flow: Optional[SparseFeatureFlow] = None,
        min_correspondences: int = MIN_CORRESPONDENCES,
        on_lost: str = "reuse",
    ):
        if on_lost not in LOST_POLICIES:
            raise ValueError(f"on_lost must be one of {LOST_POLICIES}, got '{on_lost}'")
        self.flow = flow or SparseFeatureFlow()
        self.min_correspondences = int(min_correspondences)
        self.on_lost = on_lost
        self.status = TrackerStatus.UNINITIALIZED
        self._state: Optional[_TrackerState] = None

    @property
    def box(self) -> Optional[BoundingBox]:
        return self._state.box if self._state is not None else None

    @property
    def num_points(self) -> int:
        return 0 if self._state is None else int(self._state.points.shape[0])

    def initialize(self, frame: ImageBuffer, box: BoundingBox) -> None:
        if self.status is TrackerStatus.RELEASED:
            raise RuntimeError("tracker was released; create a new one")

        box = box.clamp(frame.width, frame.height)
        gray = np.array(to_grayscale(frame).values)
        points = self.flow.detect(gray, box)
        log.debug("detected %d feature points inside %s", len(points), box)
        if len(points) == 0:
            raise InsufficientFeatures(
                f"No trackable features inside box at ({box.x:.0f}, {box.y:.0f}) "
                f"size {box.width:.0f}x{box.height:.0f}; select a more textured region"
            )

        self._state = _TrackerState(gray, points, box, (frame.width, frame.height))
        self.status = TrackerStatus.INITIALIZED

    def track(self, frame: ImageBuffer) -> TrackResult:
        if self.status is TrackerStatus.RELEASED:
            raise RuntimeError("tracker was released; create a new one")
        state = self._state
        if state is None:
            raise RuntimeError("BoundingBoxTracker.initialize() must be called before track()")
        if (frame.width, frame.height) != state.frame_size:
            raise InvalidDimensions(
                f"frame size changed: {state.frame_size} -> {(frame.width, frame.height)}"
            )

        gray = np.array(to_grayscale(frame).values)
        next_points, valid = self.flow.match(state.prev_gray, gray, state.points)
        n_valid = int(np.count_nonzero(valid))

        if n_valid < self.min_correspondences:
            log.warning("tracking lost: %d valid correspondences (< %d), keeping last box",
                        n_valid, self.min_correspondences)
            if self.on_lost == "raise":
                raise TrackingLost(
                    f"Only {n_valid} valid correspondences (need {self.min_correspondences})",
                    box=state.box,
                    num_points=n_valid,
                )
            return TrackResult(state.box, lost=True, num_points=n_valid)

        dx, dy = estimate_translation(state.points[valid], next_points[valid])
        box = state.box.translate(dx, dy).clamp(*state.frame_size)
        log.debug("box shift (%.2f, %.2f) from %d points -> %s", dx, dy, n_valid, box)

        self._state = _TrackerState(gray, next_points[valid], box, state.frame_size)
        self.status = TrackerStatus.TRACKING
        return TrackResult(box, lost=False, num_points=n_valid, shift=(dx, dy))

    def cleanup(self) -> None:
        self._state = None
        self.status = TrackerStatus.RELEASED
