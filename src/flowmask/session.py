"""
Propagation session: the orchestration boundary of the engine.

A session owns exactly one strategy and its state. Steps are synchronous; the
async variant exists so a host event loop is not blocked during inference, but
at most one step may be in flight per session.

Usage:
    with create_session("dense", flow="farneback", total_frames=len(frames)) as session:
        session.reference(frames[0], first_mask)
        for frame in frames[1:]:
            mask = session.advance(frame)
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Callable, Optional, Union

from .buffers import BoundingBox, ImageBuffer
from .flow.base import DenseFlow
from .flow.registry import get_flow
from .flow.sparse import SparseFeatureFlow
from .strategies import (
    BoundingBoxStrategy,
    DenseFlowStrategy,
    PropagationStrategy,
    get_strategy_class,
)

log = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]


class SessionState(Enum):
    IDLE = "idle"
    REFERENCED = "referenced"
    RELEASED = "released"


class PropagationSession:
    """
    Drives one strategy frame by frame.

    Args:
        strategy: the chosen propagation strategy (fixed for the session's lifetime)
        total_frames: length of the frame sequence including the reference frame;
                      enables progress reporting
        on_progress: called with the completion fraction after every step
    """

    def __init__(
        self,
        strategy: PropagationStrategy,
        total_frames: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
    ):
        self.strategy = strategy
        self.total_frames = total_frames
        self.on_progress = on_progress
        self.state = SessionState.IDLE
        self.frames_processed = 0
        self._progress = 0.0
        self._in_flight = False
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return self.strategy.name

    @property
    def progress(self) -> float:
        return self._progress

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False

    def reference(
        self,
        first_frame: ImageBuffer,
        first_mask: ImageBuffer,
        box: Optional[BoundingBox] = None,
    ) -> None:
        if self.state is not SessionState.IDLE:
            raise RuntimeError(f"reference() is only valid once, session is {self.state.value}")
        self.strategy.reference(first_frame, first_mask, box)
        self.state = SessionState.REFERENCED
        log.debug("session '%s' referenced on %dx%d frame",
                  self.name, first_frame.width, first_frame.height)

    def _check_referenced(self):
        if self.state is not SessionState.REFERENCED:
            raise RuntimeError(f"advance() requires a referenced session, session is {self.state.value}")

    def _begin_step(self):
        self._check_referenced()
        with self._lock:
            if self._in_flight:
                raise RuntimeError("another advance() is in flight on this session")
            self._in_flight = True

    def _end_step(self):
        self._in_flight = False
        self._step_done()

    def advance(self, next_frame: ImageBuffer) -> ImageBuffer:
        self._begin_step()
        try:
            return self.strategy.advance(next_frame)
        finally:
            self._end_step()

    async def advance_async(self, next_frame: ImageBuffer) -> ImageBuffer:
        self._begin_step()
        try:
            return await self.strategy.advance_async(next_frame)
        finally:
            self._end_step()

    def _step_done(self):
        # counts attempted frames, failed ones included, so progress never stalls
        self.frames_processed += 1
        if not self.total_frames or self.total_frames < 2:
            return
        fraction = min(1.0, self.frames_processed / float(self.total_frames - 1))
        if fraction <= self._progress:
            return
        self._progress = fraction
        if self.on_progress is not None:
            self.on_progress(fraction)

    def release(self) -> None:
        if self.state is SessionState.RELEASED:
            return
        self.state = SessionState.RELEASED
        self.strategy.release()


def create_session(
    strategy: str = "bbox",
    flow: Union[str, DenseFlow, SparseFeatureFlow, None] = None,
    total_frames: Optional[int] = None,
    on_progress: Optional[ProgressCallback] = None,
    **kwargs,
) -> PropagationSession:
    """
    Backend-selection entry point.

    Args:
        strategy: "bbox" or "dense"
        flow: for "dense", a registry name ("farneback", "neural") or a DenseFlow
              instance (default "farneback"); for "bbox", an optional
              SparseFeatureFlow
        total_frames: sequence length, for progress reporting
        on_progress: progress callback
        **kwargs: tracker options for "bbox" (on_lost, min_correspondences),
                  backend constructor options for "dense" when `flow` is a name

    Example:
        session = create_session("dense", flow="neural", weight_loader=my_loader)
    """
    strategy_class = get_strategy_class(strategy)

    if strategy_class is BoundingBoxStrategy:
        if flow is not None and not isinstance(flow, SparseFeatureFlow):
            raise TypeError("the bbox strategy takes a SparseFeatureFlow as `flow`")
        impl: PropagationStrategy = BoundingBoxStrategy(flow=flow, **kwargs)
    elif strategy_class is DenseFlowStrategy:
        flow = flow or "farneback"
        if isinstance(flow, str):
            flow = get_flow(flow, **kwargs)
        elif kwargs:
            raise TypeError(f"unexpected options for a prebuilt flow backend: {sorted(kwargs)}")
        if not isinstance(flow, DenseFlow):
            raise TypeError("the dense strategy takes a DenseFlow or a registered flow name")
        impl = DenseFlowStrategy(flow)
    else:
        impl = strategy_class(**kwargs)

    return PropagationSession(impl, total_frames=total_frames, on_progress=on_progress)
