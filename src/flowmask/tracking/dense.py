"""
Dense mask tracker: estimates a flow field per frame pair and warps the mask.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Optional

from ..buffers import ImageBuffer
from ..errors import InvalidDimensions
from ..flow.base import DenseFlow
from ..warp import warp_mask

log = logging.getLogger(__name__)


@dataclass
class _FlowSessionState:
    prev_frame: ImageBuffer
    prev_mask: ImageBuffer


class DenseMaskTracker:
    """
    Mask propagation over any DenseFlow backend.

    State (previous frame, previous mask) is replaced only after a step fully
    succeeds, so a failed frame can be retried or skipped by the caller.
    """

    def __init__(self, flow: DenseFlow):
        self.flow = flow
        self._state: Optional[_FlowSessionState] = None
        self._released = False
        self._lock = threading.Lock()

    @property
    def mask(self) -> Optional[ImageBuffer]:
        return self._state.prev_mask if self._state is not None else None

    def initialize(self) -> None:
        self.flow.initialize()

    def set_reference(self, frame: ImageBuffer, mask: ImageBuffer) -> None:
        if self._released:
            raise RuntimeError("tracker was released; create a new one")
        log.debug("%s reference: frame %dx%d, mask %dx%d", self.flow.name,
                  frame.width, frame.height, mask.width, mask.height)
        self._state = _FlowSessionState(frame, mask)

    def track(self, next_frame: ImageBuffer) -> ImageBuffer:
        if self._released:
            raise RuntimeError("tracker was released; create a new one")
        state = self._state
        if state is None:
            raise RuntimeError("set_reference() must be called before track()")
        if next_frame.size != state.prev_frame.size:
            raise InvalidDimensions(
                f"frame size changed: {state.prev_frame.size} -> {next_frame.size}"
            )

        field = self.flow.compute_flow(state.prev_frame, next_frame)
        warped = warp_mask(state.prev_mask, field)
        with self._lock:
            # cleanup() may have run while the flow was computing
            if self._released:
                log.debug("%s step finished after cleanup, state not kept", self.flow.name)
                return warped
            self._state = _FlowSessionState(next_frame, warped)
        return warped

    async def track_async(self, next_frame: ImageBuffer) -> ImageBuffer:
        """`track` in a worker thread so an event loop is not blocked by inference."""
        return await asyncio.to_thread(self.track, next_frame)

    def cleanup(self) -> None:
        with self._lock:
            self._state = None
            self._released = True
        self.flow.release()
