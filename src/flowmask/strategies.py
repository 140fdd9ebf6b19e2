"""
Propagation strategies behind a single "advance one frame" contract.

- bbox:  track a rectangle with sparse feature flow, rasterize a fresh
         rectangular mask every frame
- dense: warp the full mask every frame along a dense flow field
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Type

from .buffers import BoundingBox, ImageBuffer
from .errors import InvalidDimensions
from .flow.base import DenseFlow
from .tracking.bbox import BoundingBoxTracker, TrackResult
from .tracking.dense import DenseMaskTracker
from .utils.masks import bbox_from_mask, mask_from_bbox


class PropagationStrategy:
    """Interface every strategy implements."""
    name = "strategy"

    def reference(self, frame: ImageBuffer, mask: ImageBuffer, box: Optional[BoundingBox] = None) -> None:
        raise NotImplementedError(
            f"{self.__class__.__name__} must implement reference()"
        )

    def advance(self, frame: ImageBuffer) -> ImageBuffer:
        raise NotImplementedError(
            f"{self.__class__.__name__} must implement advance()"
        )

    async def advance_async(self, frame: ImageBuffer) -> ImageBuffer:
        """Default: the step is cheap enough to run inline."""
        return self.advance(frame)

    def release(self) -> None:
        pass


class BoundingBoxStrategy(PropagationStrategy):
    """Rigid-rectangle propagation; the mask is regenerated from the tracked box."""
    name = "bbox"

    def __init__(self, tracker: Optional[BoundingBoxTracker] = None, **tracker_kwargs):
        self.tracker = tracker or BoundingBoxTracker(**tracker_kwargs)
        self.last_result: Optional[TrackResult] = None

    @property
    def box(self) -> Optional[BoundingBox]:
        return self.tracker.box

    @property
    def lost(self) -> bool:
        return bool(self.last_result is not None and self.last_result.lost)

    def reference(self, frame, mask, box=None):
        if box is None:
            box = bbox_from_mask(mask)
            if box is None:
                raise InvalidDimensions("mask selects no pixels; nothing to track")
        self.tracker.initialize(frame, box)
        self.last_result = TrackResult(self.tracker.box, num_points=self.tracker.num_points)

    def advance(self, frame):
        result = self.tracker.track(frame)
        self.last_result = result
        return mask_from_bbox(frame.width, frame.height, result.box)

    def release(self):
        self.tracker.cleanup()


class DenseFlowStrategy(PropagationStrategy):
    """Per-pixel propagation over a dense flow backend."""
    name = "dense"

    def __init__(self, flow: DenseFlow):
        self.flow = flow
        self.tracker = DenseMaskTracker(flow)

    def reference(self, frame, mask, box=None):
        self.tracker.initialize()
        self.tracker.set_reference(frame, mask)

    def advance(self, frame):
        return self.tracker.track(frame)

    async def advance_async(self, frame):
        return await self.tracker.track_async(frame)

    def release(self):
        self.tracker.cleanup()


# Registry structure: name -> {class, description}
STRATEGY_REGISTRY: Dict[str, Dict[str, Any]] = {
    "bbox": {
        "class": BoundingBoxStrategy,
        "description": "Bounding-box tracking via sparse Lucas-Kanade features (median shift)",
    },
    "dense": {
        "class": DenseFlowStrategy,
        "description": "Dense mask warping along a flow field (use --flow farneback|neural)",
    },
}


def get_strategy_class(name: str) -> Type[PropagationStrategy]:
    if name not in STRATEGY_REGISTRY:
        available = ", ".join(STRATEGY_REGISTRY.keys())
        raise ValueError(
            f"Unknown strategy '{name}'.\n"
            f"Available strategies: {available}\n"
            f"Run 'flowmask --list-strategies' to see details."
        )
    return STRATEGY_REGISTRY[name]["class"]


def list_strategies(verbose: bool = False) -> None:
    print("\nAvailable strategies:\n")
    for name, info in STRATEGY_REGISTRY.items():
        print(f"  {name}")
        print(f"    {info['description']}")
        if verbose:
            print(f"    Class: {info['class'].__module__}.{info['class'].__name__}")
        print()


def get_available_strategies() -> list[str]:
    """Return list of available strategy names."""
    return list(STRATEGY_REGISTRY.keys())
