from .bbox import BoundingBoxTracker, TrackResult, TrackerStatus
from .dense import DenseMaskTracker

__all__ = [
    "BoundingBoxTracker",
    "TrackResult",
    "TrackerStatus",
    "DenseMaskTracker",
]
