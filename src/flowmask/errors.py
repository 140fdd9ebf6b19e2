"""
Error taxonomy for mask propagation.

Every error is raised from the call that detected it. Recoverable conditions
(TrackingLost, InferenceFailed) affect one frame only; the caller decides
whether the session continues.
"""


class PropagationError(Exception):
    """Base class for all propagation errors."""


class InsufficientFeatures(PropagationError):
    """No trackable feature point was found inside the initial box."""


class TrackingLost(PropagationError):
    """Too few valid correspondences survived a tracking step."""

    def __init__(self, message: str, box=None, num_points: int = 0):
        super().__init__(message)
        self.box = box
        self.num_points = num_points


class BackendUnavailable(PropagationError):
    """A dense flow backend could not be initialized."""


class InferenceFailed(PropagationError):
    """Neural inference for a single frame raised or produced non-finite values."""


class InvalidDimensions(PropagationError, ValueError):
    """A buffer, field or box violated its size invariant."""
