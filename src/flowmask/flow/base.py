from ..buffers import DisplacementField, ImageBuffer


class DenseFlow:
    """Interface for per-pixel motion estimation between two frames."""
    name = "dense"

    def initialize(self) -> None:
        """Prepare the backend. Raises BackendUnavailable when it cannot run."""

    def compute_flow(self, prev_frame: ImageBuffer, next_frame: ImageBuffer) -> DisplacementField:
        """
        Returns:
          forward flow prev -> next, at the backend's working resolution
        """
        raise NotImplementedError(
            f"{self.__class__.__name__} must implement compute_flow()"
        )

    def release(self) -> None:
        """Drop per-session resources. Backends may keep expensive state warm."""
