from typing import Iterable, Optional, Sequence, Tuple

import cv2
import numpy as np

from ..buffers import BoundingBox, ImageBuffer
from .masks import binarize
from .video import write_video


def overlay_mask(
    frame: ImageBuffer,
    mask: ImageBuffer,
    alpha: float = 0.5,
    color: Tuple[int, int, int] = (255, 40, 40),
    box: Optional[BoundingBox] = None,
    label: Optional[str] = None,
) -> ImageBuffer:
    """Blend `color` over the masked region; optionally outline a tracked box."""
    sel = binarize(mask)
    if sel.shape != (frame.height, frame.width):
        sel = cv2.resize(sel.astype(np.uint8), (frame.width, frame.height),
                         interpolation=cv2.INTER_NEAREST).astype(bool)

    # Convert once to float32 for blending math
    frame_f = frame.rgb().astype(np.float32)
    rgb = np.array(color, dtype=np.float32)
    frame_f[sel] = frame_f[sel] * (1.0 - alpha) + rgb * alpha

    if box is not None:
        x1, y1, x2, y2 = (int(round(v)) for v in box.to_xyxy())
        cv2.rectangle(frame_f, (x1, y1), (x2 - 1, y2 - 1), (255, 255, 0), 2)
    if label:
        cv2.putText(frame_f, label, (8, 24),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.6, (255, 255, 255), 2, cv2.LINE_AA)

    return ImageBuffer.from_array(np.clip(frame_f, 0, 255).astype(np.uint8))


def write_preview(
    out_path: str,
    frames: Iterable[ImageBuffer],
    masks: Sequence[ImageBuffer],
    fps: float,
    alpha: float = 0.5,
    flagged: Optional[set] = None,
) -> int:
    """
    Render masks over frames into an mp4 preview.

    Frames listed in `flagged` (lost tracking / failed inference) get a label.
    """
    flagged = flagged or set()

    def _frames():
        for i, (frame, mask) in enumerate(zip(frames, masks)):
            label = f"#{i} reused mask" if i in flagged else f"#{i}"
            yield overlay_mask(frame, mask, alpha=alpha, label=label)

    return write_video(out_path, _frames(), fps)
