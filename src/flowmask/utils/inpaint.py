"""
Default inpainting collaborator built on OpenCV.

Any callable `(frame: ImageBuffer, mask: ImageBuffer) -> ImageBuffer` can take
its place in the pipeline.
"""

import cv2
import numpy as np

from ..buffers import ImageBuffer
from .masks import binarize

_METHODS = {
    "telea": cv2.INPAINT_TELEA,
    "ns": cv2.INPAINT_NS,
}


def opencv_inpaint(frame: ImageBuffer, mask: ImageBuffer, method: str = "telea", radius: int = 3) -> ImageBuffer:
    if method not in _METHODS:
        raise ValueError(f"Unknown inpaint method '{method}', expected one of {list(_METHODS)}")
    if mask.size != frame.size:
        raise ValueError(f"mask size {mask.size} does not match frame size {frame.size}")
    m = binarize(mask).astype(np.uint8) * 255
    rgb = cv2.inpaint(np.array(frame.rgb()), m, radius, _METHODS[method])
    return ImageBuffer.from_array(rgb)


def make_inpainter(method: str = "telea", radius: int = 3):
    """Bind method/radius into a two-argument inpaint callable."""
    if method not in _METHODS:
        raise ValueError(f"Unknown inpaint method '{method}', expected one of {list(_METHODS)}")

    def _inpaint(frame: ImageBuffer, mask: ImageBuffer) -> ImageBuffer:
        return opencv_inpaint(frame, mask, method=method, radius=radius)

    return _inpaint
