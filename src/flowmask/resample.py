"""
Resize and bilinear-sample primitives.

Sampling uses a clamp-to-edge policy: coordinates outside the grid read the
nearest edge cell, never wrap and never zero-fill.
"""

from __future__ import annotations

from typing import Union

import cv2
import numpy as np

from .buffers import DisplacementField, GrayBuffer, ImageBuffer
from .errors import InvalidDimensions


def _interpolation(src_w: int, src_h: int, dst_w: int, dst_h: int) -> int:
    # area averaging only when shrinking in both directions
    if dst_w <= src_w and dst_h <= src_h:
        return cv2.INTER_AREA
    return cv2.INTER_LINEAR


def _resize_plane(plane: np.ndarray, width: int, height: int) -> np.ndarray:
    h, w = plane.shape[:2]
    if (w, h) == (width, height):
        return np.array(plane, copy=True)
    return cv2.resize(
        np.array(plane), (width, height),
        interpolation=_interpolation(w, h, width, height),
    )


def _check_target(width: int, height: int):
    if int(width) <= 0 or int(height) <= 0:
        raise InvalidDimensions(f"resize target must have positive area, got {width}x{height}")
    return int(width), int(height)


def resize(image: ImageBuffer, width: int, height: int) -> ImageBuffer:
    """Resample `image` to exactly `width` x `height`. Always returns a new buffer."""
    width, height = _check_target(width, height)
    out = _resize_plane(image.pixels, width, height)
    return ImageBuffer(width, height, out)


def resize_field(
    field: DisplacementField,
    width: int,
    height: int,
    rescale: bool = False,
) -> DisplacementField:
    """
    Resize each displacement channel independently.

    Args:
        field: source field
        width, height: target grid size
        rescale: also convert the vectors to the target grid's pixel units

    Returns:
        DisplacementField of size width x height
    """
    width, height = _check_target(width, height)
    dx = _resize_plane(field.dx, width, height)
    dy = _resize_plane(field.dy, width, height)
    if rescale:
        dx = dx * (width / float(field.width))
        dy = dy * (height / float(field.height))
    return DisplacementField(width, height, dx, dy)


def bilinear_sample_grid(plane: np.ndarray, xs: np.ndarray, ys: np.ndarray) -> np.ndarray:
    """
    Vectorized bilinear sampling of a 2-D plane at fractional coordinates.

    Coordinates are clamped into [0, w-1] x [0, h-1] first, so only in-bounds
    cells are ever read.
    """
    plane = np.asarray(plane)
    if plane.ndim != 2 or plane.size == 0:
        raise InvalidDimensions(f"expected a non-empty 2-D plane, got shape {plane.shape}")
    h, w = plane.shape
    x = np.asarray(xs, dtype=np.float64)
    y = np.asarray(ys, dtype=np.float64)
    if not (np.isfinite(x).all() and np.isfinite(y).all()):
        raise ValueError("sample coordinates contain non-finite values")
    x = np.clip(x, 0.0, w - 1)
    y = np.clip(y, 0.0, h - 1)

    x0 = np.floor(x).astype(np.intp)
    y0 = np.floor(y).astype(np.intp)
    x1 = np.minimum(x0 + 1, w - 1)
    y1 = np.minimum(y0 + 1, h - 1)
    fx = x - x0
    fy = y - y0

    p = plane.astype(np.float64, copy=False)
    top = p[y0, x0] * (1.0 - fx) + p[y0, x1] * fx
    bottom = p[y1, x0] * (1.0 - fx) + p[y1, x1] * fx
    return top * (1.0 - fy) + bottom * fy


def bilinear_sample(
    buffer: Union[ImageBuffer, GrayBuffer, np.ndarray],
    x: float,
    y: float,
    channel: int = 0,
) -> float:
    """Sample one channel of `buffer` at (x, y)."""
    if isinstance(buffer, ImageBuffer):
        plane = buffer.pixels[..., channel]
    elif isinstance(buffer, GrayBuffer):
        plane = buffer.values
    else:
        plane = np.asarray(buffer)
        if plane.ndim == 3:
            plane = plane[..., channel]
    return float(bilinear_sample_grid(plane, np.array([x]), np.array([y]))[0])
