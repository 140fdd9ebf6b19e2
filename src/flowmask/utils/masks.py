"""
Mask and box utilities used across the flowmask pipeline.

This module centralizes helpers for:
- robust mask binarization (buffers, arrays, soft masks)
- deriving a box from a user-drawn mask
- rasterizing a box back into a canonical mask
"""

from __future__ import annotations

from typing import Optional, Union

import cv2
import numpy as np

from ..buffers import BoundingBox, ImageBuffer, make_mask, mask_values

MaskLike = Union[ImageBuffer, np.ndarray]


def _plane(mask: MaskLike) -> np.ndarray:
    if isinstance(mask, ImageBuffer):
        return mask_values(mask)
    m = np.asarray(mask)
    if m.ndim == 3:
        m = m[..., 0]
    return m


def binarize(mask: MaskLike, thresh: int = 128) -> np.ndarray:
    """
    Boolean HxW membership from a mask buffer or array.

    Boolean arrays pass through; float arrays in [0, 1] are scaled to bytes first.
    """
    m = _plane(mask)
    if m.dtype == bool:
        return m.copy()
    if np.issubdtype(m.dtype, np.floating) and float(np.nanmax(m, initial=0.0)) <= 1.0:
        m = m * 255.0
    return m >= thresh


def mask_coverage(mask: MaskLike, thresh: int = 128) -> float:
    """Fraction of pixels selected by the mask."""
    b = binarize(mask, thresh)
    return float(b.mean()) if b.size else 0.0


def bbox_from_mask(mask: MaskLike, thresh: int = 128) -> Optional[BoundingBox]:
    """
    Bounding rectangle of the largest external contour in the mask.

    Strokes that do not touch the main region are ignored.
    Returns None if the mask is empty.
    """
    b = binarize(mask, thresh).astype(np.uint8) * 255
    contours, _ = cv2.findContours(b, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
    if not contours:
        return None
    # contourArea is 0 for single-pixel or line contours; fall back to point count
    largest = max(contours, key=lambda c: (cv2.contourArea(c), len(c)))
    x, y, w, h = cv2.boundingRect(largest)
    return BoundingBox(x, y, w, h)


def mask_from_bbox(width: int, height: int, box: BoundingBox) -> ImageBuffer:
    """Canonical mask of size width x height, white inside `box`, black elsewhere."""
    values = np.zeros((int(height), int(width)), np.uint8)
    x0 = int(np.clip(round(box.x), 0, width))
    y0 = int(np.clip(round(box.y), 0, height))
    x1 = int(np.clip(round(box.x + box.width), 0, width))
    y1 = int(np.clip(round(box.y + box.height), 0, height))
    values[y0:y1, x0:x1] = 255
    return make_mask(values)
