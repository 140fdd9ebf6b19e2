"""
Mask warp engine: inverse-warps a mask along a forward displacement field.
"""

from __future__ import annotations

import logging

import numpy as np

from .buffers import DisplacementField, ImageBuffer, make_mask, mask_values
from .resample import bilinear_sample_grid, resize

log = logging.getLogger(__name__)


def warp_mask(mask: ImageBuffer, field: DisplacementField) -> ImageBuffer:
    """
    Pull every destination cell (x, y) from (x - dx, y - dy) in the previous mask.

    The mask is resampled to the field's grid for the warp and back to its
    own size afterwards, so the output always has the input mask's size.
    Pure function, no state.

    Args:
        mask: canonical RGBA mask aligned to the previous frame
        field: forward flow previous -> current, at any resolution

    Returns:
        Canonical RGBA mask aligned to the current frame
    """
    if not field.is_finite():
        raise ValueError("displacement field contains non-finite values")

    orig_w, orig_h = mask.width, mask.height
    resized = (orig_w, orig_h) != (field.width, field.height)
    work = resize(mask, field.width, field.height) if resized else mask
    if resized:
        log.debug("warp: mask %dx%d resampled to flow grid %dx%d",
                  orig_w, orig_h, field.width, field.height)

    ys, xs = np.mgrid[0:field.height, 0:field.width]
    src_x = xs - field.dx
    src_y = ys - field.dy
    sampled = bilinear_sample_grid(mask_values(work), src_x, src_y)
    warped = make_mask(np.clip(np.rint(sampled), 0, 255).astype(np.uint8))

    if resized:
        warped = resize(warped, orig_w, orig_h)
    return warped
