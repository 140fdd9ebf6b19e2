"""
Pixel and motion containers shared by every propagation stage.

All containers validate their size invariant on construction and keep a
private, read-only copy of their data, so a buffer produced by one stage can
never be mutated by the next one.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import cv2
import numpy as np

from .errors import InvalidDimensions


def _as_uint8(arr: np.ndarray) -> np.ndarray:
    if arr.dtype == np.uint8:
        return np.array(arr, dtype=np.uint8, copy=True)
    if arr.dtype == bool:
        return arr.astype(np.uint8) * 255
    return np.clip(np.rint(arr.astype(np.float64)), 0, 255).astype(np.uint8)


def _frozen(arr: np.ndarray) -> np.ndarray:
    arr = np.ascontiguousarray(arr)
    arr.setflags(write=False)
    return arr


def _check_area(width: int, height: int, what: str) -> Tuple[int, int]:
    w, h = int(width), int(height)
    if w <= 0 or h <= 0:
        raise InvalidDimensions(f"{what} must have positive area, got {w}x{h}")
    return w, h


# ------------------------------- Image buffers ------------------------------- #

@dataclass(frozen=True, eq=False)
class ImageBuffer:
    """
    RGBA image, `pixels` has shape (height, width, 4) and dtype uint8.

    `pixels` may also be given as a flat byte sequence of length
    width*height*4 in row-major RGBA order.
    """
    width: int
    height: int
    pixels: np.ndarray

    def __post_init__(self):
        w, h = _check_area(self.width, self.height, "ImageBuffer")
        px = self.pixels
        if isinstance(px, (bytes, bytearray, memoryview)):
            px = np.frombuffer(px, dtype=np.uint8)
        px = np.asarray(px)
        if px.ndim == 1:
            if px.size != w * h * 4:
                raise InvalidDimensions(
                    f"expected {w * h * 4} pixel bytes for {w}x{h} RGBA, got {px.size}"
                )
            px = px.reshape(h, w, 4)
        if px.shape != (h, w, 4):
            raise InvalidDimensions(f"expected pixels of shape {(h, w, 4)}, got {px.shape}")
        object.__setattr__(self, "width", w)
        object.__setattr__(self, "height", h)
        object.__setattr__(self, "pixels", _frozen(_as_uint8(px)))

    @classmethod
    def from_array(cls, arr: np.ndarray) -> "ImageBuffer":
        """Build an RGBA buffer from an HxW, HxWx3 (RGB) or HxWx4 (RGBA) array."""
        arr = np.asarray(arr)
        if arr.ndim == 2:
            v = _as_uint8(arr)
            rgba = np.dstack([v, v, v, np.full_like(v, 255)])
        elif arr.ndim == 3 and arr.shape[2] == 3:
            rgb = _as_uint8(arr)
            alpha = np.full(rgb.shape[:2] + (1,), 255, np.uint8)
            rgba = np.concatenate([rgb, alpha], axis=2)
        elif arr.ndim == 3 and arr.shape[2] == 4:
            rgba = arr
        else:
            raise InvalidDimensions(f"cannot build an RGBA buffer from shape {arr.shape}")
        return cls(rgba.shape[1], rgba.shape[0], rgba)

    @property
    def size(self) -> Tuple[int, int]:
        """(width, height)"""
        return self.width, self.height

    def rgb(self) -> np.ndarray:
        return self.pixels[..., :3]

    def tobytes(self) -> bytes:
        return self.pixels.tobytes()


@dataclass(frozen=True, eq=False)
class GrayBuffer:
    """Single-channel luminance image used only as flow-estimation input."""
    width: int
    height: int
    values: np.ndarray

    def __post_init__(self):
        w, h = _check_area(self.width, self.height, "GrayBuffer")
        v = np.asarray(self.values)
        if v.ndim == 1 and v.size == w * h:
            v = v.reshape(h, w)
        if v.shape != (h, w):
            raise InvalidDimensions(f"expected values of shape {(h, w)}, got {v.shape}")
        object.__setattr__(self, "width", w)
        object.__setattr__(self, "height", h)
        object.__setattr__(self, "values", _frozen(_as_uint8(v)))

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height


def to_grayscale(image: ImageBuffer) -> GrayBuffer:
    gray = cv2.cvtColor(np.array(image.pixels), cv2.COLOR_RGBA2GRAY)
    return GrayBuffer(image.width, image.height, gray)


# ---------------------------------- Masks ------------------------------------ #

def make_mask(values: np.ndarray) -> ImageBuffer:
    """
    Canonical mask from an HxW array: R=G=B=value, A=255.

    Boolean input maps True to 255; float input is rounded and clipped.
    """
    v = np.asarray(values)
    if v.ndim != 2:
        raise InvalidDimensions(f"mask values must be 2-D, got shape {v.shape}")
    v = _as_uint8(v)
    rgba = np.dstack([v, v, v, np.full_like(v, 255)])
    return ImageBuffer(v.shape[1], v.shape[0], rgba)


def mask_values(mask: ImageBuffer) -> np.ndarray:
    """Membership plane (channel 0) of a mask buffer."""
    return mask.pixels[..., 0]


# ------------------------------ Motion fields -------------------------------- #

@dataclass(frozen=True, eq=False)
class DisplacementField:
    """
    Forward motion from the previous to the current frame, one vector per cell.

    `dx` and `dy` are float32 planes of shape (height, width).
    """
    width: int
    height: int
    dx: np.ndarray
    dy: np.ndarray

    def __post_init__(self):
        w, h = _check_area(self.width, self.height, "DisplacementField")
        planes = []
        for name in ("dx", "dy"):
            p = np.asarray(getattr(self, name), dtype=np.float32)
            if p.ndim == 1 and p.size == w * h:
                p = p.reshape(h, w)
            if p.shape != (h, w):
                raise InvalidDimensions(f"expected {name} of shape {(h, w)}, got {p.shape}")
            planes.append(_frozen(np.array(p, copy=True)))
        object.__setattr__(self, "width", w)
        object.__setattr__(self, "height", h)
        object.__setattr__(self, "dx", planes[0])
        object.__setattr__(self, "dy", planes[1])

    @classmethod
    def zeros(cls, width: int, height: int) -> "DisplacementField":
        return cls.uniform(width, height, 0.0, 0.0)

    @classmethod
    def uniform(cls, width: int, height: int, dx: float, dy: float) -> "DisplacementField":
        w, h = _check_area(width, height, "DisplacementField")
        return cls(w, h, np.full((h, w), dx, np.float32), np.full((h, w), dy, np.float32))

    @classmethod
    def from_flow(cls, flow: np.ndarray) -> "DisplacementField":
        """
        Accepts OpenCV layout (H, W, 2), channel-first (2, H, W) or a batched
        (1, 2, H, W) tensor dump.
        """
        f = np.asarray(flow, dtype=np.float32)
        if f.ndim == 4 and f.shape[0] == 1:
            f = f[0]
        if f.ndim == 3 and f.shape[2] == 2:
            return cls(f.shape[1], f.shape[0], f[..., 0], f[..., 1])
        if f.ndim == 3 and f.shape[0] == 2:
            return cls(f.shape[2], f.shape[1], f[0], f[1])
        raise InvalidDimensions(f"cannot interpret flow of shape {f.shape}")

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    def to_flow(self) -> np.ndarray:
        """(H, W, 2) float32, OpenCV layout."""
        return np.dstack([self.dx, self.dy])

    def is_finite(self) -> bool:
        return bool(np.isfinite(self.dx).all() and np.isfinite(self.dy).all())


# ------------------------------- Bounding box -------------------------------- #

@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned rectangle in source-frame pixel coordinates."""
    x: float
    y: float
    width: float
    height: float

    def __post_init__(self):
        vals = (self.x, self.y, self.width, self.height)
        if not all(np.isfinite(v) for v in vals):
            raise InvalidDimensions(f"bounding box has non-finite geometry: {vals}")
        if self.width <= 0 or self.height <= 0:
            raise InvalidDimensions(
                f"bounding box must have positive size, got {self.width}x{self.height}"
            )
        for name in ("x", "y", "width", "height"):
            object.__setattr__(self, name, float(getattr(self, name)))

    @classmethod
    def from_xyxy(cls, xyxy) -> "BoundingBox":
        x1, y1, x2, y2 = map(float, xyxy)
        return cls(x1, y1, x2 - x1, y2 - y1)

    def to_xyxy(self) -> np.ndarray:
        return np.array(
            [self.x, self.y, self.x + self.width, self.y + self.height], dtype=np.float32
        )

    def translate(self, dx: float, dy: float) -> "BoundingBox":
        return BoundingBox(self.x + dx, self.y + dy, self.width, self.height)

    def clamp(self, frame_width: int, frame_height: int) -> "BoundingBox":
        """Move (and shrink only if larger than the frame) to fit fully inside it."""
        fw, fh = _check_area(frame_width, frame_height, "frame")
        w = min(self.width, float(fw))
        h = min(self.height, float(fh))
        x = min(max(self.x, 0.0), fw - w)
        y = min(max(self.y, 0.0), fh - h)
        return BoundingBox(x, y, w, h)

    def contains(self, px: float, py: float) -> bool:
        return (self.x <= px <= self.x + self.width) and (self.y <= py <= self.y + self.height)
