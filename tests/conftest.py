import cv2
import numpy as np
import pytest

from flowmask.buffers import ImageBuffer, make_mask


def _texture(width, height, seed=0, sigma=2.0):
    rng = np.random.default_rng(seed)
    noise = rng.random((height, width)).astype(np.float32)
    blurred = cv2.GaussianBlur(noise, (0, 0), sigma)
    return cv2.normalize(blurred, None, 0, 255, cv2.NORM_MINMAX).astype(np.uint8)


@pytest.fixture
def texture():
    """Smooth random texture (HxW uint8) with plenty of corners."""
    return _texture


@pytest.fixture
def shifted_pair(texture):
    """(prev, next) RGBA frames where next is prev rolled by (dx, dy)."""
    def _pair(width, height, dx, dy, seed=0):
        g = texture(width, height, seed)
        return ImageBuffer.from_array(g), ImageBuffer.from_array(np.roll(g, (dy, dx), axis=(0, 1)))
    return _pair


@pytest.fixture
def square_mask():
    def _mask(width, height, x, y, size):
        v = np.zeros((height, width), np.uint8)
        v[y:y + size, x:x + size] = 255
        return make_mask(v)
    return _mask
