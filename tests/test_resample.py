import numpy as np
import pytest

from flowmask.buffers import DisplacementField, ImageBuffer
from flowmask.errors import InvalidDimensions
from flowmask.resample import bilinear_sample, bilinear_sample_grid, resize, resize_field


def test_resize_exact_dimensions():
    img = ImageBuffer.from_array(np.zeros((30, 40, 3), np.uint8))
    for w, h in [(20, 15), (80, 60), (40, 10), (7, 90)]:
        out = resize(img, w, h)
        assert out.size == (w, h)


def test_resize_same_size_returns_new_buffer():
    img = ImageBuffer.from_array(np.full((4, 4), 9, np.uint8))
    out = resize(img, 4, 4)
    assert out is not img
    assert np.array_equal(out.pixels, img.pixels)


def test_resize_rejects_empty_target():
    img = ImageBuffer.from_array(np.zeros((4, 4), np.uint8))
    with pytest.raises(InvalidDimensions):
        resize(img, 0, 4)


def test_bilinear_sample_interpolates():
    plane = np.array([[0, 100], [100, 200]], np.uint8)
    assert bilinear_sample(plane, 0.5, 0.5) == pytest.approx(100.0)
    assert bilinear_sample(plane, 1.0, 0.0) == pytest.approx(100.0)
    assert bilinear_sample(plane, 0.25, 0.0) == pytest.approx(25.0)


def test_bilinear_sample_clamps_to_edge():
    plane = np.array([[10, 20], [30, 40]], np.uint8)
    assert bilinear_sample(plane, -5, -5) == pytest.approx(10.0)
    assert bilinear_sample(plane, 50, 50) == pytest.approx(40.0)
    assert bilinear_sample(plane, 3.0, 0.0) == pytest.approx(20.0)


def test_bilinear_sample_image_channel():
    px = np.zeros((2, 2, 4), np.uint8)
    px[..., 1] = 80
    img = ImageBuffer(2, 2, px)
    assert bilinear_sample(img, 0.5, 0.5, channel=1) == pytest.approx(80.0)


def test_sample_grid_shape():
    plane = np.arange(12, dtype=np.float32).reshape(3, 4)
    ys, xs = np.mgrid[0:3, 0:4]
    assert np.allclose(bilinear_sample_grid(plane, xs, ys), plane)


def test_resize_field_channels_and_rescale():
    field = DisplacementField.uniform(10, 8, 2.0, -1.0)
    same_units = resize_field(field, 20, 16)
    assert same_units.size == (20, 16)
    assert np.allclose(same_units.dx, 2.0) and np.allclose(same_units.dy, -1.0)

    rescaled = resize_field(field, 20, 16, rescale=True)
    assert np.allclose(rescaled.dx, 4.0) and np.allclose(rescaled.dy, -2.0)


@pytest.mark.parametrize("x,y", [(np.nan, 1.0), (1.0, np.inf), (-np.inf, 0.0)])
def test_bilinear_sample_rejects_non_finite_coordinates(x, y):
    plane = np.zeros((4, 4), np.uint8)
    with pytest.raises(ValueError):
        bilinear_sample(plane, x, y)
