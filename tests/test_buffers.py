import numpy as np
import pytest

from flowmask.buffers import (
    BoundingBox,
    DisplacementField,
    GrayBuffer,
    ImageBuffer,
    make_mask,
    mask_values,
    to_grayscale,
)
from flowmask.errors import InvalidDimensions


def test_image_from_flat_bytes():
    raw = bytes(range(2 * 3 * 4))
    img = ImageBuffer(2, 3, raw)
    assert img.pixels.shape == (3, 2, 4)
    assert img.size == (2, 3)
    assert img.tobytes() == raw


def test_image_rejects_wrong_length():
    with pytest.raises(InvalidDimensions):
        ImageBuffer(2, 2, bytes(15))


@pytest.mark.parametrize("w,h", [(0, 4), (4, 0), (-1, 3)])
def test_image_rejects_zero_area(w, h):
    with pytest.raises(InvalidDimensions):
        ImageBuffer(w, h, b"")


def test_invalid_dimensions_is_value_error():
    with pytest.raises(ValueError):
        ImageBuffer(0, 0, b"")


def test_image_pixels_are_read_only_copy():
    arr = np.zeros((4, 4, 4), np.uint8)
    img = ImageBuffer(4, 4, arr)
    arr[0, 0, 0] = 99
    assert img.pixels[0, 0, 0] == 0
    with pytest.raises(ValueError):
        img.pixels[0, 0, 0] = 1


def test_from_array_gray_and_rgb():
    gray = np.full((3, 5), 7, np.uint8)
    img = ImageBuffer.from_array(gray)
    assert img.size == (5, 3)
    assert (img.pixels[..., :3] == 7).all()
    assert (img.pixels[..., 3] == 255).all()

    rgb = np.zeros((3, 5, 3), np.uint8)
    rgb[..., 2] = 200
    assert ImageBuffer.from_array(rgb).pixels[0, 0].tolist() == [0, 0, 200, 255]


def test_to_grayscale_keeps_size():
    img = ImageBuffer.from_array(np.full((6, 8, 3), 128, np.uint8))
    gray = to_grayscale(img)
    assert isinstance(gray, GrayBuffer)
    assert gray.size == (8, 6)
    assert abs(int(gray.values[0, 0]) - 128) <= 1


def test_make_mask_from_bool():
    v = np.zeros((3, 4), bool)
    v[1, 2] = True
    mask = make_mask(v)
    assert mask.pixels[1, 2].tolist() == [255, 255, 255, 255]
    assert mask.pixels[0, 0].tolist() == [0, 0, 0, 255]
    assert mask_values(mask).shape == (3, 4)


def test_field_layouts_agree():
    hw2 = np.zeros((4, 6, 2), np.float32)
    hw2[..., 0] = 1.5
    hw2[..., 1] = -2.0
    a = DisplacementField.from_flow(hw2)
    b = DisplacementField.from_flow(hw2.transpose(2, 0, 1))
    c = DisplacementField.from_flow(hw2.transpose(2, 0, 1)[None])
    for f in (a, b, c):
        assert f.size == (6, 4)
        assert np.allclose(f.dx, 1.5) and np.allclose(f.dy, -2.0)
    assert a.to_flow().shape == (4, 6, 2)


def test_field_rejects_mismatched_planes():
    with pytest.raises(InvalidDimensions):
        DisplacementField(4, 4, np.zeros((4, 4)), np.zeros((3, 4)))


def test_field_is_finite():
    assert DisplacementField.zeros(3, 3).is_finite()
    dx = np.zeros((3, 3), np.float32)
    dx[1, 1] = np.nan
    assert not DisplacementField(3, 3, dx, np.zeros((3, 3))).is_finite()


@pytest.mark.parametrize("geom", [(0, 0, 0, 5), (0, 0, 5, -1), (np.nan, 0, 5, 5), (0, np.inf, 5, 5)])
def test_box_rejects_bad_geometry(geom):
    with pytest.raises(InvalidDimensions):
        BoundingBox(*geom)


def test_box_clamp_moves_inside_frame():
    box = BoundingBox(-10, 95, 20, 20).clamp(100, 100)
    assert (box.x, box.y, box.width, box.height) == (0.0, 80.0, 20.0, 20.0)


def test_box_clamp_shrinks_only_when_larger_than_frame():
    box = BoundingBox(5, 5, 150, 20).clamp(100, 100)
    assert (box.x, box.width) == (0.0, 100.0)
    assert (box.y, box.height) == (5.0, 20.0)


def test_box_contains_edges_inclusive():
    box = BoundingBox(10, 10, 5, 5)
    assert box.contains(10, 10)
    assert box.contains(15, 15)
    assert not box.contains(15.01, 12)


def test_box_xyxy_round_trip():
    box = BoundingBox.from_xyxy([2, 3, 12, 8])
    assert (box.width, box.height) == (10.0, 5.0)
    assert box.to_xyxy().tolist() == [2.0, 3.0, 12.0, 8.0]
