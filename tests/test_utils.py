import cv2
import numpy as np
import pytest

from flowmask.buffers import BoundingBox, ImageBuffer, make_mask, mask_values
from flowmask.utils.inpaint import make_inpainter, opencv_inpaint
from flowmask.utils.masks import binarize, bbox_from_mask, mask_coverage, mask_from_bbox
from flowmask.utils.video import load_mask_image, scaled_size, write_mask_pngs
from flowmask.utils.visualize import overlay_mask


def test_bbox_from_mask_picks_largest_region():
    v = np.zeros((50, 60), np.uint8)
    v[10:30, 20:45] = 255
    v[40:42, 2:4] = 255
    box = bbox_from_mask(make_mask(v))
    assert (box.x, box.y, box.width, box.height) == (20, 10, 25, 20)


def test_bbox_from_empty_mask():
    assert bbox_from_mask(np.zeros((10, 10), np.uint8)) is None


def test_mask_from_bbox_clips_to_frame():
    mask = mask_from_bbox(20, 10, BoundingBox(15, 5, 10, 10))
    v = mask_values(mask)
    assert mask.size == (20, 10)
    assert (v[5:, 15:] == 255).all()
    assert v.sum() == 255 * 5 * 5


def test_binarize_soft_masks():
    soft = np.array([[0.0, 0.4], [0.6, 1.0]], np.float32)
    assert binarize(soft).tolist() == [[False, False], [True, True]]
    assert mask_coverage(soft) == 0.5


def test_inpaint_fills_hole():
    rgb = np.full((40, 40, 3), 200, np.uint8)
    rgb[15:25, 15:25] = 0
    hole = np.zeros((40, 40), np.uint8)
    hole[15:25, 15:25] = 255
    out = opencv_inpaint(ImageBuffer.from_array(rgb), make_mask(hole))
    assert out.size == (40, 40)
    assert out.rgb()[15:25, 15:25].mean() > 150


def test_inpaint_validates_inputs():
    frame = ImageBuffer.from_array(np.zeros((8, 8), np.uint8))
    with pytest.raises(ValueError):
        opencv_inpaint(frame, make_mask(np.zeros((4, 4), np.uint8)))
    with pytest.raises(ValueError):
        make_inpainter("blur")


def test_scaled_size():
    assert scaled_size(1920, 1080, 720) == (720, 405)
    assert scaled_size(640, 480, 720) == (640, 480)
    assert scaled_size(640, 480, None) == (640, 480)


def test_mask_pngs_load_back(tmp_path):
    v = np.zeros((12, 16), np.uint8)
    v[2:6, 3:9] = 255
    assert write_mask_pngs([make_mask(v)], str(tmp_path)) == 1
    loaded = load_mask_image(str(tmp_path / "000000.png"))
    assert np.array_equal(mask_values(loaded), v)

    resized = load_mask_image(str(tmp_path / "000000.png"), size=(32, 24))
    assert resized.size == (32, 24)


def test_load_mask_uses_alpha_strokes(tmp_path):
    bgra = np.zeros((10, 10, 4), np.uint8)
    bgra[..., :3] = 255
    bgra[4:6, 4:6, 3] = 255
    path = str(tmp_path / "stroke.png")
    cv2.imwrite(path, bgra)
    v = mask_values(load_mask_image(path))
    assert v[5, 5] == 255 and v[0, 0] == 0


def test_overlay_tints_masked_pixels():
    frame = ImageBuffer.from_array(np.zeros((10, 10, 3), np.uint8))
    v = np.zeros((10, 10), np.uint8)
    v[:5] = 255
    out = overlay_mask(frame, make_mask(v), alpha=0.5, color=(200, 0, 0))
    assert out.pixels[0, 0, 0] == 100
    assert out.pixels[9, 9, 0] == 0
