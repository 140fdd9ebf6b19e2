import os
from typing import Iterable, Iterator, Optional, Tuple

import cv2
import numpy as np

from ..buffers import ImageBuffer, make_mask, mask_values


def get_video_meta(path: str):
    cap = cv2.VideoCapture(path)
    if not cap.isOpened():
        raise RuntimeError(f"Failed to open video: {path}")
    fps = cap.get(cv2.CAP_PROP_FPS) or 30.0
    frame_count = int(cap.get(cv2.CAP_PROP_FRAME_COUNT) or 0)
    w = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH) or 0)
    h = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT) or 0)
    cap.release()
    return fps, frame_count, (w, h)


def scaled_size(w: int, h: int, max_side: Optional[int]) -> Tuple[int, int]:
    if not max_side:
        return w, h
    s = max(h, w)
    if s <= max_side:
        return w, h
    scale = max_side / float(s)
    return max(1, int(round(w * scale))), max(1, int(round(h * scale)))


def bgr_to_buffer(frame_bgr: np.ndarray) -> ImageBuffer:
    return ImageBuffer.from_array(cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGBA))


def buffer_to_bgr(image: ImageBuffer) -> np.ndarray:
    return cv2.cvtColor(np.array(image.pixels), cv2.COLOR_RGBA2BGR)


def read_frames(video_path: str, max_side: Optional[int] = None, frame_stride: int = 1) -> Iterator[ImageBuffer]:
    """Yield frames in order as RGBA buffers, optionally downscaled so max dimension <= max_side."""
    cap = cv2.VideoCapture(video_path)
    if not cap.isOpened():
        raise RuntimeError(f"Failed to open video: {video_path}")
    count = 0
    try:
        while True:
            ok, frame = cap.read()
            if not ok: break
            if (count % frame_stride) != 0:
                count += 1; continue
            h, w = frame.shape[:2]
            tw, th = scaled_size(w, h, max_side)
            if (tw, th) != (w, h):
                frame = cv2.resize(frame, (tw, th), interpolation=cv2.INTER_AREA)
            count += 1
            yield bgr_to_buffer(frame)
    finally:
        cap.release()


def write_video(out_path: str, frames: Iterable[ImageBuffer], fps: float) -> int:
    """Encode RGBA buffers to an mp4 file. Returns the number of frames written."""
    os.makedirs(os.path.dirname(os.path.abspath(out_path)), exist_ok=True)
    vw = None
    n = 0
    try:
        for frame in frames:
            if vw is None:
                fourcc = cv2.VideoWriter_fourcc(*"mp4v")
                vw = cv2.VideoWriter(out_path, fourcc, fps, (frame.width, frame.height))
                if not vw.isOpened():
                    raise RuntimeError(f"Failed to create video writer for {out_path}")
            vw.write(buffer_to_bgr(frame))
            n += 1
    finally:
        if vw is not None:
            vw.release()
    return n


def write_mask_pngs(masks: Iterable[ImageBuffer], out_dir: str) -> int:
    os.makedirs(out_dir, exist_ok=True)
    n = 0
    for i, mask in enumerate(masks):
        filename = os.path.join(out_dir, f"{i:06d}.png")
        if not cv2.imwrite(filename, np.array(mask_values(mask))):
            raise RuntimeError(f"cv2.imwrite failed for {filename}")
        n += 1
    return n


def load_mask_image(path: str, size: Optional[Tuple[int, int]] = None) -> ImageBuffer:
    """
    Read a mask image (any bit depth, alpha honoured) as a canonical mask.

    `size` = (width, height) resizes with nearest-neighbour so the mask stays binary.
    """
    img = cv2.imread(path, cv2.IMREAD_UNCHANGED)
    if img is None:
        raise RuntimeError(f"Failed to read mask image: {path}")
    if img.ndim == 3 and img.shape[2] == 4 and (img[..., 3] < img[..., 3].max()).any():
        # painted strokes on a transparent layer
        values = img[..., 3]
    elif img.ndim == 3 and img.shape[2] == 4:
        values = cv2.cvtColor(img, cv2.COLOR_BGRA2GRAY)
    elif img.ndim == 3:
        values = cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)
    else:
        values = img
    if values.dtype != np.uint8:
        values = cv2.normalize(values, None, 0, 255, cv2.NORM_MINMAX).astype(np.uint8)
    if size is not None and (values.shape[1], values.shape[0]) != tuple(size):
        values = cv2.resize(values, tuple(size), interpolation=cv2.INTER_NEAREST)
    return make_mask(values)
