"""
Sparse feature flow: corner detection plus pyramidal Lucas-Kanade matching.

Produces a single translation estimate for a region rather than a dense field.
"""

from typing import Optional, Tuple

import cv2
import numpy as np

from ..buffers import BoundingBox, GrayBuffer


def _plane(gray) -> np.ndarray:
    if isinstance(gray, GrayBuffer):
        return np.array(gray.values)
    return np.asarray(gray, dtype=np.uint8)


def estimate_translation(prev_points: np.ndarray, next_points: np.ndarray) -> Tuple[float, float]:
    """
    Median x and median y displacement of matched point pairs.

    The two medians are taken independently, so up to half of the pairs can be
    outliers (drifted onto background, mismatched) without moving the estimate.

    Args:
        prev_points: (N, 2) positions in the previous frame
        next_points: (N, 2) matched positions in the current frame

    Returns:
        (dx, dy)
    """
    prev_points = np.asarray(prev_points, np.float64).reshape(-1, 2)
    next_points = np.asarray(next_points, np.float64).reshape(-1, 2)
    if prev_points.shape != next_points.shape or prev_points.shape[0] == 0:
        raise ValueError(
            f"need matching non-empty point sets, got {prev_points.shape} and {next_points.shape}"
        )
    delta = next_points - prev_points
    return float(np.median(delta[:, 0])), float(np.median(delta[:, 1]))


class SparseFeatureFlow:
    """
    Feature detection and frame-to-frame point matching.

    Args:
        max_corners: cap on corners detected over the whole frame
        quality_level: minimal corner strength relative to the strongest corner
        min_distance: minimum separation between detected corners, in pixels
        win_size: LK search window at each pyramid level
        max_level: LK pyramid depth (0 = single level)
        criteria: LK termination criteria
    """

    def __init__(
        self,
        max_corners: int = 200,
        quality_level: float = 0.01,
        min_distance: float = 10,
        win_size: Tuple[int, int] = (15, 15),
        max_level: int = 2,
        criteria: Optional[tuple] = None,
    ):
        self.max_corners = int(max_corners)
        self.quality_level = float(quality_level)
        self.min_distance = float(min_distance)
        self.lk_params = dict(
            winSize=tuple(win_size),
            maxLevel=int(max_level),
            criteria=criteria or (cv2.TERM_CRITERIA_EPS | cv2.TERM_CRITERIA_COUNT, 10, 0.03),
        )

    def detect(self, gray, box: Optional[BoundingBox] = None) -> np.ndarray:
        """
        Detect corners over the whole frame, keep those inside `box` (edges inclusive).

        Returns:
            (N, 2) float32 array, possibly empty
        """
        corners = cv2.goodFeaturesToTrack(
            _plane(gray),
            maxCorners=self.max_corners,
            qualityLevel=self.quality_level,
            minDistance=self.min_distance,
        )
        if corners is None or len(corners) == 0:
            return np.empty((0, 2), np.float32)
        pts = corners.reshape(-1, 2).astype(np.float32)
        if box is None:
            return pts
        x1, y1, x2, y2 = box.to_xyxy()
        keep = (pts[:, 0] >= x1) & (pts[:, 0] <= x2) & (pts[:, 1] >= y1) & (pts[:, 1] <= y2)
        return pts[keep]

    def match(self, prev_gray, next_gray, points: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """
        Track `points` from `prev_gray` into `next_gray`.

        Returns:
            next_points: (N, 2) float32
            valid:       (N,)   bool, False where LK lost the point or returned non-finite output
        """
        points = np.asarray(points, np.float32).reshape(-1, 2)
        if points.shape[0] == 0:
            return np.empty((0, 2), np.float32), np.zeros((0,), bool)
        next_pts, status, _err = cv2.calcOpticalFlowPyrLK(
            _plane(prev_gray),
            _plane(next_gray),
            points.reshape(-1, 1, 2),
            None,
            **self.lk_params,
        )
        if next_pts is None or status is None:
            return np.zeros_like(points), np.zeros((points.shape[0],), bool)
        next_pts = next_pts.reshape(-1, 2).astype(np.float32)
        valid = (status.reshape(-1) == 1) & np.isfinite(next_pts).all(axis=1)
        return next_pts, valid
