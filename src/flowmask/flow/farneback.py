"""
Dense classical flow: OpenCV Farneback polynomial-expansion estimator.

No weights and no hidden state; `initialize` only checks that the OpenCV build
exposes the routine.
"""

import logging
import time

import cv2
import numpy as np

from ..buffers import DisplacementField, ImageBuffer, to_grayscale
from ..errors import BackendUnavailable, InvalidDimensions
from .base import DenseFlow

log = logging.getLogger(__name__)


class FarnebackFlow(DenseFlow):
    """
    Multi-scale iterative gradient-based flow on grayscale frames.

    Args:
        pyr_scale: image scale between pyramid levels (< 1)
        levels: number of pyramid levels
        winsize: averaging window size
        iterations: iterations per pyramid level
        poly_n: pixel neighbourhood for polynomial expansion (5 or 7)
        poly_sigma: Gaussian std for poly_n (1.1-1.2 for 5, 1.5 for 7)
        flags: OpenCV operation flags
    """
    name = "farneback"

    def __init__(
        self,
        pyr_scale: float = 0.5,
        levels: int = 3,
        winsize: int = 15,
        iterations: int = 3,
        poly_n: int = 5,
        poly_sigma: float = 1.2,
        flags: int = 0,
    ):
        self.pyr_scale = float(pyr_scale)
        self.levels = int(levels)
        self.winsize = int(winsize)
        self.iterations = int(iterations)
        self.poly_n = int(poly_n)
        self.poly_sigma = float(poly_sigma)
        self.flags = int(flags)

    def initialize(self) -> None:
        if not hasattr(cv2, "calcOpticalFlowFarneback"):
            raise BackendUnavailable("OpenCV build lacks calcOpticalFlowFarneback")

    def compute_gray(self, prev_gray: np.ndarray, next_gray: np.ndarray) -> DisplacementField:
        if prev_gray.shape != next_gray.shape:
            raise InvalidDimensions(
                f"frame size changed: {prev_gray.shape[::-1]} -> {next_gray.shape[::-1]}"
            )
        t0 = time.perf_counter()
        flow = cv2.calcOpticalFlowFarneback(
            prev_gray, next_gray, None,
            self.pyr_scale,
            self.levels,
            self.winsize,
            self.iterations,
            self.poly_n,
            self.poly_sigma,
            self.flags,
        )
        log.debug("farneback flow %dx%d in %.3fs",
                  flow.shape[1], flow.shape[0], time.perf_counter() - t0)
        return DisplacementField.from_flow(flow)

    def compute_flow(self, prev_frame: ImageBuffer, next_frame: ImageBuffer) -> DisplacementField:
        return self.compute_gray(
            np.array(to_grayscale(prev_frame).values),
            np.array(to_grayscale(next_frame).values),
        )
