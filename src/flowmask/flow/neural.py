"""
Dense neural flow: a fixed-resolution flow estimator run as a black box.

The estimator is a TorchScript module taking two (1, 3, H, W) float tensors in
[0, 1] and returning a (1, 2, H, W) flow tensor in input-resolution pixel units
(channel 0 = dx, channel 1 = dy). RAFT-style modules that return a list of
refinements are accepted; the last refinement is used.
"""

import io
import logging
import time
from typing import Optional, Tuple

import numpy as np
import torch

from ..buffers import DisplacementField, ImageBuffer
from ..devices import is_cuda, is_mps, maybe_autocast, pick_device
from ..errors import BackendUnavailable, InferenceFailed
from ..resample import resize
from ..weights import WeightLoader, default_weight_loader, fetch_weights
from .base import DenseFlow

log = logging.getLogger(__name__)

DEFAULT_MODEL_ID = "dense-neural-flow"
# (width, height) the exported estimator was traced at
DEFAULT_INPUT_SIZE = (480, 360)


class NeuralFlow(DenseFlow):
    """
    Neural optical flow estimator.

    Args:
        model_id: key passed to the weight loader
        weight_loader: callable model_id -> bytes (default: FLOWMASK_WEIGHTS_DIR)
        device: "auto", "cpu", "cuda" or "mps" (default: FLOWMASK_DEVICE)
        input_size: (width, height) the estimator requires
        half_precision: autocast to float16 on CUDA/MPS

    The loaded module is kept warm across sessions: `release()` keeps it,
    `unload()` drops it.
    """
    name = "neural"

    def __init__(
        self,
        model_id: str = DEFAULT_MODEL_ID,
        weight_loader: Optional[WeightLoader] = None,
        device: Optional[str] = None,
        input_size: Tuple[int, int] = DEFAULT_INPUT_SIZE,
        half_precision: bool = False,
    ):
        self.model_id = model_id
        self.weight_loader = weight_loader or default_weight_loader()
        self.prefer_device = device
        self.device = "cpu"
        self.input_size = (int(input_size[0]), int(input_size[1]))
        self.half_precision = bool(half_precision)
        self.model = None

    @property
    def is_loaded(self) -> bool:
        return self.model is not None

    def initialize(self) -> None:
        if self.model is not None:
            return
        blob = fetch_weights(self.weight_loader, self.model_id)
        device = pick_device(self.prefer_device)
        try:
            model = torch.jit.load(io.BytesIO(blob), map_location=device)
        except Exception as e:
            raise BackendUnavailable(
                f"Could not load '{self.model_id}' on {device}: {e}"
            ) from e
        model.eval()
        self.model = model
        self.device = device
        log.info("neural flow '%s' ready on %s (%.1f MB)",
                 self.model_id, device, len(blob) / 1024 / 1024)

    def pack(self, frame: ImageBuffer) -> torch.Tensor:
        """Resize to the input size, normalize to [0, 1], lay out as (1, 3, H, W)."""
        w, h = self.input_size
        rgb = resize(frame, w, h).rgb().astype(np.float32) / 255.0
        chw = np.ascontiguousarray(rgb.transpose(2, 0, 1))
        return torch.from_numpy(chw).unsqueeze(0)

    def _unpack(self, output) -> np.ndarray:
        if isinstance(output, (list, tuple)):
            if not output:
                raise InferenceFailed("estimator returned an empty output sequence")
            output = output[-1]
        if not torch.is_tensor(output):
            raise InferenceFailed(f"estimator returned {type(output).__name__}, expected a tensor")
        if output.ndim != 4 or output.shape[0] != 1 or output.shape[1] != 2:
            raise InferenceFailed(
                f"estimator output has shape {tuple(output.shape)}, expected (1, 2, H, W)"
            )
        return output.detach().float().cpu().numpy()[0]

    def compute_flow(self, prev_frame: ImageBuffer, next_frame: ImageBuffer) -> DisplacementField:
        if self.model is None:
            raise RuntimeError("NeuralFlow.initialize() must be called before compute_flow()")

        t1 = self.pack(prev_frame)
        t2 = self.pack(next_frame)
        bad1 = t1.numel() == 0 or not bool(torch.isfinite(t1).all())
        bad2 = t2.numel() == 0 or not bool(torch.isfinite(t2).all())
        if bad1 or bad2:
            raise InferenceFailed(
                f"Invalid tensor data detected: tensor1={bad1}, tensor2={bad2}"
            )

        t0 = time.perf_counter()
        try:
            with torch.inference_mode():
                with maybe_autocast(self.device, enabled=self.half_precision):
                    output = self.model(t1.to(self.device), t2.to(self.device))
            # device errors from async CUDA/MPS kernels surface on the host copy
            flow = self._unpack(output)
        except InferenceFailed:
            raise
        except Exception as e:
            raise InferenceFailed(f"Neural flow inference failed: {e}") from e

        if not np.isfinite(flow).all():
            raise InferenceFailed("Neural flow produced non-finite displacement values")
        log.debug("neural flow %dx%d in %.3fs",
                  flow.shape[2], flow.shape[1], time.perf_counter() - t0)
        return DisplacementField.from_flow(flow)

    def unload(self) -> None:
        self.model = None
        if is_mps(self.device):
            torch.mps.empty_cache()
        elif is_cuda(self.device):
            torch.cuda.empty_cache()
