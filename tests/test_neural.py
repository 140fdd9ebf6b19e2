import io

import numpy as np
import pytest
import torch

from flowmask.buffers import ImageBuffer, mask_values
from flowmask.errors import BackendUnavailable, InferenceFailed
from flowmask.flow import NeuralFlow
from flowmask.tracking.dense import DenseMaskTracker
from flowmask.weights import DirectoryWeightLoader, fetch_weights

SIZE = (64, 48)


class ShiftRight(torch.nn.Module):
    def forward(self, a, b):
        return torch.cat([torch.full_like(a[:, :1], 5.0), torch.zeros_like(a[:, :1])], dim=1)


class Refinements(torch.nn.Module):
    def forward(self, a, b):
        coarse = torch.zeros_like(a[:, :2])
        fine = torch.cat([torch.zeros_like(a[:, :1]), torch.full_like(a[:, :1], 3.0)], dim=1)
        return [coarse, fine]


class Explodes(torch.nn.Module):
    def forward(self, a, b):
        if bool(a.sum() >= 0):
            raise RuntimeError("estimator blew up")
        return a[:, :2]


class NotANumber(torch.nn.Module):
    def forward(self, a, b):
        return torch.log(a[:, :2] * 0.0 - 1.0)


class WrongChannels(torch.nn.Module):
    def forward(self, a, b):
        return a


def _blob(module):
    buf = io.BytesIO()
    torch.jit.save(torch.jit.script(module), buf)
    return buf.getvalue()


def _flow(module):
    blob = _blob(module)
    flow = NeuralFlow(weight_loader=lambda model_id: blob, device="cpu", input_size=SIZE)
    flow.initialize()
    return flow


def _frame(value=100):
    return ImageBuffer.from_array(np.full((SIZE[1], SIZE[0], 3), value, np.uint8))


def test_pack_layout():
    flow = NeuralFlow(weight_loader=lambda model_id: b"x", input_size=SIZE)
    big = ImageBuffer.from_array(np.full((100, 200, 3), 255, np.uint8))
    t = flow.pack(big)
    assert tuple(t.shape) == (1, 3, SIZE[1], SIZE[0])
    assert float(t.max()) == pytest.approx(1.0)


def test_constant_flow_shifts_mask(square_mask):
    flow = _flow(ShiftRight())
    assert flow.is_loaded
    field = flow.compute_flow(_frame(), _frame())
    assert field.size == SIZE
    assert np.allclose(field.dx, 5.0) and np.allclose(field.dy, 0.0)

    tracker = DenseMaskTracker(flow)
    tracker.set_reference(_frame(), square_mask(SIZE[0], SIZE[1], 20, 10, 10))
    v = mask_values(tracker.track(_frame()))
    assert (v[10:20, 25:35] == 255).all()
    assert (v[10:20, 20:25] == 0).all()


def test_last_refinement_is_used():
    field = _flow(Refinements()).compute_flow(_frame(), _frame())
    assert np.allclose(field.dx, 0.0) and np.allclose(field.dy, 3.0)


def test_inference_error_wrapped():
    flow = _flow(Explodes())
    with pytest.raises(InferenceFailed):
        flow.compute_flow(_frame(), _frame())


def test_non_finite_output_rejected():
    with pytest.raises(InferenceFailed):
        _flow(NotANumber()).compute_flow(_frame(), _frame())


def test_wrong_output_shape_rejected():
    with pytest.raises(InferenceFailed):
        _flow(WrongChannels()).compute_flow(_frame(), _frame())


def test_failed_step_keeps_tracker_state(square_mask):
    flow = _flow(Explodes())
    tracker = DenseMaskTracker(flow)
    mask = square_mask(SIZE[0], SIZE[1], 5, 5, 10)
    tracker.set_reference(_frame(), mask)
    with pytest.raises(InferenceFailed):
        tracker.track(_frame(120))
    assert tracker.mask is mask


def test_compute_before_initialize():
    flow = NeuralFlow(weight_loader=lambda model_id: b"x", input_size=SIZE)
    with pytest.raises(RuntimeError):
        flow.compute_flow(_frame(), _frame())


def test_missing_weights_file(tmp_path):
    flow = NeuralFlow(weight_loader=DirectoryWeightLoader(tmp_path), device="cpu")
    with pytest.raises(BackendUnavailable):
        flow.initialize()
    assert not flow.is_loaded


def test_corrupt_weights():
    flow = NeuralFlow(weight_loader=lambda model_id: b"not a model", device="cpu")
    with pytest.raises(BackendUnavailable):
        flow.initialize()


def test_loader_failures_normalized():
    def broken(model_id):
        raise ConnectionError("offline")

    with pytest.raises(BackendUnavailable):
        fetch_weights(broken, "m")
    with pytest.raises(BackendUnavailable):
        fetch_weights(lambda model_id: b"", "m")


def test_directory_loader_reads_blob(tmp_path):
    (tmp_path / "dense-neural-flow.pt").write_bytes(_blob(ShiftRight()))
    flow = NeuralFlow(weight_loader=DirectoryWeightLoader(tmp_path), device="cpu", input_size=SIZE)
    flow.initialize()
    assert flow.device == "cpu"


def test_release_keeps_model_warm_unload_drops_it():
    flow = _flow(ShiftRight())
    flow.release()
    assert flow.is_loaded
    flow.unload()
    assert not flow.is_loaded


def test_model_grid_flow_is_scaled_back_to_frame(square_mask):
    # model runs at half the frame size; 5 model pixels are 10 frame pixels
    blob = _blob(ShiftRight())
    flow = NeuralFlow(weight_loader=lambda model_id: blob, device="cpu", input_size=SIZE)
    flow.initialize()
    frame = ImageBuffer.from_array(np.full((96, 128, 3), 100, np.uint8))

    tracker = DenseMaskTracker(flow)
    tracker.set_reference(frame, square_mask(128, 96, 40, 38, 20))
    out = tracker.track(frame)

    assert out.size == (128, 96)
    ys, xs = np.nonzero(mask_values(out) >= 128)
    assert xs.mean() == pytest.approx(59.5, abs=1.0)
    assert ys.mean() == pytest.approx(47.5, abs=1.0)
    assert 18 <= xs.max() - xs.min() + 1 <= 22


def test_output_transfer_error_wrapped(monkeypatch):
    flow = _flow(ShiftRight())

    def device_error(output):
        raise RuntimeError("CUDA error: an illegal memory access was encountered")

    monkeypatch.setattr(flow, "_unpack", device_error)
    with pytest.raises(InferenceFailed) as exc:
        flow.compute_flow(_frame(), _frame())
    assert isinstance(exc.value.__cause__, RuntimeError)
