import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Literal, Optional, Tuple

from ..buffers import BoundingBox, ImageBuffer
from ..errors import InferenceFailed
from ..resample import resize
from ..session import PropagationSession
from ..utils.masks import mask_coverage
from ..utils.video import write_mask_pngs, write_video

Inpainter = Callable[[ImageBuffer, ImageBuffer], ImageBuffer]

FAILURE_POLICIES = ("reuse", "abort")


@dataclass
class PropagationResult:
    """Per-frame masks (index-aligned with the input), plus frames that needed a fallback."""
    masks: List[ImageBuffer]
    frames: List[ImageBuffer]
    failed_frames: List[int] = field(default_factory=list)
    lost_frames: List[int] = field(default_factory=list)

    @property
    def flagged(self) -> set:
        return set(self.failed_frames) | set(self.lost_frames)


def _fit_mask(mask: ImageBuffer, frame: ImageBuffer) -> ImageBuffer:
    if mask.size == frame.size:
        return mask
    return resize(mask, frame.width, frame.height)


# ----------------------------------- Main ------------------------------------ #

def run_propagation(
    frames: Iterable[ImageBuffer],
    first_mask: ImageBuffer,
    session: PropagationSession,
    inpaint: Optional[Inpainter] = None,
    on_inference_failed: Literal["reuse", "abort"] = "reuse",
    on_progress: Optional[Callable[[float], None]] = None,
    first_box: Optional[BoundingBox] = None,
    verbose: bool = True,
) -> PropagationResult:
    """
    Propagate `first_mask` through `frames` with one session.

    Frame 0 keeps the user's mask as-is. When `inpaint` is given, each frame is
    replaced by `inpaint(frame, mask)` in the result; otherwise the input
    frames are returned untouched. The session is released on exit.
    """
    if on_inference_failed not in FAILURE_POLICIES:
        raise ValueError(f"on_inference_failed must be one of {FAILURE_POLICIES}, got '{on_inference_failed}'")

    frames = list(frames)
    if not frames:
        raise ValueError("no frames to propagate")

    if session.total_frames is None:
        session.total_frames = len(frames)
    if on_progress is not None:
        session.on_progress = on_progress

    result = PropagationResult(masks=[], frames=[])

    def _emit(idx: int, frame: ImageBuffer, mask: ImageBuffer):
        result.masks.append(mask)
        if inpaint is not None:
            result.frames.append(inpaint(frame, _fit_mask(mask, frame)))
        else:
            result.frames.append(frame)

    with session:
        session.reference(frames[0], first_mask, first_box)
        if verbose:
            print(f"Propagating with '{session.name}' over {len(frames)} frames "
                  f"({frames[0].width}x{frames[0].height})")
        _emit(0, frames[0], first_mask)

        prev_mask = first_mask
        for idx in range(1, len(frames)):
            frame = frames[idx]
            try:
                mask = session.advance(frame)
            except InferenceFailed as e:
                if on_inference_failed == "abort":
                    raise
                if verbose:
                    print(f"  ⚠️  Frame {idx}: inference failed, reusing previous mask ({e})")
                result.failed_frames.append(idx)
                mask = prev_mask
            else:
                if getattr(session.strategy, "lost", False):
                    if verbose:
                        print(f"  ⚠️  Frame {idx}: tracking lost, reusing previous box")
                    result.lost_frames.append(idx)

            _emit(idx, frame, mask)
            prev_mask = mask

            if verbose and (idx % 25 == 0 or idx == len(frames) - 1):
                print(f"[{idx}/{len(frames) - 1}] coverage {mask_coverage(mask):.1%}")

    if verbose:
        print(f"Done. {len(result.failed_frames)} failed, {len(result.lost_frames)} lost.")
    return result


# ------------------------------- Save artifacts ------------------------------ #

def save_results(
    result: PropagationResult,
    out_dir: str | Path,
    clip_name: str,
    fps: float,
    strategy: str,
    flow: Optional[str] = None,
    video_path: Optional[str] = None,
    write_frames: bool = False,
) -> Tuple[Path, Path]:
    """Write per-frame mask PNGs and a metadata JSON; optionally the output frames as mp4."""
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    masks_dir = out_dir / f"{clip_name}_masks"
    n_masks = write_mask_pngs(result.masks, str(masks_dir))

    first = result.frames[0] if result.frames else None
    meta: Dict[str, Any] = {
        "clip_name": clip_name,
        "video_path": str(video_path) if video_path else None,
        "fps": float(fps),
        "num_frames": int(n_masks),
        "resolution": {"width": int(first.width), "height": int(first.height)} if first else None,
        "strategy": strategy,
        "flow": flow,
        "failed_frames": [int(i) for i in result.failed_frames],
        "lost_frames": [int(i) for i in result.lost_frames],
        "coverage": [round(mask_coverage(m), 6) for m in result.masks],
    }

    if write_frames:
        frames_path = out_dir / f"{clip_name}_inpainted.mp4"
        write_video(str(frames_path), result.frames, fps)
        meta["frames_video"] = str(frames_path)

    meta_path = out_dir / f"{clip_name}_metadata.json"
    with open(meta_path, "w") as f:
        json.dump(meta, f, indent=2)
    return masks_dir, meta_path
