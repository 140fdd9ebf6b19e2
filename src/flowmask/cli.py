import os
os.environ.setdefault("TORCH_COMPILE_DISABLE", "1")
os.environ.setdefault("TORCHINDUCTOR_DISABLE", "1")

import argparse
import logging
import sys
from pathlib import Path

from .buffers import BoundingBox
from .flow import get_available_flows, list_flows
from .pipeline.propagate import run_propagation, save_results
from .session import create_session
from .strategies import get_available_strategies, list_strategies
from .utils.inpaint import make_inpainter
from .utils.masks import mask_from_bbox
from .utils.video import get_video_meta, load_mask_image, read_frames
from .utils.visualize import write_preview
from .weights import DirectoryWeightLoader


def _parse_bbox(text: str) -> BoundingBox:
    try:
        x, y, w, h = (float(v) for v in text.split(","))
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected x,y,width,height, got '{text}'")
    try:
        return BoundingBox(x, y, w, h)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        "flowmask",
        description="flowmask: propagate a first-frame mask through a video "
                    "using bounding-box tracking or dense optical flow.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    # Special commands
    ap.add_argument(
        "--list-strategies", action="store_true",
        help="List available propagation strategies and exit"
    )
    ap.add_argument(
        "--list-flows", action="store_true",
        help="List available dense flow backends and exit"
    )

    # ==================== INPUT/OUTPUT ====================
    io_group = ap.add_argument_group('Input/Output')
    io_group.add_argument(
        "--video", "-v",
        help="Path to input video file"
    )
    io_group.add_argument(
        "--mask", "-m",
        help="First-frame mask image (white = selected; alpha honoured)"
    )
    io_group.add_argument(
        "--bbox", type=_parse_bbox, default=None,
        help="First-frame region as x,y,width,height (in processed-frame pixels); "
             "alternative to --mask"
    )
    io_group.add_argument(
        "--output-dir", "-o", type=str, default="outputs",
        help="Directory for output files (default: ./outputs)"
    )

    # ==================== PROPAGATION ====================
    prop_group = ap.add_argument_group('Propagation Settings')
    prop_group.add_argument(
        "--strategy", type=str, default="bbox",
        choices=get_available_strategies(),
        help="Propagation strategy (default: bbox). Run --list-strategies for details."
    )
    prop_group.add_argument(
        "--flow", type=str, default="farneback",
        choices=get_available_flows(),
        help="Dense flow backend for --strategy dense (default: farneback)"
    )
    prop_group.add_argument(
        "--weights-dir", type=str, default=None,
        help="Directory holding neural flow weights (default: $FLOWMASK_WEIGHTS_DIR or ~/.cache/flowmask)"
    )
    prop_group.add_argument(
        "--on-tracking-lost", type=str, default="reuse",
        choices=["reuse", "raise"],
        help="bbox strategy: keep the last box, or stop with an error (default: reuse)"
    )
    prop_group.add_argument(
        "--on-inference-failed", type=str, default="reuse",
        choices=["reuse", "abort"],
        help="Reuse the previous mask when a step fails, or abort the run (default: reuse)"
    )

    # ==================== PROCESSING ====================
    process_group = ap.add_argument_group('Processing Settings')
    process_group.add_argument(
        "--device", type=str, default="auto",
        choices=["cpu", "mps", "cuda", "auto"],
        help="Compute device for neural flow (default: auto - picks best available)"
    )
    process_group.add_argument(
        "--max-resolution", type=int, default=720,
        help="Resize frames so max dimension = N pixels before processing (default: 720)"
    )

    # ==================== OUTPUT/VISUALIZATION ====================
    output_group = ap.add_argument_group('Output & Visualization')
    output_group.add_argument(
        "--inpaint", type=str, default="none",
        choices=["none", "telea", "ns"],
        help="Fill the masked region of every frame with OpenCV inpainting (default: none)"
    )
    output_group.add_argument(
        "--visualize", action="store_true",
        help="Write a preview video with the masks overlaid"
    )
    output_group.add_argument(
        "--log-level", type=str, default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Engine log verbosity (default: WARNING)"
    )
    return ap


def main(argv=None):
    ap = build_parser()
    args = ap.parse_args(argv)

    # Handle --list-* commands
    if args.list_strategies:
        list_strategies(verbose=True)
        sys.exit(0)
    if args.list_flows:
        list_flows(verbose=True)
        sys.exit(0)

    # Validate required arguments
    if not args.video:
        ap.error("--video is required (unless using --list-strategies / --list-flows)")
    if not args.mask and args.bbox is None:
        ap.error("one of --mask or --bbox is required")

    logging.basicConfig(level=getattr(logging, args.log_level),
                        format="%(levelname)s %(name)s: %(message)s")

    fps, frame_count, (W, H) = get_video_meta(args.video)
    print(f"Video: {frame_count} frames @ {fps:.1f}, {W}x{H}")

    frames = list(read_frames(args.video, max_side=args.max_resolution))
    if not frames:
        ap.error(f"no frames could be read from {args.video}")
    fw, fh = frames[0].size

    if args.mask:
        first_mask = load_mask_image(args.mask, size=(fw, fh))
        first_box = args.bbox
    else:
        first_box = args.bbox.clamp(fw, fh)
        first_mask = mask_from_bbox(fw, fh, first_box)

    session_kwargs = {}
    if args.strategy == "bbox":
        session_kwargs["on_lost"] = args.on_tracking_lost
        flow = None
    else:
        flow = args.flow
        if flow == "neural":
            session_kwargs["device"] = args.device
            if args.weights_dir:
                session_kwargs["weight_loader"] = DirectoryWeightLoader(args.weights_dir)

    print(f"Strategy: {args.strategy}" + (f" (flow: {flow})" if flow else ""))
    session = create_session(args.strategy, flow=flow, total_frames=len(frames), **session_kwargs)

    inpaint = make_inpainter(args.inpaint) if args.inpaint != "none" else None
    result = run_propagation(
        frames,
        first_mask,
        session,
        inpaint=inpaint,
        on_inference_failed=args.on_inference_failed,
        first_box=first_box if args.strategy == "bbox" else None,
    )

    clip = Path(args.video).stem
    out_dir = Path(args.output_dir) / clip
    masks_dir, meta_path = save_results(
        result,
        out_dir,
        clip_name=clip,
        fps=fps,
        strategy=args.strategy,
        flow=flow,
        video_path=args.video,
        write_frames=inpaint is not None,
    )
    print(f"Saved masks: {masks_dir}")
    print(f"Saved metadata: {meta_path}")

    if args.visualize:
        vis_path = str(out_dir / "debug" / "masks_preview.mp4")
        print("Creating visualization...")
        write_preview(vis_path, frames, result.masks, fps, flagged=result.flagged)
        print(f"Saved visualization: {vis_path}")


if __name__ == "__main__":
    main()
