from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

from PIL import Image

from .aggregator import AGGREGATION_STRATEGIES
from .config import ESTIMATOR_TIMEOUT_S, ESTIMATOR_URL, SEEK_TIMEOUT_S
from .errors import FlowFieldError
from .estimators import FarnebackFlowEstimator, FlowEstimator, HttpFlowEstimator
from .frames import VideoFileFrameSource
from .models import RegionOfInterest
from .openfoam import format_solver_files, write_solver_case
from .pipeline import (
    DEFAULT_GRID_HEIGHT,
    DEFAULT_GRID_WIDTH,
    AnalysisConfig,
    FlowAnalysisPipeline,
    load_grid_payload,
    write_artifacts,
)
from .render import DISPLAY_MODES, RenderConfig, render_to_image


def _parse_roi(value: str) -> RegionOfInterest:
    parts = [item.strip() for item in value.split(",")]
    if len(parts) != 4:
        raise argparse.ArgumentTypeError("ROI must be in format x,y,w,h (fractions of the frame)")
    try:
        x, y, w, h = (float(part) for part in parts)
    except ValueError as error:
        raise argparse.ArgumentTypeError("ROI values must be numbers") from error
    try:
        return RegionOfInterest(x=x, y=y, width=w, height=h)
    except ValueError as error:
        raise argparse.ArgumentTypeError(str(error)) from error


def _build_estimator(args: argparse.Namespace) -> FlowEstimator:
    if args.estimator == "http":
        return HttpFlowEstimator(args.estimator_url, timeout_s=args.estimator_timeout_s)
    return FarnebackFlowEstimator()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cfd-flow",
        description="Estimate a 2D velocity field from a video clip and export OpenFOAM files.",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    analyze_video = subparsers.add_parser(
        "analyze-video",
        help="Estimate the averaged velocity field of a clip and write renders + solver files.",
    )
    analyze_video.add_argument("video_path", help="Path to the video file.")
    analyze_video.add_argument("--start", type=float, required=True, help="Clip start (s).")
    analyze_video.add_argument("--end", type=float, required=True, help="Clip end (s).")
    analyze_video.add_argument(
        "--roi", type=_parse_roi, default=None, help="ROI as fractions x,y,w,h"
    )
    analyze_video.add_argument("--grid-width", type=int, default=DEFAULT_GRID_WIDTH)
    analyze_video.add_argument("--grid-height", type=int, default=DEFAULT_GRID_HEIGHT)
    analyze_video.add_argument(
        "--estimator",
        choices=("farneback", "http"),
        default="farneback",
        help="Local OpenCV optical flow or a remote estimation service.",
    )
    analyze_video.add_argument("--estimator-url", default=ESTIMATOR_URL)
    analyze_video.add_argument("--estimator-timeout-s", type=float, default=ESTIMATOR_TIMEOUT_S)
    analyze_video.add_argument("--seek-timeout-s", type=float, default=SEEK_TIMEOUT_S)
    analyze_video.add_argument("--aggregation", choices=AGGREGATION_STRATEGIES, default="mean")
    analyze_video.add_argument("--decay", type=float, default=0.5)
    analyze_video.add_argument("--density", type=int, default=None)
    analyze_video.add_argument("--scale", type=float, default=1.0)
    analyze_video.add_argument("--canvas-width", type=int, default=800)
    analyze_video.add_argument(
        "--output-dir",
        help="Directory for outputs. Default: <video_dir>/<video_stem>_flow",
    )

    render = subparsers.add_parser("render", help="Render a saved velocity grid JSON to PNG.")
    render.add_argument("grid_json", help="Velocity grid JSON written by analyze-video.")
    render.add_argument("--output", required=True, help="Output PNG path.")
    render.add_argument("--background", default=None, help="Background image path.")
    render.add_argument(
        "--roi", type=_parse_roi, default=None, help="Override the saved ROI (x,y,w,h)."
    )
    render.add_argument("--mode", choices=DISPLAY_MODES, default="vectors")
    render.add_argument("--density", type=int, default=None)
    render.add_argument("--scale", type=float, default=1.0)
    render.add_argument("--width", type=int, default=800)

    export = subparsers.add_parser(
        "export-openfoam", help="Write OpenFOAM case files for a saved velocity grid."
    )
    export.add_argument("grid_json", help="Velocity grid JSON written by analyze-video.")
    export.add_argument("--output-dir", required=True)
    export.add_argument(
        "--duration-s",
        type=float,
        default=None,
        help="Simulated end time. Default: clip duration stored in the JSON.",
    )

    serve = subparsers.add_parser(
        "serve-estimator", help="Serve the OpenCV estimator over HTTP (POST /estimate)."
    )
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    return parser


def _handle_analyze_video(args: argparse.Namespace) -> int:
    video_path = Path(args.video_path)
    output_dir = (
        Path(args.output_dir)
        if args.output_dir
        else video_path.parent / f"{video_path.stem}_flow"
    )

    try:
        config = AnalysisConfig(
            grid_width=args.grid_width,
            grid_height=args.grid_height,
            seek_timeout_s=args.seek_timeout_s,
            aggregation=args.aggregation,
            decay=args.decay,
        )
        config.validate_request(args.start, args.end)
        render_config = RenderConfig(density=args.density, scale=args.scale)
        pipeline = FlowAnalysisPipeline(_build_estimator(args).estimate, config, on_status=print)
        with VideoFileFrameSource(video_path) as source:
            result = asyncio.run(pipeline.run(source, args.start, args.end, args.roi))
        artifacts = write_artifacts(
            result,
            output_dir,
            stem=video_path.stem,
            render_config=render_config,
            canvas_width=args.canvas_width,
        )
    except (FlowFieldError, ValueError, RuntimeError, FileNotFoundError) as error:
        print(f"ERROR: {error}")
        return 1

    magnitudes = result.velocity_grid.magnitudes()
    print(f"Video analyzed: {video_path}")
    print(f"Frames: {result.frame_count} ({result.pair_count} pairs)")
    print(f"Grid: {result.velocity_grid.width}x{result.velocity_grid.height}")
    print(f"Max |v|: {float(magnitudes.max()):.4f}")
    print(f"Mean |v|: {float(magnitudes.mean()):.4f}")
    print(f"Velocity grid JSON: {artifacts.grid_json_path}")
    for mode, path in artifacts.render_paths.items():
        print(f"Render ({mode}): {path}")
    print(f"OpenFOAM case: {artifacts.case_dir}")
    return 0


def _handle_render(args: argparse.Namespace) -> int:
    try:
        grid, saved_roi, _ = load_grid_payload(args.grid_json)
        config = RenderConfig(mode=args.mode, density=args.density, scale=args.scale)
        background = None
        if args.background:
            with Image.open(args.background) as image:
                background = image.convert("RGB")
        roi = args.roi if args.roi is not None else saved_roi
        rendered = render_to_image(
            grid, background=background, roi=roi, config=config, canvas_width=args.width
        )
    except (FlowFieldError, ValueError, OSError) as error:
        print(f"ERROR: {error}")
        return 1

    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)
    rendered.save(output, format="PNG")
    print(f"Rendered {args.mode}: {output} ({rendered.width}x{rendered.height})")
    return 0


def _handle_export_openfoam(args: argparse.Namespace) -> int:
    try:
        grid, _, saved_duration_s = load_grid_payload(args.grid_json)
        duration_s = args.duration_s if args.duration_s is not None else saved_duration_s
        if duration_s is None:
            raise ValueError("duration unknown: pass --duration-s")
        files = format_solver_files(grid, duration_s, grid.width, grid.height)
        written = write_solver_case(files, args.output_dir)
    except (ValueError, OSError) as error:
        print(f"ERROR: {error}")
        return 1

    print(f"OpenFOAM case written: {args.output_dir}")
    for name, path in written.items():
        print(f"{name}: {path}")
    return 0


def _handle_serve_estimator(args: argparse.Namespace) -> int:
    import uvicorn

    from .service import create_estimation_app

    uvicorn.run(create_estimation_app(), host=args.host, port=args.port)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "analyze-video":
        return _handle_analyze_video(args)
    if args.command == "render":
        return _handle_render(args)
    if args.command == "export-openfoam":
        return _handle_export_openfoam(args)
    if args.command == "serve-estimator":
        return _handle_serve_estimator(args)

    parser.error(f"unknown command: {args.command}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
