from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .aggregator import AGGREGATION_STRATEGIES, AggregationStrategy, EstimateFlow, aggregate
from .config import SEEK_TIMEOUT_S
from .errors import InsufficientFramesError
from .frames import (
    SAMPLING_INTERVAL_S,
    FrameSource,
    StatusCallback,
    capture_preview,
    extract_frames,
)
from .models import AggregationResult, Frame, RegionOfInterest, VelocityGrid, coerce_roi
from .openfoam import format_solver_files, write_solver_case
from .render import DISPLAY_MODES, RenderConfig, frame_to_image, render_to_image

logger = logging.getLogger(__name__)

DEFAULT_GRID_WIDTH = 20
DEFAULT_GRID_HEIGHT = 15
GRID_WIDTH_RANGE = (10, 40)
GRID_HEIGHT_RANGE = (10, 30)
MAX_CLIP_DURATION_S = 5.0


@dataclass(frozen=True)
class AnalysisConfig:
    """Configuration for one video-to-velocity-field calculation."""

    grid_width: int = DEFAULT_GRID_WIDTH
    grid_height: int = DEFAULT_GRID_HEIGHT
    max_clip_duration_s: float = MAX_CLIP_DURATION_S
    interval_s: float = SAMPLING_INTERVAL_S
    seek_timeout_s: float | None = SEEK_TIMEOUT_S
    aggregation: AggregationStrategy = "mean"
    decay: float = 0.5

    def validate_request(self, start_time_s: float, end_time_s: float) -> None:
        duration_s = end_time_s - start_time_s
        if duration_s <= 0 or duration_s > self.max_clip_duration_s:
            raise ValueError(
                f"Clip duration must be between 0 and {self.max_clip_duration_s:g} seconds."
            )
        low, high = GRID_WIDTH_RANGE
        if not low <= self.grid_width <= high:
            raise ValueError(f"grid_width must be within [{low}, {high}]")
        low, high = GRID_HEIGHT_RANGE
        if not low <= self.grid_height <= high:
            raise ValueError(f"grid_height must be within [{low}, {high}]")
        if self.aggregation not in AGGREGATION_STRATEGIES:
            raise ValueError(f"aggregation must be one of: {', '.join(AGGREGATION_STRATEGIES)}")


@dataclass(frozen=True)
class AnalysisResult:
    """Averaged field, preview frame and solver files for one request."""

    velocity_grid: VelocityGrid
    preview_frame: Frame
    solver_files: dict[str, str]
    roi: RegionOfInterest | None
    start_time_s: float
    end_time_s: float
    frame_count: int
    pair_count: int

    @property
    def duration_s(self) -> float:
        return self.end_time_s - self.start_time_s

    @property
    def aggregation(self) -> AggregationResult:
        return AggregationResult(
            velocity_grid=self.velocity_grid,
            preview_image=self.preview_frame,
            pair_count=self.pair_count,
        )


class FlowAnalysisPipeline:
    """Video clip -> sampled frames -> averaged velocity grid -> solver files."""

    def __init__(
        self,
        estimate_flow: EstimateFlow,
        config: AnalysisConfig | None = None,
        on_status: StatusCallback | None = None,
    ) -> None:
        self.estimate_flow = estimate_flow
        self.config = config or AnalysisConfig()
        self.on_status = on_status

    def _status(self, message: str) -> None:
        logger.info(message)
        if self.on_status is not None:
            self.on_status(message)

    async def run(
        self,
        source: FrameSource,
        start_time_s: float,
        end_time_s: float,
        roi: RegionOfInterest | None = None,
    ) -> AnalysisResult:
        cfg = self.config
        cfg.validate_request(start_time_s, end_time_s)
        crop_roi = coerce_roi(roi)

        # The background preview is always the full frame, whatever the ROI.
        preview = await capture_preview(
            source, start_time_s, seek_timeout_s=cfg.seek_timeout_s
        )
        frames = await extract_frames(
            source,
            start_time_s,
            end_time_s,
            crop_roi,
            interval_s=cfg.interval_s,
            seek_timeout_s=cfg.seek_timeout_s,
            on_status=self._status,
        )
        if len(frames) < 2:
            raise InsufficientFramesError(frame_count=len(frames))

        grid = await aggregate(
            frames,
            cfg.grid_width,
            cfg.grid_height,
            self.estimate_flow,
            strategy=cfg.aggregation,
            decay=cfg.decay,
            on_status=self._status,
        )

        self._status("Generating OpenFOAM files...")
        solver_files = format_solver_files(
            grid, end_time_s - start_time_s, cfg.grid_width, cfg.grid_height
        )

        self._status("Finalizing results...")
        return AnalysisResult(
            velocity_grid=grid,
            preview_frame=preview,
            solver_files=solver_files,
            roi=crop_roi,
            start_time_s=start_time_s,
            end_time_s=end_time_s,
            frame_count=len(frames),
            pair_count=len(frames) - 1,
        )


@dataclass
class AnalysisArtifacts:
    """Files written for an analysis result."""

    output_dir: Path
    grid_json_path: Path | None = None
    preview_path: Path | None = None
    render_paths: dict[str, Path] = field(default_factory=dict)
    case_dir: Path | None = None


def result_to_payload(result: AnalysisResult) -> dict[str, Any]:
    payload = result.velocity_grid.to_payload()
    payload.update(
        {
            "roi": result.roi.to_dict() if result.roi is not None else None,
            "start_time_s": result.start_time_s,
            "end_time_s": result.end_time_s,
            "duration_s": result.duration_s,
            "frame_count": result.frame_count,
            "pair_count": result.pair_count,
        }
    )
    return payload


def _roi_from_payload(roi_payload: object) -> RegionOfInterest | None:
    if roi_payload is None:
        return None
    try:
        return RegionOfInterest(
            x=float(roi_payload["x"]),
            y=float(roi_payload["y"]),
            width=float(roi_payload["width"]),
            height=float(roi_payload["height"]),
        )
    except (KeyError, TypeError) as error:
        raise ValueError("payload.roi must provide numeric x, y, width and height") from error


def load_grid_payload(
    path: str | Path,
) -> tuple[VelocityGrid, RegionOfInterest | None, float | None]:
    """Read a saved field back as ``(grid, roi, duration_s)``."""

    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError("grid payload must be a JSON object")
    grid = VelocityGrid.from_payload(payload)
    roi = _roi_from_payload(payload.get("roi"))
    duration_s = payload.get("duration_s")
    if duration_s is None:
        return grid, roi, None
    try:
        return grid, roi, float(duration_s)
    except TypeError as error:
        raise ValueError("payload.duration_s must be a number") from error


def write_artifacts(
    result: AnalysisResult,
    output_dir: str | Path,
    stem: str = "flow",
    render_config: RenderConfig | None = None,
    canvas_width: int = 800,
) -> AnalysisArtifacts:
    target_dir = Path(output_dir)
    target_dir.mkdir(parents=True, exist_ok=True)
    artifacts = AnalysisArtifacts(output_dir=target_dir)

    artifacts.grid_json_path = target_dir / f"{stem}_velocity_grid.json"
    artifacts.grid_json_path.write_text(
        json.dumps(result_to_payload(result), ensure_ascii=False, indent=2, allow_nan=False),
        encoding="utf-8",
    )

    artifacts.preview_path = target_dir / f"{stem}_preview.jpg"
    artifacts.preview_path.write_bytes(result.preview_frame.data)

    base = render_config or RenderConfig()
    background = frame_to_image(result.preview_frame)
    for mode in DISPLAY_MODES:
        config = RenderConfig(mode=mode, density=base.density, scale=base.scale)
        image = render_to_image(
            result.velocity_grid,
            background=background,
            roi=result.roi,
            config=config,
            canvas_width=canvas_width,
        )
        render_path = target_dir / f"{stem}_{mode}.png"
        image.save(render_path, format="PNG")
        artifacts.render_paths[mode] = render_path

    artifacts.case_dir = target_dir / f"{stem}_openfoam"
    write_solver_case(result.solver_files, artifacts.case_dir)
    return artifacts
