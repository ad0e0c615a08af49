from __future__ import annotations

import asyncio
import json
from pathlib import Path

import numpy as np
from pytest import approx, raises

from cfd_flow.errors import InsufficientFramesError, StalledSeekError
from cfd_flow.models import RegionOfInterest
from cfd_flow.pipeline import (
    AnalysisConfig,
    FlowAnalysisPipeline,
    load_grid_payload,
    write_artifacts,
)
from cfd_flow.render import DISPLAY_MODES


class _StillSource:
    def __init__(self, width: int = 160, height: int = 120, stall: bool = False) -> None:
        self.width = width
        self.height = height
        self.duration_s = 30.0
        self.stall = stall
        self._image = np.zeros((height, width, 3), dtype=np.uint8)
        self._image[:, ::8] = 255

    async def seek(self, timestamp_s: float) -> None:
        if self.stall:
            await asyncio.sleep(10)

    def capture(self) -> np.ndarray:
        return self._image.copy()


class _StubEstimator:
    def __init__(self) -> None:
        self.calls: list[tuple[float, float, int, int]] = []
        self.frame_sizes: set[tuple[int, int]] = set()

    async def estimate(self, frame_a, frame_b, grid_width, grid_height):
        self.calls.append((frame_a.timestamp_s, frame_b.timestamp_s, grid_width, grid_height))
        self.frame_sizes.add((frame_a.width, frame_a.height))
        rows, cols = np.mgrid[0:grid_height, 0:grid_width]
        return np.stack([cols / grid_width, rows * 0.0 + 0.5], axis=-1).reshape(-1, 2)


def _config(**overrides: object) -> AnalysisConfig:
    values: dict[str, object] = {"grid_width": 10, "grid_height": 10, "seek_timeout_s": 1.0}
    values.update(overrides)
    return AnalysisConfig(**values)


def test_pipeline_produces_averaged_grid_and_solver_files() -> None:
    estimator = _StubEstimator()
    messages: list[str] = []
    pipeline = FlowAnalysisPipeline(estimator.estimate, _config(), on_status=messages.append)

    result = asyncio.run(pipeline.run(_StillSource(), 1.0, 1.25))

    assert result.frame_count == 8
    assert result.pair_count == 7
    assert len(estimator.calls) == 7
    assert (result.velocity_grid.width, result.velocity_grid.height) == (10, 10)
    assert result.velocity_grid[0, 5].u == approx(0.5)
    assert result.velocity_grid[9, 0].v == approx(0.5)
    assert result.duration_s == approx(0.25)
    assert "endTime 0.25;" in result.solver_files["controlDict"]
    assert "100\n(" in result.solver_files["U"]
    assert messages[0] == "Extracting frames from video..."
    assert "Analyzing 7 frame pairs..." in messages
    assert messages[-2:] == ["Generating OpenFOAM files...", "Finalizing results..."]
    assert result.aggregation.pair_count == 7


def test_roi_crops_estimator_frames_but_not_preview() -> None:
    estimator = _StubEstimator()
    roi = RegionOfInterest(x=0.25, y=0.25, width=0.5, height=0.5)
    pipeline = FlowAnalysisPipeline(estimator.estimate, _config())

    result = asyncio.run(pipeline.run(_StillSource(160, 120), 0.0, 0.1, roi))

    assert estimator.frame_sizes == {(80, 60)}
    assert (result.preview_frame.width, result.preview_frame.height) == (160, 120)
    assert result.roi == roi


def test_degenerate_roi_means_full_frame() -> None:
    estimator = _StubEstimator()
    roi = RegionOfInterest(x=0.25, y=0.25, width=0.001, height=0.5)
    pipeline = FlowAnalysisPipeline(estimator.estimate, _config())

    result = asyncio.run(pipeline.run(_StillSource(160, 120), 0.0, 0.1, roi))

    assert result.roi is None
    assert estimator.frame_sizes == {(160, 120)}


def test_request_validation() -> None:
    pipeline = FlowAnalysisPipeline(_StubEstimator().estimate, _config())

    with raises(ValueError, match="between 0 and 5 seconds"):
        asyncio.run(pipeline.run(_StillSource(), 0.0, 6.0))
    with raises(ValueError, match="between 0 and 5 seconds"):
        asyncio.run(pipeline.run(_StillSource(), 2.0, 2.0))
    with raises(ValueError, match="grid_width"):
        asyncio.run(
            FlowAnalysisPipeline(_StubEstimator().estimate, _config(grid_width=5)).run(
                _StillSource(), 0.0, 1.0
            )
        )
    with raises(ValueError, match="grid_height"):
        asyncio.run(
            FlowAnalysisPipeline(_StubEstimator().estimate, _config(grid_height=31)).run(
                _StillSource(), 0.0, 1.0
            )
        )


def test_too_short_clip_reports_insufficient_frames() -> None:
    estimator = _StubEstimator()
    pipeline = FlowAnalysisPipeline(estimator.estimate, _config())

    with raises(InsufficientFramesError):
        asyncio.run(pipeline.run(_StillSource(), 0.0, 0.02))

    assert estimator.calls == []


def test_stalled_source_fails_fast() -> None:
    pipeline = FlowAnalysisPipeline(_StubEstimator().estimate, _config(seek_timeout_s=0.05))

    with raises(StalledSeekError):
        asyncio.run(pipeline.run(_StillSource(stall=True), 0.0, 1.0))


def test_write_artifacts_and_reload(tmp_path: Path) -> None:
    roi = RegionOfInterest(x=0.1, y=0.2, width=0.5, height=0.6)
    pipeline = FlowAnalysisPipeline(_StubEstimator().estimate, _config())
    result = asyncio.run(pipeline.run(_StillSource(), 0.0, 0.2, roi))

    artifacts = write_artifacts(result, tmp_path / "out", stem="clip", canvas_width=320)

    assert artifacts.grid_json_path == tmp_path / "out" / "clip_velocity_grid.json"
    assert artifacts.preview_path is not None and artifacts.preview_path.read_bytes()[:2] == b"\xff\xd8"
    assert set(artifacts.render_paths) == set(DISPLAY_MODES)
    assert all(path.exists() for path in artifacts.render_paths.values())
    assert artifacts.case_dir is not None
    assert (artifacts.case_dir / "0" / "U").exists()
    assert (artifacts.case_dir / "system" / "controlDict").exists()

    payload = json.loads(artifacts.grid_json_path.read_text(encoding="utf-8"))
    assert payload["frame_count"] == result.frame_count
    assert payload["roi"] == roi.to_dict()

    grid, loaded_roi, duration_s = load_grid_payload(artifacts.grid_json_path)
    assert np.array_equal(grid.data, result.velocity_grid.data)
    assert loaded_roi == roi
    assert duration_s == approx(0.2)


def test_load_grid_payload_reads_roi_by_name(tmp_path: Path) -> None:
    path = tmp_path / "grid.json"
    payload = {
        "grid_width": 1,
        "grid_height": 1,
        "vectors": [[{"u": 0.0, "v": 0.0}]],
        "roi": {"x": 0.1, "y": 0.2, "width": 0.3, "height": 0.4, "w": 0.3},
    }
    path.write_text(json.dumps(payload), encoding="utf-8")

    _, roi, duration_s = load_grid_payload(path)

    assert roi == RegionOfInterest(x=0.1, y=0.2, width=0.3, height=0.4)
    assert duration_s is None

    payload["roi"] = {"x": 0.1, "y": 0.2, "w": 0.3, "h": 0.4}
    path.write_text(json.dumps(payload), encoding="utf-8")
    with raises(ValueError, match="payload.roi"):
        load_grid_payload(path)

    payload["roi"] = [0.1, 0.2, 0.3, 0.4]
    path.write_text(json.dumps(payload), encoding="utf-8")
    with raises(ValueError, match="payload.roi"):
        load_grid_payload(path)
