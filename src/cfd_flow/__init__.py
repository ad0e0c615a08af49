"""Video-based 2D velocity field estimation, rendering and OpenFOAM export."""

from .aggregator import AGGREGATION_STRATEGIES, aggregate, pair_weights
from .colormap import color_for_magnitude, draw_legend, max_magnitude
from .errors import (
    EstimationFailure,
    FlowFieldError,
    InsufficientFramesError,
    InvalidGridError,
    MalformedEstimateError,
    StalledSeekError,
)
from .estimators import (
    FarnebackConfig,
    FarnebackFlowEstimator,
    FlowEstimator,
    HttpFlowEstimator,
)
from .frames import (
    SAMPLING_INTERVAL_S,
    FrameSource,
    VideoFileFrameSource,
    capture_preview,
    crop_to_roi,
    extract_frames,
)
from .geometry import (
    cell_center,
    cell_rect,
    grid_to_viewport,
    source_crop_box,
    to_viewport,
    viewport_to_grid,
)
from .models import (
    AggregationResult,
    Frame,
    FrameSequence,
    RegionOfInterest,
    Velocity,
    VelocityGrid,
    ViewportRect,
    coerce_roi,
)
from .openfoam import format_solver_files, write_solver_case
from .pipeline import (
    AnalysisArtifacts,
    AnalysisConfig,
    AnalysisResult,
    FlowAnalysisPipeline,
    write_artifacts,
)
from .render import (
    DISPLAY_MODES,
    RenderConfig,
    RenderParams,
    draw_heatmap,
    draw_streamlines,
    draw_vectors,
    render_field,
    render_to_image,
)
from .sampler import sample
from .surface import ImageSurface, Surface

__all__ = [
    "Velocity",
    "VelocityGrid",
    "RegionOfInterest",
    "ViewportRect",
    "Frame",
    "FrameSequence",
    "AggregationResult",
    "coerce_roi",
    "FlowFieldError",
    "InvalidGridError",
    "InsufficientFramesError",
    "MalformedEstimateError",
    "EstimationFailure",
    "StalledSeekError",
    "to_viewport",
    "grid_to_viewport",
    "viewport_to_grid",
    "cell_rect",
    "cell_center",
    "source_crop_box",
    "sample",
    "SAMPLING_INTERVAL_S",
    "FrameSource",
    "VideoFileFrameSource",
    "capture_preview",
    "crop_to_roi",
    "extract_frames",
    "AGGREGATION_STRATEGIES",
    "aggregate",
    "pair_weights",
    "FlowEstimator",
    "HttpFlowEstimator",
    "FarnebackConfig",
    "FarnebackFlowEstimator",
    "color_for_magnitude",
    "max_magnitude",
    "draw_legend",
    "Surface",
    "ImageSurface",
    "DISPLAY_MODES",
    "RenderConfig",
    "RenderParams",
    "draw_vectors",
    "draw_streamlines",
    "draw_heatmap",
    "render_field",
    "render_to_image",
    "format_solver_files",
    "write_solver_case",
    "AnalysisConfig",
    "AnalysisResult",
    "AnalysisArtifacts",
    "FlowAnalysisPipeline",
    "write_artifacts",
]
