from __future__ import annotations

import io
import math
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

from PIL import Image

from .colormap import color_for_magnitude, draw_legend, max_magnitude
from .geometry import cell_center, cell_rect, cell_size, to_viewport, viewport_to_grid
from .models import Frame, RegionOfInterest, VelocityGrid, ViewportRect, coerce_roi
from .sampler import sample
from .surface import ImageSurface, Point, Surface

DisplayMode = Literal["vectors", "streamlines", "heatmap"]
DISPLAY_MODES: tuple[str, ...] = ("vectors", "streamlines", "heatmap")

MIN_MAGNITUDE = 1e-6
VECTOR_OPACITY = 0.95
ARROW_FILL_RATIO = 0.9
MAX_ARROW_HEAD = 8.0
STREAMLINE_STEPS = 60
STREAMLINE_OPACITY = 0.75
STREAMLINE_WIDTH = 1.8
HEATMAP_OPACITY = 0.65
DEFAULT_CANVAS_WIDTH = 800


@dataclass(frozen=True)
class RenderParams:
    """Inputs shared by all drawing strategies."""

    grid: VelocityGrid
    max_magnitude: float
    viewport: ViewportRect
    density: int
    scale: float = 1.0


@dataclass(frozen=True)
class RenderConfig:
    """User-facing display settings."""

    mode: DisplayMode = "vectors"
    density: int | None = None
    scale: float = 1.0

    def __post_init__(self) -> None:
        if self.mode not in DISPLAY_MODES:
            raise ValueError(f"mode must be one of: {', '.join(DISPLAY_MODES)}")
        if self.density is not None and self.density < 1:
            raise ValueError("density must be at least 1")
        if self.scale <= 0:
            raise ValueError("scale must be positive")

    def resolved_density(self, grid: VelocityGrid) -> int:
        if self.density is not None:
            return self.density
        return max(1, grid.width // 2)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def vector_stride(grid_width: int, density: int) -> int:
    return max(1, _round_half_up(grid_width / density))


def draw_vectors(surface: Surface, params: RenderParams) -> None:
    grid, viewport = params.grid, params.viewport
    cell_width, cell_height = cell_size(grid, viewport)
    step = vector_stride(grid.width, params.density)
    arrow_scale = min(cell_width, cell_height) * ARROW_FILL_RATIO * params.scale
    magnitudes = grid.magnitudes()

    for row in range(0, grid.height, step):
        for col in range(0, grid.width, step):
            magnitude = float(magnitudes[row, col])
            if magnitude < MIN_MAGNITUDE:
                continue
            u, v = grid.data[row, col]
            center_x, center_y = cell_center(col, row, grid, viewport)
            normalized = magnitude / params.max_magnitude
            color = color_for_magnitude(normalized, VECTOR_OPACITY)
            length = normalized * arrow_scale
            head = min(length / 2, MAX_ARROW_HEAD) * (0.8 + normalized * 0.2)

            surface.save()
            surface.set_stroke(color, max(1.5, normalized * 3.5))
            surface.set_fill(color)
            surface.translate(center_x, center_y)
            surface.rotate(math.atan2(float(v), float(u)))
            surface.begin_path()
            surface.move_to(-length / 2, 0)
            surface.line_to(length / 2, 0)
            surface.stroke()
            surface.fill_polygon(
                [
                    (length / 2, 0),
                    (length / 2 - head, -head * 0.5),
                    (length / 2 - head, head * 0.5),
                ]
            )
            surface.restore()


def trace_streamline(
    seed: Point,
    grid: VelocityGrid,
    viewport: ViewportRect,
    step_length: float,
    max_steps: int = STREAMLINE_STEPS,
) -> list[Point]:
    """Follow the field from ``seed`` (pixels) with fixed-length steps."""

    px, py = seed
    points = [(px, py)]
    for _ in range(max_steps):
        if not viewport.contains(px, py):
            break
        velocity = sample(viewport_to_grid(px, py, grid, viewport), grid)
        magnitude = velocity.magnitude
        if magnitude < MIN_MAGNITUDE:
            break
        px += velocity.u / magnitude * step_length
        py += velocity.v / magnitude * step_length
        points.append((px, py))
    return points


def streamline_seeds(viewport: ViewportRect, density: int) -> list[Point]:
    lines = density * 2
    return [
        (
            viewport.x + (i + 0.5) * (viewport.width / lines),
            viewport.y + (j + 0.5) * (viewport.height / lines),
        )
        for i in range(lines)
        for j in range(lines)
    ]


def draw_streamlines(surface: Surface, params: RenderParams) -> None:
    grid, viewport = params.grid, params.viewport
    step_length = min(viewport.width, viewport.height) / (params.density * 4)

    for seed in streamline_seeds(viewport, params.density):
        # Colour is fixed by the seed magnitude for the whole line.
        seed_velocity = sample(viewport_to_grid(seed[0], seed[1], grid, viewport), grid)
        color = color_for_magnitude(
            seed_velocity.magnitude / params.max_magnitude, STREAMLINE_OPACITY
        )
        surface.set_stroke(color, STREAMLINE_WIDTH)
        points = trace_streamline(seed, grid, viewport, step_length)
        surface.begin_path()
        surface.move_to(*points[0])
        for point in points[1:]:
            surface.line_to(*point)
        surface.stroke()


def draw_heatmap(surface: Surface, params: RenderParams) -> None:
    grid, viewport = params.grid, params.viewport
    magnitudes = grid.magnitudes()
    for row in range(grid.height):
        for col in range(grid.width):
            rect = cell_rect(col, row, grid, viewport)
            normalized = float(magnitudes[row, col]) / params.max_magnitude
            surface.set_fill(color_for_magnitude(normalized, HEATMAP_OPACITY))
            surface.fill_rect(rect.x, rect.y, rect.width, rect.height)


RENDERERS: dict[str, Callable[[Surface, RenderParams], None]] = {
    "vectors": draw_vectors,
    "streamlines": draw_streamlines,
    "heatmap": draw_heatmap,
}


def render_field(
    surface: Surface,
    grid: VelocityGrid,
    roi: RegionOfInterest | None = None,
    config: RenderConfig | None = None,
    background: Image.Image | None = None,
) -> ViewportRect:
    """Draw ``grid`` inside the ROI viewport, then the legend outside the clip."""

    cfg = config or RenderConfig()
    if background is not None:
        surface.draw_image(background)

    viewport = to_viewport(coerce_roi(roi), surface.width, surface.height)
    params = RenderParams(
        grid=grid,
        max_magnitude=max_magnitude(grid),
        viewport=viewport,
        density=cfg.resolved_density(grid),
        scale=cfg.scale,
    )

    surface.save()
    surface.clip_rect(viewport.x, viewport.y, viewport.width, viewport.height)
    try:
        RENDERERS[cfg.mode](surface, params)
    finally:
        surface.restore()

    draw_legend(surface, surface.width, surface.height)
    return viewport


def frame_to_image(frame: Frame) -> Image.Image:
    with Image.open(io.BytesIO(frame.data)) as image:
        return image.convert("RGB")


def render_to_image(
    grid: VelocityGrid,
    background: Image.Image | None = None,
    roi: RegionOfInterest | None = None,
    config: RenderConfig | None = None,
    canvas_width: int = DEFAULT_CANVAS_WIDTH,
) -> Image.Image:
    """Render onto a fresh canvas whose height follows the background aspect ratio."""

    if background is not None:
        aspect_ratio = background.width / background.height
    else:
        aspect_ratio = grid.width / grid.height
    canvas_height = max(1, int(round(canvas_width / aspect_ratio)))
    surface = ImageSurface(canvas_width, canvas_height)
    render_field(surface, grid, roi=roi, config=config, background=background)
    return surface.to_rgb()
