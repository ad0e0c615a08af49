"""Coordinate mapping between normalized ROI space, grid index space and pixels.

Two distinct crops exist in the pipeline: :func:`source_crop_box` selects the
ROI from the decoded frame before flow estimation, while :func:`to_viewport`
positions the ROI on the rendering surface, where drawing is clipped to it.
"""

from __future__ import annotations

import math

from .models import RegionOfInterest, VelocityGrid, ViewportRect


def to_viewport(
    roi: RegionOfInterest | None, canvas_width: float, canvas_height: float
) -> ViewportRect:
    if canvas_width <= 0 or canvas_height <= 0:
        raise ValueError("canvas dimensions must be positive")
    if roi is None:
        return ViewportRect(0.0, 0.0, float(canvas_width), float(canvas_height))
    return ViewportRect(
        x=roi.x * canvas_width,
        y=roi.y * canvas_height,
        width=roi.width * canvas_width,
        height=roi.height * canvas_height,
    )


def _grid_span(grid: VelocityGrid) -> tuple[int, int]:
    # Nodes sit on the viewport edges, so a grid spans (size - 1) cells.
    return max(grid.width - 1, 1), max(grid.height - 1, 1)


def grid_to_viewport(
    grid_x: float, grid_y: float, grid: VelocityGrid, viewport: ViewportRect
) -> tuple[float, float]:
    span_x, span_y = _grid_span(grid)
    px = viewport.x + grid_x / span_x * viewport.width
    py = viewport.y + grid_y / span_y * viewport.height
    return px, py


def viewport_to_grid(
    px: float, py: float, grid: VelocityGrid, viewport: ViewportRect
) -> tuple[float, float]:
    if viewport.width <= 0 or viewport.height <= 0:
        raise ValueError("viewport must have a positive area")
    span_x, span_y = _grid_span(grid)
    grid_x = (px - viewport.x) / viewport.width * span_x
    grid_y = (py - viewport.y) / viewport.height * span_y
    return grid_x, grid_y


def cell_size(grid: VelocityGrid, viewport: ViewportRect) -> tuple[float, float]:
    return viewport.width / grid.width, viewport.height / grid.height


def cell_rect(col: int, row: int, grid: VelocityGrid, viewport: ViewportRect) -> ViewportRect:
    cell_width, cell_height = cell_size(grid, viewport)
    return ViewportRect(
        x=viewport.x + col * cell_width,
        y=viewport.y + row * cell_height,
        width=cell_width,
        height=cell_height,
    )


def cell_center(
    col: int, row: int, grid: VelocityGrid, viewport: ViewportRect
) -> tuple[float, float]:
    cell_width, cell_height = cell_size(grid, viewport)
    return (
        viewport.x + col * cell_width + cell_width / 2,
        viewport.y + row * cell_height + cell_height / 2,
    )


def source_crop_box(
    roi: RegionOfInterest | None, source_width: int, source_height: int
) -> tuple[int, int, int, int]:
    """Return ``(x, y, width, height)`` of the ROI in source pixels."""

    if source_width <= 0 or source_height <= 0:
        raise ValueError("source dimensions must be positive")
    if roi is None:
        return 0, 0, source_width, source_height

    x = min(int(math.floor(roi.x * source_width)), source_width - 1)
    y = min(int(math.floor(roi.y * source_height)), source_height - 1)
    width = max(int(roi.width * source_width), 1)
    height = max(int(roi.height * source_height), 1)
    return x, y, min(width, source_width - x), min(height, source_height - y)
