"""Colour mapping and legend shared by every display mode."""

from __future__ import annotations

import colorsys

from .models import VelocityGrid
from .surface import RGBA, Surface

LOW_HUE_DEG = 240.0
LIGHTNESS = 0.7
SATURATION = 1.0

LEGEND_WIDTH = 180
LEGEND_HEIGHT = 80
LEGEND_PADDING = 15
LEGEND_BAR_HEIGHT = 15
LEGEND_BACKGROUND: RGBA = (26, 32, 44, 217)
LEGEND_BORDER: RGBA = (74, 85, 104, 230)
LEGEND_TITLE_COLOR: RGBA = (229, 231, 235, 255)
LEGEND_LABEL_COLOR: RGBA = (209, 213, 219, 255)


def color_for_magnitude(normalized: float, opacity: float = 0.9) -> RGBA:
    """Blue (low) to red (high): ``hue = 240 * (1 - normalized)``."""

    level = min(max(normalized, 0.0), 1.0)
    hue = LOW_HUE_DEG * (1.0 - level)
    red, green, blue = colorsys.hls_to_rgb(hue / 360.0, LIGHTNESS, SATURATION)
    alpha = min(max(opacity, 0.0), 1.0)
    return (
        int(round(red * 255)),
        int(round(green * 255)),
        int(round(blue * 255)),
        int(round(alpha * 255)),
    )


def max_magnitude(grid: VelocityGrid) -> float:
    """Largest vector norm in ``grid``; 1.0 for an all-zero field."""

    peak = float(grid.magnitudes().max())
    return peak if peak > 0.0 else 1.0


def draw_legend(surface: Surface, canvas_width: float, canvas_height: float) -> None:
    x = canvas_width - LEGEND_WIDTH - LEGEND_PADDING
    y = canvas_height - LEGEND_HEIGHT - LEGEND_PADDING

    surface.save()
    surface.set_fill(LEGEND_BACKGROUND)
    surface.fill_rounded_rect(
        x, y, LEGEND_WIDTH, LEGEND_HEIGHT, radius=8, outline=LEGEND_BORDER, outline_width=1.5
    )

    surface.set_fill(LEGEND_TITLE_COLOR)
    surface.fill_text(
        "Velocity Magnitude", x + LEGEND_WIDTH / 2, y + LEGEND_PADDING - 4, align="center", size=13
    )

    bar_x = x + LEGEND_PADDING
    bar_y = y + LEGEND_PADDING + 25
    bar_width = LEGEND_WIDTH - 2 * LEGEND_PADDING
    for offset in range(bar_width):
        surface.set_fill(color_for_magnitude(offset / (bar_width - 1), opacity=1.0))
        surface.fill_rect(bar_x + offset, bar_y, 1, LEGEND_BAR_HEIGHT)

    label_y = bar_y + LEGEND_BAR_HEIGHT + 4
    surface.set_fill(LEGEND_LABEL_COLOR)
    surface.fill_text("Low", bar_x, label_y, align="start", size=11)
    surface.fill_text("High", bar_x + bar_width, label_y, align="end", size=11)
    surface.restore()
