from __future__ import annotations

from cfd_flow.colormap import (
    LEGEND_HEIGHT,
    LEGEND_PADDING,
    LEGEND_WIDTH,
    color_for_magnitude,
    draw_legend,
    max_magnitude,
)
from cfd_flow.models import VelocityGrid
from cfd_flow.surface import ImageSurface


def test_low_magnitude_is_blue_and_high_is_red() -> None:
    low = color_for_magnitude(0.0, opacity=1.0)
    high = color_for_magnitude(1.0, opacity=1.0)

    assert low[2] == 255 and low[0] < 120 and low[1] < 120
    assert high[0] == 255 and high[1] < 120 and high[2] < 120
    assert low[3] == high[3] == 255


def test_midpoint_is_green() -> None:
    red, green, blue, _ = color_for_magnitude(0.5)

    assert green == 255
    assert red < 120 and blue < 120


def test_normalized_value_and_opacity_are_clamped() -> None:
    assert color_for_magnitude(-2.0) == color_for_magnitude(0.0)
    assert color_for_magnitude(7.5) == color_for_magnitude(1.0)
    assert color_for_magnitude(0.3, opacity=1.7)[3] == 255
    assert color_for_magnitude(0.3, opacity=0.65)[3] == 166


def test_max_magnitude_defaults_to_one_for_still_field() -> None:
    assert max_magnitude(VelocityGrid.uniform(width=3, height=3)) == 1.0
    assert max_magnitude(VelocityGrid.from_rows([[(3.0, 4.0), (0.0, 1.0)]])) == 5.0


def test_legend_is_drawn_in_bottom_right_corner() -> None:
    surface = ImageSurface(400, 300)

    draw_legend(surface, surface.width, surface.height)

    x = 400 - LEGEND_WIDTH - LEGEND_PADDING
    y = 300 - LEGEND_HEIGHT - LEGEND_PADDING
    assert surface.image.getpixel((x + 5, y + 40)) != (0, 0, 0, 255)
    assert surface.image.getpixel((x - 5, y + 40)) == (0, 0, 0, 255)
    assert surface.image.getpixel((10, 10)) == (0, 0, 0, 255)
    # Gradient bar runs from blue on the left to red on the right.
    left = surface.image.getpixel((x + LEGEND_PADDING + 1, y + LEGEND_PADDING + 30))
    right = surface.image.getpixel((x + LEGEND_WIDTH - LEGEND_PADDING - 2, y + LEGEND_PADDING + 30))
    assert left[2] > left[0]
    assert right[0] > right[2]
