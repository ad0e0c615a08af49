from __future__ import annotations

import math

from .errors import InvalidGridError
from .models import Velocity, VelocityGrid


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(value, high))


def sample(position: tuple[float, float], grid: VelocityGrid) -> Velocity:
    """Bilinearly interpolate the field at a continuous grid-index position.

    Positions outside the grid are clamped to its border. The enclosing cell
    is clamped to ``[0, width - 2] x [0, height - 2]`` so the four neighbours
    always exist, and integer positions reproduce stored samples exactly.
    """

    if grid.width < 2 or grid.height < 2:
        raise InvalidGridError(
            f"bilinear sampling needs at least 2x2 samples, got {grid.width}x{grid.height}"
        )

    x = _clamp(position[0], 0.0, grid.width - 1)
    y = _clamp(position[1], 0.0, grid.height - 1)
    x0 = min(int(math.floor(x)), grid.width - 2)
    y0 = min(int(math.floor(y)), grid.height - 2)
    wx = x - x0
    wy = y - y0

    data = grid.data
    v00 = data[y0, x0]
    v01 = data[y0, x0 + 1]
    v10 = data[y0 + 1, x0]
    v11 = data[y0 + 1, x0 + 1]

    blended = (
        v00 * ((1 - wx) * (1 - wy))
        + v01 * (wx * (1 - wy))
        + v10 * ((1 - wx) * wy)
        + v11 * (wx * wy)
    )
    return Velocity(float(blended[0]), float(blended[1]))
