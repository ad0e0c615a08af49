from __future__ import annotations

import numpy as np
from pytest import approx, raises

from cfd_flow.errors import InvalidGridError
from cfd_flow.models import Velocity, VelocityGrid
from cfd_flow.sampler import sample


def _ramp_grid(width: int = 5, height: int = 4) -> VelocityGrid:
    rows, cols = np.mgrid[0:height, 0:width]
    data = np.stack([cols * 1.5 + rows * 0.25, rows * -2.0 + cols * 0.1], axis=-1)
    return VelocityGrid(data)


def test_integer_positions_return_stored_values_exactly() -> None:
    grid = _ramp_grid()

    for row in range(grid.height):
        for col in range(grid.width):
            assert sample((col, row), grid) == grid[row, col]


def test_midpoint_of_four_cells_is_their_average() -> None:
    grid = VelocityGrid.from_rows(
        [
            [(1.0, 10.0), (3.0, -2.0)],
            [(5.0, 4.0), (-7.0, 0.0)],
        ]
    )

    result = sample((0.5, 0.5), grid)

    assert result.u == approx((1.0 + 3.0 + 5.0 - 7.0) / 4)
    assert result.v == approx((10.0 - 2.0 + 4.0 + 0.0) / 4)


def test_sampling_is_linear_along_an_edge() -> None:
    grid = VelocityGrid.from_rows([[(0.0, 0.0), (4.0, 8.0)], [(0.0, 0.0), (4.0, 8.0)]])

    assert sample((0.25, 0.0), grid) == Velocity(1.0, 2.0)


def test_positions_outside_grid_are_clamped() -> None:
    grid = _ramp_grid()

    assert sample((-3.0, -1.0), grid) == grid[0, 0]
    assert sample((50.0, 50.0), grid) == grid[grid.height - 1, grid.width - 1]


def test_grid_smaller_than_two_by_two_is_rejected() -> None:
    with raises(InvalidGridError):
        sample((0.0, 0.0), VelocityGrid.uniform(width=1, height=5, u=1.0))
    with raises(InvalidGridError):
        sample((0.0, 0.0), VelocityGrid.uniform(width=5, height=1, u=1.0))
