"""Temporal aggregation of per-pair flow estimates.

Every consecutive frame pair is sent to the estimator and the resulting
grids are averaged cell by cell. The arithmetic mean suppresses per-pair
estimation noise but also blurs short-lived motion: a vortex present in
one pair out of ten survives at a tenth of its strength. The optional
exponential weighting shifts emphasis toward the most recent pairs without
changing that basic trade-off.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Literal

import numpy as np

from .errors import EstimationFailure, InsufficientFramesError
from .models import Frame, VectorLike, VelocityGrid

logger = logging.getLogger(__name__)

AggregationStrategy = Literal["mean", "exponential"]
AGGREGATION_STRATEGIES: tuple[str, ...] = ("mean", "exponential")

EstimateFlow = Callable[[Frame, Frame, int, int], Awaitable[Sequence[VectorLike] | np.ndarray]]


def _raw_weights(pair_count: int, strategy: AggregationStrategy, decay: float) -> np.ndarray:
    if pair_count < 1:
        raise ValueError("pair_count must be positive")
    if strategy == "mean":
        return np.ones(pair_count, dtype=np.float64)
    if strategy == "exponential":
        if not 0.0 < decay <= 1.0:
            raise ValueError("decay must be within (0, 1]")
        return decay ** np.arange(pair_count - 1, -1, -1, dtype=np.float64)
    raise ValueError(f"unknown aggregation strategy: {strategy}")


def pair_weights(
    pair_count: int, strategy: AggregationStrategy = "mean", decay: float = 0.5
) -> np.ndarray:
    """Normalized weights for ``pair_count`` estimates, oldest first."""

    raw = _raw_weights(pair_count, strategy, decay)
    return raw / raw.sum()


def grid_from_estimate(
    vectors: Sequence[VectorLike] | np.ndarray, grid_width: int, grid_height: int
) -> VelocityGrid:
    """Validate an estimator response as a ``grid_width`` x ``grid_height`` grid.

    A wrong vector count raises :class:`MalformedEstimateError`. Vectors that
    cannot be read as finite (u, v) pairs raise :class:`EstimationFailure`.
    """

    try:
        return VelocityGrid.from_flat(vectors, width=grid_width, height=grid_height)
    except (TypeError, ValueError) as error:
        raise EstimationFailure(f"estimator returned unusable vectors: {error}") from error


async def aggregate(
    frames: Sequence[Frame],
    grid_width: int,
    grid_height: int,
    estimate_flow: EstimateFlow,
    *,
    strategy: AggregationStrategy = "mean",
    decay: float = 0.5,
    on_status: Callable[[str], None] | None = None,
) -> VelocityGrid:
    if grid_width < 1 or grid_height < 1:
        raise ValueError("grid dimensions must be positive")
    if len(frames) < 2:
        raise InsufficientFramesError(frame_count=len(frames))

    pair_count = len(frames) - 1
    weights = _raw_weights(pair_count, strategy, decay)
    if on_status is not None:
        on_status(f"Analyzing {pair_count} frame pairs...")

    accumulated = np.zeros((grid_height, grid_width, 2), dtype=np.float64)
    for index in range(pair_count):
        if on_status is not None:
            on_status(f"Analyzing frame pair {index + 1}/{pair_count}...")
        vectors = await estimate_flow(frames[index], frames[index + 1], grid_width, grid_height)
        pair_grid = grid_from_estimate(vectors, grid_width, grid_height)
        accumulated += weights[index] * pair_grid.data
        logger.debug(
            "pair %d/%d: max |v| = %.4f",
            index + 1,
            pair_count,
            float(pair_grid.magnitudes().max()),
        )

    if on_status is not None:
        on_status("Averaging vector fields...")
    return VelocityGrid(accumulated / weights.sum())
