from __future__ import annotations

INSUFFICIENT_FRAMES_MESSAGE = (
    "Not enough frames extracted to perform analysis. Please select a longer clip."
)


class FlowFieldError(Exception):
    """Base class for failures raised by the velocity-field pipeline."""


class InvalidGridError(FlowFieldError, ValueError):
    """Grid is too small to interpolate (needs at least 2x2 samples)."""


class InsufficientFramesError(FlowFieldError):
    """Fewer than two frames were available for pairwise flow estimation."""

    def __init__(self, frame_count: int, message: str = INSUFFICIENT_FRAMES_MESSAGE) -> None:
        super().__init__(message)
        self.frame_count = frame_count


class MalformedEstimateError(FlowFieldError):
    """Estimator returned a vector array with the wrong number of elements."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f"Estimator returned an incorrect number of vectors. "
            f"Expected {expected}, got {actual}."
        )
        self.expected = expected
        self.actual = actual


class EstimationFailure(FlowFieldError):
    """Flow estimation collaborator failed (network, service or model error)."""


class StalledSeekError(FlowFieldError):
    """Frame source did not become ready after a seek."""

    def __init__(self, timestamp_s: float, timeout_s: float | None = None) -> None:
        if timeout_s is None:
            message = f"frame source failed to produce a frame at t={timestamp_s:.3f}s"
        else:
            message = (
                f"frame source did not become ready within {timeout_s:.1f}s "
                f"after seeking to t={timestamp_s:.3f}s"
            )
        super().__init__(message)
        self.timestamp_s = timestamp_s
        self.timeout_s = timeout_s
