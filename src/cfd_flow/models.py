from __future__ import annotations

import math
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Union

import numpy as np

from .errors import MalformedEstimateError

ROI_MIN_SIZE = 0.01
_ROI_TOLERANCE = 1e-9


@dataclass(frozen=True)
class Velocity:
    """Flow vector in frame pixels per sampling interval."""

    u: float
    v: float

    @property
    def magnitude(self) -> float:
        return math.hypot(self.u, self.v)


VectorLike = Union[Velocity, Mapping[str, float], Sequence[float]]


def _vector_components(item: VectorLike, index: int) -> tuple[float, float]:
    if isinstance(item, Velocity):
        return item.u, item.v
    try:
        if isinstance(item, Mapping):
            return float(item["u"]), float(item["v"])
        u, v = item
        return float(u), float(v)
    except (KeyError, TypeError, ValueError) as error:
        raise ValueError(f"vector[{index}] must provide numeric u and v components") from error


@dataclass(frozen=True, eq=False)
class VelocityGrid:
    """Row-major velocity samples with shape (height, width, 2), top-left origin."""

    data: np.ndarray

    def __post_init__(self) -> None:
        array = np.array(self.data, dtype=np.float64)
        if array.ndim != 3 or array.shape[2] != 2:
            raise ValueError("velocity grid must have shape (height, width, 2)")
        if array.shape[0] < 1 or array.shape[1] < 1:
            raise ValueError("velocity grid must contain at least one cell")
        if not np.all(np.isfinite(array)):
            raise ValueError("velocity grid contains non-finite values")
        array.setflags(write=False)
        object.__setattr__(self, "data", array)

    @classmethod
    def from_flat(
        cls, vectors: Sequence[VectorLike] | np.ndarray, width: int, height: int
    ) -> VelocityGrid:
        expected = width * height
        if isinstance(vectors, np.ndarray):
            array = np.asarray(vectors, dtype=np.float64)
            if array.ndim != 2 or array.shape[1] != 2:
                raise ValueError("flat vector array must have shape (N, 2)")
            if array.shape[0] != expected:
                raise MalformedEstimateError(expected=expected, actual=array.shape[0])
            return cls(array.reshape(height, width, 2))

        if len(vectors) != expected:
            raise MalformedEstimateError(expected=expected, actual=len(vectors))
        components = [_vector_components(item, index) for index, item in enumerate(vectors)]
        return cls(np.asarray(components, dtype=np.float64).reshape(height, width, 2))

    @classmethod
    def from_rows(cls, rows: Sequence[Sequence[VectorLike]]) -> VelocityGrid:
        if not rows:
            raise ValueError("velocity grid must contain at least one row")
        width = len(rows[0])
        for row_index, row in enumerate(rows):
            if len(row) != width:
                raise ValueError(f"row {row_index} has {len(row)} entries, expected {width}")
        flat = [item for row in rows for item in row]
        return cls.from_flat(flat, width=width, height=len(rows))

    @classmethod
    def uniform(cls, width: int, height: int, u: float = 0.0, v: float = 0.0) -> VelocityGrid:
        array = np.empty((height, width, 2), dtype=np.float64)
        array[..., 0] = u
        array[..., 1] = v
        return cls(array)

    @property
    def width(self) -> int:
        return int(self.data.shape[1])

    @property
    def height(self) -> int:
        return int(self.data.shape[0])

    @property
    def u(self) -> np.ndarray:
        return self.data[..., 0]

    @property
    def v(self) -> np.ndarray:
        return self.data[..., 1]

    def __getitem__(self, key: tuple[int, int]) -> Velocity:
        row, col = key
        u, v = self.data[row, col]
        return Velocity(float(u), float(v))

    def __iter__(self) -> Iterator[list[Velocity]]:
        for row in range(self.height):
            yield [self[row, col] for col in range(self.width)]

    def magnitudes(self) -> np.ndarray:
        return np.hypot(self.u, self.v)

    def to_payload(self) -> dict[str, Any]:
        return {
            "grid_width": self.width,
            "grid_height": self.height,
            "vectors": [
                [{"u": float(u), "v": float(v)} for u, v in row] for row in self.data.tolist()
            ],
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> VelocityGrid:
        rows = payload.get("vectors")
        if not isinstance(rows, list):
            raise ValueError("payload.vectors must be a list of rows")
        grid = cls.from_rows(rows)
        declared = (payload.get("grid_width"), payload.get("grid_height"))
        if declared != (None, None) and declared != (grid.width, grid.height):
            raise ValueError(
                f"declared grid size {declared[0]}x{declared[1]} does not match "
                f"vectors {grid.width}x{grid.height}"
            )
        return grid


@dataclass(frozen=True)
class RegionOfInterest:
    """Normalized sub-rectangle of the source frame; all fields in [0, 1]."""

    x: float
    y: float
    width: float
    height: float

    def __post_init__(self) -> None:
        for name in ("x", "y", "width", "height"):
            value = getattr(self, name)
            if not math.isfinite(value) or value < 0.0 or value > 1.0:
                raise ValueError(f"ROI {name} must be within [0, 1], got {value}")
        if self.x + self.width > 1.0 + _ROI_TOLERANCE:
            raise ValueError("ROI x + width must not exceed 1")
        if self.y + self.height > 1.0 + _ROI_TOLERANCE:
            raise ValueError("ROI y + height must not exceed 1")

    @classmethod
    def from_corners(cls, x0: float, y0: float, x1: float, y1: float) -> RegionOfInterest:
        x0, x1 = (min(max(value, 0.0), 1.0) for value in (x0, x1))
        y0, y1 = (min(max(value, 0.0), 1.0) for value in (y0, y1))
        return cls(x=min(x0, x1), y=min(y0, y1), width=abs(x1 - x0), height=abs(y1 - y0))

    @property
    def is_degenerate(self) -> bool:
        return self.width < ROI_MIN_SIZE or self.height < ROI_MIN_SIZE

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


def coerce_roi(roi: RegionOfInterest | None) -> RegionOfInterest | None:
    """Return ``None`` (full frame) for missing or degenerate regions."""

    if roi is None or roi.is_degenerate:
        return None
    return roi


@dataclass(frozen=True)
class ViewportRect:
    """Pixel-space rectangle on the rendering surface."""

    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def contains(self, px: float, py: float) -> bool:
        return self.x <= px <= self.right and self.y <= py <= self.bottom


@dataclass(frozen=True)
class Frame:
    """JPEG-encoded still image captured at ``timestamp_s``."""

    timestamp_s: float
    width: int
    height: int
    data: bytes = field(repr=False)


@dataclass(frozen=True)
class FrameSequence:
    """Frames from one sampling pass, in strictly increasing time order."""

    frames: tuple[Frame, ...]
    roi: RegionOfInterest | None = None

    def __post_init__(self) -> None:
        for index in range(1, len(self.frames)):
            if self.frames[index].timestamp_s <= self.frames[index - 1].timestamp_s:
                raise ValueError(f"frame timestamps must be strictly increasing (index {index})")

    def __len__(self) -> int:
        return len(self.frames)

    def __iter__(self) -> Iterator[Frame]:
        return iter(self.frames)

    def __getitem__(self, index: int) -> Frame:
        return self.frames[index]


@dataclass(frozen=True)
class AggregationResult:
    """Averaged velocity field plus the uncropped first frame for context."""

    velocity_grid: VelocityGrid
    preview_image: Frame
    pair_count: int
