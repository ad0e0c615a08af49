"""2D drawing surface used by the renderers.

:class:`ImageSurface` gives a small canvas-style API (transform stack,
rectangular clip, paths, fills) over a Pillow RGBA image. Every primitive is
drawn on a transparent layer the size of its clipped bounding box and then
alpha-composited, so translucent colours blend the way they do on an HTML
canvas.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from functools import lru_cache
from pathlib import Path
from typing import Literal, Protocol

import numpy as np
from PIL import Image, ImageDraw, ImageFont

RGBA = tuple[int, int, int, int]
TextAlign = Literal["start", "center", "end"]
Point = tuple[float, float]


class Surface(Protocol):
    @property
    def width(self) -> int: ...

    @property
    def height(self) -> int: ...

    def save(self) -> None: ...

    def restore(self) -> None: ...

    def translate(self, dx: float, dy: float) -> None: ...

    def rotate(self, angle: float) -> None: ...

    def clip_rect(self, x: float, y: float, width: float, height: float) -> None: ...

    def set_stroke(self, color: RGBA, line_width: float | None = None) -> None: ...

    def set_fill(self, color: RGBA) -> None: ...

    def begin_path(self) -> None: ...

    def move_to(self, x: float, y: float) -> None: ...

    def line_to(self, x: float, y: float) -> None: ...

    def stroke(self) -> None: ...

    def fill_polygon(self, points: Sequence[Point]) -> None: ...

    def fill_rect(self, x: float, y: float, width: float, height: float) -> None: ...

    def fill_rounded_rect(
        self,
        x: float,
        y: float,
        width: float,
        height: float,
        radius: float,
        outline: RGBA | None = None,
        outline_width: float = 1.0,
    ) -> None: ...

    def fill_text(
        self, text: str, x: float, y: float, align: TextAlign = "start", size: int = 11
    ) -> None: ...

    def draw_image(self, image: Image.Image) -> None: ...


@dataclass
class _DrawState:
    matrix: np.ndarray
    clip: tuple[int, int, int, int] | None
    stroke_color: RGBA
    fill_color: RGBA
    line_width: float


@lru_cache(maxsize=16)
def _font(size: int) -> ImageFont.ImageFont | ImageFont.FreeTypeFont:
    return ImageFont.load_default(size=size)


class ImageSurface:
    """Canvas-style drawing over an in-memory Pillow image."""

    def __init__(self, width: int, height: int, background: RGBA = (0, 0, 0, 255)) -> None:
        if width <= 0 or height <= 0:
            raise ValueError("surface dimensions must be positive")
        self._image = Image.new("RGBA", (int(width), int(height)), background)
        self._state = _DrawState(
            matrix=np.eye(3),
            clip=None,
            stroke_color=(0, 0, 0, 255),
            fill_color=(0, 0, 0, 255),
            line_width=1.0,
        )
        self._stack: list[_DrawState] = []
        self._path: list[list[Point]] = []

    @property
    def width(self) -> int:
        return self._image.width

    @property
    def height(self) -> int:
        return self._image.height

    @property
    def image(self) -> Image.Image:
        return self._image

    def save(self) -> None:
        self._stack.append(replace(self._state, matrix=self._state.matrix.copy()))

    def restore(self) -> None:
        if self._stack:
            self._state = self._stack.pop()

    def translate(self, dx: float, dy: float) -> None:
        step = np.array([[1.0, 0.0, dx], [0.0, 1.0, dy], [0.0, 0.0, 1.0]])
        self._state.matrix = self._state.matrix @ step

    def rotate(self, angle: float) -> None:
        cos_a, sin_a = math.cos(angle), math.sin(angle)
        step = np.array([[cos_a, -sin_a, 0.0], [sin_a, cos_a, 0.0], [0.0, 0.0, 1.0]])
        self._state.matrix = self._state.matrix @ step

    def _apply(self, x: float, y: float) -> Point:
        m = self._state.matrix
        return (
            float(m[0, 0] * x + m[0, 1] * y + m[0, 2]),
            float(m[1, 0] * x + m[1, 1] * y + m[1, 2]),
        )

    def _is_axis_aligned(self) -> bool:
        m = self._state.matrix
        return abs(m[0, 1]) < 1e-12 and abs(m[1, 0]) < 1e-12

    def _bounds(self) -> tuple[int, int, int, int]:
        return self._state.clip or (0, 0, self.width, self.height)

    def clip_rect(self, x: float, y: float, width: float, height: float) -> None:
        corners = [
            self._apply(x, y),
            self._apply(x + width, y),
            self._apply(x, y + height),
            self._apply(x + width, y + height),
        ]
        xs = [point[0] for point in corners]
        ys = [point[1] for point in corners]
        left, top, right, bottom = self._bounds()
        self._state.clip = (
            max(left, int(round(min(xs)))),
            max(top, int(round(min(ys)))),
            min(right, int(round(max(xs)))),
            min(bottom, int(round(max(ys)))),
        )

    def set_stroke(self, color: RGBA, line_width: float | None = None) -> None:
        self._state.stroke_color = color
        if line_width is not None:
            self._state.line_width = line_width

    def set_fill(self, color: RGBA) -> None:
        self._state.fill_color = color

    def begin_path(self) -> None:
        self._path = []

    def move_to(self, x: float, y: float) -> None:
        self._path.append([self._apply(x, y)])

    def line_to(self, x: float, y: float) -> None:
        if not self._path:
            self.move_to(x, y)
            return
        self._path[-1].append(self._apply(x, y))

    def _composite(
        self,
        points: Sequence[Point],
        draw_fn: Callable[[ImageDraw.ImageDraw, list[Point]], None],
        pad: float = 1.0,
    ) -> None:
        left, top, right, bottom = self._bounds()
        xs = [point[0] for point in points]
        ys = [point[1] for point in points]
        x0 = max(left, int(math.floor(min(xs) - pad)))
        y0 = max(top, int(math.floor(min(ys) - pad)))
        x1 = min(right, int(math.ceil(max(xs) + pad)) + 1)
        y1 = min(bottom, int(math.ceil(max(ys) + pad)) + 1)
        if x1 <= x0 or y1 <= y0:
            return

        layer = Image.new("RGBA", (x1 - x0, y1 - y0), (0, 0, 0, 0))
        draw_fn(ImageDraw.Draw(layer), [(px - x0, py - y0) for px, py in points])
        self._image.alpha_composite(layer, dest=(x0, y0))

    def stroke(self) -> None:
        color = self._state.stroke_color
        line_width = max(1, int(round(self._state.line_width)))
        for subpath in self._path:
            if len(subpath) < 2:
                continue
            self._composite(
                subpath,
                lambda draw, pts: draw.line(pts, fill=color, width=line_width, joint="curve"),
                pad=line_width,
            )

    def fill_polygon(self, points: Sequence[Point]) -> None:
        if len(points) < 3:
            return
        color = self._state.fill_color
        device = [self._apply(x, y) for x, y in points]
        self._composite(device, lambda draw, pts: draw.polygon(pts, fill=color))

    def fill_rect(self, x: float, y: float, width: float, height: float) -> None:
        if not self._is_axis_aligned():
            self.fill_polygon([(x, y), (x + width, y), (x + width, y + height), (x, y + height)])
            return

        # Round edges to pixel boundaries so adjacent cells neither overlap nor gap.
        (ax, ay), (bx, by) = self._apply(x, y), self._apply(x + width, y + height)
        px0, px1 = sorted((int(round(ax)), int(round(bx))))
        py0, py1 = sorted((int(round(ay)), int(round(by))))
        if px1 <= px0 or py1 <= py0:
            return
        color = self._state.fill_color
        self._composite(
            [(px0, py0), (px1, py1)],
            lambda draw, pts: draw.rectangle(
                [pts[0], (pts[1][0] - 1, pts[1][1] - 1)], fill=color
            ),
            pad=0,
        )

    def fill_rounded_rect(
        self,
        x: float,
        y: float,
        width: float,
        height: float,
        radius: float,
        outline: RGBA | None = None,
        outline_width: float = 1.0,
    ) -> None:
        color = self._state.fill_color
        corners = [self._apply(x, y), self._apply(x + width, y + height)]
        stroke_width = max(1, int(round(outline_width)))
        self._composite(
            corners,
            lambda draw, pts: draw.rounded_rectangle(
                [pts[0], pts[1]],
                radius=int(round(radius)),
                fill=color,
                outline=outline,
                width=stroke_width,
            ),
        )

    def fill_text(
        self, text: str, x: float, y: float, align: TextAlign = "start", size: int = 11
    ) -> None:
        """Draw ``text`` with its top edge at ``y``; ``align`` is relative to ``x``."""

        font = _font(size)
        left, top, right, bottom = font.getbbox(text)
        text_width = right - left
        anchor_x, anchor_y = self._apply(x, y)
        if align == "center":
            anchor_x -= text_width / 2
        elif align == "end":
            anchor_x -= text_width
        color = self._state.fill_color
        self._composite(
            [(anchor_x, anchor_y), (anchor_x + right, anchor_y + bottom)],
            lambda draw, pts: draw.text(pts[0], text, fill=color, font=font),
            pad=0,
        )

    def draw_image(self, image: Image.Image) -> None:
        """Stretch ``image`` over the whole surface, ignoring transform and clip."""

        self._image.paste(image.convert("RGBA").resize(self._image.size))

    def to_rgb(self) -> Image.Image:
        return self._image.convert("RGB")

    def write_png(self, path: str | Path) -> Path:
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        self.to_rgb().save(target, format="PNG")
        return target
