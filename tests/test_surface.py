from __future__ import annotations

import math
from pathlib import Path

from PIL import Image
from pytest import raises

from cfd_flow.surface import ImageSurface

RED = (255, 0, 0, 255)


def test_fill_rect_respects_clip() -> None:
    surface = ImageSurface(60, 40)
    surface.clip_rect(10, 10, 20, 20)
    surface.set_fill(RED)

    surface.fill_rect(0, 0, 60, 40)

    assert surface.image.getpixel((5, 5)) == (0, 0, 0, 255)
    assert surface.image.getpixel((15, 15)) == RED
    assert surface.image.getpixel((35, 15)) == (0, 0, 0, 255)


def test_restore_drops_clip_and_transform() -> None:
    surface = ImageSurface(40, 40)
    surface.save()
    surface.clip_rect(0, 0, 10, 10)
    surface.translate(20, 20)
    surface.restore()
    surface.set_fill(RED)

    surface.fill_rect(30, 30, 5, 5)

    assert surface.image.getpixel((32, 32)) == RED


def test_translate_moves_primitives() -> None:
    surface = ImageSurface(40, 40)
    surface.translate(20, 10)
    surface.set_fill(RED)

    surface.fill_rect(0, 0, 5, 5)

    assert surface.image.getpixel((22, 12)) == RED
    assert surface.image.getpixel((2, 2)) == (0, 0, 0, 255)


def test_adjacent_rects_neither_overlap_nor_gap() -> None:
    surface = ImageSurface(10, 4)
    surface.set_fill((255, 255, 255, 128))

    for index in range(3):
        surface.fill_rect(index * 10.0 / 3.0, 0, 10.0 / 3.0, 4)

    row = [surface.image.getpixel((x, 2)) for x in range(10)]
    assert len(set(row)) == 1
    assert row[0] != (0, 0, 0, 255)


def test_rotated_stroke_draws_vertical_line() -> None:
    surface = ImageSurface(40, 40)
    surface.set_stroke(RED, 2)
    surface.translate(20, 20)
    surface.rotate(math.pi / 2)
    surface.begin_path()
    surface.move_to(-10, 0)
    surface.line_to(10, 0)

    surface.stroke()

    assert max(surface.image.getpixel((x, 15))[0] for x in (19, 20, 21)) > 200
    assert surface.image.getpixel((30, 20)) == (0, 0, 0, 255)


def test_translucent_fill_blends_with_existing_pixels() -> None:
    surface = ImageSurface(10, 10, background=(0, 0, 255, 255))
    surface.set_fill((255, 0, 0, 128))

    surface.fill_rect(0, 0, 10, 10)

    red, _, blue, alpha = surface.image.getpixel((5, 5))
    assert 120 <= red <= 136
    assert 120 <= blue <= 136
    assert alpha == 255


def test_fill_text_and_draw_image(tmp_path: Path) -> None:
    surface = ImageSurface(120, 40)
    surface.draw_image(Image.new("RGB", (12, 4), (10, 20, 30)))
    surface.set_fill((255, 255, 255, 255))

    surface.fill_text("High", 110, 10, align="end", size=11)

    assert surface.image.getpixel((2, 2)) == (10, 20, 30, 255)
    written = surface.write_png(tmp_path / "out" / "surface.png")
    assert written.exists()
    with Image.open(written) as image:
        assert image.mode == "RGB"
        assert max(image.getpixel((x, y))[0] for x in range(80, 110) for y in range(8, 24)) > 200


def test_surface_requires_positive_size() -> None:
    with raises(ValueError):
        ImageSurface(0, 10)
