"""Drawing contract between the compositor and a display surface.

A surface receives one translation per repaint and only two kinds of image
calls: a whole tile into a rectangle, or a region of a tile stretched into a
rectangle. :class:`PillowSurface` renders into a PIL image for snapshots and
tests; the Qt widget provides its own QPainter-backed implementation.
"""

from __future__ import annotations

import contextlib
import math
from typing import TYPE_CHECKING, NamedTuple, Protocol

from PIL import Image, ImageDraw

if TYPE_CHECKING:
    from collections.abc import Iterator

    from tiles.entry import Ready


class Rect(NamedTuple):
    x: float
    y: float
    width: float
    height: float


class DrawSurface(Protocol):
    def push_translation(self, dx: float, dy: float) -> None: ...

    def pop_transform(self) -> None: ...

    def draw_image(self, tile: Ready, dest: Rect) -> None: ...

    def draw_image_region(self, tile: Ready, source: Rect, dest: Rect) -> None: ...

    def fill_rect(self, dest: Rect, color: tuple[int, int, int]) -> None: ...


@contextlib.contextmanager
def translated(surface: DrawSurface, dx: float, dy: float) -> Iterator[DrawSurface]:
    """Push a translation for the duration of the block."""
    surface.push_translation(dx, dy)
    try:
        yield surface
    finally:
        surface.pop_transform()


class PillowSurface:
    """DrawSurface that paints into an RGBA PIL image."""

    def __init__(
        self,
        size: tuple[int, int],
        background: tuple[int, int, int] = (0, 0, 0),
    ) -> None:
        self.image = Image.new('RGBA', size, (*background, 255))
        self._offsets: list[tuple[float, float]] = [(0.0, 0.0)]

    @property
    def offset(self) -> tuple[float, float]:
        return self._offsets[-1]

    def push_translation(self, dx: float, dy: float) -> None:
        ox, oy = self._offsets[-1]
        self._offsets.append((ox + dx, oy + dy))

    def pop_transform(self) -> None:
        if len(self._offsets) == 1:
            msg = 'pop_transform without a matching push_translation'
            raise RuntimeError(msg)
        self._offsets.pop()

    def _to_box(self, dest: Rect) -> tuple[int, int, int, int]:
        ox, oy = self._offsets[-1]
        left = math.floor(dest.x + ox)
        top = math.floor(dest.y + oy)
        right = math.floor(dest.x + dest.width + ox)
        bottom = math.floor(dest.y + dest.height + oy)
        return left, top, right, bottom

    def _paste(self, img: Image.Image, box: tuple[int, int, int, int]) -> None:
        left, top, right, bottom = box
        width, height = right - left, bottom - top
        if width <= 0 or height <= 0:
            return
        if img.size != (width, height):
            img = img.resize((width, height), Image.Resampling.BILINEAR)
        mask = img if img.mode == 'RGBA' else None
        self.image.paste(img, (left, top), mask)

    def draw_image(self, tile: Ready, dest: Rect) -> None:
        self._paste(tile.image, self._to_box(dest))

    def draw_image_region(self, tile: Ready, source: Rect, dest: Rect) -> None:
        crop_box = (
            int(source.x),
            int(source.y),
            int(source.x + source.width),
            int(source.y + source.height),
        )
        self._paste(tile.image.crop(crop_box), self._to_box(dest))

    def fill_rect(self, dest: Rect, color: tuple[int, int, int]) -> None:
        left, top, right, bottom = self._to_box(dest)
        if right <= left or bottom <= top:
            return
        ImageDraw.Draw(self.image).rectangle(
            (left, top, right - 1, bottom - 1), fill=(*color, 255)
        )

    def save(self, path, **save_kwargs) -> None:
        self.image.convert('RGB').save(path, **save_kwargs)
