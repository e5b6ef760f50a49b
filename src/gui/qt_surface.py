"""QPainter-backed :class:`DrawSurface` for the map widget."""

from __future__ import annotations

from typing import TYPE_CHECKING

from PySide6.QtCore import QRectF
from PySide6.QtGui import QColor, QImage, QPainter, QPixmap, QPixmapCache

if TYPE_CHECKING:
    from render.surface import Rect
    from tiles.entry import Ready


def tile_pixmap(tile: Ready) -> QPixmap:
    """Pixmap of a ready tile, converted once and kept in QPixmapCache."""
    name = f'tile:{tile.key}'
    pixmap = QPixmapCache.find(name)
    if pixmap is None or pixmap.isNull():
        img = tile.image
        qimage = QImage(
            img.tobytes('raw', 'RGBA'),
            img.width,
            img.height,
            img.width * 4,
            QImage.Format.Format_RGBA8888,
        ).copy()  # detach from the Python buffer
        pixmap = QPixmap.fromImage(qimage)
        QPixmapCache.insert(name, pixmap)
    return pixmap


def _qrect(rect: Rect) -> QRectF:
    return QRectF(rect.x, rect.y, rect.width, rect.height)


class QPainterSurface:
    """Draws tiles through an active QPainter (GUI thread only)."""

    def __init__(self, painter: QPainter) -> None:
        self.painter = painter

    def push_translation(self, dx: float, dy: float) -> None:
        self.painter.save()
        self.painter.translate(dx, dy)

    def pop_transform(self) -> None:
        self.painter.restore()

    def draw_image(self, tile: Ready, dest: Rect) -> None:
        pixmap = tile_pixmap(tile)
        self.painter.drawPixmap(_qrect(dest), pixmap, QRectF(pixmap.rect()))

    def draw_image_region(self, tile: Ready, source: Rect, dest: Rect) -> None:
        self.painter.drawPixmap(_qrect(dest), tile_pixmap(tile), _qrect(source))

    def fill_rect(self, dest: Rect, color: tuple[int, int, int]) -> None:
        self.painter.fillRect(_qrect(dest), QColor(*color))
