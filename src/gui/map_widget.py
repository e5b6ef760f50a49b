"""Interactive slippy-map widget."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from PySide6.QtCore import Qt, QTimer, Signal
from PySide6.QtGui import (
    QCloseEvent,
    QColor,
    QHideEvent,
    QMouseEvent,
    QPainter,
    QPaintEvent,
    QResizeEvent,
    QShowEvent,
    QWheelEvent,
)
from PySide6.QtWidgets import QWidget

from gui.qt_surface import QPainterSurface
from services.map_session import MapSession
from shared.diagnostics import log_memory_usage

if TYPE_CHECKING:
    from domain.models import MapSettings
    from domain.viewport import Viewport
    from render.compositor import FrameStats
    from services.viewport_controller import ViewportController
    from tiles.pipeline import TileSource

logger = logging.getLogger(__name__)


class MapWidget(QWidget):
    """Pan with the left button, zoom with the wheel around the cursor.

    Painting is driven by the session's redraw scheduler: a QTimer calls
    ``tick`` every ``redraw_interval_ms`` and ``update()`` is only issued when
    something marked the view dirty.
    """

    view_changed = Signal()  # emitted after each repaint

    def __init__(
        self,
        settings: MapSettings,
        parent: QWidget | None = None,
        *,
        fetcher: TileSource | None = None,
    ) -> None:
        super().__init__(parent)
        self.setFocusPolicy(Qt.FocusPolicy.StrongFocus)
        self.setAttribute(Qt.WidgetAttribute.WA_OpaquePaintEvent)
        self._bg_color = QColor(0, 0, 0)

        self.session = MapSession(settings, repaint=self.update, fetcher=fetcher)
        self.last_frame: FrameStats | None = None
        self._active = False

        self._timer = QTimer(self)
        self._timer.setInterval(settings.redraw_interval_ms)
        self._timer.timeout.connect(self.session.scheduler.tick)

    @property
    def viewport(self) -> Viewport:
        return self.session.viewport

    @property
    def controller(self) -> ViewportController:
        return self.session.controller

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._active:
            return
        self.controller.resize(self.width(), self.height())
        self.session.open()
        self._timer.start()
        self._active = True
        log_memory_usage('map widget started')

    def shutdown(self) -> None:
        if not self._active:
            return
        self._timer.stop()
        self.session.close()
        self._active = False
        log_memory_usage('map widget stopped')

    def showEvent(self, event: QShowEvent) -> None:
        super().showEvent(event)
        self.start()

    def hideEvent(self, event: QHideEvent) -> None:
        if self.session.viewport_store is not None:
            self.session.viewport_store.save_from(self.viewport)
        super().hideEvent(event)

    def closeEvent(self, event: QCloseEvent) -> None:
        self.shutdown()
        super().closeEvent(event)

    # ------------------------------------------------------------------
    # Painting
    # ------------------------------------------------------------------

    def paintEvent(self, event: QPaintEvent) -> None:
        painter = QPainter(self)
        try:
            painter.fillRect(self.rect(), self._bg_color)
            painter.setRenderHint(QPainter.RenderHint.SmoothPixmapTransform, True)
            self.last_frame = self.session.render(QPainterSurface(painter))
        finally:
            painter.end()
        self.view_changed.emit()

    def resizeEvent(self, event: QResizeEvent) -> None:
        super().resizeEvent(event)
        size = event.size()
        self.controller.resize(size.width(), size.height())

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def mousePressEvent(self, event: QMouseEvent) -> None:
        if event.button() != Qt.MouseButton.LeftButton:
            super().mousePressEvent(event)
            return
        pos = event.position()
        if self.controller.pointer_pressed(pos.x(), pos.y()):
            self.grabMouse()
            self.setCursor(Qt.CursorShape.ClosedHandCursor)
        event.accept()

    def mouseMoveEvent(self, event: QMouseEvent) -> None:
        pos = event.position()
        self.controller.pointer_moved(pos.x(), pos.y())
        event.accept()

    def mouseReleaseEvent(self, event: QMouseEvent) -> None:
        if event.button() != Qt.MouseButton.LeftButton:
            super().mouseReleaseEvent(event)
            return
        pos = event.position()
        if self.controller.pointer_released(pos.x(), pos.y()):
            self.releaseMouse()
            self.unsetCursor()
        event.accept()

    def wheelEvent(self, event: QWheelEvent) -> None:
        # angleDelta for mouse wheels, pixelDelta for touchpads
        delta = event.angleDelta().y()
        if delta == 0:
            delta = event.pixelDelta().y()
        if delta == 0:
            event.ignore()
            return
        pos = event.position()
        self.controller.wheel(delta, pos.x(), pos.y())
        event.accept()
