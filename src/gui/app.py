"""Main window and application factory."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from PySide6.QtGui import QPixmapCache
from PySide6.QtWidgets import QApplication, QLabel, QMainWindow

from gui.map_widget import MapWidget
from shared.diagnostics import log_memory_usage, log_thread_status

if TYPE_CHECKING:
    from PySide6.QtGui import QCloseEvent

    from domain.models import MapSettings
    from tiles.pipeline import TileSource

logger = logging.getLogger(__name__)

# QPixmapCache limit in KB
_PIXMAP_CACHE_LIMIT_KB = 128 * 1024


class MapWindow(QMainWindow):
    """Top-level window: the map plus a status line with zoom and center."""

    def __init__(
        self,
        settings: MapSettings,
        *,
        fetcher: TileSource | None = None,
    ) -> None:
        super().__init__()
        self.setWindowTitle('Slippy Map')
        self.resize(1024, 768)

        self.map_widget = MapWidget(settings, self, fetcher=fetcher)
        self.setCentralWidget(self.map_widget)

        self._status_label = QLabel(self)
        self.statusBar().addPermanentWidget(self._status_label)
        self.map_widget.view_changed.connect(self._update_status)

        if not settings.access_token:
            self.statusBar().showMessage('No access token: only cached tiles are shown')

    def _update_status(self) -> None:
        vp = self.map_widget.viewport
        memory = self.map_widget.session.store.memory.stats()
        self._status_label.setText(
            f'z{vp.tile_zoom}  {vp.center_lat:.5f}, {vp.center_lng:.5f}  '
            f'tiles: {memory["ready"]} ready, {memory["pending"]} loading, '
            f'{memory["failed"]} failed'
        )

    def closeEvent(self, event: QCloseEvent) -> None:
        logger.info('Window closing - stopping tile loading')
        self.map_widget.shutdown()
        QPixmapCache.clear()
        log_memory_usage('after window close')
        log_thread_status('after window close')
        super().closeEvent(event)


def create_application(
    settings: MapSettings,
    *,
    fetcher: TileSource | None = None,
) -> tuple[QApplication, MapWindow]:
    """Create the QApplication and the main window (not yet shown)."""
    app = QApplication.instance() or QApplication([])
    app.setApplicationName('Slippy Map')

    try:
        QPixmapCache.setCacheLimit(_PIXMAP_CACHE_LIMIT_KB)
    except Exception as e:
        logger.warning('Failed to set QPixmapCache limit: %s', e)

    window = MapWindow(settings, fetcher=fetcher)
    return app, window
