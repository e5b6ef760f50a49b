"""GUI module for the slippy map viewer."""

from gui.app import MapWindow, create_application
from gui.map_widget import MapWidget
from gui.qt_surface import QPainterSurface, tile_pixmap

__all__ = [
    'MapWidget',
    'MapWindow',
    'QPainterSurface',
    'create_application',
    'tile_pixmap',
]
