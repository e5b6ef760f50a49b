"""Domain layer - settings and viewport models."""
from domain.models import MapSettings, ViewportRecord
from domain.viewport import Viewport

__all__ = [
    'MapSettings',
    'Viewport',
    'ViewportRecord',
]
