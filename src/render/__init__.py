"""Map rendering: composition, display surfaces, redraw scheduling."""
from render.compositor import Compositor, FrameStats, TileRange
from render.scheduler import RedrawScheduler
from render.surface import DrawSurface, PillowSurface, Rect, translated

__all__ = [
    'Compositor',
    'DrawSurface',
    'FrameStats',
    'PillowSurface',
    'Rect',
    'RedrawScheduler',
    'TileRange',
    'translated',
]
