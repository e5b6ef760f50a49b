"""Geo module - Web Mercator projection helpers."""

from .projection import (
    geo_to_tile,
    geo_to_tile_index,
    normalize_column,
    pan_delta,
    screen_to_tile,
    tile_to_geo,
    tile_to_screen,
)

__all__ = [
    'geo_to_tile',
    'geo_to_tile_index',
    'normalize_column',
    'pan_delta',
    'screen_to_tile',
    'tile_to_geo',
    'tile_to_screen',
]
