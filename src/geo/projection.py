"""Web Mercator conversions between geographic, tile and screen coordinates.

Tile space is measured in tiles: at zoom ``z`` the world spans
``[0, 2**z)`` on both axes, so ``floor`` of a tile-space coordinate is the
tile index and the fractional part is the position inside that tile.
Screen space is measured in pixels from the top-left corner of the viewport.
"""

from __future__ import annotations

import math

from shared.constants import (
    MAX_ZOOM,
    MERCATOR_MAX_LAT_DEG,
    MIN_VIEW_ZOOM,
    TILE_SIZE,
    WORLD_LNG_HALF_SPAN_DEG,
    WORLD_LNG_SPAN_DEG,
)


def world_tile_count(zoom: int) -> int:
    """Number of tiles along one axis at the given zoom."""
    return 1 << zoom


def normalize_column(column: int, zoom: int) -> int:
    """Wrap a tile column into ``[0, 2**zoom)`` (the world repeats in longitude)."""
    return column % world_tile_count(zoom)


def is_row_valid(row: int, zoom: int) -> bool:
    """Rows never wrap: only ``0 <= row < 2**zoom`` exists."""
    return 0 <= row < world_tile_count(zoom)


def wrap_longitude(lng_deg: float) -> float:
    """Wrap longitude into ``[-180, 180)``."""
    return (lng_deg + WORLD_LNG_HALF_SPAN_DEG) % WORLD_LNG_SPAN_DEG - WORLD_LNG_HALF_SPAN_DEG


def clamp_latitude(lat_deg: float) -> float:
    """Clamp latitude to the square Mercator world."""
    return min(max(lat_deg, -MERCATOR_MAX_LAT_DEG), MERCATOR_MAX_LAT_DEG)


def clamp_view_zoom(zoom: float) -> float:
    return min(max(zoom, float(MIN_VIEW_ZOOM)), float(MAX_ZOOM))


def geo_to_tile(lng_deg: float, lat_deg: float, zoom: float) -> tuple[float, float]:
    """Project WGS84 (lng, lat) to fractional tile-space (x, y).

    Longitude is wrapped into the world; latitude is clamped to the valid
    row range, so ``y`` always lies in ``[0, 2**zoom]``.
    """
    n = 2.0**zoom
    x = (wrap_longitude(lng_deg) + WORLD_LNG_HALF_SPAN_DEG) / WORLD_LNG_SPAN_DEG * n
    lat_rad = math.radians(clamp_latitude(lat_deg))
    y = (1.0 - math.asinh(math.tan(lat_rad)) / math.pi) / 2.0 * n
    return x, y


def tile_to_geo(x: float, y: float, zoom: float) -> tuple[float, float]:
    """Inverse of :func:`geo_to_tile`: fractional tile-space (x, y) to (lng, lat)."""
    n = 2.0**zoom
    lng = x / n * WORLD_LNG_SPAN_DEG - WORLD_LNG_HALF_SPAN_DEG
    lat = math.degrees(math.atan(math.sinh(math.pi * (1.0 - 2.0 * y / n))))
    return lng, lat


def geo_to_tile_index(lng_deg: float, lat_deg: float, zoom: int) -> tuple[int, int]:
    """Integer tile (column, row) containing the point."""
    x, y = geo_to_tile(lng_deg, lat_deg, zoom)
    n = world_tile_count(zoom)
    # y == n exactly at the southern clamp
    return int(math.floor(x)) % n, min(int(math.floor(y)), n - 1)


def tile_to_screen(
    x: float,
    y: float,
    center: tuple[float, float],
    viewport_size: tuple[float, float],
    tile_size: int = TILE_SIZE,
) -> tuple[float, float]:
    """Tile-space point to screen pixels, given the tile-space viewport center."""
    width, height = viewport_size
    return (
        (x - center[0]) * tile_size + width / 2.0,
        (y - center[1]) * tile_size + height / 2.0,
    )


def screen_to_tile(
    sx: float,
    sy: float,
    center: tuple[float, float],
    viewport_size: tuple[float, float],
    tile_size: int = TILE_SIZE,
) -> tuple[float, float]:
    """Screen pixels to tile-space, given the tile-space viewport center."""
    width, height = viewport_size
    return (
        center[0] + (sx - width / 2.0) / tile_size,
        center[1] + (sy - height / 2.0) / tile_size,
    )


def screen_translation(
    center: tuple[float, float],
    viewport_size: tuple[float, float],
    tile_size: int = TILE_SIZE,
) -> tuple[float, float]:
    """Translation that maps world pixels (tile-space * tile_size) to the screen."""
    width, height = viewport_size
    return width / 2.0 - center[0] * tile_size, height / 2.0 - center[1] * tile_size


def degrees_per_pixel(zoom: float, tile_size: int = TILE_SIZE) -> float:
    """Longitude degrees covered by one screen pixel."""
    return WORLD_LNG_SPAN_DEG / (2.0**zoom * tile_size)


def pan_delta(
    dx: float,
    dy: float,
    zoom: float,
    center_lat_deg: float,
    tile_size: int = TILE_SIZE,
) -> tuple[float, float]:
    """Geographic (dlng, dlat) for a drag of (dx, dy) screen pixels.

    Dragging moves the map with the pointer, so the center moves the other way
    in longitude. The latitude step is scaled by ``cos(center_lat)``; callers
    must pass the current center latitude on every step.
    """
    scale = degrees_per_pixel(zoom, tile_size)
    return -dx * scale, dy * scale * math.cos(math.radians(center_lat_deg))
