from __future__ import annotations

import math
from pathlib import Path

from pydantic import BaseModel, field_validator

from shared.constants import (
    DEFAULT_CENTER_LAT,
    DEFAULT_CENTER_LNG,
    DEFAULT_PLACEHOLDER_COLOR,
    DEFAULT_ZOOM,
    MAX_CONCURRENT_FETCHES,
    MAX_ZOOM,
    MERCATOR_MAX_LAT_DEG,
    MIN_VIEW_ZOOM,
    PREFETCH_RADIUS,
    REDRAW_INTERVAL_MS,
    WMTS_BASE_URL,
    WMTS_SHARD_COUNT,
    MissingTilePolicy,
)


def _clamp_zoom(v: float | str) -> float:
    fv = float(v)
    if not math.isfinite(fv):
        msg = 'Zoom must be a finite number'
        raise ValueError(msg)
    return min(max(fv, float(MIN_VIEW_ZOOM)), float(MAX_ZOOM))


def _finite(v: float | str) -> float:
    fv = float(v)
    if not math.isfinite(fv):
        msg = 'Coordinate must be a finite number'
        raise ValueError(msg)
    return fv


class ViewportRecord(BaseModel):
    """Persisted part of the viewport: zoom and center."""

    model_config = {'extra': 'ignore'}

    zoom: float = DEFAULT_ZOOM
    center_longitude: float = DEFAULT_CENTER_LNG
    center_latitude: float = DEFAULT_CENTER_LAT

    @field_validator('zoom')
    @classmethod
    def validate_zoom(cls, v: float | str) -> float:
        return _clamp_zoom(v)

    @field_validator('center_longitude')
    @classmethod
    def validate_longitude(cls, v: float | str) -> float:
        return _finite(v)

    @field_validator('center_latitude')
    @classmethod
    def validate_latitude(cls, v: float | str) -> float:
        fv = _finite(v)
        return min(max(fv, -MERCATOR_MAX_LAT_DEG), MERCATOR_MAX_LAT_DEG)


class MapSettings(BaseModel):
    """Settings of the map engine, loaded from a TOML file."""

    model_config = {
        'extra': 'ignore',  # unknown keys from older settings files
    }

    # Tile service
    access_token: str = ''
    base_url: str = WMTS_BASE_URL
    shard_count: int = WMTS_SHARD_COUNT

    # Storage; None means the application-local default
    cache_dir: Path | None = None
    viewport_path: Path | None = None

    # Loading
    prefetch_radius: int = PREFETCH_RADIUS
    max_concurrent_fetches: int = MAX_CONCURRENT_FETCHES
    # None keeps every tile for the whole session
    memory_capacity: int | None = None

    # Rendering
    missing_tile_policy: MissingTilePolicy = MissingTilePolicy.GAP
    placeholder_color: tuple[int, int, int] = DEFAULT_PLACEHOLDER_COLOR
    redraw_interval_ms: int = REDRAW_INTERVAL_MS

    # Viewport used when nothing has been persisted
    initial_zoom: float = DEFAULT_ZOOM
    initial_longitude: float = DEFAULT_CENTER_LNG
    initial_latitude: float = DEFAULT_CENTER_LAT

    @field_validator('base_url')
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        if '{shard}' not in v:
            msg = "base_url must contain the '{shard}' placeholder"
            raise ValueError(msg)
        return v

    @field_validator('shard_count', 'max_concurrent_fetches', 'redraw_interval_ms')
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            msg = 'Value must be at least 1'
            raise ValueError(msg)
        return v

    @field_validator('prefetch_radius')
    @classmethod
    def validate_radius(cls, v: int) -> int:
        if v < 0:
            msg = 'prefetch_radius must not be negative'
            raise ValueError(msg)
        return v

    @field_validator('memory_capacity')
    @classmethod
    def validate_capacity(cls, v: int | None) -> int | None:
        if v is not None and v < 1:
            msg = 'memory_capacity must be at least 1 (or omitted for unbounded)'
            raise ValueError(msg)
        return v

    @field_validator('placeholder_color')
    @classmethod
    def validate_color(cls, v: tuple[int, int, int]) -> tuple[int, int, int]:
        if any(not 0 <= c <= 255 for c in v):
            msg = 'Color components must be in the range [0, 255]'
            raise ValueError(msg)
        return v

    @field_validator('initial_zoom')
    @classmethod
    def validate_initial_zoom(cls, v: float | str) -> float:
        return _clamp_zoom(v)

    def initial_viewport(self) -> ViewportRecord:
        return ViewportRecord(
            zoom=self.initial_zoom,
            center_longitude=self.initial_longitude,
            center_latitude=self.initial_latitude,
        )
