"""Mutable viewport state shared by the controller and the renderer."""

from __future__ import annotations

from dataclasses import dataclass

from domain.models import ViewportRecord
from geo.projection import clamp_latitude, clamp_view_zoom, geo_to_tile, wrap_longitude
from shared.constants import DEFAULT_CENTER_LAT, DEFAULT_CENTER_LNG, DEFAULT_ZOOM


@dataclass
class Viewport:
    """Center, zoom and pixel size of the visible map.

    ``zoom`` is real-valued; tiles are selected at ``int(zoom)``.
    """

    center_lng: float = DEFAULT_CENTER_LNG
    center_lat: float = DEFAULT_CENTER_LAT
    zoom: float = DEFAULT_ZOOM
    width: float = 0.0
    height: float = 0.0

    @property
    def size(self) -> tuple[float, float]:
        return self.width, self.height

    @property
    def tile_zoom(self) -> int:
        return int(clamp_view_zoom(self.zoom))

    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def center_tile(self, zoom: int | None = None) -> tuple[float, float]:
        """Fractional tile-space position of the center."""
        return geo_to_tile(self.center_lng, self.center_lat, self.tile_zoom if zoom is None else zoom)

    def set_center(self, lng: float, lat: float) -> None:
        self.center_lng = wrap_longitude(lng)
        self.center_lat = clamp_latitude(lat)

    def to_record(self) -> ViewportRecord:
        return ViewportRecord(
            zoom=self.zoom,
            center_longitude=self.center_lng,
            center_latitude=self.center_lat,
        )

    def apply_record(self, record: ViewportRecord) -> None:
        self.zoom = record.zoom
        self.set_center(record.center_longitude, record.center_latitude)
