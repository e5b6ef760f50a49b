"""Pointer and wheel gestures to viewport state.

Two interaction states, ``IDLE`` and ``PANNING``, plus a stateless
cursor-anchored wheel zoom.
"""

from __future__ import annotations

import logging
import math
from enum import Enum
from typing import TYPE_CHECKING

from geo.projection import (
    clamp_view_zoom,
    geo_to_tile,
    pan_delta,
    screen_to_tile,
    tile_to_geo,
)
from shared.constants import TILE_SIZE

if TYPE_CHECKING:
    from collections.abc import Callable

    from domain.viewport import Viewport

logger = logging.getLogger(__name__)


class InteractionState(str, Enum):
    IDLE = 'idle'
    PANNING = 'panning'


class ViewportController:
    """Owns gesture state and mutates the :class:`Viewport`.

    ``on_change`` is called after every mutation (typically
    ``RedrawScheduler.mark_dirty``).
    """

    def __init__(
        self,
        viewport: Viewport,
        on_change: Callable[[], None] | None = None,
        tile_size: int = TILE_SIZE,
    ) -> None:
        self.viewport = viewport
        self.on_change = on_change
        self.tile_size = tile_size
        self.state = InteractionState.IDLE
        self._last_position: tuple[float, float] = (0.0, 0.0)

    def _changed(self) -> None:
        if self.on_change is not None:
            self.on_change()

    # ------------------------------------------------------------------
    # Pan
    # ------------------------------------------------------------------

    def pointer_pressed(self, x: float, y: float) -> bool:
        """Start panning. Returns True: the caller should capture the pointer."""
        self._last_position = (x, y)
        self.state = InteractionState.PANNING
        return True

    def pointer_moved(self, x: float, y: float) -> bool:
        """Pan by the delta since the last position. Returns True if the view moved."""
        if self.state is not InteractionState.PANNING:
            return False
        last_x, last_y = self._last_position
        dx, dy = x - last_x, y - last_y
        self._last_position = (x, y)
        if dx == 0 and dy == 0:
            return False
        self.pan_by(dx, dy)
        return True

    def pointer_released(self, x: float, y: float) -> bool:
        """Stop panning. Returns True: the caller should release the pointer."""
        was_panning = self.state is InteractionState.PANNING
        self._last_position = (x, y)
        self.state = InteractionState.IDLE
        return was_panning

    def pan_by(self, dx: float, dy: float) -> None:
        """Move the center so the map follows a drag of (dx, dy) pixels."""
        vp = self.viewport
        # cos(latitude) comes from the current center on every step
        dlng, dlat = pan_delta(dx, dy, vp.zoom, vp.center_lat, self.tile_size)
        vp.set_center(vp.center_lng + dlng, vp.center_lat + dlat)
        self._changed()

    # ------------------------------------------------------------------
    # Zoom
    # ------------------------------------------------------------------

    def geo_at(self, x: float, y: float, zoom: int | None = None) -> tuple[float, float]:
        """Geographic (lng, lat) under a screen point at the given integer zoom."""
        vp = self.viewport
        z = vp.tile_zoom if zoom is None else zoom
        center = geo_to_tile(vp.center_lng, vp.center_lat, z)
        tx, ty = screen_to_tile(x, y, center, vp.size, self.tile_size)
        return tile_to_geo(tx, ty, z)

    def wheel(self, delta: float, x: float, y: float) -> bool:
        """Zoom one integer level towards (delta > 0) or away, keeping (x, y) fixed.

        The zoom is first snapped down to an integer, the point under the
        cursor is fixed at that zoom, then the center is solved so the same
        point projects under the cursor at the new zoom.
        """
        if delta == 0:
            return False
        vp = self.viewport
        old_zoom = int(math.floor(clamp_view_zoom(vp.zoom)))
        new_zoom = int(clamp_view_zoom(old_zoom + (1 if delta > 0 else -1)))

        anchor_lng, anchor_lat = self.geo_at(x, y, old_zoom)

        ax, ay = geo_to_tile(anchor_lng, anchor_lat, new_zoom)
        width, height = vp.size
        center_x = ax - (x - width / 2.0) / self.tile_size
        center_y = ay - (y - height / 2.0) / self.tile_size
        lng, lat = tile_to_geo(center_x, center_y, new_zoom)

        vp.zoom = float(new_zoom)
        vp.set_center(lng, lat)
        logger.debug('Zoom %s -> %d anchored at (%.6f, %.6f)', old_zoom, new_zoom, anchor_lng, anchor_lat)
        self._changed()
        return True

    def resize(self, width: float, height: float) -> None:
        self.viewport.width = max(0.0, float(width))
        self.viewport.height = max(0.0, float(height))
        self._changed()
