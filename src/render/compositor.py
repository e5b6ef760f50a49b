"""Viewport composition from whatever tiles are currently available.

Every repaint re-derives the picture from the viewport and the memory table:
ready tiles are drawn as-is, missing ones are covered by the nearest ready
coarser-zoom ancestor, cropped to the matching sub-region and stretched.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

from geo.projection import screen_to_tile, screen_translation, world_tile_count
from render.surface import Rect, translated
from shared.constants import (
    DEFAULT_PLACEHOLDER_COLOR,
    MIN_VIEW_ZOOM,
    TILE_SIZE,
    MissingTilePolicy,
)
from tiles.entry import Ready, TileState
from tiles.key import TileKey

if TYPE_CHECKING:
    from domain.viewport import Viewport
    from render.surface import DrawSurface
    from tiles.cache import MemoryTileCache
    from tiles.prefetch import Prefetcher

logger = logging.getLogger(__name__)


@dataclass
class TileRange:
    """Inclusive tile index rectangle at one zoom (columns not yet wrapped)."""

    zoom: int
    min_column: int
    max_column: int
    min_row: int
    max_row: int

    def cells(self):
        for row in range(self.min_row, self.max_row + 1):
            for column in range(self.min_column, self.max_column + 1):
                yield column, row


@dataclass
class FrameStats:
    """What one repaint drew."""

    drawn: int = 0
    fallback: int = 0
    empty: int = 0
    requested: int = 0


class Compositor:
    """Draws the visible tile grid onto a :class:`DrawSurface`."""

    def __init__(
        self,
        memory: MemoryTileCache,
        *,
        prefetcher: Prefetcher | None = None,
        tile_size: int = TILE_SIZE,
        missing_policy: MissingTilePolicy = MissingTilePolicy.GAP,
        placeholder_color: tuple[int, int, int] = DEFAULT_PLACEHOLDER_COLOR,
    ) -> None:
        self.memory = memory
        self.prefetcher = prefetcher
        self.tile_size = tile_size
        self.missing_policy = MissingTilePolicy(missing_policy)
        self.placeholder_color = placeholder_color
        # Below this size a sub-region of an ancestor is less than one pixel
        self.max_fallback_levels = tile_size.bit_length() - 1

    def visible_range(self, viewport: Viewport) -> TileRange:
        """Tiles covering the viewport, with a one-tile margin on each side."""
        zoom = viewport.tile_zoom
        center = viewport.center_tile(zoom)
        size = viewport.size
        left, top = screen_to_tile(0.0, 0.0, center, size, self.tile_size)
        right, bottom = screen_to_tile(viewport.width, viewport.height, center, size, self.tile_size)
        return TileRange(
            zoom=zoom,
            min_column=math.floor(left) - 1,
            max_column=math.floor(right) + 1,
            min_row=math.floor(top) - 1,
            max_row=math.floor(bottom) + 1,
        )

    def find_ancestor(self, key: TileKey) -> tuple[Ready, int] | None:
        """Nearest ready ancestor of ``key`` and its level distance.

        Searches ``zoom - 1`` down to the minimum view zoom; the first hit wins.
        """
        levels = min(key.zoom - MIN_VIEW_ZOOM, self.max_fallback_levels)
        for scale in range(1, levels + 1):
            entry = self.memory.get(key.ancestor(scale))
            if isinstance(entry, Ready):
                return entry, scale
        return None

    def fallback_source(self, key: TileKey, scale: int) -> Rect:
        """Region of the ``scale``-levels-up ancestor that covers ``key``."""
        sub_x, sub_y, sub_size = key.region_in_ancestor(scale, self.tile_size)
        return Rect(sub_x, sub_y, sub_size, sub_size)

    def render(self, viewport: Viewport, surface: DrawSurface) -> FrameStats:
        stats = FrameStats()
        if viewport.is_empty():
            return stats

        tile_range = self.visible_range(viewport)
        zoom = tile_range.zoom
        center = viewport.center_tile(zoom)
        n = world_tile_count(zoom)

        if self.prefetcher is not None:
            center_column = math.floor(center[0]) % n
            center_row = min(math.floor(center[1]), n - 1)
            stats.requested += len(self.prefetcher.prefetch(center_column, center_row, zoom))

        ts = self.tile_size
        dx, dy = screen_translation(center, viewport.size, ts)
        with translated(surface, dx, dy):
            for column, row in tile_range.cells():
                if not 0 <= row < n:
                    continue
                key = TileKey(zoom, column % n, row)
                # Unwrapped column keeps repeated worlds side by side
                dest = Rect(column * ts, row * ts, ts, ts)

                entry = self.memory.get(key)
                if isinstance(entry, Ready):
                    surface.draw_image(entry, dest)
                    stats.drawn += 1
                    continue

                found = self.find_ancestor(key)
                if found is not None:
                    ancestor, scale = found
                    surface.draw_image_region(ancestor, self.fallback_source(key, scale), dest)
                    stats.fallback += 1
                else:
                    if self.missing_policy is MissingTilePolicy.PLACEHOLDER:
                        surface.fill_rect(dest, self.placeholder_color)
                    stats.empty += 1

                if entry.state is TileState.ABSENT and self.prefetcher is not None:
                    self.prefetcher.submit(key)
                    stats.requested += 1

        return stats
