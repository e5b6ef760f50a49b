"""Warm the tiles around the viewport center, and the next zoom level."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from shared.constants import (
    MAX_ZOOM,
    NEXT_ZOOM_PREFETCH_AFTER,
    NEXT_ZOOM_PREFETCH_BEFORE,
    PREFETCH_RADIUS,
)
from tiles.key import TileKey

if TYPE_CHECKING:
    from collections.abc import Callable

    from tiles.cache import MemoryTileCache

logger = logging.getLogger(__name__)


def neighborhood(
    center_column: int,
    center_row: int,
    zoom: int,
    radius: int = PREFETCH_RADIUS,
) -> list[TileKey]:
    """Keys worth warming for a view centered on (column, row) at ``zoom``.

    The square ``[c - radius, c + radius]`` at ``zoom``, then the window
    ``[2c - 1, 2c + 2]`` at ``zoom + 1`` in anticipation of a zoom-in. Rows
    outside the world are skipped, columns wrap, duplicates are dropped.
    """
    keys: list[TileKey] = []
    seen: set[TileKey] = set()

    def _add(z: int, column: int, row: int) -> None:
        key = TileKey.try_normalized(z, column, row)
        if key is not None and key not in seen:
            seen.add(key)
            keys.append(key)

    for column in range(center_column - radius, center_column + radius + 1):
        for row in range(center_row - radius, center_row + radius + 1):
            _add(zoom, column, row)

    if zoom < MAX_ZOOM:
        next_column = center_column * 2
        next_row = center_row * 2
        for column in range(
            next_column - NEXT_ZOOM_PREFETCH_BEFORE,
            next_column + NEXT_ZOOM_PREFETCH_AFTER + 1,
        ):
            for row in range(
                next_row - NEXT_ZOOM_PREFETCH_BEFORE,
                next_row + NEXT_ZOOM_PREFETCH_AFTER + 1,
            ):
                _add(zoom + 1, column, row)

    return keys


class Prefetcher:
    """Submits the neighborhood keys the memory table has not seen yet.

    Runs once per repaint. Keys already in the table (pending, ready or
    failed) are skipped, so repeated calls across frames are cheap.
    """

    def __init__(
        self,
        memory: MemoryTileCache,
        submit: Callable[[TileKey], object],
        *,
        radius: int = PREFETCH_RADIUS,
    ) -> None:
        if radius < 0:
            msg = f'radius must be non-negative, got {radius}'
            raise ValueError(msg)
        self.memory = memory
        self.submit = submit
        self.radius = radius

    def prefetch(self, center_column: int, center_row: int, zoom: int) -> list[TileKey]:
        """Submit missing keys; returns the keys that were submitted."""
        submitted = [
            key
            for key in neighborhood(center_column, center_row, zoom, self.radius)
            if key not in self.memory
        ]
        for key in submitted:
            self.submit(key)
        if submitted:
            logger.debug('Prefetch z%d around %d/%d: %d tiles', zoom, center_column, center_row, len(submitted))
        return submitted
