"""Tile addressing: (zoom, column, row) with longitude wraparound."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePath

from geo.projection import is_row_valid, normalize_column, world_tile_count
from shared.constants import MAX_ZOOM, MIN_TILE_ZOOM, TILE_FILE_EXT, TILE_SIZE
from tiles.errors import InvalidTileRequest


@dataclass(frozen=True)
class TileKey:
    """Normalized address of one tile.

    Instances are always valid: ``zoom`` is within the service range, ``column``
    is already wrapped into ``[0, 2**zoom)`` and ``row`` lies in the same range.
    Use :meth:`normalized` to build a key from an unwrapped column.
    """

    zoom: int
    column: int
    row: int

    def __post_init__(self) -> None:
        if not MIN_TILE_ZOOM <= self.zoom <= MAX_ZOOM:
            msg = f'Zoom {self.zoom} outside [{MIN_TILE_ZOOM}, {MAX_ZOOM}]'
            raise InvalidTileRequest(msg)
        n = world_tile_count(self.zoom)
        if not is_row_valid(self.row, self.zoom):
            msg = f'Row {self.row} outside [0, {n}) at zoom {self.zoom}'
            raise InvalidTileRequest(msg)
        if not 0 <= self.column < n:
            msg = f'Column {self.column} is not normalized for zoom {self.zoom}'
            raise InvalidTileRequest(msg)

    @classmethod
    def normalized(cls, zoom: int, column: int, row: int) -> TileKey:
        """Build a key, wrapping ``column`` around the world."""
        if not MIN_TILE_ZOOM <= zoom <= MAX_ZOOM:
            msg = f'Zoom {zoom} outside [{MIN_TILE_ZOOM}, {MAX_ZOOM}]'
            raise InvalidTileRequest(msg)
        return cls(zoom, normalize_column(column, zoom), row)

    @classmethod
    def try_normalized(cls, zoom: int, column: int, row: int) -> TileKey | None:
        """Like :meth:`normalized` but returns None for out-of-range rows/zooms."""
        if not MIN_TILE_ZOOM <= zoom <= MAX_ZOOM or not is_row_valid(row, zoom):
            return None
        return cls(zoom, normalize_column(column, zoom), row)

    def ancestor(self, levels: int) -> TileKey:
        """The tile ``levels`` zoom steps up that contains this one."""
        return TileKey(self.zoom - levels, self.column >> levels, self.row >> levels)

    def region_in_ancestor(
        self,
        levels: int,
        tile_size: int = TILE_SIZE,
    ) -> tuple[int, int, int]:
        """Pixel (x, y, size) of this tile inside its ``levels``-up ancestor."""
        sub_size = tile_size >> levels
        mask = (1 << levels) - 1
        return (self.column & mask) * sub_size, (self.row & mask) * sub_size, sub_size

    def shard(self, shard_count: int) -> int:
        return (self.column + self.row) % shard_count

    def relative_path(self) -> PurePath:
        """``{zoom}/{column}/{row}.png`` relative to the cache root."""
        return PurePath(str(self.zoom), str(self.column), f'{self.row}{TILE_FILE_EXT}')

    def __str__(self) -> str:
        return f'z{self.zoom}/{self.column}/{self.row}'
