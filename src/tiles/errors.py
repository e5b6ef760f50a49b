"""Failure taxonomy of the tile loading path.

Every error here is local to one tile: the pipeline turns it into a
``Failed`` cache entry and the map keeps rendering.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tiles.key import TileKey


class TileError(Exception):
    """Base class for tile loading failures."""

    kind = 'tile_error'

    def __init__(self, reason: str, key: TileKey | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.key = key


class InvalidTileRequest(TileError, ValueError):
    """Bad zoom, row or token; raised before any I/O."""

    kind = 'invalid_request'


class TransportFailure(TileError):
    """Non-success HTTP status or a network error."""

    kind = 'transport_failure'

    def __init__(
        self,
        reason: str,
        key: TileKey | None = None,
        status: int | None = None,
    ) -> None:
        super().__init__(reason, key)
        self.status = status


class EmptyPayload(TileError):
    """The server answered with a zero-byte body."""

    kind = 'empty_payload'


class DecodeFailure(TileError):
    """Bytes are present but are not a valid tile image."""

    kind = 'decode_failure'


class StorageFailure(TileError):
    """Disk read or write error."""

    kind = 'storage_failure'
