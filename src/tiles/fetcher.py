"""Network access for single WMTS tiles."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import aiohttp

from infrastructure.http.client import default_headers, make_http_session
from shared.constants import (
    HTTP_2XX_MAX,
    HTTP_2XX_MIN,
    HTTP_ERROR_BODY_LOG_LIMIT,
    MAX_ZOOM,
    MIN_TILE_ZOOM,
    WMTS_BASE_URL,
    WMTS_FORMAT,
    WMTS_LAYER,
    WMTS_REQUEST,
    WMTS_SERVICE,
    WMTS_SHARD_COUNT,
    WMTS_STYLE,
    WMTS_TILE_MATRIX_SET,
    WMTS_VERSION,
)
from tiles.errors import EmptyPayload, InvalidTileRequest, TransportFailure

if TYPE_CHECKING:
    from tiles.key import TileKey

logger = logging.getLogger(__name__)


def build_tile_params(key: TileKey, token: str) -> dict[str, str]:
    """WMTS GetTile query parameters for ``key``."""
    return {
        'SERVICE': WMTS_SERVICE,
        'REQUEST': WMTS_REQUEST,
        'VERSION': WMTS_VERSION,
        'LAYER': WMTS_LAYER,
        'STYLE': WMTS_STYLE,
        'TILEMATRIXSET': WMTS_TILE_MATRIX_SET,
        'FORMAT': WMTS_FORMAT,
        'TILEMATRIX': str(key.zoom),
        'TILEROW': str(key.row),
        'TILECOL': str(key.column),
        'tk': token,
    }


class TileFetcher:
    """Issues one GET per tile against a sharded WMTS endpoint.

    The HTTP session is created on first use and reused for connection
    keep-alive; call :meth:`close` from the loop that used it. There are no
    retries here: every failure surfaces as a typed :class:`TileError`.
    """

    def __init__(
        self,
        token: str,
        *,
        base_url: str = WMTS_BASE_URL,
        shard_count: int = WMTS_SHARD_COUNT,
        session: aiohttp.ClientSession | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        if shard_count < 1:
            msg = f'shard_count must be positive, got {shard_count}'
            raise ValueError(msg)
        self.token = token
        self.base_url = base_url
        self.shard_count = shard_count
        self.headers = headers if headers is not None else default_headers()
        self._session = session
        self._owns_session = session is None

    def shard_for(self, key: TileKey) -> int:
        return key.shard(self.shard_count)

    def url_for(self, key: TileKey) -> str:
        """Endpoint URL without the query string."""
        return self.base_url.format(shard=self.shard_for(key))

    def _validate(self, key: TileKey) -> None:
        if not self.token:
            msg = 'Access token is empty'
            raise InvalidTileRequest(msg, key)
        if not MIN_TILE_ZOOM <= key.zoom <= MAX_ZOOM:
            msg = f'Invalid zoom level: {key.zoom}'
            raise InvalidTileRequest(msg, key)
        max_tile = 1 << key.zoom
        if not 0 <= key.row < max_tile:
            msg = f'Invalid row: {key.row}, max is {max_tile - 1}'
            raise InvalidTileRequest(msg, key)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = make_http_session(self.headers)
            self._owns_session = True
        return self._session

    async def fetch(self, key: TileKey) -> bytes:
        """Download the encoded image of one tile.

        Raises:
            InvalidTileRequest: Empty token or key outside the service range.
            TransportFailure: Non-2xx status or a network error.
            EmptyPayload: The response body is empty.
        """
        self._validate(key)
        url = self.url_for(key)
        params = build_tile_params(key, self.token)
        logger.debug('Requesting tile %s from shard %d', key, self.shard_for(key))

        try:
            async with self._get_session().get(url, params=params) as resp:
                status = resp.status
                if not HTTP_2XX_MIN <= status < HTTP_2XX_MAX:
                    body = await resp.text(errors='replace')
                    logger.debug(
                        'Tile %s failed with HTTP %d: %s',
                        key,
                        status,
                        body[:HTTP_ERROR_BODY_LOG_LIMIT],
                    )
                    msg = f'HTTP {status} for tile {key} ({url})'
                    raise TransportFailure(msg, key, status=status)
                data = await resp.read()
        except aiohttp.ClientError as e:
            msg = f'{type(e).__name__} for tile {key} ({url}): {e}'
            raise TransportFailure(msg, key) from e
        except TimeoutError as e:
            msg = f'Timeout for tile {key} ({url})'
            raise TransportFailure(msg, key) from e

        if not data:
            msg = f'Empty body for tile {key}'
            raise EmptyPayload(msg, key)
        return data

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
