from __future__ import annotations

import contextlib
import ssl
from pathlib import Path

import aiohttp
import certifi

from shared.constants import (
    HTTP_ACCEPT,
    HTTP_ACCEPT_ENCODING,
    HTTP_FORBIDDEN,
    HTTP_OK,
    HTTP_REFERER,
    HTTP_UNAUTHORIZED,
    HTTP_USER_AGENT,
    TILE_CACHE_SUBDIR,
    TOKEN_CHECK_TIMEOUT_S,
    VIEWPORT_FILE_NAME,
    WMTS_BASE_URL,
)
from shared.portable import get_local_data_dir


def resolve_cache_dir() -> Path:
    """Directory of the on-disk tile cache."""
    return get_local_data_dir() / TILE_CACHE_SUBDIR


def resolve_viewport_path() -> Path:
    return get_local_data_dir() / VIEWPORT_FILE_NAME


def default_headers() -> dict[str, str]:
    """Browser-like headers; the tile service rejects bare clients."""
    return {
        'User-Agent': HTTP_USER_AGENT,
        'Referer': HTTP_REFERER,
        'Accept': HTTP_ACCEPT,
        'Accept-Encoding': HTTP_ACCEPT_ENCODING,
        'Connection': 'keep-alive',
    }


def make_http_session(headers: dict[str, str] | None = None) -> aiohttp.ClientSession:
    # SSL context with certifi's CA bundle
    ssl_context = ssl.create_default_context(cafile=certifi.where())
    connector = aiohttp.TCPConnector(ssl=ssl_context)
    return aiohttp.ClientSession(
        connector=connector,
        headers=headers if headers is not None else default_headers(),
    )


async def validate_access_token(token: str, base_url: str = WMTS_BASE_URL) -> None:
    """Request one low-zoom tile to check the token and connectivity."""
    # Imported here: tiles.fetcher depends on this module
    from tiles.fetcher import build_tile_params
    from tiles.key import TileKey

    if not token:
        msg = 'Access token is empty. Set it in the settings file or MAP_ACCESS_TOKEN.'
        raise RuntimeError(msg)

    key = TileKey(1, 0, 0)
    url = base_url.format(shard=0)
    params = build_tile_params(key, token)
    timeout = aiohttp.ClientTimeout(
        total=TOKEN_CHECK_TIMEOUT_S,
        connect=TOKEN_CHECK_TIMEOUT_S,
        sock_connect=TOKEN_CHECK_TIMEOUT_S,
        sock_read=TOKEN_CHECK_TIMEOUT_S,
    )
    try:
        async with (
            make_http_session() as client,
            client.get(url, params=params, timeout=timeout) as resp,
        ):
            sc = resp.status
            if sc == HTTP_OK:
                with contextlib.suppress(aiohttp.ClientError):
                    await resp.read()
                return
            if sc in (HTTP_UNAUTHORIZED, HTTP_FORBIDDEN):
                msg = 'Access token was rejected by the tile service. Check the token and try again.'
                raise RuntimeError(msg)
            msg = f'Tile service error (HTTP {sc}). Try again later.'
            raise RuntimeError(msg)
    except (TimeoutError, aiohttp.ClientConnectorError, aiohttp.ClientOSError):
        msg = 'No connection to the tile service. Check the network connection.'
        raise RuntimeError(msg) from None
