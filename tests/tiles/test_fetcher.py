"""Tests for TileFetcher."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from shared.constants import HTTP_REFERER, HTTP_USER_AGENT
from tiles.errors import EmptyPayload, InvalidTileRequest, TransportFailure
from tiles.fetcher import TileFetcher, build_tile_params
from tiles.key import TileKey


def _mock_session(status: int = 200, body: bytes = b'tile', text: str = '') -> MagicMock:
    """Session whose get() yields a response with the given status and body."""
    resp = MagicMock()
    resp.status = status
    resp.read = AsyncMock(return_value=body)
    resp.text = AsyncMock(return_value=text)
    ctx = MagicMock()
    ctx.__aenter__ = AsyncMock(return_value=resp)
    ctx.__aexit__ = AsyncMock(return_value=False)
    session = MagicMock()
    session.closed = False
    session.get = MagicMock(return_value=ctx)
    session.close = AsyncMock()
    return session


class TestBuildTileParams:
    """Tests for the WMTS query parameters."""

    def test_params(self):
        """GetTile parameters carry the key and token."""
        params = build_tile_params(TileKey(5, 3, 7), 'secret')
        assert params == {
            'SERVICE': 'WMTS',
            'REQUEST': 'GetTile',
            'VERSION': '1.0.0',
            'LAYER': 'img',
            'STYLE': 'default',
            'TILEMATRIXSET': 'w',
            'FORMAT': 'tiles',
            'TILEMATRIX': '5',
            'TILEROW': '7',
            'TILECOL': '3',
            'tk': 'secret',
        }


class TestTileFetcherUrls:
    """Tests for shard selection and URLs."""

    def test_shard_for(self):
        fetcher = TileFetcher('t')
        assert fetcher.shard_for(TileKey(4, 5, 6)) == 3

    def test_url_for(self):
        """URL host is picked by (column + row) mod 8."""
        fetcher = TileFetcher('t')
        assert fetcher.url_for(TileKey(4, 5, 6)) == 'https://t3.tianditu.gov.cn/img_w/wmts'
        assert fetcher.url_for(TileKey(4, 0, 0)) == 'https://t0.tianditu.gov.cn/img_w/wmts'

    def test_custom_base_url_and_shards(self):
        fetcher = TileFetcher('t', base_url='https://s{shard}.example.com/wmts', shard_count=4)
        assert fetcher.url_for(TileKey(4, 5, 6)) == 'https://s3.example.com/wmts'

    def test_invalid_shard_count(self):
        with pytest.raises(ValueError):
            TileFetcher('t', shard_count=0)

    def test_default_headers(self):
        """Browser-like headers are sent by default."""
        fetcher = TileFetcher('t')
        assert fetcher.headers['User-Agent'] == HTTP_USER_AGENT
        assert fetcher.headers['Referer'] == HTTP_REFERER


class TestTileFetcherFetch:
    """Tests for fetch() outcomes."""

    @pytest.mark.asyncio
    async def test_success_returns_bytes(self):
        """A 200 response returns the body."""
        session = _mock_session(body=b'\x89PNG data')
        fetcher = TileFetcher('secret', session=session)
        data = await fetcher.fetch(TileKey(5, 3, 7))
        assert data == b'\x89PNG data'
        url = session.get.call_args.args[0]
        params = session.get.call_args.kwargs['params']
        assert url == 'https://t2.tianditu.gov.cn/img_w/wmts'
        assert params['TILECOL'] == '3'
        assert params['TILEROW'] == '7'
        assert params['tk'] == 'secret'

    @pytest.mark.asyncio
    async def test_http_500_raises_transport_failure(self):
        """Non-2xx responses raise TransportFailure with the status."""
        session = _mock_session(status=500, text='internal error')
        fetcher = TileFetcher('secret', session=session)
        with pytest.raises(TransportFailure) as exc_info:
            await fetcher.fetch(TileKey(5, 3, 7))
        assert exc_info.value.status == 500
        assert exc_info.value.key == TileKey(5, 3, 7)

    @pytest.mark.asyncio
    async def test_http_403_raises_transport_failure(self):
        session = _mock_session(status=403)
        fetcher = TileFetcher('bad', session=session)
        with pytest.raises(TransportFailure) as exc_info:
            await fetcher.fetch(TileKey(2, 1, 1))
        assert exc_info.value.status == 403

    @pytest.mark.asyncio
    async def test_empty_body_raises_empty_payload(self):
        """A zero-byte body raises EmptyPayload."""
        fetcher = TileFetcher('secret', session=_mock_session(body=b''))
        with pytest.raises(EmptyPayload):
            await fetcher.fetch(TileKey(5, 3, 7))

    @pytest.mark.asyncio
    async def test_network_error_raises_transport_failure(self):
        """aiohttp errors are wrapped."""
        session = _mock_session()
        session.get.side_effect = aiohttp.ClientConnectionError('reset')
        fetcher = TileFetcher('secret', session=session)
        with pytest.raises(TransportFailure) as exc_info:
            await fetcher.fetch(TileKey(5, 3, 7))
        assert exc_info.value.status is None

    @pytest.mark.asyncio
    async def test_timeout_raises_transport_failure(self):
        session = _mock_session()
        session.get.side_effect = TimeoutError()
        fetcher = TileFetcher('secret', session=session)
        with pytest.raises(TransportFailure):
            await fetcher.fetch(TileKey(5, 3, 7))

    @pytest.mark.asyncio
    async def test_empty_token_never_hits_network(self):
        """An empty token is rejected before any request."""
        session = _mock_session()
        fetcher = TileFetcher('', session=session)
        with pytest.raises(InvalidTileRequest):
            await fetcher.fetch(TileKey(5, 3, 7))
        session.get.assert_not_called()

    def test_out_of_range_key_cannot_be_built(self):
        """Row 2 at zoom 1 fails at construction, before any fetcher sees it."""
        with pytest.raises(InvalidTileRequest):
            TileKey(1, 0, 2)


class TestTileFetcherSession:
    """Tests for session ownership."""

    @pytest.mark.asyncio
    async def test_injected_session_not_closed(self):
        """close() leaves a caller-owned session open."""
        session = _mock_session()
        fetcher = TileFetcher('secret', session=session)
        await fetcher.close()
        session.close.assert_not_called()

    @pytest.mark.asyncio
    async def test_lazy_session_created_and_closed(self):
        """The fetcher creates its own session on first use and closes it."""
        session = _mock_session()
        with patch('tiles.fetcher.make_http_session', return_value=session) as mock_make:
            fetcher = TileFetcher('secret')
            await fetcher.fetch(TileKey(3, 1, 1))
            await fetcher.fetch(TileKey(3, 2, 1))
            await fetcher.close()
        mock_make.assert_called_once_with(fetcher.headers)
        session.close.assert_awaited_once()
