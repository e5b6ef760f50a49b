"""Tests for TileLoadPipeline and decode_tile."""

from __future__ import annotations

import asyncio
import tempfile
import threading
from io import BytesIO
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from PIL import Image

from tiles.cache import TileStore
from tiles.entry import Failed, Ready, TileState
from tiles.errors import DecodeFailure, StorageFailure, TransportFailure
from tiles.key import TileKey
from tiles.pipeline import PipelineNotRunning, TileLoadPipeline, decode_tile

RESULT_TIMEOUT = 5.0


def _create_test_png(size: int = 256, color: str = 'red') -> bytes:
    """Create a minimal valid PNG for testing."""
    img = Image.new('RGB', (size, size), color=color)
    buffer = BytesIO()
    img.save(buffer, format='PNG')
    return buffer.getvalue()


class FakeSource:
    """Async tile source that records calls."""

    def __init__(
        self,
        data: bytes | None = None,
        error: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.data = data if data is not None else _create_test_png()
        self.error = error
        self.delay = delay
        self.calls: list[TileKey] = []

    async def fetch(self, key: TileKey) -> bytes:
        self.calls.append(key)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.data


@pytest.fixture
def temp_cache_dir():
    """Create temporary directory for cache."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def store(temp_cache_dir):
    return TileStore.open(temp_cache_dir)


def _run(store: TileStore, source: FakeSource, **kwargs) -> TileLoadPipeline:
    pipeline = TileLoadPipeline(store, source, **kwargs)
    pipeline.start()
    return pipeline


class TestDecodeTile:
    """Tests for decode_tile."""

    def test_decodes_to_rgba(self):
        """Valid PNG bytes decode to a 256x256 RGBA image."""
        image = decode_tile(TileKey(1, 0, 0), _create_test_png())
        assert image.mode == 'RGBA'
        assert image.size == (256, 256)

    def test_garbage_raises(self):
        with pytest.raises(DecodeFailure):
            decode_tile(TileKey(1, 0, 0), b'definitely not an image')

    def test_wrong_size_raises(self):
        """Tiles must be exactly tile_size square."""
        with pytest.raises(DecodeFailure):
            decode_tile(TileKey(1, 0, 0), _create_test_png(size=128))


class TestPipelineLifecycle:
    """Tests for start/stop and request preconditions."""

    def test_request_before_start_raises(self, store):
        pipeline = TileLoadPipeline(store, FakeSource())
        with pytest.raises(PipelineNotRunning):
            pipeline.request(TileKey(1, 0, 0))

    def test_submit_to_stopped_pipeline_is_ignored(self, store):
        """submit() drops keys while stopped and leaves no Pending marker."""
        pipeline = TileLoadPipeline(store, FakeSource())
        key = TileKey(2, 1, 1)
        assert pipeline.submit(key) is None
        assert store.memory.get(key).state is TileState.ABSENT

        pipeline.start()
        pipeline.stop()
        assert pipeline.submit(key) is None
        assert key not in store.memory

    def test_stop_releases_unsettled_keys(self, store):
        """Loads cut short by stop() do not leave keys stuck as Pending."""
        source = FakeSource(delay=1.0)
        keys = [TileKey(5, column, 3) for column in range(20)]
        pipeline = TileLoadPipeline(store, source)
        for key in keys:
            pipeline.start()
            future = pipeline.request(key)
            pipeline.stop()
            assert future.done()
            assert store.memory.get(key).state is TileState.ABSENT
        assert pipeline.stats['in_flight'] == 0

    def test_restart_reloads_interrupted_key(self, store):
        """A key interrupted by stop() loads normally after start()."""
        source = FakeSource(delay=1.0)
        key = TileKey(5, 7, 3)
        pipeline = _run(store, source)
        pipeline.request(key)
        pipeline.stop()

        source.delay = 0.0
        pipeline.start()
        try:
            future = pipeline.request(key)
            assert future is not None
            entry = future.result(RESULT_TIMEOUT)
        finally:
            pipeline.stop()
        assert isinstance(entry, Ready)
        assert store.memory.get(key) is entry

    def test_invalid_max_concurrent(self, store):
        with pytest.raises(ValueError):
            TileLoadPipeline(store, FakeSource(), max_concurrent=0)

    def test_context_manager(self, store):
        """The loop thread runs inside the block only."""
        with TileLoadPipeline(store, FakeSource()) as pipeline:
            assert pipeline.is_running()
        assert not pipeline.is_running()

    def test_stop_closes_source(self, store):
        """A source with close() is closed on the loop."""
        source = FakeSource()
        closed = []

        async def close():
            closed.append(True)

        source.close = close
        pipeline = _run(store, source)
        pipeline.stop()
        assert closed == [True]


class TestPipelineLoading:
    """Tests for the load path."""

    def test_network_load_promotes_ready_and_persists(self, store):
        """A miss is fetched, decoded, written to disk and marked ready."""
        source = FakeSource()
        pipeline = _run(store, source)
        try:
            key = TileKey(3, 6, 3)
            entry = pipeline.request(key).result(RESULT_TIMEOUT)
        finally:
            pipeline.stop()
        assert isinstance(entry, Ready)
        assert entry.image.size == (256, 256)
        assert store.memory.get(key) is entry
        assert store.disk.read(key) == source.data
        assert pipeline.stats['downloads'] == 1

    def test_concurrent_requests_fetch_once(self, store):
        """Two requests for one key share a single network fetch."""
        source = FakeSource(delay=0.2)
        pipeline = _run(store, source)
        try:
            key = TileKey(4, 1, 2)
            first = pipeline.request(key)
            second = pipeline.request(key)
            assert first is second
            first.result(RESULT_TIMEOUT)
            assert pipeline.request(key) is None
        finally:
            pipeline.stop()
        assert source.calls == [key]

    def test_requests_from_many_threads_fetch_once(self, store):
        """Threads racing on one key all get the same future and one fetch."""
        source = FakeSource(delay=0.2)
        key = TileKey(4, 5, 6)
        workers = 8
        barrier = threading.Barrier(workers)
        results = []
        results_lock = threading.Lock()

        def worker():
            barrier.wait()
            future = pipeline.request(key)
            with results_lock:
                results.append(future)

        pipeline = _run(store, source)
        try:
            threads = [threading.Thread(target=worker) for _ in range(workers)]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join(RESULT_TIMEOUT)
            assert len(results) == workers
            assert all(future is results[0] for future in results)
            assert isinstance(results[0].result(RESULT_TIMEOUT), Ready)
        finally:
            pipeline.stop()
        assert source.calls == [key]

    def test_disk_hit_skips_network(self, store):
        """A tile already on disk is never fetched."""
        key = TileKey(5, 3, 7)
        store.disk.write(key, _create_test_png(color='blue'))
        source = FakeSource()
        pipeline = _run(store, source)
        try:
            entry = pipeline.request(key).result(RESULT_TIMEOUT)
        finally:
            pipeline.stop()
        assert isinstance(entry, Ready)
        assert source.calls == []
        assert pipeline.stats['disk_hits'] == 1

    def test_http_500_fails_without_writing(self, store):
        """A server error leaves a Failed entry and nothing on disk."""
        key = TileKey(5, 3, 7)
        source = FakeSource(error=TransportFailure('HTTP 500', key, status=500))
        pipeline = _run(store, source)
        try:
            entry = pipeline.request(key).result(RESULT_TIMEOUT)
        finally:
            pipeline.stop()
        assert isinstance(entry, Failed)
        assert entry.kind == 'transport_failure'
        assert store.memory.get(key).state is TileState.FAILED
        assert not store.disk.exists(key)
        assert store.disk.get_stats().total_tiles == 0

    def test_undecodable_download_fails(self, store):
        """Bytes that are not an image are not persisted."""
        key = TileKey(5, 3, 7)
        pipeline = _run(store, FakeSource(data=b'<html>quota exceeded</html>'))
        try:
            entry = pipeline.request(key).result(RESULT_TIMEOUT)
        finally:
            pipeline.stop()
        assert isinstance(entry, Failed)
        assert entry.kind == 'decode_failure'
        assert not store.disk.exists(key)

    def test_corrupt_disk_file_is_refetched(self, store):
        """A broken cached file is replaced from the network."""
        key = TileKey(5, 3, 7)
        store.disk.write(key, b'truncated')
        source = FakeSource()
        pipeline = _run(store, source)
        try:
            entry = pipeline.request(key).result(RESULT_TIMEOUT)
        finally:
            pipeline.stop()
        assert isinstance(entry, Ready)
        assert source.calls == [key]
        assert store.disk.read(key) == source.data

    def test_disk_write_failure_still_ready(self, store):
        """Persistence errors do not hide a good tile."""
        key = TileKey(5, 3, 7)
        pipeline = _run(store, FakeSource())
        try:
            with patch.object(store.disk, 'write', side_effect=StorageFailure('disk full', key)):
                entry = pipeline.request(key).result(RESULT_TIMEOUT)
        finally:
            pipeline.stop()
        assert isinstance(entry, Ready)

    def test_disk_read_failure_is_storage_failure(self, store):
        key = TileKey(5, 3, 7)
        source = FakeSource()
        pipeline = _run(store, source)
        try:
            with patch.object(store.disk, 'read', side_effect=StorageFailure('denied', key)):
                entry = pipeline.request(key).result(RESULT_TIMEOUT)
        finally:
            pipeline.stop()
        assert isinstance(entry, Failed)
        assert entry.kind == 'storage_failure'
        assert source.calls == []

    def test_unexpected_error_becomes_failed(self, store):
        """Non-tile exceptions are caught and logged."""
        key = TileKey(5, 3, 7)
        pipeline = _run(store, FakeSource(error=RuntimeError('bug')))
        try:
            entry = pipeline.request(key).result(RESULT_TIMEOUT)
        finally:
            pipeline.stop()
        assert isinstance(entry, Failed)
        assert entry.kind == 'unexpected'

    def test_failed_key_can_be_requested_again(self, store):
        """An explicit request retries a failed tile."""
        key = TileKey(5, 3, 7)
        source = FakeSource(error=TransportFailure('HTTP 503', key, status=503))
        pipeline = _run(store, source)
        try:
            pipeline.request(key).result(RESULT_TIMEOUT)
            source.error = None
            entry = pipeline.request(key).result(RESULT_TIMEOUT)
        finally:
            pipeline.stop()
        assert isinstance(entry, Ready)
        assert len(source.calls) == 2


class TestPipelineCallbacks:
    """Tests for on_complete and wait_idle."""

    def test_on_complete_called_once_per_load(self, store):
        on_complete = MagicMock()
        pipeline = _run(store, FakeSource(), on_complete=on_complete)
        try:
            key = TileKey(2, 1, 1)
            entry = pipeline.request(key).result(RESULT_TIMEOUT)
        finally:
            pipeline.stop()
        on_complete.assert_called_once_with(key, entry)

    def test_callback_error_does_not_break_load(self, store):
        """A raising callback is logged; the entry still settles."""
        on_complete = MagicMock(side_effect=RuntimeError('ui gone'))
        pipeline = _run(store, FakeSource(), on_complete=on_complete)
        try:
            key = TileKey(2, 1, 1)
            entry = pipeline.request(key).result(RESULT_TIMEOUT)
        finally:
            pipeline.stop()
        assert isinstance(entry, Ready)
        assert store.memory.get(key) is entry

    def test_wait_idle(self, store):
        """wait_idle returns once every request has settled."""
        pipeline = _run(store, FakeSource(delay=0.05))
        try:
            keys = [TileKey(3, c, 2) for c in range(4)]
            futures = pipeline.request_many(keys)
            assert len(futures) == 4
            assert pipeline.wait_idle(RESULT_TIMEOUT) is True
            assert pipeline.stats['in_flight'] == 0
        finally:
            pipeline.stop()
        assert all(store.memory.get(k).state is TileState.READY for k in keys)

    def test_max_concurrent_caps_fetches(self, store):
        """No more than max_concurrent fetches run at once."""
        active = 0
        peak = 0

        class CountingSource(FakeSource):
            async def fetch(self, key):
                nonlocal active, peak
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0.05)
                active -= 1
                return self.data

        pipeline = _run(store, CountingSource(), max_concurrent=2)
        try:
            pipeline.request_many(TileKey(4, c, 3) for c in range(8))
            assert pipeline.wait_idle(RESULT_TIMEOUT)
        finally:
            pipeline.stop()
        assert peak == 2
