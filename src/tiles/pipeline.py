"""Background loading of tiles: disk lookup, network fetch, write-back.

The pipeline runs its own asyncio event loop in a daemon thread so that disk
and network I/O never block the rendering thread. Callers on any thread use
:meth:`TileLoadPipeline.request`, which marks the key ``Pending`` in the
memory table and returns a ``concurrent.futures.Future`` of the settled entry.

Usage:
    store = TileStore.open(cache_dir)
    pipeline = TileLoadPipeline(store, TileFetcher(token), on_complete=scheduler.mark_dirty)
    pipeline.start()
    pipeline.request(TileKey(3, 6, 3))
    ...
    pipeline.stop()
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
import time
from functools import partial
from io import BytesIO
from typing import TYPE_CHECKING, Protocol

from PIL import Image

from shared.constants import (
    MAX_CONCURRENT_FETCHES,
    PIPELINE_LOG_MEMORY_EVERY_TILES,
    PIPELINE_STOP_TIMEOUT_S,
    TILE_SIZE,
)
from shared.diagnostics import log_memory_usage
from tiles.entry import Failed, Ready, TileCacheEntry
from tiles.errors import DecodeFailure, StorageFailure, TileError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from concurrent.futures import Future

    from tiles.cache import TileStore
    from tiles.key import TileKey

logger = logging.getLogger(__name__)


class PipelineNotRunning(RuntimeError):
    """A request reached a pipeline that is not started or already stopped."""


class TileSource(Protocol):
    async def fetch(self, key: TileKey) -> bytes: ...


def decode_tile(key: TileKey, data: bytes, tile_size: int = TILE_SIZE) -> Image.Image:
    """Decode tile bytes into an RGBA image of exactly ``tile_size`` square.

    Raises:
        DecodeFailure: The bytes are not an image or have the wrong size.
    """
    try:
        with Image.open(BytesIO(data)) as img:
            img.load()
            decoded = img.convert('RGBA')
    except (OSError, SyntaxError, ValueError, Image.DecompressionBombError) as e:
        msg = f'Cannot decode tile {key}: {e}'
        raise DecodeFailure(msg, key) from e
    if decoded.size != (tile_size, tile_size):
        msg = f'Tile {key} is {decoded.size[0]}x{decoded.size[1]}, expected {tile_size}x{tile_size}'
        raise DecodeFailure(msg, key)
    return decoded


class TileLoadPipeline:
    """Per-key loader with de-duplication and a cap on concurrent downloads.

    For each requested key: disk read, then (on a miss) network fetch, decode,
    disk write-back, and finally promotion of the memory entry to ``Ready``.
    Any failure settles the entry as ``Failed`` and never reaches the caller.
    ``on_complete`` is invoked exactly once per load, from the loader thread.
    """

    def __init__(
        self,
        store: TileStore,
        fetcher: TileSource,
        *,
        on_complete: Callable[[TileKey, TileCacheEntry], None] | None = None,
        max_concurrent: int = MAX_CONCURRENT_FETCHES,
        tile_size: int = TILE_SIZE,
    ) -> None:
        if max_concurrent < 1:
            msg = f'max_concurrent must be positive, got {max_concurrent}'
            raise ValueError(msg)
        self.store = store
        self.fetcher = fetcher
        self.on_complete = on_complete
        self.max_concurrent = max_concurrent
        self.tile_size = tile_size

        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._semaphore: asyncio.Semaphore | None = None
        self._lock = threading.Lock()
        self._inflight: dict[TileKey, Future[TileCacheEntry]] = {}

        self._stats_disk_hits = 0
        self._stats_downloads = 0
        self._stats_failures = 0
        self._stats_settled = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the loader thread and its event loop."""
        if self.is_running():
            return
        loop = asyncio.new_event_loop()
        self._loop = loop
        self._thread = threading.Thread(
            target=self._run_loop,
            args=(loop,),
            name='tile-pipeline',
            daemon=True,
        )
        self._thread.start()
        logger.info('TileLoadPipeline started (max %d concurrent fetches)', self.max_concurrent)

    def stop(self, timeout: float = PIPELINE_STOP_TIMEOUT_S) -> None:
        """Stop the loop; loads still in flight are cancelled.

        Keys whose load never settled are dropped from the memory table so a
        later :meth:`start` can request them again.
        """
        with self._lock:
            loop, thread = self._loop, self._thread
            self._loop = None
        if loop is None or thread is None:
            return
        loop.call_soon_threadsafe(loop.stop)
        thread.join(timeout=timeout)
        self._thread = None
        if thread.is_alive():
            logger.warning('TileLoadPipeline thread did not stop within timeout')
        else:
            self._release_unsettled()
        logger.info(
            'TileLoadPipeline stopped: %d disk hits, %d downloads, %d failures',
            self._stats_disk_hits,
            self._stats_downloads,
            self._stats_failures,
        )

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _release_unsettled(self) -> None:
        with self._lock:
            leftovers = list(self._inflight.items())
            self._inflight.clear()
        released = 0
        for key, future in leftovers:
            if not future.done():
                future.cancel()
            if self.store.memory.discard_pending(key):
                released += 1
        if released:
            logger.debug('Released %d unsettled tile(s) on stop', released)

    def _run_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        asyncio.set_event_loop(loop)
        self._semaphore = asyncio.Semaphore(self.max_concurrent)
        try:
            loop.run_forever()
        finally:
            try:
                pending = asyncio.all_tasks(loop)
                for task in pending:
                    task.cancel()
                if pending:
                    loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
                close = getattr(self.fetcher, 'close', None)
                if close is not None:
                    loop.run_until_complete(close())
                loop.run_until_complete(loop.shutdown_asyncgens())
                loop.run_until_complete(loop.shutdown_default_executor())
            except Exception:
                logger.exception('Error while shutting down the tile pipeline loop')
            finally:
                loop.close()

    def __enter__(self) -> TileLoadPipeline:
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def request(self, key: TileKey) -> Future[TileCacheEntry] | None:
        """Schedule a load for ``key``; safe to call from any thread.

        Returns the future of the settled entry. Concurrent requests for the
        same key share one future. Returns None when the key is already ready.
        """
        with self._lock:
            loop = self._loop
            if loop is None or not self.is_running():
                msg = 'TileLoadPipeline is not running'
                raise PipelineNotRunning(msg)
            inflight = self._inflight.get(key)
            if inflight is not None and not inflight.done():
                return inflight
            if not self.store.memory.try_mark_pending(key):
                return None
            future = asyncio.run_coroutine_threadsafe(self._load(key), loop)
            self._inflight[key] = future
        future.add_done_callback(partial(self._forget, key))
        return future

    def submit(self, key: TileKey) -> Future[TileCacheEntry] | None:
        """Like :meth:`request`, but a stopped pipeline ignores the key."""
        try:
            return self.request(key)
        except PipelineNotRunning:
            logger.debug('Pipeline not running, tile %s not requested', key)
            return None

    def request_many(self, keys: Iterable[TileKey]) -> list[Future[TileCacheEntry]]:
        futures = []
        for key in keys:
            future = self.request(key)
            if future is not None:
                futures.append(future)
        return futures

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until no load is in flight. Returns False on timeout."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            with self._lock:
                futures = [f for f in self._inflight.values() if not f.done()]
            if not futures:
                return True
            remaining = None if deadline is None else deadline - time.monotonic()
            if remaining is not None and remaining <= 0:
                return False
            concurrent.futures.wait(futures, timeout=remaining)

    def _forget(self, key: TileKey, future: Future[TileCacheEntry]) -> None:
        with self._lock:
            if self._inflight.get(key) is future:
                del self._inflight[key]

    @property
    def stats(self) -> dict[str, int]:
        with self._lock:
            in_flight = sum(1 for f in self._inflight.values() if not f.done())
        return {
            'disk_hits': self._stats_disk_hits,
            'downloads': self._stats_downloads,
            'failures': self._stats_failures,
            'in_flight': in_flight,
        }

    # ------------------------------------------------------------------
    # Loader (runs on the pipeline loop)
    # ------------------------------------------------------------------

    async def _load(self, key: TileKey) -> TileCacheEntry:
        entry: TileCacheEntry
        try:
            entry = await self._resolve(key)
        except TileError as e:
            logger.warning('Tile %s failed (%s): %s', key, e.kind, e.reason)
            entry = Failed(e.reason, e.kind)
        except asyncio.CancelledError:
            # Forget the Pending marker so the key can be requested again
            self.store.memory.discard(key)
            raise
        except Exception as e:
            logger.exception('Unexpected error while loading tile %s', key)
            entry = Failed(str(e), 'unexpected')
        self._settle(key, entry)
        return entry

    async def _resolve(self, key: TileKey) -> Ready:
        disk = self.store.disk
        data = await asyncio.to_thread(disk.read, key)
        if data is not None:
            try:
                image = await asyncio.to_thread(decode_tile, key, data, self.tile_size)
            except DecodeFailure as e:
                logger.warning('Discarding undecodable cached tile %s: %s', key, e.reason)
                await asyncio.to_thread(disk.delete, key)
            else:
                self._stats_disk_hits += 1
                logger.debug('Tile %s loaded from disk', key)
                return Ready(key, data, image)

        semaphore = self._semaphore or asyncio.Semaphore(self.max_concurrent)
        self._semaphore = semaphore
        async with semaphore:
            data = await self.fetcher.fetch(key)
        image = await asyncio.to_thread(decode_tile, key, data, self.tile_size)
        try:
            await asyncio.to_thread(disk.write, key, data)
        except StorageFailure as e:
            logger.warning('Tile %s was not persisted: %s', key, e.reason)
        self._stats_downloads += 1
        logger.debug('Tile %s downloaded (%d bytes)', key, len(data))
        return Ready(key, data, image)

    def _settle(self, key: TileKey, entry: TileCacheEntry) -> None:
        self.store.memory.set(key, entry)
        if isinstance(entry, Failed):
            self._stats_failures += 1
        self._stats_settled += 1
        if self._stats_settled % PIPELINE_LOG_MEMORY_EVERY_TILES == 0:
            log_memory_usage(f'after {self._stats_settled} tiles')
        if self.on_complete is not None:
            try:
                self.on_complete(key, entry)
            except Exception:
                logger.exception('Tile completion callback failed for %s', key)
