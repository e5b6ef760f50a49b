"""Two-tier tile store: an in-memory state table and a file-per-tile disk cache.

The memory table is what the renderer draws from. The disk cache only holds
the encoded bytes of ready tiles and is consulted the first time a key is
requested in a session.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
import threading
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path

from shared.constants import TILE_FILE_EXT
from tiles.entry import ABSENT, Pending, TileCacheEntry, TileState
from tiles.errors import StorageFailure
from tiles.key import TileKey

logger = logging.getLogger(__name__)


@dataclass
class CacheStats:
    """Statistics about the disk cache."""

    total_tiles: int
    total_size_bytes: int
    tiles_by_zoom: dict[int, int]
    size_by_zoom: dict[int, int]


class MemoryTileCache:
    """Thread-safe table of per-key tile states.

    Without ``capacity`` the table grows for the lifetime of the session.
    With a capacity, the least recently used settled entries (``Ready`` or
    ``Failed``) are evicted; ``Pending`` entries are never evicted because
    they guard against duplicate loads.
    """

    def __init__(self, capacity: int | None = None) -> None:
        if capacity is not None and capacity < 1:
            msg = f'capacity must be positive, got {capacity}'
            raise ValueError(msg)
        self.capacity = capacity
        self._entries: OrderedDict[TileKey, TileCacheEntry] = OrderedDict()
        self._lock = threading.Lock()
        self._evicted = 0

    def get(self, key: TileKey) -> TileCacheEntry:
        """Snapshot of one entry; ``ABSENT`` when the key was never stored."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return ABSENT
            if self.capacity is not None:
                self._entries.move_to_end(key)
            return entry

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def try_mark_pending(self, key: TileKey) -> bool:
        """Atomically move a key to ``Pending`` unless it is pending or ready.

        Returns True when the caller now owns the load for ``key``.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.state in (TileState.PENDING, TileState.READY):
                return False
            self._entries[key] = Pending()
            self._entries.move_to_end(key)
            self._evict_locked()
            return True

    def set(self, key: TileKey, entry: TileCacheEntry) -> None:
        with self._lock:
            if entry.state is TileState.ABSENT:
                self._entries.pop(key, None)
                return
            self._entries[key] = entry
            self._entries.move_to_end(key)
            self._evict_locked()

    def discard(self, key: TileKey) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def discard_pending(self, key: TileKey) -> bool:
        """Drop ``key`` only while it is still ``Pending``."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.state is not TileState.PENDING:
                return False
            del self._entries[key]
            return True

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> dict[str, int]:
        """Entry counts by state, plus the number of evictions so far."""
        counts = {state.value: 0 for state in TileState if state is not TileState.ABSENT}
        with self._lock:
            for entry in self._entries.values():
                counts[entry.state.value] += 1
            counts['evicted'] = self._evicted
        return counts

    def _evict_locked(self) -> None:
        if self.capacity is None or len(self._entries) <= self.capacity:
            return
        excess = len(self._entries) - self.capacity
        victims = [
            key
            for key, entry in self._entries.items()
            if entry.state is not TileState.PENDING
        ][:excess]
        for key in victims:
            del self._entries[key]
        self._evicted += len(victims)


class DiskTileCache:
    """One file per tile at ``{root}/{zoom}/{column}/{row}.png``.

    Presence of the file is the only readiness signal; there is no index.
    """

    def __init__(self, cache_dir: str | Path) -> None:
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        logger.info('DiskTileCache initialized at %s', self.cache_dir)

    def path_for(self, key: TileKey) -> Path:
        return self.cache_dir / key.relative_path()

    def exists(self, key: TileKey) -> bool:
        return self.path_for(key).is_file()

    def read(self, key: TileKey) -> bytes | None:
        """Return the stored bytes, or None when the tile is not on disk.

        Raises:
            StorageFailure: The file exists but cannot be read.
        """
        path = self.path_for(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            msg = f'Failed to read {path}: {e}'
            raise StorageFailure(msg, key) from e

    def write(self, key: TileKey, data: bytes) -> Path:
        """Store tile bytes; a temp file plus rename keeps readers off partial files.

        Raises:
            StorageFailure: The tile could not be written.
        """
        path = self.path_for(key)
        tmp_name: str | None = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=path.parent, prefix=f'.{key.row}-', suffix='.tmp'
            )
            with os.fdopen(fd, 'wb') as fh:
                fh.write(data)
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as e:
            msg = f'Failed to write {path}: {e}'
            raise StorageFailure(msg, key) from e
        finally:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
        return path

    def delete(self, key: TileKey) -> bool:
        path = self.path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning('Failed to delete cached tile %s: %s', path, e)
            return False
        return True

    def get_stats(self) -> CacheStats:
        """Count tiles and bytes per zoom level."""
        tiles_by_zoom: dict[int, int] = {}
        size_by_zoom: dict[int, int] = {}

        for zoom_dir in self.cache_dir.iterdir():
            if not zoom_dir.is_dir():
                continue
            try:
                zoom = int(zoom_dir.name)
            except ValueError:
                continue
            count = 0
            size = 0
            for tile_file in zoom_dir.glob(f'*/*{TILE_FILE_EXT}'):
                try:
                    size += tile_file.stat().st_size
                except OSError:
                    continue
                count += 1
            tiles_by_zoom[zoom] = count
            size_by_zoom[zoom] = size

        return CacheStats(
            total_tiles=sum(tiles_by_zoom.values()),
            total_size_bytes=sum(size_by_zoom.values()),
            tiles_by_zoom=tiles_by_zoom,
            size_by_zoom=size_by_zoom,
        )

    def clear(self) -> int:
        """Delete every cached tile. Returns the number of tiles removed."""
        removed = self.get_stats().total_tiles
        for child in self.cache_dir.iterdir():
            if child.is_dir():
                shutil.rmtree(child, ignore_errors=True)
            else:
                child.unlink(missing_ok=True)
        logger.info('Tile cache cleared: %d tiles deleted', removed)
        return removed


class TileStore:
    """Memory table plus disk cache, shared by the pipeline and the renderer."""

    def __init__(
        self,
        disk: DiskTileCache,
        memory: MemoryTileCache | None = None,
    ) -> None:
        self.disk = disk
        self.memory = memory or MemoryTileCache()

    @classmethod
    def open(cls, cache_dir: str | Path, capacity: int | None = None) -> TileStore:
        return cls(DiskTileCache(cache_dir), MemoryTileCache(capacity))

    def get(self, key: TileKey) -> TileCacheEntry:
        return self.memory.get(key)
