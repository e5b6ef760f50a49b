"""Tile caching and loading.

This module provides:
- TileKey: normalized (zoom, column, row) address
- TileStore: memory state table plus file-per-tile disk cache
- TileFetcher: sharded WMTS HTTP fetcher
- TileLoadPipeline: background disk/network loader with de-duplication
- Prefetcher: warms the neighborhood of the viewport
"""

from tiles.cache import CacheStats, DiskTileCache, MemoryTileCache, TileStore
from tiles.entry import ABSENT, Absent, Failed, Pending, Ready, TileCacheEntry, TileState
from tiles.errors import (
    DecodeFailure,
    EmptyPayload,
    InvalidTileRequest,
    StorageFailure,
    TileError,
    TransportFailure,
)
from tiles.fetcher import TileFetcher
from tiles.key import TileKey
from tiles.pipeline import PipelineNotRunning, TileLoadPipeline
from tiles.prefetch import Prefetcher

__all__ = [
    'ABSENT',
    'Absent',
    'CacheStats',
    'DecodeFailure',
    'DiskTileCache',
    'EmptyPayload',
    'Failed',
    'InvalidTileRequest',
    'MemoryTileCache',
    'Pending',
    'PipelineNotRunning',
    'Prefetcher',
    'Ready',
    'StorageFailure',
    'TileCacheEntry',
    'TileError',
    'TileFetcher',
    'TileKey',
    'TileLoadPipeline',
    'TileState',
    'TileStore',
    'TransportFailure',
]
