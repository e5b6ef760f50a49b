"""Wiring of one map view: tile store, loader, prefetch, compositor, redraw.

A :class:`MapSession` owns everything a single on-screen (or off-screen) map
needs. The memory table lives here and is injected into the pipeline and the
compositor, so two sessions never share state.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from domain.viewport import Viewport
from infrastructure.http.client import resolve_cache_dir
from render.compositor import Compositor
from render.scheduler import RedrawScheduler
from services.viewport_controller import ViewportController
from services.viewport_store import ViewportStore
from tiles.cache import TileStore
from tiles.fetcher import TileFetcher
from tiles.pipeline import TileLoadPipeline
from tiles.prefetch import Prefetcher

if TYPE_CHECKING:
    from collections.abc import Callable

    from domain.models import MapSettings
    from render.compositor import FrameStats
    from render.surface import DrawSurface
    from tiles.pipeline import TileSource

logger = logging.getLogger(__name__)


def _noop() -> None:
    return None


class MapSession:
    """Composition root for one map view.

    Args:
        settings: Resolved settings (token and paths filled in).
        repaint: Called by the redraw scheduler when a frame is due.
        fetcher: Tile source; defaults to a :class:`TileFetcher` for the
            configured endpoint.
    """

    def __init__(
        self,
        settings: MapSettings,
        *,
        repaint: Callable[[], None] | None = None,
        fetcher: TileSource | None = None,
    ) -> None:
        self.settings = settings

        self.viewport = Viewport()
        self.viewport.apply_record(settings.initial_viewport())

        cache_dir = settings.cache_dir or resolve_cache_dir()
        self.store = TileStore.open(cache_dir, settings.memory_capacity)
        self.fetcher = fetcher or TileFetcher(
            settings.access_token,
            base_url=settings.base_url,
            shard_count=settings.shard_count,
        )

        self.scheduler = RedrawScheduler(repaint or _noop, settings.redraw_interval_ms)
        self.pipeline = TileLoadPipeline(
            self.store,
            self.fetcher,
            on_complete=self.scheduler.mark_dirty,
            max_concurrent=settings.max_concurrent_fetches,
        )
        self.prefetcher = Prefetcher(
            self.store.memory,
            self.pipeline.submit,
            radius=settings.prefetch_radius,
        )
        self.compositor = Compositor(
            self.store.memory,
            prefetcher=self.prefetcher,
            missing_policy=settings.missing_tile_policy,
            placeholder_color=settings.placeholder_color,
        )
        self.controller = ViewportController(self.viewport, on_change=self.scheduler.mark_dirty)
        self.viewport_store = (
            ViewportStore(settings.viewport_path) if settings.viewport_path is not None else None
        )

    def open(self, *, restore_viewport: bool = True) -> None:
        """Restore the last viewport (if any) and start loading."""
        if restore_viewport and self.viewport_store is not None:
            self.viewport_store.restore_into(self.viewport)
        self.pipeline.start()
        self.scheduler.mark_dirty()

    def close(self, *, save_viewport: bool = True) -> None:
        """Persist the viewport and stop the loader."""
        if save_viewport and self.viewport_store is not None:
            self.viewport_store.save_from(self.viewport)
        self.pipeline.stop()
        logger.info('Map session closed: memory %s', self.store.memory.stats())

    def __enter__(self) -> MapSession:
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def render(self, surface: DrawSurface) -> FrameStats:
        return self.compositor.render(self.viewport, surface)
