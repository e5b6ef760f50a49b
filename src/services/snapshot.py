"""Headless rendering of one viewport to a PNG file.

Runs the same compositor and loader as the interactive view: a first frame
submits the visible and prefetch tiles, the loader is drained, and a second
frame is drawn from whatever settled.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from render.surface import PillowSurface
from services.map_session import MapSession
from shared.constants import SNAPSHOT_BACKGROUND, SNAPSHOT_SETTLE_TIMEOUT_S

if TYPE_CHECKING:
    from domain.models import MapSettings
    from render.compositor import FrameStats
    from tiles.pipeline import TileSource

logger = logging.getLogger(__name__)


def render_session_snapshot(
    session: MapSession,
    output: str | Path,
    *,
    timeout: float = SNAPSHOT_SETTLE_TIMEOUT_S,
    background: tuple[int, int, int] = SNAPSHOT_BACKGROUND,
) -> FrameStats:
    """Render the session's current viewport into ``output``.

    The session's pipeline must already be running.
    """
    vp = session.viewport
    size = (int(vp.width), int(vp.height))
    if size[0] <= 0 or size[1] <= 0:
        msg = f'Snapshot size must be positive, got {size[0]}x{size[1]}'
        raise ValueError(msg)

    first = session.render(PillowSurface(size, background))
    logger.info('Snapshot: %d tiles requested, waiting up to %.0fs', first.requested, timeout)
    if not session.pipeline.wait_idle(timeout):
        logger.warning('Snapshot: timed out with tiles still loading')

    surface = PillowSurface(size, background)
    stats = session.render(surface)
    out_path = Path(output)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    surface.save(out_path)
    logger.info(
        'Snapshot saved to %s: %d drawn, %d fallback, %d empty',
        out_path,
        stats.drawn,
        stats.fallback,
        stats.empty,
    )
    return stats


def render_snapshot(
    settings: MapSettings,
    output: str | Path,
    *,
    size: tuple[int, int],
    center: tuple[float, float] | None = None,
    zoom: float | None = None,
    timeout: float = SNAPSHOT_SETTLE_TIMEOUT_S,
    fetcher: TileSource | None = None,
) -> FrameStats:
    """Render a map image for ``center`` (lng, lat) and ``zoom``.

    Unset values fall back to the configured initial viewport. The persisted
    interactive viewport is neither read nor overwritten.
    """
    session = MapSession(settings, fetcher=fetcher)
    vp = session.viewport
    if zoom is not None:
        vp.zoom = float(zoom)
    if center is not None:
        vp.set_center(*center)
    session.controller.resize(*size)

    session.open(restore_viewport=False)
    try:
        return render_session_snapshot(session, output, timeout=timeout)
    finally:
        session.close(save_viewport=False)
