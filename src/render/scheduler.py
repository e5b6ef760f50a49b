"""Coalesces state changes into at most one repaint per timer tick."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from shared.constants import REDRAW_INTERVAL_MS

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


class RedrawScheduler:
    """Dirty flag plus a fixed-rate :meth:`tick`.

    Pan, zoom and tile arrivals call :meth:`mark_dirty` (from any thread). The
    owner drives :meth:`tick` from a timer every ``interval_ms``; a tick with
    the flag set clears it and calls ``repaint`` once.
    """

    def __init__(
        self,
        repaint: Callable[[], None],
        interval_ms: int = REDRAW_INTERVAL_MS,
    ) -> None:
        if interval_ms < 1:
            msg = f'interval_ms must be positive, got {interval_ms}'
            raise ValueError(msg)
        self.repaint = repaint
        self.interval_ms = interval_ms
        self._dirty = threading.Event()
        self._stats_marks = 0
        self._stats_repaints = 0

    def mark_dirty(self, *_args: object) -> None:
        """Request a repaint; extra arguments let it serve as a tile callback."""
        self._stats_marks += 1
        self._dirty.set()

    @property
    def is_dirty(self) -> bool:
        return self._dirty.is_set()

    def tick(self) -> bool:
        """Repaint if dirty. Returns True when a repaint was issued."""
        if not self._dirty.is_set():
            return False
        # Cleared first: marks raised during repaint schedule the next tick
        self._dirty.clear()
        self._stats_repaints += 1
        self.repaint()
        return True

    @property
    def stats(self) -> dict[str, int]:
        return {'marks': self._stats_marks, 'repaints': self._stats_repaints}
