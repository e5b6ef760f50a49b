"""Persist the viewport (zoom and center) between sessions."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import ValidationError

from domain.models import ViewportRecord

if TYPE_CHECKING:
    from domain.viewport import Viewport

logger = logging.getLogger(__name__)


class ViewportStore:
    """Reads and writes a small JSON record at a fixed path.

    Failures are logged and never raised: a broken file means the default
    viewport, a failed save means the next session starts from defaults.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> ViewportRecord | None:
        if not self.path.exists():
            return None
        try:
            text = self.path.read_text(encoding='utf-8')
            return ViewportRecord.model_validate_json(text)
        except (OSError, ValidationError) as e:
            logger.warning('Failed to load viewport from %s: %s', self.path, e)
            return None

    def save(self, record: ViewportRecord) -> bool:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(record.model_dump_json(), encoding='utf-8')
        except OSError as e:
            logger.warning('Failed to save viewport to %s: %s', self.path, e)
            return False
        logger.debug('Viewport saved to %s', self.path)
        return True

    def restore_into(self, viewport: Viewport) -> bool:
        """Apply the persisted record to ``viewport``; False when none was found."""
        record = self.load()
        if record is None:
            return False
        viewport.apply_record(record)
        logger.info(
            'Viewport restored: zoom=%.2f center=(%.5f, %.5f)',
            record.zoom,
            record.center_longitude,
            record.center_latitude,
        )
        return True

    def save_from(self, viewport: Viewport) -> bool:
        return self.save(viewport.to_record())
