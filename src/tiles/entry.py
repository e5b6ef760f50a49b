"""Per-tile cache state.

A key that was never requested is ``Absent``. Requesting it moves it to
``Pending`` (one in-flight load per key), and the load settles it as either
``Ready`` or ``Failed``.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from PIL import Image

    from tiles.key import TileKey


class TileState(str, Enum):
    ABSENT = 'absent'
    PENDING = 'pending'
    READY = 'ready'
    FAILED = 'failed'


@dataclass(frozen=True)
class Absent:
    state = TileState.ABSENT


@dataclass(frozen=True)
class Pending:
    started_at: float = field(default_factory=time.time)
    state = TileState.PENDING


@dataclass(frozen=True, eq=False)
class Ready:
    """Encoded bytes plus the decoded image of a tile."""

    key: TileKey
    data: bytes
    image: Image.Image
    state = TileState.READY

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height


@dataclass(frozen=True)
class Failed:
    reason: str
    kind: str
    timestamp: float = field(default_factory=time.time)
    state = TileState.FAILED


TileCacheEntry = Absent | Pending | Ready | Failed

ABSENT = Absent()


def is_ready(entry: TileCacheEntry) -> bool:
    return entry.state is TileState.READY


def is_settled(entry: TileCacheEntry) -> bool:
    return entry.state in (TileState.READY, TileState.FAILED)
