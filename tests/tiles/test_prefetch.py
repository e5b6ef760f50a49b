"""Tests for the prefetch neighborhood and Prefetcher."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from tiles.cache import MemoryTileCache
from tiles.entry import Failed, Pending
from tiles.key import TileKey
from tiles.prefetch import Prefetcher, neighborhood


class TestNeighborhood:
    """Tests for neighborhood()."""

    def test_square_and_next_zoom_window(self):
        """Radius 2 gives 25 current-zoom keys plus a 4x4 next-zoom window."""
        keys = neighborhood(10, 10, 6, radius=2)
        current = [k for k in keys if k.zoom == 6]
        following = [k for k in keys if k.zoom == 7]
        assert len(current) == 25
        assert len(following) == 16
        assert {k.column for k in following} == {19, 20, 21, 22}
        assert {k.row for k in following} == {19, 20, 21, 22}

    def test_current_zoom_first(self):
        """Current-zoom keys come before next-zoom keys."""
        keys = neighborhood(10, 10, 6, radius=1)
        zooms = [k.zoom for k in keys]
        assert zooms == sorted(zooms)

    def test_rows_outside_world_skipped(self):
        """Near the pole, out-of-range rows are dropped, not wrapped."""
        keys = neighborhood(3, 0, 3, radius=2)
        assert all(0 <= k.row < 8 for k in keys if k.zoom == 3)
        assert len([k for k in keys if k.zoom == 3]) == 15

    def test_columns_wrap(self):
        """Columns across the antimeridian wrap around."""
        keys = neighborhood(0, 4, 3, radius=1)
        assert TileKey(3, 7, 4) in keys
        assert TileKey(3, 1, 4) in keys

    def test_small_world_deduplicates(self):
        """At zoom 2 a radius-2 square wraps onto itself; keys are unique."""
        keys = neighborhood(1, 1, 2, radius=2)
        assert len(keys) == len(set(keys))
        assert len([k for k in keys if k.zoom == 2]) == 16

    def test_no_next_zoom_at_max(self):
        """Zoom 18 has nothing deeper to warm."""
        keys = neighborhood(100, 100, 18, radius=0)
        assert keys == [TileKey(18, 100, 100)]


class TestPrefetcher:
    """Tests for Prefetcher."""

    def test_submits_only_unknown_keys(self):
        """Keys already pending or failed are skipped."""
        memory = MemoryTileCache()
        memory.set(TileKey(6, 10, 10), Pending())
        memory.set(TileKey(6, 11, 10), Failed('HTTP 500', 'transport_failure'))
        submit = MagicMock()
        prefetcher = Prefetcher(memory, submit, radius=1)

        submitted = prefetcher.prefetch(10, 10, 6)

        assert TileKey(6, 10, 10) not in submitted
        assert TileKey(6, 11, 10) not in submitted
        assert len(submitted) == 9 - 2 + 16
        assert submit.call_count == len(submitted)

    def test_radius_zero(self):
        memory = MemoryTileCache()
        submit = MagicMock()
        submitted = Prefetcher(memory, submit, radius=0).prefetch(2, 2, 4)
        assert submitted[0] == TileKey(4, 2, 2)
        assert len(submitted) == 1 + 16

    def test_negative_radius_rejected(self):
        with pytest.raises(ValueError):
            Prefetcher(MemoryTileCache(), MagicMock(), radius=-1)
