"""Tests for ViewportStore."""

from __future__ import annotations

import json

import pytest

from domain.models import ViewportRecord
from domain.viewport import Viewport
from services.viewport_store import ViewportStore


@pytest.fixture
def store(tmp_path):
    return ViewportStore(tmp_path / 'state' / 'viewport.json')


class TestViewportStore:
    """Tests for loading and saving the viewport record."""

    def test_missing_file_returns_none(self, store):
        assert store.load() is None

    def test_save_and_load(self, store):
        """A saved record loads back equal."""
        record = ViewportRecord(zoom=7.0, center_longitude=10.5, center_latitude=-20.25)
        assert store.save(record) is True
        assert store.load() == record

    def test_corrupt_file_returns_none(self, store):
        store.path.parent.mkdir(parents=True)
        store.path.write_text('{not json', encoding='utf-8')
        assert store.load() is None

    def test_out_of_range_values_clamped(self, store):
        """Persisted zoom and latitude are clamped on load."""
        store.path.parent.mkdir(parents=True)
        store.path.write_text(
            json.dumps({'zoom': 40, 'center_longitude': 1.0, 'center_latitude': 89.0}),
            encoding='utf-8',
        )
        record = store.load()
        assert record is not None
        assert record.zoom == 18.0
        assert record.center_latitude == pytest.approx(85.0511287798066)

    def test_save_failure_returns_false(self, tmp_path):
        """An unwritable location is reported, not raised."""
        blocker = tmp_path / 'file'
        blocker.write_text('x')
        store = ViewportStore(blocker / 'viewport.json')
        assert store.save(ViewportRecord()) is False

    def test_restore_into_and_save_from(self, store):
        source = Viewport(center_lng=30.0, center_lat=50.0, zoom=9.0)
        assert store.save_from(source) is True

        target = Viewport()
        assert store.restore_into(target) is True
        assert (target.center_lng, target.center_lat, target.zoom) == (30.0, 50.0, 9.0)

    def test_restore_without_file_keeps_viewport(self, store):
        target = Viewport(center_lng=1.0, center_lat=2.0, zoom=4.0)
        assert store.restore_into(target) is False
        assert (target.center_lng, target.center_lat, target.zoom) == (1.0, 2.0, 4.0)
