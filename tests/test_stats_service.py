"""
tests/test_stats_service.py — Metric Snapshot Provider Tests
=============================================================
"""

from __future__ import annotations

import pytest

from devkit.engine.criteria import MetricSnapshot
from devkit.errors import SnapshotUnavailable
from devkit.services import stats_service

from conftest import add_user


class TestSnapshots:
    def test_get_snapshot(self, db_engine, db_session):
        add_user(db_engine, 1, templates_created=3, likes_received=9)
        snap = stats_service.get_snapshot(db_session, 1)
        assert snap == MetricSnapshot(templates_created=3, likes_received=9)
        assert snap.value_of("likesReceived") == 9
        assert snap.value_of("stars") is None

    def test_missing_snapshot(self, db_engine, db_session):
        add_user(db_engine, 1)
        assert stats_service.get_snapshot(db_session, 1) is None
        with pytest.raises(SnapshotUnavailable):
            stats_service.load_snapshot(db_engine, 1)


class TestRecordActivity:
    def test_creates_row_on_first_use(self, db_engine):
        add_user(db_engine, 1)
        snap = stats_service.record_activity(db_engine, 1, "commandsGenerated")
        assert snap.commands_generated == 1

    def test_increments(self, db_engine):
        add_user(db_engine, 1, total_views=10)
        stats_service.record_activity(db_engine, 1, "totalViews", 5)
        snap = stats_service.record_activity(db_engine, 1, "totalViews", 2)
        assert snap.total_views == 17

    def test_rejects_unknown_metric(self, db_engine):
        with pytest.raises(ValueError):
            stats_service.record_activity(db_engine, 1, "followers")

    def test_rejects_negative_amount(self, db_engine):
        with pytest.raises(ValueError):
            stats_service.record_activity(db_engine, 1, "totalViews", -3)
