"""Tests for DatabaseManager pool reporting."""

from unittest.mock import MagicMock, patch

from src.db.connection import DatabaseManager, db


class TestPoolStats:

    def test_reports_each_loop_pool(self):
        engine = MagicMock()
        engine.pool.size.return_value = 5
        engine.pool.checkedout.return_value = 2
        engine.pool.overflow.return_value = 0
        engine.pool.checkedin.return_value = 3

        with patch.dict(DatabaseManager._engines, {101: engine}, clear=True):
            stats = db.get_pool_stats()

        assert stats["pools_count"] == 1
        assert stats["pools"]["101"] == {"size": 5, "checked_out": 2, "overflow": 0, "checked_in": 3}

    def test_no_engines(self):
        with patch.dict(DatabaseManager._engines, {}, clear=True):
            stats = db.get_pool_stats()

        assert stats["pools_count"] == 0
        assert stats["pools"] == {}
