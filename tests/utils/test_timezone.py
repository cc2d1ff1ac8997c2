"""Tests for utils/timezone.py - UTC-everywhere time handling."""

from datetime import datetime, timezone

from utils.timezone import now_utc, today_utc


class TestNowUtc:
    """Tests for now_utc()."""

    def test_returns_timezone_aware(self):
        """Result must have tzinfo set (not naive)."""
        assert now_utc().tzinfo is not None

    def test_is_utc(self):
        assert now_utc().tzinfo == timezone.utc


class TestTodayUtc:

    def test_matches_utc_date(self):
        assert today_utc() in {now_utc().date(), datetime.now(timezone.utc).date()}
