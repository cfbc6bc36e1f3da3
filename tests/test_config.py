"""Tests for settings loading."""

import pytest

from salary_engine.config import Settings, _parse_weekend_days


class TestWeekendDays:
    def test_parses_and_sorts(self):
        assert _parse_weekend_days("6, 5") == (5, 6)

    def test_empty_means_no_weekend(self):
        assert _parse_weekend_days("") == ()

    def test_out_of_range_rejected(self):
        with pytest.raises(ValueError):
            _parse_weekend_days("5,7")


def test_from_env(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///salary.db")
    monkeypatch.setenv("PORT", "9000")
    monkeypatch.setenv("DEBUG", "TRUE")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("WEEKEND_DAYS", "4")
    monkeypatch.setenv("CURRENCY", "usd")

    settings = Settings.from_env()

    assert settings.database_url == "sqlite+aiosqlite:///salary.db"
    assert settings.port == 9000
    assert settings.debug is True
    assert settings.log_level == "DEBUG"
    assert settings.weekend_days == (4,)
    assert settings.currency == "USD"
