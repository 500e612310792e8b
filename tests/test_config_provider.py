"""Tests for the cached runtime configuration and small utilities."""

from datetime import timedelta

import pytest

from modbot.services.config_provider import ConfigProvider
from modbot.utils import format_duration, parse_duration, sanitize_text


class TestConfigProvider:
    @pytest.mark.asyncio
    async def test_cached_until_invalidated(self, db):
        config = ConfigProvider(db, ttl=3600)
        await db.set_config_value("reporting_enabled", "true")
        assert await config.get_bool("reporting_enabled", False) is True

        await db.set_config_value("reporting_enabled", "false")
        assert await config.get_bool("reporting_enabled", False) is True
        assert await config.get_bool("reporting_enabled", True, fresh=True) is False

        config.invalidate()
        assert await config.get_bool("reporting_enabled", True) is False

    @pytest.mark.asyncio
    async def test_writes_invalidate(self, db):
        config = ConfigProvider(db, ttl=3600)
        assert await config.get("auto_warn_threshold") is None
        await config.set("auto_warn_threshold", 4)
        assert await config.get_int("auto_warn_threshold", 3) == 4

    @pytest.mark.asyncio
    async def test_expired_cache_reloads(self, db):
        config = ConfigProvider(db, ttl=-1)
        await config.get("x")
        await db.set_config_value("x", "1")
        assert await config.get("x") == "1"

    @pytest.mark.asyncio
    async def test_json_list(self, db):
        config = ConfigProvider(db)
        await config.set("admin_users", ["1", 2])
        assert await config.get_json_list("admin_users") == ["1", "2"]

    @pytest.mark.asyncio
    async def test_malformed_json_list(self, db, caplog):
        await db.set_config_value("admin_users", "{not json")
        assert await ConfigProvider(db).get_json_list("admin_users") == []
        assert "admin_users" in caplog.text

    @pytest.mark.asyncio
    async def test_bool_default_on_garbage(self, db):
        await db.set_config_value("reporting_enabled", "perhaps")
        assert await ConfigProvider(db).get_bool("reporting_enabled", True) is True


class TestDurations:
    @pytest.mark.parametrize(
        "text,expected",
        [("12h", timedelta(hours=12)), ("3d", timedelta(days=3)), ("2W", timedelta(weeks=2))],
    )
    def test_parse(self, text, expected):
        assert parse_duration(text) == expected

    @pytest.mark.parametrize("text", ["", "12", "12m", "0d", "d3"])
    def test_parse_rejects(self, text):
        assert parse_duration(text) is None

    def test_format(self):
        assert format_duration(timedelta(hours=5)) == "5h"
        assert format_duration(timedelta(days=2)) == "2d"
        assert format_duration(timedelta(weeks=1)) == "1w"


class TestSanitize:
    def test_strips_control_and_collapses(self):
        assert sanitize_text("  spam\x00 \n links  ") == "spam links"

    def test_empty(self):
        assert sanitize_text("   ") is None
        assert sanitize_text(None) is None

    def test_truncates(self):
        assert len(sanitize_text("x" * 900)) == 500
