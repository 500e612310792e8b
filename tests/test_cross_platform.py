"""Tests for applying one transition across all of a user's platform accounts."""

import asyncio
from unittest.mock import patch

import pytest

from modbot.services.cross_platform import CrossPlatformApplier
from modbot.services.user_state import Transition

PLATFORMS = ("discord", "reddit", "telegram")


def _failing_on(db, bad_client_type, exc):
    original = db.update_account

    async def flaky(client_type, user_id, fields, warnings_delta=0, **guards):
        if client_type == bad_client_type:
            raise exc
        return await original(client_type, user_id, fields, warnings_delta, **guards)

    return flaky


class TestApply:
    @pytest.mark.asyncio
    async def test_all_accounts_updated(self, db, add_user):
        await add_user("5", PLATFORMS)
        result = await CrossPlatformApplier(db).apply(await db.get_accounts("5"), Transition("warn", {}, 1))
        assert result.applied == list(PLATFORMS)
        assert result.complete
        assert all(row["warnings"] == 1 for row in result.results.values())

    @pytest.mark.asyncio
    async def test_middle_failure_does_not_stop_others(self, db, add_user):
        await add_user("5", PLATFORMS)
        accounts = await db.get_accounts("5")
        with patch.object(db, "update_account", new=_failing_on(db, "reddit", ConnectionError("shard down"))):
            result = await CrossPlatformApplier(db).apply(accounts, Transition("ban", {"banned": True}))

        assert result.applied == ["discord", "telegram"]
        assert list(result.skipped) == ["reddit"]
        assert "shard down" in result.skipped["reddit"]
        assert not result.complete
        assert (await db.get_account("reddit", "5"))["banned"] == 0
        assert (await db.get_account("telegram", "5"))["banned"] == 1

    @pytest.mark.asyncio
    async def test_timeout_is_skipped(self, db, add_user):
        await add_user("5", ("discord", "slack"))
        accounts = await db.get_accounts("5")
        original = db.update_account

        async def slow(client_type, user_id, fields, warnings_delta=0, **guards):
            if client_type == "slack":
                await asyncio.sleep(5)
            return await original(client_type, user_id, fields, warnings_delta, **guards)

        with patch.object(db, "update_account", new=slow):
            result = await CrossPlatformApplier(db, timeout=0.05).apply(accounts, Transition("warn", {}, 1))
        assert result.applied == ["discord"]
        assert result.skipped == {"slack": "timed out"}

    @pytest.mark.asyncio
    async def test_cas_miss_is_skipped(self, db, add_user):
        await add_user("5", ("discord",))
        result = await CrossPlatformApplier(db).apply(await db.get_accounts("5"), Transition("unwarn", {}, -1))
        assert result.applied == []
        assert result.skipped == {"discord": "state changed concurrently"}

    @pytest.mark.asyncio
    async def test_only_selected_platforms(self, db, add_user):
        await add_user("5", PLATFORMS)
        result = await CrossPlatformApplier(db).apply(
            await db.get_accounts("5"), Transition("warn", {}, 1), only_client_types=["reddit"]
        )
        assert result.applied == ["reddit"]
        assert (await db.get_account("discord", "5"))["warnings"] == 0
