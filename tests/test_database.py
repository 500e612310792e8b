"""Database integration tests for Comment ModBot.

Atomic counters, compare-and-swap updates, report transactions and the audit
log, against a temporary SQLite database.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from modbot.database import Database, _row_count

T0 = datetime(2026, 5, 1, 8, 0, tzinfo=timezone.utc)


def _report(report_id, comment_id=1, reporter="20", when=T0):
    return {
        "id": report_id,
        "comment_id": comment_id,
        "reporter_id": reporter,
        "reason": "spam",
        "notes": "",
        "created_at": when,
    }


# ---------------------------------------------------------------------------
# Driver selection / helpers
# ---------------------------------------------------------------------------
class TestDriver:
    def test_sqlite_default(self):
        assert Database(None).driver == "sqlite"

    def test_postgres_url(self):
        db = Database("postgresql://u:p@localhost/modbot")
        assert db.driver == "postgresql"
        assert db._ph(3) == "$3"

    def test_postgres_short_scheme(self):
        assert Database("postgres://u:p@localhost/modbot").driver == "postgresql"

    def test_row_count_from_status(self):
        assert _row_count("UPDATE 3") == 3
        assert _row_count("garbage") == 0


# ---------------------------------------------------------------------------
# Platform accounts
# ---------------------------------------------------------------------------
class TestAccounts:
    @pytest.mark.asyncio
    async def test_ensure_account_idempotent(self, db):
        await db.ensure_account("discord", "5", "alice")
        await db.ensure_account("discord", "5", None)
        (acc,) = await db.get_accounts("5")
        assert acc["username"] == "alice"
        assert acc["warnings"] == 0

    @pytest.mark.asyncio
    async def test_accounts_ordered_by_platform(self, db):
        await db.ensure_account("telegram", "5")
        await db.ensure_account("discord", "5")
        assert [a["client_type"] for a in await db.get_accounts("5")] == ["discord", "telegram"]

    @pytest.mark.asyncio
    async def test_concurrent_increments_not_lost(self, db):
        await db.ensure_account("discord", "5")
        await asyncio.gather(*(db.update_account("discord", "5", {}, 1) for _ in range(20)))
        assert (await db.get_account("discord", "5"))["warnings"] == 20

    @pytest.mark.asyncio
    async def test_decrement_never_below_zero(self, db):
        await db.ensure_account("discord", "5")
        await db.update_account("discord", "5", {}, 1)
        results = await asyncio.gather(*(db.update_account("discord", "5", {}, -1) for _ in range(3)))
        assert sum(1 for r in results if r is not None) == 1
        assert (await db.get_account("discord", "5"))["warnings"] == 0

    @pytest.mark.asyncio
    async def test_update_sets_fields_and_returns_row(self, db):
        await db.ensure_account("discord", "5")
        row = await db.update_account("discord", "5", {"banned": True, "banned_by": "a1", "banned_at": T0})
        assert row["banned"] == 1
        assert row["banned_by"] == "a1"
        assert row["banned_at"] == T0

    @pytest.mark.asyncio
    async def test_guarded_mute_applies_once(self, db):
        await db.ensure_account("discord", "5")
        fields = {"muted_until": T0 + timedelta(hours=24), "muted_by": "m1"}
        first = await db.update_account("discord", "5", fields, expect={"banned": False}, unmuted_at=T0)
        assert first["muted_by"] == "m1"
        again = {"muted_until": T0 + timedelta(hours=48), "muted_by": "m2"}
        assert await db.update_account("discord", "5", again, expect={"banned": False}, unmuted_at=T0) is None
        assert (await db.get_account("discord", "5"))["muted_by"] == "m1"

    @pytest.mark.asyncio
    async def test_guard_on_flag(self, db):
        await db.ensure_account("discord", "5")
        await db.update_account("discord", "5", {"banned": True})
        assert await db.update_account("discord", "5", {"banned_by": "a2"}, expect={"banned": False}) is None

    @pytest.mark.asyncio
    async def test_update_missing_account(self, db):
        assert await db.update_account("discord", "nobody", {"banned": True}) is None


# ---------------------------------------------------------------------------
# Comments and reports
# ---------------------------------------------------------------------------
class TestComments:
    @pytest.mark.asyncio
    async def test_compare_and_swap(self, db, add_comment):
        await add_comment(1, author_id="10")
        assert await db.update_comment_if(1, {"pinned": True, "pinned_by": "m1"}, {"pinned": False}) is True
        assert await db.update_comment_if(1, {"pinned": True, "pinned_by": "m2"}, {"pinned": False}) is False
        assert (await db.get_comment(1))["pinned_by"] == "m1"

    @pytest.mark.asyncio
    async def test_get_missing_comment(self, db):
        assert await db.get_comment(12345) is None


class TestReports:
    @pytest.mark.asyncio
    async def test_add_report_bumps_counter(self, db, add_comment):
        await add_comment(1, author_id="10")
        assert await db.add_report(_report("r1")) == 1
        assert await db.add_report(_report("r2", reporter="21")) == 2
        comment = await db.get_comment(1)
        assert comment["report_status"] == "pending"
        assert comment["last_reported_at"] == T0

    @pytest.mark.asyncio
    async def test_duplicate_pending_rejected_and_rolled_back(self, db, add_comment):
        await add_comment(1, author_id="10")
        await db.add_report(_report("r1"))
        with pytest.raises(ValueError, match="duplicate_report"):
            await db.add_report(_report("r2"))
        assert (await db.get_comment(1))["report_count"] == 1
        assert len(await db.get_reports(1)) == 1

    @pytest.mark.asyncio
    async def test_report_on_deleted_rolled_back(self, db, add_comment):
        await add_comment(1, author_id="10")
        await db.update_comment_if(1, {"deleted": True}, {"deleted": False})
        with pytest.raises(ValueError, match="content_deleted"):
            await db.add_report(_report("r1"))
        assert await db.get_reports(1) == []

    @pytest.mark.asyncio
    async def test_review_only_once(self, db, add_comment):
        await add_comment(1, author_id="10")
        await db.add_report(_report("r1"))
        assert await db.review_report("r1", "resolved", "m1", T0, "") is True
        assert await db.review_report("r1", "dismissed", "m2", T0, "") is False

    @pytest.mark.asyncio
    async def test_find_report_prefers_pending(self, db, add_comment):
        await add_comment(1, author_id="10")
        await db.add_report(_report("old", when=T0))
        await db.review_report("old", "dismissed", "m1", T0, "")
        await db.add_report(_report("new", when=T0 - timedelta(days=1)))
        assert (await db.find_report(1, "20"))["id"] == "new"

    @pytest.mark.asyncio
    async def test_recompute_report_status(self, db, add_comment):
        await add_comment(1, author_id="10")
        await db.add_report(_report("r1"))
        await db.add_report(_report("r2", reporter="21"))
        await db.review_report("r1", "resolved", "m1", T0, "")
        assert await db.recompute_report_status(1, "resolved") == "pending"
        await db.review_report("r2", "resolved", "m1", T0, "")
        assert await db.recompute_report_status(1, "resolved") == "resolved"


# ---------------------------------------------------------------------------
# Config and audit log
# ---------------------------------------------------------------------------
class TestConfig:
    @pytest.mark.asyncio
    async def test_set_and_get(self, db):
        await db.set_config_value("auto_ban_threshold", "8")
        await db.set_config_value("auto_ban_threshold", "9")
        assert await db.get_config_value("auto_ban_threshold") == "9"
        assert await db.get_all_config() == {"auto_ban_threshold": "9"}

    @pytest.mark.asyncio
    async def test_role_membership_moves_identity(self, db):
        keys = ["super_admin_users", "admin_users", "moderator_users"]
        await db.set_role_membership("u1", keys, "moderator_users")
        await db.set_role_membership("u2", keys, "moderator_users")
        await db.set_role_membership("u1", keys, "admin_users")
        assert await db.get_config_value("moderator_users") == '["u2"]'
        assert await db.get_config_value("admin_users") == '["u1"]'


class TestActionLog:
    @pytest.mark.asyncio
    async def test_newest_first_and_filter(self, db):
        await db.log_action("warn", "m1", "5", "spam", None, T0)
        await db.log_action("ban", "a1", "6", "abuse", None, T0 + timedelta(minutes=1))
        await db.log_action("unwarn", "m1", "5", None, None, T0 + timedelta(minutes=2))

        entries = await db.get_action_log(10)
        assert [e["action"] for e in entries] == ["unwarn", "ban", "warn"]
        assert [e["action"] for e in await db.get_action_log(10, target="5")] == ["unwarn", "warn"]
        assert len(await db.get_action_log(1)) == 1
