"""Tests for the report ledger: filing, resolving, aggregation and the queue."""

from datetime import datetime, timedelta, timezone

import pytest

from modbot.services.config_provider import ConfigProvider
from modbot.services.errors import (
    AlreadyReported,
    Conflict,
    ContentDeleted,
    InvalidInput,
    NotFound,
    PermissionDenied,
    ReportNotFound,
    SelfReport,
)
from modbot.services.reports import ReportLedger

T0 = datetime(2026, 4, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def ledger(db):
    return ReportLedger(db, ConfigProvider(db))


class TestFile:
    @pytest.mark.asyncio
    async def test_file_marks_comment_pending(self, db, ledger, add_comment):
        await add_comment(1, author_id="10")
        report = await ledger.file(1, "20", "spam", "buy now links")

        assert report["status"] == "pending"
        assert report["report_count"] == 1
        comment = await db.get_comment(1)
        assert comment["report_status"] == "pending"
        assert comment["report_count"] == 1

    @pytest.mark.asyncio
    async def test_duplicate_pending_report(self, ledger, add_comment):
        await add_comment(1, author_id="10")
        await ledger.file(1, "20", "spam")
        with pytest.raises(AlreadyReported):
            await ledger.file(1, "20", "offensive")

    @pytest.mark.asyncio
    async def test_new_report_allowed_after_resolution(self, db, ledger, add_comment):
        await add_comment(1, author_id="10")
        await ledger.file(1, "20", "spam")
        await ledger.resolve(1, "20", "dismissed", "m1")
        report = await ledger.file(1, "20", "spam")
        assert report["report_count"] == 2
        assert (await db.get_comment(1))["report_status"] == "pending"

    @pytest.mark.asyncio
    async def test_self_report(self, ledger, add_comment):
        await add_comment(1, author_id="10")
        with pytest.raises(SelfReport):
            await ledger.file(1, "10", "spam")

    @pytest.mark.asyncio
    async def test_deleted_content(self, db, ledger, add_comment):
        await add_comment(1, author_id="10")
        await db.update_comment_if(1, {"deleted": True}, {"deleted": False})
        with pytest.raises(ContentDeleted):
            await ledger.file(1, "20", "spam")

    @pytest.mark.asyncio
    async def test_missing_content(self, ledger):
        with pytest.raises(NotFound):
            await ledger.file(404, "20", "spam")

    @pytest.mark.asyncio
    async def test_invalid_reason(self, ledger, add_comment):
        await add_comment(1, author_id="10")
        with pytest.raises(InvalidInput, match="off_topic"):
            await ledger.file(1, "20", "boring")

    @pytest.mark.asyncio
    async def test_reporting_disabled(self, db, ledger, add_comment):
        await add_comment(1, author_id="10")
        await ledger.config.set("reporting_enabled", False)
        with pytest.raises(PermissionDenied):
            await ledger.file(1, "20", "spam")


class TestResolve:
    @pytest.mark.asyncio
    async def test_status_stays_pending_until_all_reviewed(self, db, ledger, add_comment):
        await add_comment(1, author_id="10")
        for reporter in ("20", "21", "22"):
            await ledger.file(1, reporter, "spam")

        r1 = await ledger.resolve(1, "20", "resolved", "m1")
        r2 = await ledger.resolve(1, "21", "resolved", "m1")
        assert r1["report_status"] == "pending"
        assert r2["report_status"] == "pending"

        r3 = await ledger.resolve(1, "22", "dismissed", "m1", "not spam")
        assert r3["report_status"] == "dismissed"
        assert (await db.get_comment(1))["report_status"] == "dismissed"

    @pytest.mark.asyncio
    async def test_review_fields_recorded(self, db, ledger, add_comment):
        await add_comment(1, author_id="10")
        await ledger.file(1, "20", "nsfw")
        await ledger.resolve(1, "20", "resolved", "m1", "removed image", now=T0)

        (report,) = await db.get_reports(1)
        assert report["status"] == "resolved"
        assert report["reviewed_by"] == "m1"
        assert report["reviewed_at"] == T0
        assert report["review_notes"] == "removed image"

    @pytest.mark.asyncio
    async def test_already_reviewed_names_reviewer(self, ledger, add_comment):
        await add_comment(1, author_id="10")
        await ledger.file(1, "20", "spam")
        await ledger.resolve(1, "20", "resolved", "m1")
        with pytest.raises(Conflict, match="m1"):
            await ledger.resolve(1, "20", "dismissed", "m2")

    @pytest.mark.asyncio
    async def test_report_not_found(self, ledger, add_comment):
        await add_comment(1, author_id="10")
        with pytest.raises(ReportNotFound):
            await ledger.resolve(1, "20", "resolved", "m1")

    @pytest.mark.asyncio
    async def test_invalid_resolution(self, ledger, add_comment):
        await add_comment(1, author_id="10")
        with pytest.raises(InvalidInput):
            await ledger.resolve(1, "20", "pending", "m1")


class TestQueue:
    @pytest.mark.asyncio
    async def test_most_reports_first_then_most_recent(self, ledger, add_comment):
        for cid in (1, 2, 3):
            await add_comment(cid, author_id="10")
        await ledger.file(1, "20", "spam", now=T0)
        await ledger.file(1, "21", "spam", now=T0 + timedelta(minutes=1))
        await ledger.file(2, "20", "spam", now=T0 + timedelta(minutes=10))
        await ledger.file(3, "20", "spam", now=T0 + timedelta(minutes=2))
        await ledger.file(3, "21", "spam", now=T0 + timedelta(minutes=3))

        entries = await ledger.queue(10)
        assert [e.comment["id"] for e in entries] == [3, 1, 2]
        assert len(entries[0].reports) == 2

    @pytest.mark.asyncio
    async def test_resolved_comments_leave_queue(self, ledger, add_comment):
        await add_comment(1, author_id="10")
        await ledger.file(1, "20", "spam")
        await ledger.resolve(1, "20", "resolved", "m1")
        assert await ledger.queue(10) == []

    @pytest.mark.asyncio
    async def test_limit(self, ledger, add_comment):
        for cid in (1, 2, 3):
            await add_comment(cid, author_id="10")
            await ledger.file(cid, "20", "spam")
        assert len(await ledger.queue(2)) == 2

    @pytest.mark.asyncio
    async def test_reports_for(self, ledger, add_comment):
        await add_comment(1, author_id="10")
        await ledger.file(1, "20", "spam")
        await ledger.file(1, "21", "harassment")
        reasons = [r["reason"] for r in await ledger.reports_for(1)]
        assert sorted(reasons) == ["harassment", "spam"]
