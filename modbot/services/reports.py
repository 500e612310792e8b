"""Report ledger: filing, resolving and queueing reports on comments."""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from ..utils import format_timestamp, generate_report_id, sanitize_text, utcnow
from .errors import (
    AlreadyReported,
    Conflict,
    ContentDeleted,
    InvalidInput,
    NotFound,
    PermissionDenied,
    ReportNotFound,
    SelfReport,
)

logger = logging.getLogger(__name__)

VALID_REASONS = ("spam", "offensive", "harassment", "spoiler", "nsfw", "off_topic", "other")
RESOLUTIONS = ("resolved", "dismissed")
REPORTING_ENABLED_KEY = "reporting_enabled"


@dataclass
class QueueEntry:
    comment: dict
    reports: list[dict] = field(default_factory=list)


class ReportLedger:
    def __init__(self, db, config_provider):
        self.db = db
        self.config = config_provider

    async def _existing_comment(self, comment_id: int) -> dict:
        comment = await self.db.get_comment(comment_id)
        if comment is None:
            raise NotFound(f"Comment {comment_id} not found")
        return comment

    async def file(
        self, comment_id: int, reporter_id: str, reason: str, notes: str | None = None, now: datetime | None = None
    ) -> dict:
        """File a pending report. Returns the stored report with the comment's new report_count."""
        reason = (reason or "").strip().lower()
        if reason not in VALID_REASONS:
            raise InvalidInput(f"Invalid reason '{reason}'. Valid reasons: {', '.join(VALID_REASONS)}")
        if not await self.config.get_bool(REPORTING_ENABLED_KEY, True):
            raise PermissionDenied("Reporting is currently disabled")

        comment = await self._existing_comment(comment_id)
        if comment["deleted"]:
            raise ContentDeleted(f"Comment {comment_id} has been deleted")
        if str(comment["author_id"]) == str(reporter_id):
            raise SelfReport("You cannot report your own comment")

        existing = await self.db.find_report(comment_id, reporter_id)
        if existing and existing["status"] == "pending":
            raise AlreadyReported(f"You already have a pending report on comment {comment_id}")

        report = {
            "id": generate_report_id(),
            "comment_id": comment_id,
            "reporter_id": str(reporter_id),
            "reason": reason,
            "notes": sanitize_text(notes) or "",
            "created_at": now or utcnow(),
        }
        try:
            report["report_count"] = await self.db.add_report(report)
        except ValueError as e:
            # Lost a race with a concurrent report or delete
            if str(e) == "duplicate_report":
                raise AlreadyReported(f"You already have a pending report on comment {comment_id}") from e
            if str(e) == "content_deleted":
                raise ContentDeleted(f"Comment {comment_id} has been deleted") from e
            raise
        report["status"] = "pending"
        logger.info(
            "Report %s filed on comment %s (%s)",
            report["id"],
            comment_id,
            reason,
            extra={"actor_id": str(reporter_id), "target": str(comment_id), "action": "report"},
        )
        return report

    async def resolve(
        self,
        comment_id: int,
        reporter_id: str,
        resolution: str,
        reviewer_id: str,
        notes: str | None = None,
        now: datetime | None = None,
    ) -> dict:
        """Review one reporter's report and recompute the comment's aggregate status.

        Returns {"report": <report row>, "report_status": <comment status>}.
        """
        if resolution not in RESOLUTIONS:
            raise InvalidInput(f"Invalid resolution '{resolution}'. Use one of: {', '.join(RESOLUTIONS)}")
        await self._existing_comment(comment_id)

        report = await self.db.find_report(comment_id, str(reporter_id))
        if report is None:
            raise ReportNotFound(f"No report from {reporter_id} on comment {comment_id}")
        if report["status"] != "pending":
            raise Conflict(
                f"Report already {report['status']} by {report['reviewed_by']} "
                f"at {format_timestamp(report['reviewed_at'])}"
            )

        reviewed_at = now or utcnow()
        review_notes = sanitize_text(notes) or ""
        if not await self.db.review_report(report["id"], resolution, str(reviewer_id), reviewed_at, review_notes):
            raise Conflict("Report was reviewed by someone else just now; re-check the queue")

        status = await self.db.recompute_report_status(comment_id, resolution)
        report.update(
            status=resolution, reviewed_by=str(reviewer_id), reviewed_at=reviewed_at, review_notes=review_notes
        )
        return {"report": report, "report_status": status}

    async def queue(self, limit: int) -> list[QueueEntry]:
        """Pending comments, most reports first, ties broken by most recent report."""
        entries = []
        for comment in await self.db.get_report_queue(limit):
            reports = [r for r in await self.db.get_reports(comment["id"]) if r["status"] == "pending"]
            entries.append(QueueEntry(comment=comment, reports=reports))
        return entries

    async def reports_for(self, comment_id: int) -> list[dict]:
        await self._existing_comment(comment_id)
        return await self.db.get_reports(comment_id)
