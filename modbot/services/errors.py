"""Moderation error taxonomy.

Terminal errors (PermissionDenied, NotFound, InvalidInput, Conflict) are
reported straight back to the actor. PartialFailure carries the accounts that
were and were not updated so an operator can retry just the failed ones.
UpstreamUnavailable means the store or the notifier did not answer in time.
"""


class ModerationError(Exception):
    """Base class for every error the engine reports to an actor."""

    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class PermissionDenied(ModerationError):
    kind = "permission_denied"


class NotFound(ModerationError):
    kind = "not_found"


class InvalidInput(ModerationError):
    kind = "invalid_input"


class Conflict(ModerationError):
    kind = "conflict"


class PartialFailure(ModerationError):
    kind = "partial_failure"

    def __init__(self, message: str, applied: list[str], skipped: list[str]):
        super().__init__(message)
        self.applied = applied
        self.skipped = skipped


class UpstreamUnavailable(ModerationError):
    kind = "upstream_unavailable"


# --- Report ledger specifics ---


class SelfReport(PermissionDenied):
    kind = "self_report"


class AlreadyReported(Conflict):
    kind = "already_reported"


class ContentDeleted(Conflict):
    kind = "content_deleted"


class ReportNotFound(NotFound):
    kind = "report_not_found"
