"""ModerationEngine: role-gated orchestration of every moderation command.

The engine holds no per-user state between calls. Each ``execute`` reads what
it needs fresh from the store, checks permissions, persists through the
CrossPlatformApplier, writes an audit record for every mutation and hands the
record to the notification sink. Errors never escape ``execute``; they come
back as failed Outcomes.
"""

import asyncio
import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from config import NOTIFY_TIMEOUT_SECONDS, READ_RETRY_BACKOFF_SECONDS, STORE_TIMEOUT_SECONDS

from ..utils import format_duration, format_timestamp, utcnow
from . import commands as cmd
from .config_provider import ConfigProvider
from .cross_platform import ApplyResult, CrossPlatformApplier
from .errors import (
    Conflict,
    InvalidInput,
    ModerationError,
    NotFound,
    PartialFailure,
    PermissionDenied,
    UpstreamUnavailable,
)
from .reports import REPORTING_ENABLED_KEY, ReportLedger
from .roles import Role, RoleRegistry, can_moderate, rank
from .user_state import (
    Thresholds,
    Transition,
    UserModerationState,
    ban_transition,
    escalation_for,
    mute_transition,
    registration_transition,
    unban_transition,
    unmute_transition,
    unshadowban_transition,
    unwarn_advisory,
    unwarn_transition,
    warn_transition,
)

logger = logging.getLogger(__name__)

# Failures that mean "the store did not answer", as opposed to a bad query
_UPSTREAM_ERRORS = (asyncio.TimeoutError, ConnectionError, OSError, sqlite3.OperationalError)

_engine: "ModerationEngine | None" = None


def init_engine(db, notifier=None) -> "ModerationEngine":
    global _engine
    _engine = ModerationEngine(db, notifier=notifier)
    return _engine


def get_engine() -> "ModerationEngine":
    if _engine is None:
        raise RuntimeError("Moderation engine not initialized. Call init_engine() first.")
    return _engine


@dataclass
class AuditRecord:
    action: str
    actor: str
    target: str | None
    reason: str | None
    timestamp: datetime
    detail: str | None = None


@dataclass
class Outcome:
    success: bool
    message: str
    applied_to: list[str] = field(default_factory=list)
    skipped: dict[str, str] = field(default_factory=dict)
    audit_record: AuditRecord | None = None
    error: str | None = None
    advisory: str | None = None
    escalation: AuditRecord | None = None
    data: Any = None


class ModerationEngine:
    def __init__(
        self,
        db,
        notifier=None,
        config_provider: ConfigProvider | None = None,
        clock=None,
        store_timeout: float = STORE_TIMEOUT_SECONDS,
        notify_timeout: float = NOTIFY_TIMEOUT_SECONDS,
        read_backoff: float = READ_RETRY_BACKOFF_SECONDS,
    ):
        self.db = db
        self.notifier = notifier
        self.config = config_provider or ConfigProvider(db)
        self.roles = RoleRegistry(db, self.config)
        self.ledger = ReportLedger(db, self.config)
        self.applier = CrossPlatformApplier(db, timeout=store_timeout)
        self.clock = clock or utcnow
        self.store_timeout = store_timeout
        self.notify_timeout = notify_timeout
        self.read_backoff = read_backoff

    # --- Entry point ---

    async def execute(self, actor_id, actor_role, command: cmd.Command) -> Outcome:
        """Run one command on behalf of ``actor_id`` holding ``actor_role``."""
        actor_id = str(actor_id)
        try:
            actor_role = Role(actor_role)
        except ValueError:
            return self._failed(actor_id, command, InvalidInput(f"Unknown actor role '{actor_role}'"))
        try:
            if rank(actor_role) < rank(command.min_role):
                raise PermissionDenied(f"/{command.name} requires the {command.min_role.value} role")
            handler = getattr(self, f"_do_{command.name}")
            return await handler(actor_id, actor_role, command)
        except ModerationError as e:
            return self._failed(actor_id, command, e)

    def _failed(self, actor_id: str, command: cmd.Command, error: ModerationError) -> Outcome:
        level = logging.WARNING if isinstance(error, UpstreamUnavailable) else logging.INFO
        logger.log(
            level,
            "%s by %s rejected (%s): %s",
            command.name,
            actor_id,
            error.kind,
            error.message,
            extra={"actor_id": actor_id, "action": command.name},
        )
        return Outcome(success=False, message=error.message, error=error.kind)

    # --- Store access ---

    async def _read(self, func, *args):
        """Bounded read, retried once after a short backoff."""
        for attempt in (1, 2):
            try:
                return await asyncio.wait_for(func(*args), timeout=self.store_timeout)
            except _UPSTREAM_ERRORS as e:
                if attempt == 2:
                    raise UpstreamUnavailable("The moderation store is not responding. Try again shortly.") from e
                logger.warning("Store read %s failed (%s), retrying", getattr(func, "__name__", func), e)
                await asyncio.sleep(self.read_backoff)

    async def _write(self, func, *args):
        """Bounded write. Never retried: after a timeout its effect is unknown."""
        try:
            return await asyncio.wait_for(func(*args), timeout=self.store_timeout)
        except _UPSTREAM_ERRORS as e:
            logger.error("Store write %s failed: %s", getattr(func, "__name__", func), e)
            raise UpstreamUnavailable(
                "The moderation store did not confirm the change. Re-check the current state before retrying."
            ) from e

    async def _audit(
        self, action: str, actor_id: str, target: str | None, reason: str | None, detail: str | None = None
    ) -> AuditRecord:
        record = AuditRecord(
            action=action, actor=actor_id, target=target, reason=reason, timestamp=self.clock(), detail=detail
        )
        await self._write(self.db.log_action, action, actor_id, target, reason, detail, record.timestamp)
        logger.info(
            "%s applied to %s by %s",
            action,
            target,
            actor_id,
            extra={"actor_id": actor_id, "target": target, "action": action},
        )
        return record

    async def _notify(self, record: AuditRecord) -> None:
        """Fire-and-forget; a failed notice never undoes the change."""
        if self.notifier is None:
            return
        try:
            await asyncio.wait_for(self.notifier.notify(record), timeout=self.notify_timeout)
        except Exception as e:
            logger.warning("Notification for %s on %s failed: %s", record.action, record.target, e)

    # --- User targets ---

    async def _load_target(self, user_id: str) -> tuple[list[dict], UserModerationState]:
        accounts = await self._read(self.db.get_accounts, user_id)
        if not accounts:
            raise NotFound(f"User {user_id} not found")
        role = await self._read(self.roles.role_of, user_id)
        return accounts, UserModerationState.from_accounts(user_id, role, accounts)

    def _check_outranks(self, actor_id: str, actor_role: Role, state: UserModerationState) -> None:
        if actor_id == state.user_id:
            raise PermissionDenied("You cannot moderate yourself")
        if not can_moderate(actor_role, state.role):
            raise PermissionDenied(f"You cannot moderate {state.user_id} ({state.role.value})")

    @staticmethod
    def _select(accounts: list[dict], client_types) -> list[dict]:
        if not client_types:
            return accounts
        selected = [a for a in accounts if a["client_type"] in client_types]
        if not selected:
            raise InvalidInput(f"User has no accounts on: {', '.join(client_types)}")
        return selected

    async def _prepare(self, actor_id, actor_role, command) -> tuple[list[dict], list[dict], UserModerationState]:
        accounts, state = await self._load_target(command.user_id)
        self._check_outranks(actor_id, actor_role, state)
        client_types = getattr(command, "client_types", None)
        selected = self._select(accounts, client_types)
        if client_types:
            # Preconditions apply to the platforms being retried, not the whole identity
            state = UserModerationState.from_accounts(state.user_id, state.role, selected)
        return accounts, selected, state

    async def _apply(
        self, actor_id: str, user_id: str, accounts: list[dict], transition: Transition, reason: str | None, detail=None
    ) -> tuple[Outcome, ApplyResult]:
        """Persist a transition on the given accounts and audit whatever was applied."""
        result = await self.applier.apply(accounts, transition)
        skipped_text = ", ".join(f"{k} ({v})" for k, v in result.skipped.items())
        if result.skipped:
            logger.warning(
                "%s on %s skipped on %s",
                transition.action,
                user_id,
                skipped_text,
                extra={"actor_id": actor_id, "target": user_id, "action": transition.action},
            )

        if not result.applied:
            all_cas = all(v == "state changed concurrently" for v in result.skipped.values())
            error = Conflict if all_cas else UpstreamUnavailable
            message = f"{transition.action} was not applied to {user_id}: {skipped_text}"
            if error is UpstreamUnavailable:
                message += ". Re-check the current state before retrying."
            return Outcome(success=False, message=message, skipped=result.skipped, error=error.kind), result

        if not result.complete:
            partial = f"partial: applied={','.join(result.applied)}; skipped={','.join(result.skipped)}"
            record = await self._audit(
                transition.action, actor_id, user_id, reason, f"{detail}; {partial}" if detail else partial
            )
            message = (
                f"{transition.action} applied to {user_id} on {', '.join(result.applied)} only. "
                f"Failed on: {skipped_text}. Retry with --only={','.join(result.skipped)} after checking state."
            )
            return (
                Outcome(
                    success=False,
                    message=message,
                    applied_to=result.applied,
                    skipped=result.skipped,
                    audit_record=record,
                    error=PartialFailure.kind,
                ),
                result,
            )

        record = await self._audit(transition.action, actor_id, user_id, reason, detail)
        return Outcome(success=True, message="", applied_to=result.applied, audit_record=record), result

    async def _finish(self, outcome: Outcome, message: str) -> Outcome:
        if outcome.success:
            outcome.message = message
            await self._notify(outcome.audit_record)
        return outcome

    async def _do_warn(self, actor_id, actor_role, command: cmd.Warn) -> Outcome:
        accounts, selected, state = await self._prepare(actor_id, actor_role, command)
        now = self.clock()
        outcome, result = await self._apply(
            actor_id, state.user_id, selected, warn_transition(actor_id, command.reason, now), command.reason
        )
        if not outcome.success:
            return outcome

        rows = {a["client_type"]: a for a in accounts}
        rows.update(result.results)
        new_state = UserModerationState.from_accounts(state.user_id, state.role, list(rows.values()))
        # The warning itself is done; its notice does not wait on escalation
        await self._finish(outcome, f"Warned {state.user_id} ({new_state.warning_count} warnings)")

        thresholds = await self._read(Thresholds.load, self.config)
        escalation = escalation_for(new_state, thresholds, actor_id, command.reason, now)
        if escalation is None:
            return outcome
        if escalation.transition is None:
            outcome.advisory = escalation.reason
            return outcome

        auto_outcome, _ = await self._apply(actor_id, state.user_id, accounts, escalation.transition, escalation.reason)
        if auto_outcome.success:
            outcome.escalation = auto_outcome.audit_record
            outcome.message += f". {'Auto-banned' if escalation.action == 'auto_ban' else 'Auto-muted for 24h'}"
            await self._notify(auto_outcome.audit_record)
        elif auto_outcome.error == Conflict.kind:
            # Another command escalated every account first
            outcome.advisory = f"{escalation.action} already in effect; nothing more to apply"
        else:
            outcome.escalation = auto_outcome.audit_record
            outcome.success = False
            outcome.error = auto_outcome.error
            outcome.skipped = {**outcome.skipped, **auto_outcome.skipped}
            outcome.message = f"Warning recorded, but {escalation.action} failed: {auto_outcome.message}"
        return outcome

    async def _do_unwarn(self, actor_id, actor_role, command: cmd.Unwarn) -> Outcome:
        accounts, selected, state = await self._prepare(actor_id, actor_role, command)
        outcome, result = await self._apply(
            actor_id, state.user_id, selected, unwarn_transition(state), command.reason
        )
        if outcome.success:
            new_count = max(row["warnings"] for row in result.results.values())
            thresholds = await self._read(Thresholds.load, self.config)
            outcome.advisory = unwarn_advisory(state, new_count, thresholds, self.clock())
            return await self._finish(outcome, f"Removed a warning from {state.user_id} ({new_count} warnings)")
        return outcome

    async def _do_mute(self, actor_id, actor_role, command: cmd.Mute) -> Outcome:
        accounts, selected, state = await self._prepare(actor_id, actor_role, command)
        now = self.clock()
        transition = mute_transition(state, actor_id, command.reason, command.duration, now)
        outcome, _ = await self._apply(
            actor_id, state.user_id, selected, transition, command.reason, f"duration={format_duration(command.duration)}"
        )
        until = format_timestamp(now + command.duration)
        return await self._finish(outcome, f"Muted {state.user_id} until {until}")

    async def _do_unmute(self, actor_id, actor_role, command: cmd.Unmute) -> Outcome:
        accounts, selected, state = await self._prepare(actor_id, actor_role, command)
        outcome, _ = await self._apply(
            actor_id, state.user_id, selected, unmute_transition(state, self.clock()), command.reason
        )
        return await self._finish(outcome, f"Unmuted {state.user_id}")

    async def _do_ban(self, actor_id, actor_role, command: cmd.Ban) -> Outcome:
        accounts, selected, state = await self._prepare(actor_id, actor_role, command)
        transition = ban_transition(state, actor_id, command.reason, self.clock(), shadow=command.shadow)
        outcome, _ = await self._apply(actor_id, state.user_id, selected, transition, command.reason)
        return await self._finish(outcome, f"{'Shadow-banned' if command.shadow else 'Banned'} {state.user_id}")

    async def _do_shadowban(self, actor_id, actor_role, command: cmd.Shadowban) -> Outcome:
        accounts, selected, state = await self._prepare(actor_id, actor_role, command)
        transition = ban_transition(state, actor_id, command.reason, self.clock(), shadow=True)
        outcome, _ = await self._apply(actor_id, state.user_id, selected, transition, command.reason)
        return await self._finish(outcome, f"Shadow-banned {state.user_id}")

    async def _do_unban(self, actor_id, actor_role, command: cmd.Unban) -> Outcome:
        accounts, selected, state = await self._prepare(actor_id, actor_role, command)
        outcome, _ = await self._apply(actor_id, state.user_id, selected, unban_transition(state), command.reason)
        return await self._finish(outcome, f"Unbanned {state.user_id}")

    async def _do_unshadowban(self, actor_id, actor_role, command: cmd.Unshadowban) -> Outcome:
        accounts, selected, state = await self._prepare(actor_id, actor_role, command)
        outcome, _ = await self._apply(
            actor_id, state.user_id, selected, unshadowban_transition(state), command.reason
        )
        return await self._finish(outcome, f"Lifted shadow-ban on {state.user_id}")

    # --- Roles ---

    async def _change_role(self, actor_id, actor_role, command, promote: bool) -> Outcome:
        accounts, state = await self._load_target(command.user_id)
        self._check_outranks(actor_id, actor_role, state)
        new_role = command.role
        if not can_moderate(actor_role, new_role):
            raise PermissionDenied(f"You cannot grant the {new_role.value} role")
        if promote and rank(new_role) <= rank(state.role):
            raise Conflict(f"{state.user_id} is already {state.role.value}; promote needs a higher role")
        if not promote and rank(new_role) >= rank(state.role):
            raise Conflict(f"{state.user_id} is {state.role.value}; demote needs a lower role")

        await self._write(self.roles.assign, state.user_id, new_role)
        detail = f"{state.role.value} -> {new_role.value}"
        outcome, _ = await self._apply(
            actor_id, state.user_id, accounts, Transition(command.name, {"role": new_role.value}), None, detail
        )
        verb = "Promoted" if promote else "Demoted"
        return await self._finish(outcome, f"{verb} {state.user_id} to {new_role.value}")

    async def _do_promote(self, actor_id, actor_role, command: cmd.Promote) -> Outcome:
        return await self._change_role(actor_id, actor_role, command, promote=True)

    async def _do_demote(self, actor_id, actor_role, command: cmd.Demote) -> Outcome:
        return await self._change_role(actor_id, actor_role, command, promote=False)

    # --- Content ---

    async def _load_comment(self, comment_id: int) -> dict:
        comment = await self._read(self.db.get_comment, comment_id)
        if comment is None:
            raise NotFound(f"Comment {comment_id} not found")
        return comment

    async def _toggle(self, actor_id: str, command, flag: str, on: bool, reason: str | None = None) -> Outcome:
        """Pin/lock style flag change guarded by compare-and-swap."""
        comment = await self._load_comment(command.comment_id)
        if on and comment["deleted"]:
            raise Conflict(f"Cannot {command.name} a deleted comment")
        if bool(comment[flag]) == on:
            if on:
                raise Conflict(
                    f"Comment {comment['id']} is already {flag} by {comment[f'{flag}_by']} "
                    f"at {format_timestamp(comment[f'{flag}_at'])}"
                )
            raise Conflict(f"Comment {comment['id']} is not {flag}")

        now = self.clock()
        fields = {flag: on, f"{flag}_at": now if on else None, f"{flag}_by": actor_id if on else None}
        expect = {flag: not on}
        if on:
            expect["deleted"] = False
        if not await self._write(self.db.update_comment_if, comment["id"], fields, expect):
            raise Conflict(f"Comment {comment['id']} changed while updating; re-check it")

        record = await self._audit(command.name, actor_id, f"comment:{comment['id']}", reason)
        outcome = Outcome(success=True, message="", applied_to=[comment["client_type"]], audit_record=record)
        return await self._finish(outcome, f"Comment {comment['id']}: {command.name} done")

    async def _do_pin(self, actor_id, actor_role, command: cmd.Pin) -> Outcome:
        return await self._toggle(actor_id, command, "pinned", True)

    async def _do_unpin(self, actor_id, actor_role, command: cmd.Unpin) -> Outcome:
        return await self._toggle(actor_id, command, "pinned", False)

    async def _do_lock(self, actor_id, actor_role, command: cmd.Lock) -> Outcome:
        return await self._toggle(actor_id, command, "locked", True)

    async def _do_unlock(self, actor_id, actor_role, command: cmd.Unlock) -> Outcome:
        return await self._toggle(actor_id, command, "locked", False)

    async def _do_delete(self, actor_id, actor_role, command: cmd.Delete) -> Outcome:
        comment = await self._load_comment(command.comment_id)
        if comment["deleted"]:
            raise Conflict(
                f"Comment {comment['id']} was already deleted by {comment['deleted_by']} "
                f"at {format_timestamp(comment['deleted_at'])}"
            )
        author_role = await self._read(self.roles.role_of, comment["author_id"])
        if not can_moderate(actor_role, author_role):
            raise PermissionDenied(f"You cannot delete comments by a {author_role.value}")

        fields = {"deleted": True, "deleted_at": self.clock(), "deleted_by": actor_id}
        if not await self._write(self.db.update_comment_if, comment["id"], fields, {"deleted": False}):
            raise Conflict(f"Comment {comment['id']} changed while deleting; re-check it")

        record = await self._audit(
            "delete", actor_id, f"comment:{comment['id']}", command.reason, f"author={comment['author_id']}"
        )
        outcome = Outcome(success=True, message="", applied_to=[comment["client_type"]], audit_record=record)
        return await self._finish(outcome, f"Deleted comment {comment['id']}")

    # --- Reports ---

    async def _do_report(self, actor_id, actor_role, command: cmd.Report) -> Outcome:
        report = await self._write(
            self.ledger.file, command.comment_id, actor_id, command.reason, command.notes, self.clock()
        )
        record = await self._audit(
            "report", actor_id, f"comment:{command.comment_id}", report["reason"], report["notes"] or None
        )
        outcome = Outcome(success=True, message="", audit_record=record, data=report)
        return await self._finish(
            outcome, f"Thanks, your report on comment {command.comment_id} was received ({report['reason']})"
        )

    async def _do_resolve(self, actor_id, actor_role, command: cmd.Resolve) -> Outcome:
        result = await self._write(
            self.ledger.resolve,
            command.comment_id,
            command.reporter_id,
            command.resolution,
            actor_id,
            command.notes,
            self.clock(),
        )
        record = await self._audit(
            "resolve",
            actor_id,
            f"comment:{command.comment_id}",
            command.notes or None,
            f"{command.resolution}; reporter={command.reporter_id}; status={result['report_status']}",
        )
        outcome = Outcome(success=True, message="", audit_record=record, data=result)
        return await self._finish(
            outcome,
            f"Report by {command.reporter_id} on comment {command.comment_id} {command.resolution}. "
            f"Comment status: {result['report_status']}",
        )

    # --- Read-only queries ---

    async def _do_queue(self, actor_id, actor_role, command: cmd.Queue) -> Outcome:
        entries = await self._read(self.ledger.queue, command.limit)
        return Outcome(success=True, message=f"{len(entries)} comment(s) awaiting review", data=entries)

    async def _do_status(self, actor_id, actor_role, command: cmd.Status) -> Outcome:
        _, state = await self._load_target(command.user_id)
        return Outcome(success=True, message=f"Status of {state.user_id}", data=state)

    async def _do_roles(self, actor_id, actor_role, command: cmd.Roles) -> Outcome:
        roles = await self._read(self.roles.all_roles)
        return Outcome(success=True, message="Current role assignments", data=roles)

    async def _do_log(self, actor_id, actor_role, command: cmd.Log) -> Outcome:
        rows = await self._read(self.db.get_action_log, command.limit, command.target)
        return Outcome(success=True, message=f"Last {len(rows)} moderation action(s)", data=rows)

    async def _do_comment(self, actor_id, actor_role, command: cmd.Comment) -> Outcome:
        comment = await self._load_comment(command.comment_id)
        reports = await self._read(self.ledger.reports_for, comment["id"])
        return Outcome(
            success=True, message=f"Comment {comment['id']}", data={"comment": comment, "reports": reports}
        )

    async def _do_stats(self, actor_id, actor_role, command: cmd.Stats) -> Outcome:
        stats = await self._read(self.db.get_stats, self.clock())
        roles = await self._read(self.roles.all_roles)
        stats["roles"] = {role.value: len(members) for role, members in roles.items()}
        return Outcome(success=True, message="Moderation statistics", data=stats)

    async def _do_config(self, actor_id, actor_role, command: cmd.Config) -> Outcome:
        roles = await self._read(self.roles.all_roles)
        thresholds = await self._read(Thresholds.load, self.config)
        reporting = await self._read(self.config.get_bool, REPORTING_ENABLED_KEY, True, True)
        data = {"roles": roles, "thresholds": thresholds, "reporting_enabled": reporting}
        return Outcome(success=True, message="Current configuration", data=data)

    # --- Registration and settings ---

    async def _do_register(self, actor_id, actor_role, command: cmd.Register) -> Outcome:
        accounts = await self._read(self.db.get_accounts, command.user_id)
        role = await self._read(self.roles.role_of, command.user_id)
        state = UserModerationState.from_accounts(command.user_id, role, accounts)
        self._check_outranks(actor_id, actor_role, state)
        if command.client_type in state.client_types:
            raise Conflict(f"{command.user_id} is already registered on {command.client_type}")

        created = await self._write(
            self.db.ensure_account, command.client_type, command.user_id, command.username, role.value
        )
        if not created:
            raise Conflict(f"{command.user_id} was registered on {command.client_type} concurrently")

        # A new account starts with whatever the identity is already serving
        transition = registration_transition(state)
        if transition is not None:
            account = {"client_type": command.client_type, "user_id": command.user_id}
            synced = await self.applier.apply([account], transition)
            if not synced.complete:
                logger.error(
                    "New %s account of %s did not take the identity's state: %s",
                    command.client_type,
                    command.user_id,
                    synced.skipped,
                )
                raise UpstreamUnavailable(
                    f"Registered {command.user_id} on {command.client_type}, but copying the identity's "
                    f"moderation state failed. Re-check with /mod status {command.user_id}."
                )

        record = await self._audit(
            "register", actor_id, command.user_id, None, f"client_type={command.client_type}"
        )
        outcome = Outcome(success=True, message="", applied_to=[command.client_type], audit_record=record)
        return await self._finish(outcome, f"Registered {command.user_id} on {command.client_type}")

    async def _do_track(self, actor_id, actor_role, command: cmd.Track) -> Outcome:
        author = await self._read(self.db.get_account, command.client_type, command.author_id)
        if author is None:
            raise NotFound(f"{command.author_id} is not registered on {command.client_type}")
        comment = {
            "id": command.comment_id,
            "client_type": command.client_type,
            "author_id": command.author_id,
            "content": command.content or None,
            "created_at": self.clock(),
        }
        if not await self._write(self.db.add_comment, comment):
            raise Conflict(f"Comment {command.comment_id} is already tracked")

        record = await self._audit(
            "track", actor_id, f"comment:{command.comment_id}", None, f"author={command.author_id}"
        )
        outcome = Outcome(success=True, message="", applied_to=[command.client_type], audit_record=record)
        return await self._finish(outcome, f"Tracking comment {command.comment_id} by {command.author_id}")

    async def _do_set(self, actor_id, actor_role, command: cmd.SetConfig) -> Outcome:
        current = await self._read(self.config.get, command.key, None, True)
        if current is not None and current.strip().strip('"').lower() == command.value:
            raise Conflict(f"{command.key} is already {command.value}")
        await self._write(self.config.set, command.key, command.value)
        record = await self._audit(
            "config", actor_id, f"config:{command.key}", None, f"{current or 'default'} -> {command.value}"
        )
        outcome = Outcome(success=True, message="", audit_record=record)
        return await self._finish(outcome, f"{command.key} set to {command.value}")
