"""Per-identity moderation state and its transitions.

Transition builders are pure: they check preconditions against the current
aggregated state and describe the column changes for every platform account.
Persisting them is the CrossPlatformApplier's job.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta

from config import DEFAULT_BAN_THRESHOLD, DEFAULT_MUTE_HOURS, DEFAULT_MUTE_THRESHOLD, DEFAULT_WARN_THRESHOLD

from ..utils import as_utc, format_timestamp
from .errors import Conflict
from .roles import Role

logger = logging.getLogger(__name__)

WARN_THRESHOLD_KEY = "auto_warn_threshold"
MUTE_THRESHOLD_KEY = "auto_mute_threshold"
BAN_THRESHOLD_KEY = "auto_ban_threshold"

AUTO_MUTE_DURATION = timedelta(hours=DEFAULT_MUTE_HOURS)


@dataclass
class UserModerationState:
    user_id: str
    role: Role = Role.USER
    warning_count: int = 0
    mute_until: datetime | None = None
    muted_by: str | None = None
    muted_reason: str | None = None
    banned: bool = False
    banned_at: datetime | None = None
    banned_by: str | None = None
    banned_reason: str | None = None
    shadow_banned: bool = False
    shadow_banned_at: datetime | None = None
    shadow_banned_by: str | None = None
    shadow_banned_reason: str | None = None
    last_warning_at: datetime | None = None
    last_warning_by: str | None = None
    last_warning_reason: str | None = None
    client_types: list[str] = field(default_factory=list)

    def muted(self, now: datetime) -> bool:
        return self.mute_until is not None and self.mute_until > now

    @classmethod
    def from_accounts(cls, user_id: str, role: Role, accounts: list[dict]) -> "UserModerationState":
        """Aggregate the rows of every platform account of one identity.

        Warning count is the maximum, flags are set if any account has them,
        mute expiry is the latest.
        """
        state = cls(user_id=str(user_id), role=role)
        for acc in accounts:
            state.client_types.append(acc["client_type"])
            if acc["warnings"] > state.warning_count:
                state.warning_count = acc["warnings"]
            last_warning_at = as_utc(acc.get("last_warning_at"))
            if last_warning_at and (state.last_warning_at is None or last_warning_at > state.last_warning_at):
                state.last_warning_at = last_warning_at
                state.last_warning_by = acc.get("last_warning_by")
                state.last_warning_reason = acc.get("last_warning_reason")
            muted_until = as_utc(acc.get("muted_until"))
            if muted_until and (state.mute_until is None or muted_until > state.mute_until):
                state.mute_until = muted_until
                state.muted_by = acc.get("muted_by")
                state.muted_reason = acc.get("muted_reason")
            if acc.get("banned") and not state.banned:
                state.banned = True
                state.banned_at = as_utc(acc.get("banned_at"))
                state.banned_by = acc.get("banned_by")
                state.banned_reason = acc.get("banned_reason")
            if acc.get("shadow_banned") and not state.shadow_banned:
                state.shadow_banned = True
                state.shadow_banned_at = as_utc(acc.get("shadow_banned_at"))
                state.shadow_banned_by = acc.get("shadow_banned_by")
                state.shadow_banned_reason = acc.get("shadow_banned_reason")
        return state


@dataclass(frozen=True)
class Thresholds:
    warn: int = DEFAULT_WARN_THRESHOLD
    mute: int = DEFAULT_MUTE_THRESHOLD
    ban: int = DEFAULT_BAN_THRESHOLD

    @classmethod
    async def load(cls, config_provider) -> "Thresholds":
        """Read all three thresholds fresh; malformed values fall back to defaults."""
        return cls(
            warn=await config_provider.get_int(WARN_THRESHOLD_KEY, DEFAULT_WARN_THRESHOLD, fresh=True),
            mute=await config_provider.get_int(MUTE_THRESHOLD_KEY, DEFAULT_MUTE_THRESHOLD, fresh=True),
            ban=await config_provider.get_int(BAN_THRESHOLD_KEY, DEFAULT_BAN_THRESHOLD, fresh=True),
        )


@dataclass(frozen=True)
class Transition:
    """Column changes applied identically to every account of an identity.

    ``expect`` and ``unmuted_at`` guard the write: an account whose row no
    longer matches is left untouched.
    """

    action: str
    fields: dict = field(default_factory=dict)
    warnings_delta: int = 0
    expect: dict = field(default_factory=dict)
    unmuted_at: datetime | None = None


@dataclass(frozen=True)
class Escalation:
    action: str  # auto_ban, auto_mute or warn_threshold
    reason: str
    transition: Transition | None = None


def registration_transition(state: UserModerationState) -> Transition | None:
    """Bring a newly linked account in line with the identity's existing state."""
    fields = {
        "warnings": state.warning_count,
        "last_warning_at": state.last_warning_at,
        "last_warning_by": state.last_warning_by,
        "last_warning_reason": state.last_warning_reason,
        "muted_until": state.mute_until,
        "muted_by": state.muted_by,
        "muted_reason": state.muted_reason,
        "banned": state.banned,
        "banned_at": state.banned_at,
        "banned_by": state.banned_by,
        "banned_reason": state.banned_reason,
        "shadow_banned": state.shadow_banned,
        "shadow_banned_at": state.shadow_banned_at,
        "shadow_banned_by": state.shadow_banned_by,
        "shadow_banned_reason": state.shadow_banned_reason,
    }
    if not any(fields.values()):
        return None
    return Transition("register", fields)


def _applied_by(by: str | None, at: datetime | None) -> str:
    return f"by {by or 'unknown'} at {format_timestamp(at)}"


def warn_transition(actor_id: str, reason: str, now: datetime) -> Transition:
    return Transition(
        "warn",
        {"last_warning_at": now, "last_warning_by": actor_id, "last_warning_reason": reason},
        warnings_delta=1,
    )


def unwarn_transition(state: UserModerationState) -> Transition:
    if state.warning_count <= 0:
        raise Conflict("no warnings")
    return Transition("unwarn", warnings_delta=-1)


def mute_transition(
    state: UserModerationState, actor_id: str, reason: str, duration: timedelta, now: datetime, action: str = "mute"
) -> Transition:
    if state.muted(now):
        raise Conflict(
            f"User {state.user_id} is already muted until {format_timestamp(state.mute_until)} "
            f"by {state.muted_by or 'unknown'}"
        )
    return Transition(action, {"muted_until": now + duration, "muted_by": actor_id, "muted_reason": reason})


def unmute_transition(state: UserModerationState, now: datetime) -> Transition:
    if not state.muted(now):
        raise Conflict(f"User {state.user_id} is not muted")
    return Transition("unmute", {"muted_until": None, "muted_by": None, "muted_reason": None})


def ban_transition(
    state: UserModerationState, actor_id: str, reason: str, now: datetime, shadow: bool = False, action: str | None = None
) -> Transition:
    """Set exactly one of banned/shadow_banned; the other is cleared."""
    if shadow:
        if state.shadow_banned:
            raise Conflict(
                f"User {state.user_id} is already shadow-banned "
                f"{_applied_by(state.shadow_banned_by, state.shadow_banned_at)}"
            )
        fields = {
            "shadow_banned": True,
            "shadow_banned_at": now,
            "shadow_banned_by": actor_id,
            "shadow_banned_reason": reason,
            "banned": False,
            "banned_at": None,
            "banned_by": None,
            "banned_reason": None,
        }
        return Transition(action or "shadowban", fields)

    if state.banned:
        raise Conflict(f"User {state.user_id} is already banned {_applied_by(state.banned_by, state.banned_at)}")
    fields = {
        "banned": True,
        "banned_at": now,
        "banned_by": actor_id,
        "banned_reason": reason,
        "shadow_banned": False,
        "shadow_banned_at": None,
        "shadow_banned_by": None,
        "shadow_banned_reason": None,
    }
    return Transition(action or "ban", fields)


def unban_transition(state: UserModerationState) -> Transition:
    if not state.banned and not state.shadow_banned:
        raise Conflict(f"User {state.user_id} is not banned")
    return Transition(
        "unban",
        {
            "banned": False,
            "banned_at": None,
            "banned_by": None,
            "banned_reason": None,
            "shadow_banned": False,
            "shadow_banned_at": None,
            "shadow_banned_by": None,
            "shadow_banned_reason": None,
            "muted_until": None,
            "muted_by": None,
            "muted_reason": None,
        },
    )


def unshadowban_transition(state: UserModerationState) -> Transition:
    if not state.shadow_banned:
        raise Conflict(f"User {state.user_id} is not shadow-banned")
    return Transition(
        "unshadowban",
        {
            "shadow_banned": False,
            "shadow_banned_at": None,
            "shadow_banned_by": None,
            "shadow_banned_reason": None,
        },
    )


def escalation_for(
    state: UserModerationState, thresholds: Thresholds, actor_id: str, reason: str, now: datetime
) -> Escalation | None:
    """Automatic follow-up to a warning, given the post-warning state.

    Escalation only ever tightens; a state that already covers the step is left alone.
    The transitions are guarded so a concurrent warning that already escalated
    the same account turns this one into a no-op.
    """
    w = state.warning_count
    if w >= thresholds.ban:
        if state.banned:
            return None
        auto_reason = f"Auto-ban after {w} warnings: {reason}"
        transition = ban_transition(state, actor_id, auto_reason, now, action="auto_ban")
        return Escalation("auto_ban", auto_reason, replace(transition, expect={"banned": False}))
    if w >= thresholds.mute:
        if state.banned or state.muted(now):
            return None
        auto_reason = f"Auto-mute after {w} warnings: {reason}"
        transition = mute_transition(state, actor_id, auto_reason, AUTO_MUTE_DURATION, now, action="auto_mute")
        return Escalation("auto_mute", auto_reason, replace(transition, expect={"banned": False}, unmuted_at=now))
    if w >= thresholds.warn:
        logger.info("User %s reached the warning threshold (%d warnings)", state.user_id, w)
        return Escalation("warn_threshold", f"User has {w} warnings; next step is a mute at {thresholds.mute}")
    return None


def unwarn_advisory(state: UserModerationState, new_count: int, thresholds: Thresholds, now: datetime) -> str | None:
    """Hint for the moderator when an unwarn drops below a threshold that was acted on."""
    if (state.banned or state.shadow_banned) and new_count < thresholds.ban:
        return "Warnings are now below the ban threshold. Consider lifting the ban."
    if state.muted(now) and new_count < thresholds.mute:
        return "Warnings are now below the mute threshold. Consider lifting the mute."
    return None
