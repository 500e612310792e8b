"""Typed moderation commands.

Each command name maps to one frozen dataclass with its minimum role. Input
from any surface is decoded once by ``decode_command`` (keyword params) or
``parse_args`` + ``decode_command`` (chat arguments); the engine only ever
sees validated Command objects.
"""

import re
from dataclasses import dataclass
from datetime import timedelta
from typing import ClassVar

from config import DEFAULT_MUTE_HOURS, QUEUE_DEFAULT_LIMIT, QUEUE_MAX_LIMIT

from ..utils import parse_duration, sanitize_text
from .errors import InvalidInput
from .reports import REPORTING_ENABLED_KEY
from .roles import Role, parse_role
from .user_state import BAN_THRESHOLD_KEY, MUTE_THRESHOLD_KEY, WARN_THRESHOLD_KEY

DEFAULT_REASON = "No reason provided"
PROMOTABLE_ROLES = (Role.MODERATOR, Role.ADMIN, Role.SUPER_ADMIN)
DEMOTABLE_ROLES = (Role.USER, Role.MODERATOR, Role.ADMIN)
THRESHOLD_KEYS = (WARN_THRESHOLD_KEY, MUTE_THRESHOLD_KEY, BAN_THRESHOLD_KEY)
SETTABLE_KEYS = THRESHOLD_KEYS + (REPORTING_ENABLED_KEY,)
_CLIENT_TYPE_RE = re.compile(r"^[a-z0-9_]{1,32}$")


@dataclass(frozen=True)
class Command:
    name: ClassVar[str] = ""
    min_role: ClassVar[Role] = Role.MODERATOR
    mutating: ClassVar[bool] = True


# --- User state commands ---


@dataclass(frozen=True)
class Warn(Command):
    name: ClassVar[str] = "warn"
    user_id: str
    reason: str = DEFAULT_REASON
    client_types: tuple[str, ...] | None = None


@dataclass(frozen=True)
class Unwarn(Command):
    name: ClassVar[str] = "unwarn"
    user_id: str
    reason: str = DEFAULT_REASON
    client_types: tuple[str, ...] | None = None


@dataclass(frozen=True)
class Mute(Command):
    name: ClassVar[str] = "mute"
    user_id: str
    duration: timedelta = timedelta(hours=DEFAULT_MUTE_HOURS)
    reason: str = DEFAULT_REASON
    client_types: tuple[str, ...] | None = None


@dataclass(frozen=True)
class Unmute(Command):
    name: ClassVar[str] = "unmute"
    user_id: str
    reason: str = DEFAULT_REASON
    client_types: tuple[str, ...] | None = None


@dataclass(frozen=True)
class Ban(Command):
    name: ClassVar[str] = "ban"
    min_role: ClassVar[Role] = Role.ADMIN
    user_id: str
    reason: str = DEFAULT_REASON
    shadow: bool = False
    client_types: tuple[str, ...] | None = None


@dataclass(frozen=True)
class Unban(Command):
    name: ClassVar[str] = "unban"
    min_role: ClassVar[Role] = Role.ADMIN
    user_id: str
    reason: str = DEFAULT_REASON
    client_types: tuple[str, ...] | None = None


@dataclass(frozen=True)
class Shadowban(Command):
    name: ClassVar[str] = "shadowban"
    min_role: ClassVar[Role] = Role.ADMIN
    user_id: str
    reason: str = DEFAULT_REASON
    client_types: tuple[str, ...] | None = None


@dataclass(frozen=True)
class Unshadowban(Command):
    name: ClassVar[str] = "unshadowban"
    min_role: ClassVar[Role] = Role.ADMIN
    user_id: str
    reason: str = DEFAULT_REASON
    client_types: tuple[str, ...] | None = None


@dataclass(frozen=True)
class Promote(Command):
    name: ClassVar[str] = "promote"
    min_role: ClassVar[Role] = Role.SUPER_ADMIN
    user_id: str
    role: Role


@dataclass(frozen=True)
class Demote(Command):
    name: ClassVar[str] = "demote"
    min_role: ClassVar[Role] = Role.SUPER_ADMIN
    user_id: str
    role: Role


# --- Content commands ---


@dataclass(frozen=True)
class Pin(Command):
    name: ClassVar[str] = "pin"
    comment_id: int


@dataclass(frozen=True)
class Unpin(Command):
    name: ClassVar[str] = "unpin"
    comment_id: int


@dataclass(frozen=True)
class Lock(Command):
    name: ClassVar[str] = "lock"
    comment_id: int


@dataclass(frozen=True)
class Unlock(Command):
    name: ClassVar[str] = "unlock"
    comment_id: int


@dataclass(frozen=True)
class Delete(Command):
    name: ClassVar[str] = "delete"
    comment_id: int
    reason: str = DEFAULT_REASON


# --- Reports ---


@dataclass(frozen=True)
class Report(Command):
    name: ClassVar[str] = "report"
    min_role: ClassVar[Role] = Role.USER
    comment_id: int
    reason: str
    notes: str = ""


@dataclass(frozen=True)
class Resolve(Command):
    name: ClassVar[str] = "resolve"
    comment_id: int
    reporter_id: str
    resolution: str = "resolved"
    notes: str = ""


# --- Registration ---


@dataclass(frozen=True)
class Register(Command):
    name: ClassVar[str] = "register"
    client_type: str
    user_id: str
    username: str | None = None


@dataclass(frozen=True)
class Track(Command):
    name: ClassVar[str] = "track"
    comment_id: int
    client_type: str
    author_id: str
    content: str = ""


# --- Read-only queries ---


@dataclass(frozen=True)
class Queue(Command):
    name: ClassVar[str] = "queue"
    mutating: ClassVar[bool] = False
    limit: int = QUEUE_DEFAULT_LIMIT


@dataclass(frozen=True)
class Status(Command):
    name: ClassVar[str] = "status"
    mutating: ClassVar[bool] = False
    user_id: str


@dataclass(frozen=True)
class Roles(Command):
    name: ClassVar[str] = "roles"
    min_role: ClassVar[Role] = Role.ADMIN
    mutating: ClassVar[bool] = False


@dataclass(frozen=True)
class Log(Command):
    name: ClassVar[str] = "log"
    min_role: ClassVar[Role] = Role.ADMIN
    mutating: ClassVar[bool] = False
    limit: int = 20
    target: str | None = None


@dataclass(frozen=True)
class Comment(Command):
    name: ClassVar[str] = "comment"
    mutating: ClassVar[bool] = False
    comment_id: int


@dataclass(frozen=True)
class Stats(Command):
    name: ClassVar[str] = "stats"
    mutating: ClassVar[bool] = False


@dataclass(frozen=True)
class Config(Command):
    name: ClassVar[str] = "config"
    min_role: ClassVar[Role] = Role.SUPER_ADMIN
    mutating: ClassVar[bool] = False


@dataclass(frozen=True)
class SetConfig(Command):
    name: ClassVar[str] = "set"
    min_role: ClassVar[Role] = Role.SUPER_ADMIN
    key: str
    value: str


COMMANDS: dict[str, type[Command]] = {
    cls.name: cls
    for cls in (
        Warn,
        Unwarn,
        Mute,
        Unmute,
        Ban,
        Unban,
        Shadowban,
        Unshadowban,
        Promote,
        Demote,
        Pin,
        Unpin,
        Lock,
        Unlock,
        Delete,
        Report,
        Resolve,
        Register,
        Track,
        Queue,
        Status,
        Roles,
        Log,
        Comment,
        Stats,
        Config,
        SetConfig,
    )
}

USER_STATE_COMMANDS = ("warn", "unwarn", "mute", "unmute", "ban", "unban", "shadowban", "unshadowban")


# --- Decoding ---


def _require(params: dict, key: str) -> str:
    value = params.get(key)
    if value is None or str(value).strip() == "":
        raise InvalidInput(f"Missing required parameter: {key}")
    return str(value).strip()


def _comment_id(params: dict) -> int:
    raw = _require(params, "comment_id")
    try:
        value = int(raw)
    except ValueError:
        raise InvalidInput(f"Invalid comment id '{raw}'") from None
    if value <= 0:
        raise InvalidInput(f"Invalid comment id '{raw}'")
    return value


def _reason(params: dict) -> str:
    return sanitize_text(params.get("reason")) or DEFAULT_REASON


def _limit(params: dict, default: int) -> int:
    raw = params.get("limit")
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise InvalidInput(f"Invalid limit '{raw}'") from None
    if value <= 0:
        raise InvalidInput("Limit must be positive")
    return min(value, QUEUE_MAX_LIMIT)


def _client_types(params: dict) -> tuple[str, ...] | None:
    raw = params.get("client_types")
    if not raw:
        return None
    if isinstance(raw, str):
        raw = raw.split(",")
    values = tuple(sorted({str(v).strip().lower() for v in raw if str(v).strip()}))
    return values or None


def _client_type(params: dict) -> str:
    raw = _require(params, "client_type").lower()
    if not _CLIENT_TYPE_RE.match(raw):
        raise InvalidInput(f"Invalid platform '{raw}'. Use letters, digits or _")
    return raw


def _config_value(key: str, raw: str) -> str:
    """Normalize a settable config value; thresholds are positive integers."""
    if key in THRESHOLD_KEYS:
        try:
            value = int(raw)
        except ValueError:
            raise InvalidInput(f"{key} must be a whole number") from None
        if value <= 0:
            raise InvalidInput(f"{key} must be positive")
        return str(value)
    normalized = raw.lower()
    if normalized in ("true", "on", "yes", "1"):
        return "true"
    if normalized in ("false", "off", "no", "0"):
        return "false"
    raise InvalidInput(f"{key} must be true or false")


def decode_command(name: str, params: dict) -> Command:
    """Build the typed command for ``name`` from keyword parameters.

    Raises InvalidInput for unknown names and missing or malformed values.
    """
    name = (name or "").strip().lower()
    if name not in COMMANDS:
        raise InvalidInput(f"Unknown command '{name}'")

    if name in USER_STATE_COMMANDS:
        user_id = _require(params, "user_id")
        client_types = _client_types(params)
        if name == "mute":
            duration_raw = params.get("duration")
            duration = timedelta(hours=DEFAULT_MUTE_HOURS)
            if duration_raw:
                if isinstance(duration_raw, timedelta):
                    duration = duration_raw
                else:
                    duration = parse_duration(str(duration_raw))
                    if duration is None:
                        raise InvalidInput(f"Invalid duration '{duration_raw}'. Use e.g. 12h, 3d, 1w")
            return Mute(user_id=user_id, duration=duration, reason=_reason(params), client_types=client_types)
        if name == "ban":
            return Ban(
                user_id=user_id, reason=_reason(params), shadow=bool(params.get("shadow")), client_types=client_types
            )
        return COMMANDS[name](user_id=user_id, reason=_reason(params), client_types=client_types)

    if name in ("promote", "demote"):
        user_id = _require(params, "user_id")
        role = parse_role(_require(params, "role"))
        allowed = PROMOTABLE_ROLES if name == "promote" else DEMOTABLE_ROLES
        if role not in allowed:
            raise InvalidInput(f"Cannot {name} to {role.value}. Allowed: {', '.join(r.value for r in allowed)}")
        return COMMANDS[name](user_id=user_id, role=role)

    if name in ("pin", "unpin", "lock", "unlock"):
        return COMMANDS[name](comment_id=_comment_id(params))
    if name == "delete":
        return Delete(comment_id=_comment_id(params), reason=_reason(params))

    if name == "report":
        return Report(
            comment_id=_comment_id(params),
            reason=_require(params, "reason").lower(),
            notes=sanitize_text(params.get("notes")) or "",
        )
    if name == "resolve":
        resolution = (params.get("resolution") or "resolved").strip().lower()
        if resolution not in ("resolved", "dismissed"):
            raise InvalidInput(f"Invalid resolution '{resolution}'. Use resolved or dismissed")
        return Resolve(
            comment_id=_comment_id(params),
            reporter_id=_require(params, "reporter_id"),
            resolution=resolution,
            notes=sanitize_text(params.get("notes")) or "",
        )

    if name == "register":
        username = sanitize_text(params.get("username")) or None
        return Register(client_type=_client_type(params), user_id=_require(params, "user_id"), username=username)
    if name == "track":
        return Track(
            comment_id=_comment_id(params),
            client_type=_client_type(params),
            author_id=_require(params, "author_id"),
            content=sanitize_text(params.get("content")) or "",
        )

    if name == "queue":
        return Queue(limit=_limit(params, QUEUE_DEFAULT_LIMIT))
    if name == "status":
        return Status(user_id=_require(params, "user_id"))
    if name == "roles":
        return Roles()
    if name == "comment":
        return Comment(comment_id=_comment_id(params))
    if name == "stats":
        return Stats()
    if name == "config":
        return Config()
    if name == "set":
        key = _require(params, "key").lower()
        if key not in SETTABLE_KEYS:
            raise InvalidInput(f"Cannot set '{key}'. Settable: {', '.join(SETTABLE_KEYS)}")
        return SetConfig(key=key, value=_config_value(key, _require(params, "value")))
    return Log(limit=_limit(params, 20), target=params.get("target") or None)


# Positional argument layout for chat commands; a trailing "*" swallows the rest.
ARG_SCHEMAS = {
    "warn": ("user_id", "reason*"),
    "unwarn": ("user_id", "reason*"),
    "mute": ("user_id", "duration", "reason*"),
    "unmute": ("user_id", "reason*"),
    "ban": ("user_id", "reason*"),
    "unban": ("user_id", "reason*"),
    "shadowban": ("user_id", "reason*"),
    "unshadowban": ("user_id", "reason*"),
    "promote": ("user_id", "role"),
    "demote": ("user_id", "role"),
    "pin": ("comment_id",),
    "unpin": ("comment_id",),
    "lock": ("comment_id",),
    "unlock": ("comment_id",),
    "delete": ("comment_id", "reason*"),
    "report": ("comment_id", "reason", "notes*"),
    "resolve": ("comment_id", "reporter_id", "resolution", "notes*"),
    "queue": ("limit",),
    "status": ("user_id",),
    "roles": (),
    "log": ("limit", "target"),
    "register": ("client_type", "user_id", "username"),
    "track": ("comment_id", "client_type", "author_id", "content*"),
    "comment": ("comment_id",),
    "stats": (),
    "config": (),
    "set": ("key", "value"),
}

PLATFORM_OPTION = "--only="


def parse_args(name: str, args: list[str]) -> dict:
    """Map chat arguments onto parameter names.

    ``--only=discord,slack`` restricts a user-state command to those platforms.
    For mute, a second argument that is not a duration starts the reason.
    """
    name = (name or "").strip().lower()
    if name not in ARG_SCHEMAS:
        raise InvalidInput(f"Unknown command '{name}'")

    params: dict = {}
    args = list(args)
    for arg in list(args):
        if arg.startswith(PLATFORM_OPTION):
            params["client_types"] = arg[len(PLATFORM_OPTION) :]
            args.remove(arg)

    schema = ARG_SCHEMAS[name]
    if name == "mute" and len(args) > 1 and parse_duration(args[1]) is None:
        schema = ("user_id", "reason*")

    for i, key in enumerate(schema):
        if key.endswith("*"):
            rest = " ".join(args[i:])
            if rest:
                params[key[:-1]] = rest
            break
        if i < len(args):
            params[key] = args[i]
    return params
