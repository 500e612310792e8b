"""Logging setup for Comment ModBot.

LOG_FORMAT picks the handler output:
- "text" (default): one readable line per record, moderation context appended
- "json": one JSON object per line for log shipping

Moderation code passes its context as ``extra={"actor_id": ..., "target": ...,
"action": ...}``; both formats surface those fields when present.
"""

import json
import logging
import sys
from datetime import datetime, timezone

CONTEXT_FIELDS = ("actor_id", "action", "target")

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Loggers that are chatty at INFO and say nothing a moderator needs
QUIET_LOGGERS = ("httpx", "httpcore", "telegram.ext", "aiosqlite", "asyncpg")


def _context(record: logging.LogRecord) -> dict[str, object]:
    return {name: getattr(record, name) for name in CONTEXT_FIELDS if getattr(record, name, None) is not None}


class TextFormatter(logging.Formatter):
    """Plain lines; ``actor=42 action=ban target=7`` is appended when known."""

    def __init__(self):
        super().__init__(TEXT_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = _context(record)
        if not context:
            return line
        suffix = " ".join(f"{k}={v}" for k, v in context.items())
        head, sep, tail = line.partition("\n")
        return f"{head} [{suffix}]{sep}{tail}"


class JSONFormatter(logging.Formatter):
    """Single-line JSON records.

    {"timestamp":"2026-03-01T09:12:44.120391+00:00","level":"INFO","logger":"modbot.services.engine",
     "message":"ban applied to 7 by 42","actor_id":"42","action":"ban","target":"7"}
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        entry.update(_context(record))
        return json.dumps(entry, default=str)


def setup_logging(log_format: str = "text", level: int | str = logging.INFO) -> None:
    """Replace the root logger's handlers with one stdout handler.

    ``level`` may be a number or a name such as "DEBUG"; unknown names fall back to INFO.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger()
    for existing in root.handlers[:]:
        root.removeHandler(existing)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter() if log_format == "json" else TextFormatter())

    root.setLevel(level)
    root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
