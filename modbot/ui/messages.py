"""Message builders for Comment ModBot."""

from ..utils import as_utc

DIVIDER = "━" * 21

_ACTION_ICONS = {
    "warn": "⚠️",
    "unwarn": "↩️",
    "mute": "\U0001f507",
    "auto_mute": "\U0001f507",
    "unmute": "\U0001f50a",
    "ban": "\U0001f6ab",
    "auto_ban": "\U0001f6ab",
    "shadowban": "\U0001f47b",
    "unban": "✅",
    "unshadowban": "✅",
    "promote": "⬆️",
    "demote": "⬇️",
    "pin": "\U0001f4cc",
    "unpin": "\U0001f4cc",
    "lock": "\U0001f512",
    "unlock": "\U0001f513",
    "delete": "\U0001f5d1️",
    "report": "\U0001f6a9",
    "resolve": "✔️",
    "register": "\U0001f517",
    "track": "\U0001f4ac",
    "config": "⚙️",
}


def _time(value) -> str:
    if hasattr(value, "strftime"):
        return as_utc(value).strftime("%m/%d %H:%M")
    return str(value) if value else "?"


def format_audit_notice(record) -> str:
    """One notice for the moderation log chat."""
    icon = _ACTION_ICONS.get(record.action, "ℹ️")
    msg = f"{icon} {record.action.upper()} — {record.target or '-'}\n"
    msg += f"\U0001f6e1️ By: {record.actor}\n"
    if record.reason:
        msg += f"\U0001f4dd Reason: {record.reason}\n"
    if record.detail:
        msg += f"ℹ️ {record.detail}\n"
    msg += f"\U0001f550 {_time(record.timestamp)} UTC"
    return msg


def format_queue(entries) -> str:
    if not entries:
        return "\U0001f4cb Moderation Queue\n\nNo comments are awaiting review."
    msg = f"\U0001f4cb Moderation Queue ({len(entries)})\n{DIVIDER}\n\n"
    for entry in entries:
        comment = entry.comment
        content = (comment.get("content") or "").replace("\n", " ")
        msg += f"• Comment {comment['id']} ({comment['client_type']}) by {comment['author_id']}\n"
        if content:
            msg += f"  {content[:60]}\n"
        msg += f"  Reports: {comment['report_count']} — last {_time(comment.get('last_reported_at'))}\n"
        for report in entry.reports[:5]:
            line = f"    \U0001f6a9 {report['reason']} from {report['reporter_id']}"
            if report.get("notes"):
                line += f": {report['notes'][:40]}"
            msg += line + "\n"
        msg += "\n"
    msg += "Use /mod resolve <comment_id> <reporter_id> resolved|dismissed [notes]"
    return msg


def format_status(state, now) -> str:
    msg = f"\U0001f464 User {state.user_id}\n{DIVIDER}\n"
    msg += f"Role: {state.role.value}\n"
    msg += f"Platforms: {', '.join(state.client_types) or 'none'}\n"
    msg += f"Warnings: {state.warning_count}"
    if state.last_warning_at:
        msg += f" (last by {state.last_warning_by} on {_time(state.last_warning_at)})"
    msg += "\n"
    if state.muted(now):
        msg += f"\U0001f507 Muted until {_time(state.mute_until)} by {state.muted_by}: {state.muted_reason}\n"
    if state.banned:
        msg += f"\U0001f6ab Banned by {state.banned_by} on {_time(state.banned_at)}: {state.banned_reason}\n"
    if state.shadow_banned:
        msg += (
            f"\U0001f47b Shadow-banned by {state.shadow_banned_by} on {_time(state.shadow_banned_at)}: "
            f"{state.shadow_banned_reason}\n"
        )
    if not (state.muted(now) or state.banned or state.shadow_banned):
        msg += "No active restrictions.\n"
    return msg.rstrip("\n")


def format_roles(roles) -> str:
    msg = f"\U0001f6e1️ Roles\n{DIVIDER}\n"
    for role, members in roles.items():
        listed = ", ".join(sorted(members)) if members else "(none)"
        msg += f"{role.value}: {listed}\n"
    return msg.rstrip("\n")


def format_action_log(entries) -> str:
    if not entries:
        return "\U0001f4dc Moderation Log\n\nNo moderation actions recorded yet."
    msg = f"\U0001f4dc Moderation Log (last {len(entries)} entries)\n{DIVIDER}\n\n"
    for entry in entries:
        line = f"[{_time(entry.get('created_at'))}] {entry.get('action', 'unknown')}"
        if entry.get("target"):
            line += f" → {entry['target']}"
        if entry.get("reason"):
            line += f": {entry['reason']}"
        if entry.get("detail"):
            line += f" ({entry['detail']})"
        line += f" (by {entry.get('actor_id')})"
        msg += line + "\n"
    return msg.rstrip("\n")


def format_comment(data) -> str:
    comment, reports = data["comment"], data["reports"]
    msg = f"\U0001f4ac Comment {comment['id']} ({comment['client_type']})\n{DIVIDER}\n"
    msg += f"Author: {comment['author_id']}\n"
    if comment.get("content"):
        msg += f"{comment['content'][:200]}\n"
    flags = [flag for flag in ("deleted", "pinned", "locked") if comment.get(flag)]
    msg += f"Flags: {', '.join(flags) or 'none'}\n"
    if comment.get("deleted"):
        msg += f"Deleted by {comment['deleted_by']} on {_time(comment.get('deleted_at'))}\n"
    msg += f"Reports: {comment['report_count']} (status: {comment['report_status']})\n"
    for report in reports[:10]:
        line = f"  \U0001f6a9 {report['reason']} from {report['reporter_id']} [{report['status']}]"
        if report.get("reviewed_by"):
            line += f" by {report['reviewed_by']}"
        msg += line + "\n"
    return msg.rstrip("\n")


def format_stats(stats) -> str:
    comments, reports, identities = stats["comments"], stats["reports"], stats["identities"]
    msg = f"\U0001f4ca Moderation Statistics\n{DIVIDER}\n"
    msg += f"\U0001f4ac Comments: {comments['total']} ({comments['deleted']} deleted)\n"
    msg += f"\U0001f6a9 Reports: {reports['total']} ({reports['pending']} pending)\n"
    msg += f"\U0001f4cb Awaiting review: {comments['awaiting_review']}\n\n"
    msg += f"\U0001f465 Users: {identities['total']}\n"
    msg += f"  Banned: {identities['banned']}  Shadow-banned: {identities['shadow_banned']}  "
    msg += f"Muted: {identities['muted']}\n"
    if stats["platforms"]:
        msg += "  " + ", ".join(f"{name}: {count}" for name, count in stats["platforms"].items()) + "\n"
    if stats.get("roles"):
        msg += "\n" + "\n".join(f"\U0001f6e1️ {role}: {count}" for role, count in stats["roles"].items())
    return msg.rstrip("\n")


def format_config(data) -> str:
    thresholds = data["thresholds"]
    msg = f"⚙️ Configuration\n{DIVIDER}\n"
    msg += f"Warn threshold: {thresholds.warn}\n"
    msg += f"Mute threshold: {thresholds.mute}\n"
    msg += f"Ban threshold: {thresholds.ban}\n"
    msg += f"Reporting: {'enabled' if data['reporting_enabled'] else 'disabled'}\n\n"
    msg += format_roles(data["roles"])
    return msg


_DATA_FORMATTERS = {
    "queue": format_queue,
    "log": format_action_log,
    "roles": format_roles,
    "comment": format_comment,
    "stats": format_stats,
    "config": format_config,
}


def format_outcome(outcome, command_name: str | None = None, now=None) -> str:
    """Reply text for a command result."""
    if not outcome.success:
        msg = f"❌ {outcome.message}"
        if outcome.applied_to:
            msg += f"\n\nApplied on: {', '.join(outcome.applied_to)}"
        return msg

    if command_name == "status":
        return format_status(outcome.data, now)
    if command_name in _DATA_FORMATTERS:
        return _DATA_FORMATTERS[command_name](outcome.data)

    msg = f"✅ {outcome.message}"
    if outcome.applied_to and len(outcome.applied_to) > 1:
        msg += f"\nPlatforms: {', '.join(outcome.applied_to)}"
    if outcome.advisory:
        msg += f"\n\n\U0001f4a1 {outcome.advisory}"
    return msg
