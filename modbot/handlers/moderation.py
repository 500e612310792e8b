"""Moderation command handlers for Comment ModBot."""

import logging

from telegram import Update
from telegram.ext import ContextTypes

from ..services.commands import decode_command, parse_args
from ..services.engine import get_engine
from ..services.errors import InvalidInput
from ..services.roles import Role, rank
from ..ui.keyboards import build_report_keyboard, build_user_keyboard, parse_callback_data
from ..ui.messages import format_outcome

logger = logging.getLogger(__name__)


async def _actor_role(user_id) -> Role:
    return await get_engine().roles.role_of(str(user_id))


def staff_only(func):
    """Decorator that restricts a handler to moderators and above.

    Regular users get the generic "Unknown command" reply so the moderation
    commands stay hidden. The wrapped handler receives the actor's role.
    """

    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE):
        role = await _actor_role(update.effective_user.id)
        if rank(role) < rank(Role.MODERATOR):
            await update.message.reply_text("Unknown command. Use /help to see available commands.")
            return
        return await func(update, context, role)

    return wrapper


MOD_COMMANDS_HELP = {
    "warn <user_id> [reason]": "Warn a user (auto-mute/ban at the configured thresholds)",
    "unwarn <user_id> [reason]": "Remove one warning",
    "mute <user_id> [12h|3d|1w] [reason]": "Mute a user (default 24h)",
    "unmute <user_id> [reason]": "Lift a mute",
    "ban <user_id> [reason]": "Ban a user (admin)",
    "unban <user_id> [reason]": "Lift a ban or shadow-ban and any mute (admin)",
    "shadowban <user_id> [reason]": "Hide a user's comments from everyone else (admin)",
    "unshadowban <user_id> [reason]": "Lift a shadow-ban (admin)",
    "promote <user_id> <role>": "Raise a user to moderator, admin or super_admin (super_admin)",
    "demote <user_id> <role>": "Lower a user to admin, moderator or user (super_admin)",
    "pin <comment_id>": "Pin a comment",
    "unpin <comment_id>": "Unpin a comment",
    "lock <comment_id>": "Lock a comment's thread",
    "unlock <comment_id>": "Unlock a comment's thread",
    "delete <comment_id> [reason]": "Soft-delete a comment",
    "resolve <comment_id> <reporter_id> <resolved|dismissed> [notes]": "Review a report",
    "register <platform> <user_id> [username]": "Link a platform account to a user (also /register)",
    "track <comment_id> <platform> <author_id> [text]": "Start moderating a comment from a platform",
    "comment <comment_id>": "Show a comment with its reports",
    "queue [count]": "Show comments awaiting review (default: 20)",
    "status <user_id>": "Show a user's role, warnings and restrictions",
    "roles": "List role assignments (admin)",
    "log [count] [target]": "View recent moderation actions (admin)",
    "stats": "Comment, report and user counts",
    "config": "Show thresholds, reporting switch and roles (super_admin)",
    "set <key> <value>": "Change a threshold or reporting_enabled (super_admin)",
    "help [command]": "Show this help or help for one command",
}

MOD_COMMANDS_DETAILED = {
    "warn": (
        "/mod warn <user_id> [reason]\n\n"
        "Adds one warning on every platform the user is registered on.\n"
        "• At the mute threshold (default 5) the user is muted for 24h\n"
        "• At the ban threshold (default 10) the user is banned\n"
        "Add --only=<platform,...> to target specific platforms."
    ),
    "mute": (
        "/mod mute <user_id> [duration] [reason]\n\n"
        "Duration is a number followed by h, d or w (e.g. 12h, 3d, 1w).\n"
        "Without a duration the mute lasts 24 hours."
    ),
    "ban": (
        "/mod ban <user_id> [reason]\n\n"
        "Bans the user on every platform. A ban replaces any shadow-ban.\n"
        "Requires the admin role."
    ),
    "shadowban": (
        "/mod shadowban <user_id> [reason]\n\n"
        "The user can keep posting but nobody else sees their comments.\n"
        "A shadow-ban replaces any regular ban. Requires the admin role."
    ),
    "promote": (
        "/mod promote <user_id> <moderator|admin|super_admin>\n\n"
        "You can only grant roles below your own. Requires super_admin."
    ),
    "demote": (
        "/mod demote <user_id> <user|moderator|admin>\n\n"
        "The target must currently hold a higher role. Requires super_admin."
    ),
    "resolve": (
        "/mod resolve <comment_id> <reporter_id> <resolved|dismissed> [notes]\n\n"
        "Reviews that reporter's pending report. The comment leaves the queue\n"
        "once none of its reports are pending."
    ),
    "queue": (
        "/mod queue [count]\n\n"
        "Lists reported comments, most reports first, then most recently reported."
    ),
    "register": (
        "/mod register <platform> <user_id> [username]\n\n"
        "Links a platform account to a user. The new account immediately takes\n"
        "the user's current warnings, mute and ban."
    ),
    "set": (
        "/mod set <key> <value>\n\n"
        "Keys: auto_warn_threshold, auto_mute_threshold, auto_ban_threshold (positive\n"
        "numbers) and reporting_enabled (true/false). Requires super_admin."
    ),
}

# First word of each help entry → its usage line
_USAGE = {key.split()[0]: f"/mod {key}" for key in MOD_COMMANDS_HELP}
_USAGE["report"] = "/report <comment_id> <reason> [notes]"


@staff_only
async def mod_command(update: Update, context: ContextTypes.DEFAULT_TYPE, actor_role: Role):
    """Route /mod subcommands to the moderation engine."""
    parts = (update.message.text or "").split()

    if len(parts) < 2:
        return await _mod_help(update, None)

    subcommand = parts[1].lower()
    args = parts[2:]
    if subcommand == "help":
        return await _mod_help(update, args[0].lower() if args else None)
    if subcommand == "report":
        return await update.message.reply_text("Use /report <comment_id> <reason> [notes] to report a comment.")

    await _run_command(update.effective_user.id, actor_role, subcommand, args, update.message.reply_text)


@staff_only
async def register_command(update: Update, context: ContextTypes.DEFAULT_TYPE, actor_role: Role):
    """Handle /register <platform> <user_id> [username]."""
    args = (update.message.text or "").split()[1:]
    if not args:
        return await update.message.reply_text(f"Usage: {_USAGE['register']}")
    await _run_command(update.effective_user.id, actor_role, "register", args, update.message.reply_text)


async def report_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /report <comment_id> <reason> [notes]; open to every user."""
    args = (update.message.text or "").split()[1:]
    if not args:
        return await update.message.reply_text(
            f"Usage: {_USAGE['report']}\n\n"
            "Reasons: spam, offensive, harassment, spoiler, nsfw, off_topic, other"
        )
    role = await _actor_role(update.effective_user.id)
    await _run_command(update.effective_user.id, role, "report", args, update.message.reply_text)


async def handle_mod_callback(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle inline buttons with callback data mod:<command>:<arg>[:<arg>]."""
    query = update.callback_query
    await query.answer()

    parsed = parse_callback_data(query.data)
    if parsed is None:
        return
    name, args = parsed

    role = await _actor_role(query.from_user.id)
    if rank(role) < rank(Role.MODERATOR):
        await query.message.reply_text("You are not allowed to use moderation buttons.")
        return

    await _run_command(query.from_user.id, role, name, args, query.message.reply_text)


async def _run_command(actor_id, actor_role: Role, name: str, args: list[str], reply):
    """Decode, execute and reply. Decoding errors get the command's usage line."""
    engine = get_engine()
    try:
        command = decode_command(name, parse_args(name, args))
    except InvalidInput as e:
        usage = _USAGE.get(name)
        text = f"❌ {e.message}"
        if usage:
            text += f"\n\nUsage: {usage}"
        else:
            text += "\n\nUse /mod to see available commands."
        await reply(text)
        return

    outcome = await engine.execute(actor_id, actor_role, command)
    markup = None
    if outcome.success and name == "status":
        markup = build_user_keyboard(command.user_id)
    elif outcome.success and name == "comment" and not outcome.data["comment"]["deleted"]:
        markup = build_report_keyboard(command.comment_id, outcome.data["comment"]["author_id"])
    await reply(format_outcome(outcome, name, engine.clock()), reply_markup=markup)


async def _mod_help(update: Update, command: str | None):
    """Handle /mod or /mod help [command]."""
    if command:
        detail = MOD_COMMANDS_DETAILED.get(command) or _USAGE.get(command)
        if detail:
            await update.message.reply_text(f"\U0001f4d6 Moderation Command Help\n\n{detail}")
        else:
            await update.message.reply_text(f"No help available for '{command}'.\n\nUse /mod to see all commands.")
        return

    msg = "\U0001f6e1️ Moderation Commands\n\n"
    for cmd, desc in MOD_COMMANDS_HELP.items():
        msg += f"/mod {cmd}\n  — {desc}\n\n"
    await update.message.reply_text(msg)
