"""Keyboard builders for Comment ModBot.

Callback data format: ``mod:<command>:<arg>[:<arg>]``.
"""

from telegram import InlineKeyboardButton, InlineKeyboardMarkup

CALLBACK_PREFIX = "mod"


def callback_data(command: str, *args) -> str:
    return ":".join([CALLBACK_PREFIX, command, *(str(a) for a in args)])


def parse_callback_data(data: str) -> tuple[str, list[str]] | None:
    """Split callback data into (command, args). None if it is not ours."""
    parts = (data or "").split(":")
    if len(parts) < 2 or parts[0] != CALLBACK_PREFIX or not parts[1]:
        return None
    return parts[1], parts[2:]


def build_report_keyboard(comment_id, author_id):
    """Buttons attached to a new-report notice."""
    return InlineKeyboardMarkup(
        [
            [
                InlineKeyboardButton("\U0001f5d1️ Delete", callback_data=callback_data("delete", comment_id)),
                InlineKeyboardButton("\U0001f512 Lock", callback_data=callback_data("lock", comment_id)),
            ],
            [
                InlineKeyboardButton("⚠️ Warn author", callback_data=callback_data("warn", author_id)),
                InlineKeyboardButton("\U0001f507 Mute 24h", callback_data=callback_data("mute", author_id, "24h")),
            ],
        ]
    )


def build_user_keyboard(user_id):
    """Quick actions under a /mod status reply."""
    return InlineKeyboardMarkup(
        [
            [
                InlineKeyboardButton("⚠️ Warn", callback_data=callback_data("warn", user_id)),
                InlineKeyboardButton("\U0001f507 Mute 24h", callback_data=callback_data("mute", user_id, "24h")),
            ],
            [
                InlineKeyboardButton("\U0001f6ab Ban", callback_data=callback_data("ban", user_id)),
                InlineKeyboardButton("✅ Unban", callback_data=callback_data("unban", user_id)),
            ],
        ]
    )
