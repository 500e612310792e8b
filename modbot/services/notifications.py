"""Moderation notices posted to the watcher chat."""

import logging

from telegram.error import Forbidden

from ..ui.keyboards import build_report_keyboard
from ..ui.messages import format_audit_notice

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """Posts one notice per successful moderation action to ``chat_id``.

    New reports get action buttons so moderators can act from the notice.
    """

    def __init__(self, bot, db, chat_id: int | None):
        self.bot = bot
        self.db = db
        self.chat_id = chat_id

    async def _report_keyboard(self, target: str | None):
        if not target or not target.startswith("comment:"):
            return None
        comment_id = int(target.split(":", 1)[1])
        comment = await self.db.get_comment(comment_id)
        if comment is None:
            return None
        return build_report_keyboard(comment_id, comment["author_id"])

    async def notify(self, record) -> None:
        if self.chat_id is None:
            return
        keyboard = await self._report_keyboard(record.target) if record.action == "report" else None
        try:
            await self.bot.send_message(chat_id=self.chat_id, text=format_audit_notice(record), reply_markup=keyboard)
        except Forbidden:
            logger.warning("Bot cannot post to moderation chat %s; check its membership", self.chat_id)
