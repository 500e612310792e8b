"""Comment ModBot application wiring and entrypoint."""

import contextlib
import logging

from telegram import Update
from telegram.ext import Application, CallbackQueryHandler, CommandHandler

from config import (
    BOT_VERSION,
    DATABASE_URL,
    LOG_FORMAT,
    LOG_LEVEL,
    MOD_LOG_CHAT_ID,
    PORT,
    SENTRY_DSN,
    TELEGRAM_BOT_TOKEN,
    WEBHOOK_URL,
)

from .database import close_db, init_db
from .handlers.moderation import handle_mod_callback, mod_command, register_command, report_command
from .logging_config import setup_logging
from .services.engine import init_engine
from .services.notifications import TelegramNotifier
from .ui.keyboards import CALLBACK_PREFIX

# Set up structured logging (must happen before any logger usage)
setup_logging(log_format=LOG_FORMAT, level=LOG_LEVEL)
logger = logging.getLogger(__name__)


async def error_handler(update: object, context):
    """Global error handler: logs the full traceback and notifies the user."""
    logger.error("Unhandled exception:", exc_info=context.error)
    if update and isinstance(update, Update) and update.effective_chat:
        with contextlib.suppress(Exception):
            await context.bot.send_message(
                chat_id=update.effective_chat.id,
                text="Sorry, something went wrong. Please try again later.",
            )


async def post_init(application):
    """Initialize the database and the moderation engine after startup."""
    db = await init_db(DATABASE_URL)
    if MOD_LOG_CHAT_ID is None:
        logger.info("MOD_LOG_CHAT_ID not set; moderation notices are disabled")
    init_engine(db, notifier=TelegramNotifier(application.bot, db, MOD_LOG_CHAT_ID))


async def post_shutdown(application):
    await close_db()


def _init_sentry() -> None:
    """Initialize Sentry error tracking if SENTRY_DSN is configured."""
    if not SENTRY_DSN:
        return
    try:
        import sentry_sdk

        sentry_sdk.init(
            dsn=SENTRY_DSN,
            release=f"comment-modbot@{BOT_VERSION}",
            traces_sample_rate=0.1,
            environment="production" if WEBHOOK_URL else "development",
        )
        logger.info("Sentry error tracking initialized")
    except ImportError:
        logger.warning("SENTRY_DSN is set but sentry-sdk is not installed; skipping Sentry init")


def main():
    """Start the bot."""
    if not TELEGRAM_BOT_TOKEN:
        logger.error("TELEGRAM_BOT_TOKEN not set! Create a .env file with: TELEGRAM_BOT_TOKEN=your_token_here")
        return

    _init_sentry()

    app = Application.builder().token(TELEGRAM_BOT_TOKEN).post_init(post_init).post_shutdown(post_shutdown).build()

    app.add_handler(CommandHandler("mod", mod_command))
    app.add_handler(CommandHandler("report", report_command))
    app.add_handler(CommandHandler("register", register_command))
    app.add_handler(CallbackQueryHandler(handle_mod_callback, pattern=f"^{CALLBACK_PREFIX}:"))

    app.add_error_handler(error_handler)

    if WEBHOOK_URL:
        logger.info("Comment ModBot v%s starting in webhook mode on port %d", BOT_VERSION, PORT)
        app.run_webhook(
            listen="0.0.0.0",
            port=PORT,
            url_path=f"webhook/{TELEGRAM_BOT_TOKEN}",
            webhook_url=f"{WEBHOOK_URL}/webhook/{TELEGRAM_BOT_TOKEN}",
            allowed_updates=Update.ALL_TYPES,
        )
    else:
        logger.info("Comment ModBot v%s starting in polling mode", BOT_VERSION)
        app.run_polling(allowed_updates=Update.ALL_TYPES)


if __name__ == "__main__":
    main()
