import os

from dotenv import load_dotenv

load_dotenv()

TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN")
# Prefer the private network URL when the platform provides one.
DATABASE_URL = os.getenv("DATABASE_PRIVATE_URL") or os.getenv("DATABASE_URL")

# --- Runtime ---

# Webhook mode: set WEBHOOK_URL to enable (e.g. "https://modbot.example.com")
WEBHOOK_URL = os.getenv("WEBHOOK_URL")
PORT = int(os.getenv("PORT", "8443"))

# Structured logging: "text" (human-readable, default) or "json" (for log aggregation)
LOG_FORMAT = os.getenv("LOG_FORMAT", "text")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Sentry error tracking: set DSN to enable
SENTRY_DSN = os.getenv("SENTRY_DSN")

# --- Moderation ---

# Owners are granted out of band and can never be demoted by the bot.
OWNER_USER_IDS: set[str] = set()
_owner_ids_raw = os.getenv("OWNER_USER_IDS", "")
if _owner_ids_raw.strip():
    for _id in _owner_ids_raw.split(","):
        _id = _id.strip()
        if _id:
            OWNER_USER_IDS.add(_id)

# Chat that receives moderation notices (audit feed). Unset disables notices.
_mod_log_chat_raw = os.getenv("MOD_LOG_CHAT_ID", "").strip()
MOD_LOG_CHAT_ID = int(_mod_log_chat_raw) if _mod_log_chat_raw.lstrip("-").isdigit() else None

# Bounded waits on the store and the notification sink (seconds)
STORE_TIMEOUT_SECONDS = float(os.getenv("STORE_TIMEOUT_SECONDS", "5"))
NOTIFY_TIMEOUT_SECONDS = float(os.getenv("NOTIFY_TIMEOUT_SECONDS", "5"))
READ_RETRY_BACKOFF_SECONDS = float(os.getenv("READ_RETRY_BACKOFF_SECONDS", "0.25"))

# How long cached config values (not roles or thresholds) may be served
CONFIG_CACHE_TTL_SECONDS = int(os.getenv("CONFIG_CACHE_TTL_SECONDS", "60"))

# Escalation defaults, used when the config table has no value
DEFAULT_WARN_THRESHOLD = 3
DEFAULT_MUTE_THRESHOLD = 5
DEFAULT_BAN_THRESHOLD = 10
DEFAULT_MUTE_HOURS = int(os.getenv("DEFAULT_MUTE_HOURS", "24"))

QUEUE_DEFAULT_LIMIT = 20
QUEUE_MAX_LIMIT = 100

BOT_VERSION = "2.0.0"
