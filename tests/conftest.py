"""Shared fixtures for Comment ModBot tests."""

import os
from datetime import datetime, timezone

import pytest
import pytest_asyncio

# Ensure tests never use a real bot token, production DB or configured owners
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "test-token-not-real")
os.environ.pop("DATABASE_URL", None)
os.environ.pop("DATABASE_PRIVATE_URL", None)
os.environ.pop("OWNER_USER_IDS", None)

from modbot.database import Database
from modbot.services.engine import ModerationEngine


@pytest_asyncio.fixture
async def db(tmp_path):
    """Provide a fresh SQLite database for each test."""
    db_path = str(tmp_path / "test_modbot.db")
    database = Database(f"sqlite:///{db_path}")
    await database.connect()
    await database.create_tables()
    yield database
    await database.close()


@pytest.fixture
def engine(db):
    """Engine without a notifier and with short store timeouts."""
    return ModerationEngine(db, store_timeout=2, notify_timeout=1, read_backoff=0)


@pytest.fixture
def add_user(db):
    """Register an identity on one or more platforms."""

    async def _add(user_id, platforms=("discord",)):
        for client_type in platforms:
            await db.ensure_account(client_type, str(user_id), f"user{user_id}")

    return _add


@pytest.fixture
def add_comment(db):
    async def _add(comment_id, author_id, client_type="discord", content="hello world"):
        await db.add_comment(
            {
                "id": comment_id,
                "client_type": client_type,
                "author_id": str(author_id),
                "content": content,
                "created_at": datetime(2026, 1, 1, tzinfo=timezone.utc),
            }
        )

    return _add
