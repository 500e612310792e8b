"""Moderation schema, matching create_tables() in modbot/database.py.

Revision ID: 001
Revises: None
Create Date: 2026-10-17
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    sqlite = op.get_bind().dialect.name == "sqlite"
    ts = "TIMESTAMP" if sqlite else "TIMESTAMPTZ"
    serial = "INTEGER PRIMARY KEY AUTOINCREMENT" if sqlite else "BIGSERIAL PRIMARY KEY"

    op.execute(
        f"""CREATE TABLE IF NOT EXISTS platform_accounts (
            client_type TEXT NOT NULL,
            user_id TEXT NOT NULL,
            username TEXT,
            role TEXT NOT NULL DEFAULT 'user',
            warnings INTEGER NOT NULL DEFAULT 0 CHECK (warnings >= 0),
            last_warning_at {ts},
            last_warning_by TEXT,
            last_warning_reason TEXT,
            muted_until {ts},
            muted_by TEXT,
            muted_reason TEXT,
            banned INTEGER NOT NULL DEFAULT 0,
            banned_at {ts},
            banned_by TEXT,
            banned_reason TEXT,
            shadow_banned INTEGER NOT NULL DEFAULT 0,
            shadow_banned_at {ts},
            shadow_banned_by TEXT,
            shadow_banned_reason TEXT,
            created_at {ts} DEFAULT CURRENT_TIMESTAMP,
            PRIMARY KEY (client_type, user_id)
        )"""
    )

    op.execute(
        f"""CREATE TABLE IF NOT EXISTS comments (
            id BIGINT PRIMARY KEY,
            client_type TEXT NOT NULL,
            author_id TEXT NOT NULL,
            content TEXT,
            deleted INTEGER NOT NULL DEFAULT 0,
            deleted_at {ts},
            deleted_by TEXT,
            pinned INTEGER NOT NULL DEFAULT 0,
            pinned_at {ts},
            pinned_by TEXT,
            locked INTEGER NOT NULL DEFAULT 0,
            locked_at {ts},
            locked_by TEXT,
            report_count INTEGER NOT NULL DEFAULT 0,
            report_status TEXT NOT NULL DEFAULT 'none',
            last_reported_at {ts},
            created_at {ts} DEFAULT CURRENT_TIMESTAMP
        )"""
    )

    op.execute(
        f"""CREATE TABLE IF NOT EXISTS reports (
            id TEXT PRIMARY KEY,
            comment_id BIGINT NOT NULL REFERENCES comments(id),
            reporter_id TEXT NOT NULL,
            reason TEXT NOT NULL,
            notes TEXT,
            status TEXT NOT NULL DEFAULT 'pending',
            created_at {ts} NOT NULL,
            reviewed_by TEXT,
            reviewed_at {ts},
            review_notes TEXT
        )"""
    )

    op.execute(
        f"""CREATE TABLE IF NOT EXISTS config (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at {ts} DEFAULT CURRENT_TIMESTAMP
        )"""
    )

    op.execute(
        f"""CREATE TABLE IF NOT EXISTS moderation_actions (
            id {serial},
            action TEXT NOT NULL,
            actor_id TEXT NOT NULL,
            target TEXT,
            reason TEXT,
            detail TEXT,
            created_at {ts} NOT NULL
        )"""
    )

    op.execute("CREATE INDEX IF NOT EXISTS idx_accounts_user ON platform_accounts (user_id)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_reports_comment ON reports (comment_id)")
    op.execute(
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_reports_one_pending "
        "ON reports (comment_id, reporter_id) WHERE status = 'pending'"
    )
    op.execute("CREATE INDEX IF NOT EXISTS idx_comments_report_status ON comments (report_status)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_actions_time ON moderation_actions (created_at)")


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS idx_actions_time")
    op.execute("DROP INDEX IF EXISTS idx_comments_report_status")
    op.execute("DROP INDEX IF EXISTS idx_reports_one_pending")
    op.execute("DROP INDEX IF EXISTS idx_reports_comment")
    op.execute("DROP INDEX IF EXISTS idx_accounts_user")
    op.execute("DROP TABLE IF EXISTS moderation_actions")
    op.execute("DROP TABLE IF EXISTS config")
    op.execute("DROP TABLE IF EXISTS reports")
    op.execute("DROP TABLE IF EXISTS comments")
    op.execute("DROP TABLE IF EXISTS platform_accounts")
