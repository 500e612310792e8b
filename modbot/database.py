"""Database abstraction for Comment ModBot.

Supports SQLite (dev) via aiosqlite and PostgreSQL (prod) via asyncpg.
Selected automatically based on DATABASE_URL scheme.

Counters are only ever changed with in-statement arithmetic or
compare-and-swap WHERE clauses so that concurrent commands never lose updates.
"""

import asyncio
import contextlib
import json
import logging
import sqlite3
from datetime import datetime
from typing import Optional

logger = logging.getLogger(__name__)

_db: Optional["Database"] = None


def get_db() -> "Database":
    """Return the global Database singleton."""
    if _db is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _db


async def init_db(database_url: str | None = None) -> "Database":
    """Initialize the database connection and create tables."""
    global _db
    db = Database(database_url)
    await db.connect()
    await db.create_tables()
    _db = db
    logger.info("Database initialized (%s driver)", db.driver)
    return db


async def close_db():
    """Close the database connection."""
    global _db
    if _db is not None:
        await _db.close()
        _db = None
        logger.info("Database connection closed")


def _row_count(status) -> int:
    """Row count from an aiosqlite cursor or an asyncpg status string ("UPDATE 3")."""
    if isinstance(status, str):
        try:
            return int(status.split()[-1])
        except (ValueError, IndexError):
            return 0
    return status.rowcount


def _to_db(value):
    # Flags are stored as INTEGER on both drivers
    if isinstance(value, bool):
        return int(value)
    return value


class _Tx:
    """Driver-neutral view of a connection inside a transaction."""

    def __init__(self, driver: str, conn):
        self.driver = driver
        self.conn = conn

    async def execute(self, sql: str, params: tuple = ()) -> int:
        if self.driver == "sqlite":
            cursor = await self.conn.execute(sql, params)
            return cursor.rowcount
        return _row_count(await self.conn.execute(sql, *params))

    async def fetchone(self, sql: str, params: tuple = ()) -> dict | None:
        if self.driver == "sqlite":
            cursor = await self.conn.execute(sql, params)
            row = await cursor.fetchone()
        else:
            row = await self.conn.fetchrow(sql, *params)
        return dict(row) if row else None


class Database:
    """Dual-driver database abstraction (SQLite / PostgreSQL)."""

    def __init__(self, database_url: str | None = None):
        self.database_url = database_url
        self.driver: str = "sqlite"
        self._conn = None  # aiosqlite connection
        self._pool = None  # asyncpg pool
        # aiosqlite shares one connection; writes and transactions must not interleave
        self._lock = asyncio.Lock()

        if database_url and database_url.startswith(("postgresql://", "postgres://")):
            self.driver = "postgresql"

    def _ph(self, n: int) -> str:
        """Return the nth placeholder: '?' for SQLite, '$n' for PostgreSQL."""
        return "?" if self.driver == "sqlite" else f"${n}"

    # --- Connection management ---

    async def connect(self):
        """Open the database connection."""
        if self.driver == "sqlite":
            import aiosqlite

            db_path = "modbot.db"
            if self.database_url:
                if self.database_url.startswith("sqlite:///"):
                    db_path = self.database_url[len("sqlite:///") :]
                else:
                    db_path = self.database_url
            sqlite3.register_adapter(datetime, lambda d: d.isoformat())
            sqlite3.register_converter("TIMESTAMP", lambda b: datetime.fromisoformat(b.decode()))
            self._conn = await aiosqlite.connect(db_path, detect_types=sqlite3.PARSE_DECLTYPES)
            self._conn.row_factory = aiosqlite.Row
            await self._conn.execute("PRAGMA journal_mode=WAL")
            await self._conn.execute("PRAGMA foreign_keys=ON")
            await self._conn.commit()
        else:
            import asyncpg

            self._pool = await asyncpg.create_pool(self.database_url, min_size=2, max_size=10, command_timeout=10)

    async def close(self):
        """Close the database connection."""
        if self.driver == "sqlite" and self._conn:
            await self._conn.close()
        elif self.driver == "postgresql" and self._pool:
            await self._pool.close()

    # --- Internal query helpers ---

    async def _execute(self, sql: str, params: tuple = ()) -> int:
        """Execute a write query (INSERT/UPDATE/DELETE) and return the affected row count."""
        if self.driver == "sqlite":
            async with self._lock:
                cursor = await self._conn.execute(sql, params)
                await self._conn.commit()
                return cursor.rowcount
        else:
            async with self._pool.acquire() as conn:
                return _row_count(await conn.execute(sql, *params))

    async def _fetchone(self, sql: str, params: tuple = ()) -> dict | None:
        """Execute a query and return a single row as dict, or None."""
        if self.driver == "sqlite":
            cursor = await self._conn.execute(sql, params)
            row = await cursor.fetchone()
            return dict(row) if row else None
        else:
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow(sql, *params)
                return dict(row) if row else None

    async def _fetchall(self, sql: str, params: tuple = ()) -> list[dict]:
        """Execute a query and return all rows as list of dicts."""
        if self.driver == "sqlite":
            cursor = await self._conn.execute(sql, params)
            rows = await cursor.fetchall()
            return [dict(r) for r in rows]
        else:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(sql, *params)
                return [dict(r) for r in rows]

    @contextlib.asynccontextmanager
    async def _transaction(self):
        """Run a block of statements atomically; rolls back on any exception."""
        if self.driver == "sqlite":
            async with self._lock:
                try:
                    yield _Tx("sqlite", self._conn)
                except BaseException:
                    await self._conn.rollback()
                    raise
                await self._conn.commit()
        else:
            async with self._pool.acquire() as conn, conn.transaction():
                yield _Tx("postgresql", conn)

    # --- Table creation ---

    async def create_tables(self):
        """Create all tables and indexes if they don't exist."""
        ts = "TIMESTAMP" if self.driver == "sqlite" else "TIMESTAMPTZ"
        serial = "INTEGER PRIMARY KEY AUTOINCREMENT" if self.driver == "sqlite" else "BIGSERIAL PRIMARY KEY"
        statements = [
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
            )""",
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
            )""",
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
            )""",
            f"""CREATE TABLE IF NOT EXISTS config (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at {ts} DEFAULT CURRENT_TIMESTAMP
            )""",
            f"""CREATE TABLE IF NOT EXISTS moderation_actions (
                id {serial},
                action TEXT NOT NULL,
                actor_id TEXT NOT NULL,
                target TEXT,
                reason TEXT,
                detail TEXT,
                created_at {ts} NOT NULL
            )""",
            "CREATE INDEX IF NOT EXISTS idx_accounts_user ON platform_accounts (user_id)",
            "CREATE INDEX IF NOT EXISTS idx_reports_comment ON reports (comment_id)",
            # One open report per reporter per comment; reviewed ones may repeat
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_reports_one_pending "
            "ON reports (comment_id, reporter_id) WHERE status = 'pending'",
            "CREATE INDEX IF NOT EXISTS idx_comments_report_status ON comments (report_status)",
            "CREATE INDEX IF NOT EXISTS idx_actions_time ON moderation_actions (created_at)",
        ]
        for stmt in statements:
            await self._execute(stmt)

    # --- Platform accounts ---

    async def ensure_account(
        self, client_type: str, user_id: str, username: str | None = None, role: str = "user"
    ) -> bool:
        """Create a platform account if it does not exist, refresh its username otherwise.

        ``role`` is only written on creation. Returns True when the account is new.
        """
        async with self._transaction() as tx:
            if self.driver == "sqlite":
                existing = await tx.fetchone(
                    "SELECT 1 FROM platform_accounts WHERE client_type = ? AND user_id = ?", (client_type, user_id)
                )
                if existing:
                    if username:
                        await tx.execute(
                            "UPDATE platform_accounts SET username = ? WHERE client_type = ? AND user_id = ?",
                            (username, client_type, user_id),
                        )
                    return False
                await tx.execute(
                    "INSERT INTO platform_accounts (client_type, user_id, username, role) VALUES (?, ?, ?, ?)",
                    (client_type, user_id, username, role),
                )
                return True
            row = await tx.fetchone(
                "INSERT INTO platform_accounts (client_type, user_id, username, role) VALUES ($1, $2, $3, $4) "
                "ON CONFLICT (client_type, user_id) DO UPDATE "
                "SET username = COALESCE(EXCLUDED.username, platform_accounts.username) "
                "RETURNING (xmax = 0) AS created",
                (client_type, user_id, username, role),
            )
            return bool(row["created"])

    async def get_accounts(self, user_id: str) -> list[dict]:
        """All platform account rows belonging to one identity."""
        return await self._fetchall(
            f"SELECT * FROM platform_accounts WHERE user_id = {self._ph(1)} ORDER BY client_type", (user_id,)
        )

    async def get_account(self, client_type: str, user_id: str) -> dict | None:
        return await self._fetchone(
            f"SELECT * FROM platform_accounts WHERE client_type = {self._ph(1)} AND user_id = {self._ph(2)}",
            (client_type, user_id),
        )

    async def update_account(
        self,
        client_type: str,
        user_id: str,
        fields: dict,
        warnings_delta: int = 0,
        expect: dict | None = None,
        unmuted_at: datetime | None = None,
    ) -> dict | None:
        """Apply one state transition to one account in a single statement.

        ``warnings_delta`` is applied with in-statement arithmetic; a negative
        delta only succeeds while the count stays >= 0 (compare-and-swap).
        ``expect`` columns must still hold the given values, and with
        ``unmuted_at`` the account must not be muted at that moment.
        Returns the updated row, or None if no row matched.
        """
        assignments = []
        params: list = []
        if warnings_delta:
            params.append(warnings_delta)
            assignments.append(f"warnings = warnings + {self._ph(len(params))}")
        for column, value in fields.items():
            params.append(_to_db(value))
            assignments.append(f"{column} = {self._ph(len(params))}")
        if not assignments:
            return await self.get_account(client_type, user_id)

        params.append(client_type)
        where = f"client_type = {self._ph(len(params))}"
        params.append(user_id)
        where += f" AND user_id = {self._ph(len(params))}"
        if warnings_delta < 0:
            params.append(-warnings_delta)
            where += f" AND warnings >= {self._ph(len(params))}"
        for column, value in (expect or {}).items():
            params.append(_to_db(value))
            where += f" AND {column} = {self._ph(len(params))}"
        if unmuted_at is not None:
            params.append(unmuted_at)
            n = self._ph(len(params))
            where += f" AND (muted_until IS NULL OR muted_until <= {n})"

        sql = f"UPDATE platform_accounts SET {', '.join(assignments)} WHERE {where}"
        async with self._transaction() as tx:
            if self.driver == "sqlite":
                if await tx.execute(sql, tuple(params)) == 0:
                    return None
                return await tx.fetchone(
                    "SELECT * FROM platform_accounts WHERE client_type = ? AND user_id = ?", (client_type, user_id)
                )
            return await tx.fetchone(sql + " RETURNING *", tuple(params))

    # --- Comments ---

    async def add_comment(self, comment: dict) -> bool:
        """Insert a comment row as received from the comment platform.

        Returns False when a comment with that id is already stored.
        """
        ph = self._ph
        inserted = await self._execute(
            f"INSERT INTO comments (id, client_type, author_id, content, created_at) "
            f"VALUES ({ph(1)}, {ph(2)}, {ph(3)}, {ph(4)}, {ph(5)}) ON CONFLICT (id) DO NOTHING",
            (
                comment["id"],
                comment["client_type"],
                comment["author_id"],
                comment.get("content"),
                comment["created_at"],
            ),
        )
        return inserted > 0

    async def get_comment(self, comment_id: int) -> dict | None:
        return await self._fetchone(f"SELECT * FROM comments WHERE id = {self._ph(1)}", (comment_id,))

    async def update_comment_if(self, comment_id: int, fields: dict, expect: dict) -> bool:
        """Compare-and-swap update: apply ``fields`` only while every ``expect`` column matches.

        Returns True when the row was changed.
        """
        params: list = []
        assignments = []
        for column, value in fields.items():
            params.append(_to_db(value))
            assignments.append(f"{column} = {self._ph(len(params))}")
        params.append(comment_id)
        where = [f"id = {self._ph(len(params))}"]
        for column, value in expect.items():
            params.append(_to_db(value))
            where.append(f"{column} = {self._ph(len(params))}")
        sql = f"UPDATE comments SET {', '.join(assignments)} WHERE {' AND '.join(where)}"
        return await self._execute(sql, tuple(params)) > 0

    # --- Reports ---

    async def add_report(self, report: dict) -> int:
        """Insert a pending report and bump the comment's counter atomically.

        Returns the comment's new report_count.
        Raises ValueError("duplicate_report") if the reporter already has a
        pending report on the comment, ValueError("content_deleted") if the
        comment was deleted in the meantime.
        """
        ph = self._ph
        insert_sql = (
            f"INSERT INTO reports (id, comment_id, reporter_id, reason, notes, status, created_at) "
            f"VALUES ({ph(1)}, {ph(2)}, {ph(3)}, {ph(4)}, {ph(5)}, 'pending', {ph(6)})"
        )
        insert_params = (
            report["id"],
            report["comment_id"],
            report["reporter_id"],
            report["reason"],
            report.get("notes") or "",
            report["created_at"],
        )
        bump_sql = (
            f"UPDATE comments SET report_count = report_count + 1, report_status = 'pending', "
            f"last_reported_at = {ph(1)} WHERE id = {ph(2)} AND deleted = 0"
        )
        bump_params = (report["created_at"], report["comment_id"])

        if self.driver == "sqlite":
            try:
                async with self._transaction() as tx:
                    await tx.execute(insert_sql, insert_params)
                    if await tx.execute(bump_sql, bump_params) == 0:
                        raise ValueError("content_deleted")
                    row = await tx.fetchone("SELECT report_count FROM comments WHERE id = ?", (report["comment_id"],))
            except sqlite3.IntegrityError as e:
                raise ValueError("duplicate_report") from e
        else:
            import asyncpg

            try:
                async with self._transaction() as tx:
                    await tx.execute(insert_sql, insert_params)
                    row = await tx.fetchone(bump_sql + " RETURNING report_count", bump_params)
                    if row is None:
                        raise ValueError("content_deleted")
            except asyncpg.UniqueViolationError as e:
                raise ValueError("duplicate_report") from e
        return row["report_count"] if row else 0

    async def get_reports(self, comment_id: int) -> list[dict]:
        """All reports on a comment, oldest first."""
        return await self._fetchall(
            f"SELECT * FROM reports WHERE comment_id = {self._ph(1)} ORDER BY created_at, id", (comment_id,)
        )

    async def find_report(self, comment_id: int, reporter_id: str) -> dict | None:
        """The reporter's pending report on a comment, else their most recent one."""
        return await self._fetchone(
            f"SELECT * FROM reports WHERE comment_id = {self._ph(1)} AND reporter_id = {self._ph(2)} "
            f"ORDER BY CASE WHEN status = 'pending' THEN 0 ELSE 1 END, created_at DESC LIMIT 1",
            (comment_id, reporter_id),
        )

    async def review_report(
        self, report_id: str, status: str, reviewed_by: str, reviewed_at: datetime, review_notes: str
    ) -> bool:
        """Mark a pending report reviewed. False if it was no longer pending."""
        ph = self._ph
        return (
            await self._execute(
                f"UPDATE reports SET status = {ph(1)}, reviewed_by = {ph(2)}, reviewed_at = {ph(3)}, "
                f"review_notes = {ph(4)} WHERE id = {ph(5)} AND status = 'pending'",
                (status, reviewed_by, reviewed_at, review_notes, report_id),
            )
            > 0
        )

    async def recompute_report_status(self, comment_id: int, resolution: str) -> str | None:
        """Set the comment's report_status from its reports in one statement.

        Stays 'pending' while any report is pending, otherwise takes ``resolution``.
        """
        ph = self._ph
        sql = (
            f"UPDATE comments SET report_status = CASE WHEN EXISTS "
            f"(SELECT 1 FROM reports WHERE comment_id = {ph(1)} AND status = 'pending') "
            f"THEN 'pending' ELSE {ph(2)} END WHERE id = {ph(3)}"
        )
        params = (comment_id, resolution, comment_id)
        async with self._transaction() as tx:
            if self.driver == "sqlite":
                await tx.execute(sql, params)
                row = await tx.fetchone("SELECT report_status FROM comments WHERE id = ?", (comment_id,))
            else:
                row = await tx.fetchone(sql + " RETURNING report_status", params)
        return row["report_status"] if row else None

    async def get_report_queue(self, limit: int) -> list[dict]:
        """Comments awaiting review: most reports first, then most recently reported."""
        return await self._fetchall(
            f"SELECT * FROM comments WHERE report_status = 'pending' "
            f"ORDER BY report_count DESC, last_reported_at DESC LIMIT {self._ph(1)}",
            (limit,),
        )

    # --- Config ---

    async def get_all_config(self) -> dict[str, str]:
        rows = await self._fetchall("SELECT key, value FROM config")
        return {r["key"]: r["value"] for r in rows}

    async def get_config_value(self, key: str) -> str | None:
        row = await self._fetchone(f"SELECT value FROM config WHERE key = {self._ph(1)}", (key,))
        return row["value"] if row else None

    async def set_config_value(self, key: str, value: str) -> None:
        if self.driver == "sqlite":
            await self._execute(
                "INSERT INTO config (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = CURRENT_TIMESTAMP",
                (key, value),
            )
        else:
            await self._execute(
                "INSERT INTO config (key, value, updated_at) VALUES ($1, $2, NOW()) "
                "ON CONFLICT (key) DO UPDATE SET value = EXCLUDED.value, updated_at = NOW()",
                (key, value),
            )

    async def set_role_membership(self, identity: str, role_keys: list[str], target_key: str | None) -> None:
        """Move ``identity`` into ``target_key`` and out of every other key, in one transaction.

        Each key holds a JSON array of identities.
        """
        async with self._transaction() as tx:
            for key in role_keys:
                lock = "" if self.driver == "sqlite" else " FOR UPDATE"
                row = await tx.fetchone(f"SELECT value FROM config WHERE key = {self._ph(1)}{lock}", (key,))
                members = json.loads(row["value"]) if row and row["value"] else []
                members = [m for m in members if str(m) != identity]
                if key == target_key:
                    members.append(identity)
                value = json.dumps(members)
                if row is None:
                    await tx.execute(
                        f"INSERT INTO config (key, value) VALUES ({self._ph(1)}, {self._ph(2)})", (key, value)
                    )
                else:
                    await tx.execute(
                        f"UPDATE config SET value = {self._ph(1)} WHERE key = {self._ph(2)}", (value, key)
                    )

    # --- Statistics ---

    async def get_stats(self, now: datetime) -> dict:
        """Counts over comments, reports and identities for the stats view."""
        ph = self._ph
        comments = await self._fetchone(
            "SELECT COUNT(*) AS total, "
            "COALESCE(SUM(CASE WHEN deleted = 1 THEN 1 ELSE 0 END), 0) AS deleted, "
            "COALESCE(SUM(CASE WHEN report_status = 'pending' THEN 1 ELSE 0 END), 0) AS awaiting_review "
            "FROM comments"
        )
        reports = await self._fetchone(
            "SELECT COUNT(*) AS total, "
            "COALESCE(SUM(CASE WHEN status = 'pending' THEN 1 ELSE 0 END), 0) AS pending "
            "FROM reports"
        )
        identities = await self._fetchone(
            f"SELECT COUNT(*) AS total, "
            f"COALESCE(SUM(banned), 0) AS banned, "
            f"COALESCE(SUM(shadow_banned), 0) AS shadow_banned, "
            f"COALESCE(SUM(muted), 0) AS muted FROM ("
            f"SELECT user_id, MAX(banned) AS banned, MAX(shadow_banned) AS shadow_banned, "
            f"MAX(CASE WHEN muted_until > {ph(1)} THEN 1 ELSE 0 END) AS muted "
            f"FROM platform_accounts GROUP BY user_id) AS per_identity",
            (now,),
        )
        platforms = await self._fetchall(
            "SELECT client_type, COUNT(*) AS accounts FROM platform_accounts GROUP BY client_type ORDER BY client_type"
        )
        return {
            "comments": {k: int(v) for k, v in comments.items()},
            "reports": {k: int(v) for k, v in reports.items()},
            "identities": {k: int(v) for k, v in identities.items()},
            "platforms": {r["client_type"]: int(r["accounts"]) for r in platforms},
        }

    # --- Audit log ---

    async def log_action(
        self,
        action: str,
        actor_id: str,
        target: str | None,
        reason: str | None,
        detail: str | None,
        created_at: datetime,
    ) -> None:
        """Append one moderation audit record."""
        ph = self._ph
        await self._execute(
            f"INSERT INTO moderation_actions (action, actor_id, target, reason, detail, created_at) "
            f"VALUES ({ph(1)}, {ph(2)}, {ph(3)}, {ph(4)}, {ph(5)}, {ph(6)})",
            (action, actor_id, target, reason, detail, created_at),
        )

    async def get_action_log(self, limit: int = 20, target: str | None = None) -> list[dict]:
        """Most recent audit records first, optionally for one target."""
        if target is None:
            return await self._fetchall(
                f"SELECT * FROM moderation_actions ORDER BY created_at DESC, id DESC LIMIT {self._ph(1)}", (limit,)
            )
        return await self._fetchall(
            f"SELECT * FROM moderation_actions WHERE target = {self._ph(1)} "
            f"ORDER BY created_at DESC, id DESC LIMIT {self._ph(2)}",
            (target, limit),
        )
