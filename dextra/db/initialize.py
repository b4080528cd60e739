"""
Dextra Database Schema Management.

Append-only migration list, applied once per version under a Postgres
advisory lock so concurrent workers (API + cron) can start together.

Usage:
    db = Database(dsn="postgresql://...")
    await db.initialize()
    await ensure_schema(db)
"""

import logging
from typing import List, Tuple

from .database import Database

logger = logging.getLogger(__name__)

# ──────────────────────────────────────────────────────────────
# Migration registry
#
# Append-only. Never modify or delete existing entries.
# Each entry: (version, description, sql)
# ──────────────────────────────────────────────────────────────
MIGRATIONS: List[Tuple[int, str, str]] = [
    (
        1,
        "Create users and wallets tables",
        """
        CREATE TABLE IF NOT EXISTS users (
            id          TEXT PRIMARY KEY,
            degen_mode  BOOLEAN NOT NULL DEFAULT FALSE,
            created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );
        CREATE TABLE IF NOT EXISTS wallets (
            id          UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            owner_id    TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            name        TEXT,
            public_key  TEXT NOT NULL,
            chain       TEXT NOT NULL DEFAULT 'SOLANA',
            active      BOOLEAN NOT NULL DEFAULT FALSE,
            created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );
        CREATE INDEX IF NOT EXISTS wallets_owner_idx ON wallets (owner_id);
        """,
    ),
    (
        2,
        "Create conversations and messages tables",
        """
        CREATE TABLE IF NOT EXISTS conversations (
            id               TEXT PRIMARY KEY,
            user_id          TEXT NOT NULL,
            title            TEXT NOT NULL DEFAULT 'New Conversation',
            created_at       TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at       TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            last_message_at  TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            last_read_at     TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );
        CREATE INDEX IF NOT EXISTS conversations_user_idx ON conversations (user_id);
        CREATE TABLE IF NOT EXISTS messages (
            id                TEXT PRIMARY KEY,
            conversation_id   TEXT NOT NULL REFERENCES conversations(id),
            role              TEXT NOT NULL,
            content           TEXT,
            tool_invocations  JSONB NOT NULL DEFAULT '[]',
            attachments       JSONB NOT NULL DEFAULT '[]',
            created_at        TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );
        CREATE INDEX IF NOT EXISTS messages_conversation_created_idx
            ON messages (conversation_id, created_at DESC);
        """,
    ),
    (
        3,
        "Create actions table",
        """
        CREATE TABLE IF NOT EXISTS actions (
            id                TEXT PRIMARY KEY,
            user_id           TEXT NOT NULL,
            conversation_id   TEXT NOT NULL REFERENCES conversations(id),
            name              TEXT,
            description       TEXT NOT NULL,
            frequency         INTEGER,
            max_executions    INTEGER,
            times_executed    INTEGER NOT NULL DEFAULT 0,
            last_executed_at  TIMESTAMPTZ,
            last_success_at   TIMESTAMPTZ,
            last_failure_at   TIMESTAMPTZ,
            paused            BOOLEAN NOT NULL DEFAULT FALSE,
            completed         BOOLEAN NOT NULL DEFAULT FALSE,
            triggered         BOOLEAN NOT NULL DEFAULT TRUE,
            start_time        TIMESTAMPTZ,
            created_at        TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at        TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );
        CREATE INDEX IF NOT EXISTS actions_schedulable_idx
            ON actions (triggered, paused, completed);
        CREATE INDEX IF NOT EXISTS actions_user_idx ON actions (user_id);
        """,
    ),
    (
        4,
        "Create token_stats table",
        """
        CREATE TABLE IF NOT EXISTS token_stats (
            id                 TEXT PRIMARY KEY,
            user_id            TEXT NOT NULL,
            message_ids        TEXT[] NOT NULL DEFAULT '{}',
            prompt_tokens      INTEGER NOT NULL DEFAULT 0,
            completion_tokens  INTEGER NOT NULL DEFAULT 0,
            total_tokens       INTEGER NOT NULL DEFAULT 0,
            created_at         TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );
        """,
    ),
    (
        5,
        "Add actions.claimed_at for tick overlap guard",
        "ALTER TABLE actions ADD COLUMN IF NOT EXISTS claimed_at TIMESTAMPTZ",
    ),
]


_BOOTSTRAP_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    description TEXT NOT NULL,
    applied_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""

# PostgreSQL advisory lock ID (arbitrary constant, unique to this app)
_LOCK_ID = 4_1517_2203


async def ensure_schema(db: Database) -> None:
    """Apply any pending migrations, each in its own transaction."""
    async with db.acquire() as conn:
        await conn.execute("SELECT pg_advisory_lock($1)", _LOCK_ID)
        try:
            await conn.execute(_BOOTSTRAP_SQL)
            current = await conn.fetchval(
                "SELECT COALESCE(MAX(version), 0) FROM schema_version"
            )

            pending = [(v, d, s) for v, d, s in MIGRATIONS if v > current]
            if not pending:
                logger.debug(f"Schema up to date (version {current})")
                return

            for version, description, sql in pending:
                async with conn.transaction():
                    await conn.execute(sql)
                    await conn.execute(
                        "INSERT INTO schema_version (version, description) VALUES ($1, $2)",
                        version,
                        description,
                    )
                logger.info(f"Migration {version}: {description}")

            logger.info(
                f"Schema migrated {current} -> {pending[-1][0]} "
                f"({len(pending)} migration(s))"
            )
        finally:
            await conn.execute("SELECT pg_advisory_unlock($1)", _LOCK_ID)
