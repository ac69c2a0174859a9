from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

import aiosqlite

from .utils import _sqlite_connection

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Migration:
    version: int
    name: str
    sql: str


# Append only. Every statement must be safe to re-run against a database that already has it.
MIGRATIONS: tuple[Migration, ...] = (
    Migration(
        version=1,
        name="principals",
        sql="""
        CREATE TABLE IF NOT EXISTS principals (
            principal_id TEXT PRIMARY KEY,
            username TEXT,
            display_name TEXT,
            balance INTEGER NOT NULL DEFAULT 0 CHECK (balance >= 0),
            referral_code TEXT NOT NULL UNIQUE,
            referred_by TEXT,
            total_referrals INTEGER NOT NULL DEFAULT 0,
            registered_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
            last_active DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP
        );

        CREATE INDEX IF NOT EXISTS idx_principals_registered
        ON principals(registered_at DESC);
        """,
    ),
    Migration(
        version=2,
        name="principal_ban_fields",
        sql="""
        ALTER TABLE principals ADD COLUMN is_banned INTEGER NOT NULL DEFAULT 0;
        ALTER TABLE principals ADD COLUMN banned_at DATETIME;
        ALTER TABLE principals ADD COLUMN banned_reason TEXT;
        """,
    ),
    Migration(
        version=3,
        name="search_records",
        sql="""
        CREATE TABLE IF NOT EXISTS search_records (
            record_id INTEGER PRIMARY KEY AUTOINCREMENT,
            principal_id TEXT NOT NULL,
            search_input TEXT NOT NULL,
            results_json TEXT NOT NULL,
            searched_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP
        );

        CREATE INDEX IF NOT EXISTS idx_search_records_principal
        ON search_records(principal_id, record_id DESC);

        CREATE INDEX IF NOT EXISTS idx_search_records_searched
        ON search_records(searched_at DESC);
        """,
    ),
    Migration(
        version=4,
        name="seen_results",
        sql="""
        CREATE TABLE IF NOT EXISTS seen_results (
            principal_id TEXT NOT NULL,
            result_id TEXT NOT NULL,
            record_id INTEGER NOT NULL,
            PRIMARY KEY (principal_id, result_id),
            FOREIGN KEY(record_id) REFERENCES search_records(record_id) ON DELETE CASCADE
        );

        CREATE INDEX IF NOT EXISTS idx_seen_results_record
        ON seen_results(record_id);
        """,
    ),
    Migration(
        version=5,
        name="referral_grants",
        sql="""
        CREATE TABLE IF NOT EXISTS referral_grants (
            grant_id INTEGER PRIMARY KEY AUTOINCREMENT,
            referrer_id TEXT NOT NULL,
            referred_id TEXT NOT NULL,
            credits_earned INTEGER NOT NULL,
            created_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
            UNIQUE(referrer_id, referred_id)
        );

        CREATE INDEX IF NOT EXISTS idx_referral_grants_referrer
        ON referral_grants(referrer_id);
        """,
    ),
)


class StoreSchemaMixin:
    SCHEMA_VERSION = MIGRATIONS[-1].version

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def _allow_destructive_reset_on_mismatch() -> bool:
        raw = os.getenv("LOOKUP_SQLITE_RESET_ON_SCHEMA_MISMATCH", "")
        return raw.strip().lower() in {"1", "true", "yes", "y", "on"}

    async def init(self) -> int:
        async with _sqlite_connection(self.db_path) as db:
            await db.execute("PRAGMA journal_mode=WAL")
            version = await self._user_version(db)

            if version > self.SCHEMA_VERSION:
                if not self._allow_destructive_reset_on_mismatch():
                    raise RuntimeError(
                        "SQLite schema version mismatch detected (database is newer than this bot build). "
                        f"Found user_version={version}, supported={self.SCHEMA_VERSION}. "
                        "Set LOOKUP_SQLITE_RESET_ON_SCHEMA_MISMATCH=1 to allow destructive reset."
                    )
                logger.warning("Resetting schema: database version %s is newer than %s", version, self.SCHEMA_VERSION)
                await self._reset_schema(db)
                version = 0

            for migration in MIGRATIONS:
                if migration.version <= version:
                    continue
                await self._apply_migration(db, migration)
                version = migration.version
            return version

    async def _user_version(self, db: aiosqlite.Connection) -> int:
        async with db.execute("PRAGMA user_version") as cursor:
            row = await cursor.fetchone()
        return int(row[0]) if row else 0

    async def _table_columns(self, db: aiosqlite.Connection, table_name: str) -> set[str]:
        async with db.execute(f"PRAGMA table_info({table_name})") as cursor:
            rows = await cursor.fetchall()
        return {str(row[1]) for row in rows}

    async def _apply_migration(self, db: aiosqlite.Connection, migration: Migration) -> None:
        statements = [part.strip() for part in migration.sql.split(";") if part.strip()]
        await db.execute("BEGIN IMMEDIATE")
        try:
            for statement in statements:
                if await self._already_applied(db, statement):
                    continue
                await db.execute(statement)
            await db.execute(f"PRAGMA user_version = {int(migration.version)}")
        except BaseException:
            await db.rollback()
            raise
        await db.commit()
        logger.info("Applied schema migration v%s (%s)", migration.version, migration.name)

    async def _already_applied(self, db: aiosqlite.Connection, statement: str) -> bool:
        # SQLite has no ADD COLUMN IF NOT EXISTS.
        words = statement.split()
        if len(words) >= 6 and [w.upper() for w in words[:2]] == ["ALTER", "TABLE"] and words[3].upper() == "ADD":
            column_name = words[5] if words[4].upper() == "COLUMN" else words[4]
            return column_name in await self._table_columns(db, words[2])
        return False

    async def _reset_schema(self, db: aiosqlite.Connection) -> None:
        for table in ("seen_results", "search_records", "referral_grants", "principals"):
            await db.execute(f"DROP TABLE IF EXISTS {table}")
        await db.execute("PRAGMA user_version = 0")
        await db.commit()
