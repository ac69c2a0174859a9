from __future__ import annotations

import asyncio
import sqlite3
import sys
from pathlib import Path

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from lookup_bot.storage.schema import MIGRATIONS, StoreSchemaMixin  # noqa: E402
from lookup_bot.storage.store import LookupStore  # noqa: E402


def _tables(db_path: Path) -> set[str]:
    with sqlite3.connect(db_path) as conn:
        rows = conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
    return {row[0] for row in rows}


def test_migrations_are_strictly_increasing() -> None:
    versions = [migration.version for migration in MIGRATIONS]
    assert versions == sorted(versions)
    assert len(set(versions)) == len(versions)
    assert StoreSchemaMixin.SCHEMA_VERSION == versions[-1]


def test_init_creates_schema_and_is_idempotent(tmp_path: Path) -> None:
    db_path = tmp_path / "nested" / "lookup.db"

    assert asyncio.run(StoreSchemaMixin(db_path).init()) == StoreSchemaMixin.SCHEMA_VERSION
    assert asyncio.run(StoreSchemaMixin(db_path).init()) == StoreSchemaMixin.SCHEMA_VERSION

    assert {"principals", "search_records", "seen_results", "referral_grants"} <= _tables(db_path)
    with sqlite3.connect(db_path) as conn:
        assert conn.execute("PRAGMA user_version").fetchone()[0] == StoreSchemaMixin.SCHEMA_VERSION
        assert conn.execute("PRAGMA journal_mode").fetchone()[0] == "wal"


def test_partially_applied_migration_is_completed(tmp_path: Path) -> None:
    db_path = tmp_path / "lookup.db"
    asyncio.run(StoreSchemaMixin(db_path).init())
    # Simulate a crash after the ban columns were added but before user_version was bumped.
    with sqlite3.connect(db_path) as conn:
        conn.execute("PRAGMA user_version = 1")
        conn.commit()

    assert asyncio.run(StoreSchemaMixin(db_path).init()) == StoreSchemaMixin.SCHEMA_VERSION


def test_data_survives_reinit(tmp_path: Path) -> None:
    db_path = tmp_path / "lookup.db"

    async def scenario() -> int:
        store = LookupStore(db_path)
        await store.init()
        await store.register_principal("1")
        await store.credit("1", 4)
        await LookupStore(db_path).init()
        return await LookupStore(db_path).get_balance("1")

    assert asyncio.run(scenario()) == 14


def test_schema_mismatch_raises_without_opt_in(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("LOOKUP_SQLITE_RESET_ON_SCHEMA_MISMATCH", raising=False)
    db_path = tmp_path / "lookup.db"

    asyncio.run(StoreSchemaMixin(db_path).init())
    with sqlite3.connect(db_path) as conn:
        conn.execute("PRAGMA user_version = 999")
        conn.commit()

    with pytest.raises(RuntimeError, match="schema version mismatch"):
        asyncio.run(StoreSchemaMixin(db_path).init())


def test_schema_mismatch_can_reset_with_explicit_opt_in(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    db_path = tmp_path / "lookup.db"
    asyncio.run(StoreSchemaMixin(db_path).init())

    with sqlite3.connect(db_path) as conn:
        conn.execute("PRAGMA user_version = 999")
        conn.commit()

    monkeypatch.setenv("LOOKUP_SQLITE_RESET_ON_SCHEMA_MISMATCH", "1")
    asyncio.run(StoreSchemaMixin(db_path).init())

    with sqlite3.connect(db_path) as conn:
        version = conn.execute("PRAGMA user_version").fetchone()[0]
    assert version == StoreSchemaMixin.SCHEMA_VERSION
