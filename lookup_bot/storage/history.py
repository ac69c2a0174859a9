from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

import aiosqlite

from ..errors import PersistenceError
from .utils import _sqlite_connection, _write_transaction, dumps_results, normalize_result_id

logger = logging.getLogger(__name__)

HISTORY_RESULT_FIELDS = (
    "mobile",
    "name",
    "father_name",
    "address",
    "alt_mobile",
    "circle",
    "id_number",
    "email",
)


@dataclass(slots=True)
class HistoryView:
    rows: List[Dict[str, Any]] = field(default_factory=list)
    skipped_record_ids: List[int] = field(default_factory=list)


def _record_payload(result: Any) -> Dict[str, Any]:
    # Accepts gateway results (with a raw mapping) as well as plain dicts.
    raw = getattr(result, "raw", result)
    return dict(raw)


def _flatten_record(row: aiosqlite.Row) -> List[Dict[str, Any]]:
    payload = json.loads(row["results_json"])
    if not isinstance(payload, list):
        raise ValueError(f"expected a JSON list, got {type(payload).__name__}")
    flat: List[Dict[str, Any]] = []
    for item in payload:
        if not isinstance(item, dict):
            raise ValueError(f"expected JSON objects, got {type(item).__name__}")
        entry: Dict[str, Any] = {
            "record_id": int(row["record_id"]),
            "principal_id": str(row["principal_id"]),
            "search_input": str(row["search_input"]),
            "searched_at": row["searched_at"],
            "result_id": normalize_result_id(item.get("id")),
        }
        for key in HISTORY_RESULT_FIELDS:
            entry[key] = item.get(key) or None
        flat.append(entry)
    return flat


class StoreHistoryMixin:
    async def append_if_new(self, principal_id: str, search_input: str, results: Sequence[Any]) -> int:
        """Store the results of one search, minus anything this principal already has on record.

        Results without an identifier are always stored. Returns the number of results written;
        zero means no search record was created.
        """
        principal_id = str(principal_id)
        payloads = [_record_payload(result) for result in results]
        candidate_ids = {rid for rid in (normalize_result_id(p.get("id")) for p in payloads) if rid}

        try:
            async with _sqlite_connection(self.db_path) as db:
                async with _write_transaction(db):
                    seen = await self._seen_result_ids(db, principal_id, candidate_ids)
                    fresh: List[Dict[str, Any]] = []
                    fresh_ids: List[str] = []
                    for payload in payloads:
                        result_id = normalize_result_id(payload.get("id"))
                        if result_id is None:
                            fresh.append(payload)
                            continue
                        if result_id in seen:
                            logger.info("Result %s already stored for %s, skipping", result_id, principal_id)
                            continue
                        seen.add(result_id)
                        fresh.append(payload)
                        fresh_ids.append(result_id)

                    if not fresh:
                        logger.info(
                            "All %s results already stored for %s (input %s)",
                            len(payloads),
                            principal_id,
                            search_input,
                        )
                        return 0

                    cursor = await db.execute(
                        """
                        INSERT INTO search_records (principal_id, search_input, results_json)
                        VALUES (?, ?, ?)
                        """,
                        (principal_id, search_input, dumps_results(fresh)),
                    )
                    record_id = int(cursor.lastrowid)
                    if fresh_ids:
                        await db.executemany(
                            "INSERT INTO seen_results (principal_id, result_id, record_id) VALUES (?, ?, ?)",
                            [(principal_id, result_id, record_id) for result_id in fresh_ids],
                        )
        except aiosqlite.Error as exc:
            raise PersistenceError(f"Failed to store search history for {principal_id}: {exc}") from exc

        logger.info(
            "Saved %s new results for %s input %s (%s duplicates skipped)",
            len(fresh),
            principal_id,
            search_input,
            len(payloads) - len(fresh),
        )
        return len(fresh)

    async def _seen_result_ids(self, db: aiosqlite.Connection, principal_id: str, candidate_ids: set[str]) -> set[str]:
        if not candidate_ids:
            return set()
        ordered = sorted(candidate_ids)
        seen: set[str] = set()
        # Stay well below SQLite's bound-parameter limit.
        for start in range(0, len(ordered), 500):
            chunk = ordered[start : start + 500]
            placeholders = ", ".join("?" for _ in chunk)
            async with db.execute(
                f"""
                SELECT result_id FROM seen_results
                WHERE principal_id = ? AND result_id IN ({placeholders})
                """,
                (principal_id, *chunk),
            ) as cursor:
                seen.update(str(row[0]) for row in await cursor.fetchall())
        return seen

    async def get_search_history(self, principal_id: str | None = None, limit: int = 50) -> HistoryView:
        limit = max(1, min(int(limit), 1000))
        if principal_id is None:
            query = """
                SELECT record_id, principal_id, search_input, results_json, searched_at
                FROM search_records
                ORDER BY record_id DESC
                LIMIT ?
            """
            params: tuple[Any, ...] = (limit,)
        else:
            query = """
                SELECT record_id, principal_id, search_input, results_json, searched_at
                FROM search_records
                WHERE principal_id = ?
                ORDER BY record_id DESC
                LIMIT ?
            """
            params = (str(principal_id), limit)

        async with _sqlite_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(query, params) as cursor:
                rows = await cursor.fetchall()

        view = HistoryView()
        for row in rows:
            try:
                view.rows.extend(_flatten_record(row))
            except (ValueError, TypeError) as exc:
                record_id = int(row["record_id"])
                logger.warning("Skipping malformed search record %s: %s", record_id, exc)
                view.skipped_record_ids.append(record_id)
        return view

    async def count_search_records(self, principal_id: str | None = None) -> int:
        async with _sqlite_connection(self.db_path) as db:
            if principal_id is None:
                cursor = await db.execute("SELECT COUNT(*) FROM search_records")
            else:
                cursor = await db.execute(
                    "SELECT COUNT(*) FROM search_records WHERE principal_id = ?",
                    (str(principal_id),),
                )
            row = await cursor.fetchone()
            await cursor.close()
        return int(row[0]) if row else 0

    async def clear_search_history(self) -> int:
        async with _sqlite_connection(self.db_path) as db:
            async with _write_transaction(db):
                cursor = await db.execute("DELETE FROM search_records")
                removed = cursor.rowcount
        logger.info("Cleared %s search records", removed)
        return removed
