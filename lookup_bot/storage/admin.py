from __future__ import annotations

import logging
from typing import Any, Dict, List

import aiosqlite

from ..errors import PrincipalNotFound
from .principals import PRINCIPAL_COLUMNS, _principal_from_row
from .utils import _sqlite_connection, _write_transaction

logger = logging.getLogger(__name__)

LOW_BALANCE_THRESHOLD = 5


class StoreAdminMixin:
    async def list_principals(self, limit: int = 20) -> List[Dict[str, Any]]:
        async with _sqlite_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                f"""
                SELECT {PRINCIPAL_COLUMNS}
                FROM principals
                ORDER BY registered_at DESC, principal_id DESC
                LIMIT ?
                """,
                (int(limit),),
            ) as cursor:
                rows = await cursor.fetchall()
        return [_principal_from_row(row) for row in rows]

    async def search_principals(self, query: str, limit: int = 50) -> List[Dict[str, Any]]:
        needle = f"%{query.strip()}%"
        async with _sqlite_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                f"""
                SELECT {PRINCIPAL_COLUMNS}
                FROM principals
                WHERE principal_id LIKE ?
                   OR username LIKE ?
                   OR display_name LIKE ?
                ORDER BY registered_at DESC, principal_id DESC
                LIMIT ?
                """,
                (needle, needle, needle, int(limit)),
            ) as cursor:
                rows = await cursor.fetchall()
        return [_principal_from_row(row) for row in rows]

    async def get_dashboard_stats(self) -> Dict[str, int]:
        async with _sqlite_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                """
                SELECT
                    COUNT(*) AS total_principals,
                    COALESCE(SUM(DATE(registered_at) = DATE('now')), 0) AS registered_today,
                    COALESCE(SUM(DATE(registered_at) >= DATE('now', '-7 days')), 0) AS registered_week,
                    COALESCE(SUM(DATE(registered_at) >= DATE('now', '-30 days')), 0) AS registered_month,
                    COALESCE(SUM(balance), 0) AS total_credits,
                    COALESCE(SUM(balance < ?), 0) AS low_balance_principals,
                    COALESCE(SUM(is_banned), 0) AS banned_principals
                FROM principals
                """,
                (LOW_BALANCE_THRESHOLD,),
            ) as cursor:
                row = await cursor.fetchone()
            async with db.execute("SELECT COUNT(*) FROM search_records") as cursor:
                records_row = await cursor.fetchone()
        stats = {key: int(row[key]) for key in row.keys()}
        stats["total_search_records"] = int(records_row[0]) if records_row else 0
        return stats

    async def ban_principal(self, principal_id: str, reason: str | None = None) -> None:
        cleaned = (reason or "").strip() or None
        async with _sqlite_connection(self.db_path) as db:
            async with _write_transaction(db):
                cursor = await db.execute(
                    """
                    UPDATE principals
                    SET is_banned = 1, banned_at = CURRENT_TIMESTAMP, banned_reason = ?
                    WHERE principal_id = ?
                    """,
                    (cleaned, str(principal_id)),
                )
                if cursor.rowcount == 0:
                    raise PrincipalNotFound(str(principal_id))
        logger.info("Banned principal %s (reason: %s)", principal_id, cleaned or "-")

    async def unban_principal(self, principal_id: str) -> None:
        async with _sqlite_connection(self.db_path) as db:
            async with _write_transaction(db):
                cursor = await db.execute(
                    """
                    UPDATE principals
                    SET is_banned = 0, banned_at = NULL, banned_reason = NULL
                    WHERE principal_id = ?
                    """,
                    (str(principal_id),),
                )
                if cursor.rowcount == 0:
                    raise PrincipalNotFound(str(principal_id))
        logger.info("Unbanned principal %s", principal_id)

    async def delete_principal(self, principal_id: str) -> None:
        principal_id = str(principal_id)
        async with _sqlite_connection(self.db_path) as db:
            async with _write_transaction(db):
                await db.execute("DELETE FROM search_records WHERE principal_id = ?", (principal_id,))
                await db.execute(
                    "DELETE FROM referral_grants WHERE referrer_id = ? OR referred_id = ?",
                    (principal_id, principal_id),
                )
                cursor = await db.execute("DELETE FROM principals WHERE principal_id = ?", (principal_id,))
                if cursor.rowcount == 0:
                    raise PrincipalNotFound(principal_id)
        logger.info("Deleted principal %s", principal_id)
