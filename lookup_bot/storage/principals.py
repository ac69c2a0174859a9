from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiosqlite

from .utils import _sqlite_connection, _write_transaction, row_to_dict

logger = logging.getLogger(__name__)

REFERRAL_CODE_PREFIX = "REF"
BASE_BALANCE = 10
REFERRAL_SIGNUP_BONUS = 5
REFERRER_BONUS = 5

PRINCIPAL_COLUMNS = """
    principal_id, username, display_name, balance, referral_code, referred_by,
    total_referrals, is_banned, banned_at, banned_reason, registered_at, last_active
"""


def make_referral_code(principal_id: str) -> str:
    return f"{REFERRAL_CODE_PREFIX}{principal_id}"


def is_referral_code(value: str | None) -> bool:
    code = (value or "").strip()
    return len(code) > len(REFERRAL_CODE_PREFIX) and code.startswith(REFERRAL_CODE_PREFIX)


@dataclass(slots=True)
class RegistrationResult:
    principal_id: str
    is_new: bool
    used_referral: bool = False
    referrer_id: str | None = None
    referral_bonus: int = 0
    balance: int = 0


def _principal_from_row(row: aiosqlite.Row) -> Dict[str, Any]:
    data = row_to_dict(row)
    data["principal_id"] = str(data["principal_id"])
    data["balance"] = int(data["balance"])
    data["total_referrals"] = int(data["total_referrals"])
    data["is_banned"] = bool(data["is_banned"])
    return data


class StorePrincipalsMixin:
    async def register_principal(
        self,
        principal_id: str,
        username: str | None = None,
        display_name: str | None = None,
        referral_code: str | None = None,
    ) -> RegistrationResult:
        """Create the principal on first contact, otherwise refresh its profile fields.

        Balance and referral linkage are fixed at creation; a repeated registration for a
        known principal never credits anyone.
        """
        principal_id = str(principal_id)
        async with _sqlite_connection(self.db_path) as db:
            async with _write_transaction(db):
                cursor = await db.execute(
                    """
                    UPDATE principals
                    SET username = COALESCE(?, username),
                        display_name = COALESCE(?, display_name),
                        last_active = CURRENT_TIMESTAMP
                    WHERE principal_id = ?
                    """,
                    (username, display_name, principal_id),
                )
                if cursor.rowcount > 0:
                    return RegistrationResult(principal_id=principal_id, is_new=False)

                referrer_id: str | None = None
                if is_referral_code(referral_code):
                    async with db.execute(
                        "SELECT principal_id FROM principals WHERE referral_code = ?",
                        (referral_code.strip(),),
                    ) as cur:
                        row = await cur.fetchone()
                    if row is not None and str(row[0]) != principal_id:
                        referrer_id = str(row[0])

                bonus = REFERRAL_SIGNUP_BONUS if referrer_id else 0
                starting_balance = BASE_BALANCE + bonus
                await db.execute(
                    """
                    INSERT INTO principals (
                        principal_id, username, display_name, balance, referral_code, referred_by,
                        registered_at, last_active
                    )
                    VALUES (?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP, CURRENT_TIMESTAMP)
                    """,
                    (
                        principal_id,
                        username,
                        display_name,
                        starting_balance,
                        make_referral_code(principal_id),
                        referrer_id,
                    ),
                )

                if referrer_id:
                    await self._grant_referral(db, referrer_id, principal_id)

        if referrer_id:
            logger.info("Registered principal %s via referral from %s", principal_id, referrer_id)
        else:
            logger.info("Registered principal %s", principal_id)
        return RegistrationResult(
            principal_id=principal_id,
            is_new=True,
            used_referral=referrer_id is not None,
            referrer_id=referrer_id,
            referral_bonus=bonus,
            balance=starting_balance,
        )

    async def _grant_referral(self, db: aiosqlite.Connection, referrer_id: str, referred_id: str) -> bool:
        cursor = await db.execute(
            """
            INSERT OR IGNORE INTO referral_grants (referrer_id, referred_id, credits_earned)
            VALUES (?, ?, ?)
            """,
            (referrer_id, referred_id, REFERRER_BONUS),
        )
        if cursor.rowcount == 0:
            logger.info("Referral %s -> %s already granted", referrer_id, referred_id)
            return False
        await db.execute(
            """
            UPDATE principals
            SET balance = balance + ?, total_referrals = total_referrals + 1
            WHERE principal_id = ?
            """,
            (REFERRER_BONUS, referrer_id),
        )
        return True

    async def get_principal(self, principal_id: str) -> Optional[Dict[str, Any]]:
        async with _sqlite_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                f"SELECT {PRINCIPAL_COLUMNS} FROM principals WHERE principal_id = ?",
                (str(principal_id),),
            ) as cursor:
                row = await cursor.fetchone()
        if row is None:
            return None
        return _principal_from_row(row)

    async def get_ban_status(self, principal_id: str) -> tuple[bool, str | None]:
        async with _sqlite_connection(self.db_path) as db:
            async with db.execute(
                "SELECT is_banned, banned_reason FROM principals WHERE principal_id = ?",
                (str(principal_id),),
            ) as cursor:
                row = await cursor.fetchone()
        if row is None:
            return False, None
        return bool(row[0]), row[1]

    async def get_referral_summary(self, principal_id: str) -> Optional[Dict[str, Any]]:
        async with _sqlite_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                """
                SELECT
                    p.referral_code,
                    p.total_referrals,
                    p.balance,
                    (SELECT COALESCE(SUM(g.credits_earned), 0)
                     FROM referral_grants g
                     WHERE g.referrer_id = p.principal_id) AS credits_earned
                FROM principals p
                WHERE p.principal_id = ?
                """,
                (str(principal_id),),
            ) as cursor:
                row = await cursor.fetchone()
        if row is None:
            return None
        return {
            "referral_code": str(row["referral_code"]),
            "total_referrals": int(row["total_referrals"]),
            "balance": int(row["balance"]),
            "credits_earned": int(row["credits_earned"]),
        }
