from __future__ import annotations

import logging
from dataclasses import dataclass

import aiosqlite

from ..errors import InvalidAmount, PrincipalNotFound
from .utils import _sqlite_connection, _write_transaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DebitResult:
    ok: bool
    balance: int


def _require_positive(amount: int) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmount(amount)
    return amount


class StoreLedgerMixin:
    async def _read_balance(self, db: aiosqlite.Connection, principal_id: str) -> int:
        async with db.execute(
            "SELECT balance FROM principals WHERE principal_id = ?",
            (principal_id,),
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            raise PrincipalNotFound(principal_id)
        return int(row[0])

    async def get_balance(self, principal_id: str) -> int:
        async with _sqlite_connection(self.db_path) as db:
            return await self._read_balance(db, str(principal_id))

    async def try_debit(self, principal_id: str, amount: int) -> DebitResult:
        amount = _require_positive(amount)
        principal_id = str(principal_id)
        async with _sqlite_connection(self.db_path) as db:
            async with _write_transaction(db):
                cursor = await db.execute(
                    """
                    UPDATE principals
                    SET balance = balance - ?
                    WHERE principal_id = ? AND balance >= ?
                    """,
                    (amount, principal_id, amount),
                )
                debited = cursor.rowcount > 0
                balance = await self._read_balance(db, principal_id)
        if not debited:
            logger.info("Debit of %s refused for %s (balance %s)", amount, principal_id, balance)
        return DebitResult(ok=debited, balance=balance)

    async def credit(self, principal_id: str, amount: int) -> int:
        amount = _require_positive(amount)
        principal_id = str(principal_id)
        async with _sqlite_connection(self.db_path) as db:
            async with _write_transaction(db):
                cursor = await db.execute(
                    "UPDATE principals SET balance = balance + ? WHERE principal_id = ?",
                    (amount, principal_id),
                )
                if cursor.rowcount == 0:
                    raise PrincipalNotFound(principal_id)
                return await self._read_balance(db, principal_id)

    async def set_balance(self, principal_id: str, amount: int) -> int:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
            raise InvalidAmount(amount, "balance cannot be negative")
        principal_id = str(principal_id)
        async with _sqlite_connection(self.db_path) as db:
            async with _write_transaction(db):
                cursor = await db.execute(
                    "UPDATE principals SET balance = ? WHERE principal_id = ?",
                    (amount, principal_id),
                )
                if cursor.rowcount == 0:
                    raise PrincipalNotFound(principal_id)
        logger.info("Balance of %s set to %s", principal_id, amount)
        return amount
