"""FinanceStore SQLite implementation -- ledger transactions"""

import asyncio
from datetime import datetime

import aiosqlite

from ..models.finance import Transaction
from .columns import parse_ts, ts
from .transaction import write_transaction


class SqliteFinanceStore:
    def __init__(self, conn: aiosqlite.Connection, write_lock: asyncio.Lock) -> None:
        self._conn = conn
        self._write_lock = write_lock

    async def create_transaction(self, txn: Transaction) -> bool:
        """Insert a ledger row

        Returns:
            False when (user, source, external_id) was already imported
        """
        async with write_transaction(self._conn, self._write_lock):
            cursor = await self._conn.execute(
                """
                INSERT OR IGNORE INTO transactions (transaction_id, user_id, source, external_id,
                                                    occurred_at, amount, transaction_type,
                                                    category, description, area_code, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    txn.transaction_id,
                    txn.user_id,
                    txn.source,
                    txn.external_id,
                    ts(txn.occurred_at),
                    txn.amount,
                    txn.transaction_type.value,
                    txn.category,
                    txn.description,
                    txn.area_code,
                    ts(txn.created_at),
                ),
            )
            return cursor.rowcount > 0

    async def find_by_user(
        self,
        user_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
        area_code: str | None = None,
    ) -> list[Transaction]:
        sql = "SELECT * FROM transactions WHERE user_id = ?"
        params: list = [user_id]
        if area_code is not None:
            sql += " AND area_code = ?"
            params.append(area_code)
        if start is not None:
            sql += " AND occurred_at >= ?"
            params.append(ts(start))
        if end is not None:
            sql += " AND occurred_at < ?"
            params.append(ts(end))
        sql += " ORDER BY occurred_at ASC, transaction_id ASC"
        cursor = await self._conn.execute(sql, tuple(params))
        return [self._row_to_transaction(row) for row in await cursor.fetchall()]

    @staticmethod
    def _row_to_transaction(row: aiosqlite.Row) -> Transaction:
        return Transaction(
            transaction_id=row["transaction_id"],
            user_id=row["user_id"],
            source=row["source"],
            external_id=row["external_id"],
            occurred_at=parse_ts(row["occurred_at"]),
            amount=row["amount"],
            transaction_type=row["transaction_type"],
            category=row["category"],
            description=row["description"],
            area_code=row["area_code"],
            created_at=parse_ts(row["created_at"]),
        )
