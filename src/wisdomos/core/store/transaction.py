"""Write transactions -- one committed transaction per repository write

All stores share one aiosqlite connection. A shared write lock keeps the
transactions of concurrent coroutines from interleaving on it; the block
commits on success and rolls back and re-raises on any error.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import aiosqlite


@asynccontextmanager
async def write_transaction(
    conn: aiosqlite.Connection,
    lock: asyncio.Lock,
) -> AsyncIterator[aiosqlite.Connection]:
    """Run the enclosed writes as a single transaction

    Args:
        conn: shared connection
        lock: shared write lock (not re-entrant; do not nest)

    Raises:
        Exception: whatever the block raised, after rollback
    """
    async with lock:
        try:
            yield conn
            await conn.commit()
        except Exception:
            await conn.rollback()
            raise


def is_unique_violation(error: Exception, marker: str = "") -> bool:
    """True for an IntegrityError caused by a UNIQUE/PRIMARY KEY constraint"""
    if not isinstance(error, aiosqlite.IntegrityError):
        return False
    text = str(error)
    if "UNIQUE constraint failed" not in text:
        return False
    return marker in text
