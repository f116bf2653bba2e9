"""WisdomOS Core Store -- SQLite persistence

Factory creating the group of stores that share one database connection
and one write lock.
"""

import asyncio
from pathlib import Path

import aiosqlite

from .commitment_store import SqliteAreaStore, SqliteCommitmentStore
from .event_store import SqliteEventStore
from .finance_store import SqliteFinanceStore
from .fulfilment_store import SqliteFulfilmentStore
from .integrity_store import SqliteIntegrityStore
from .job_store import SqliteJobStore
from .journal_store import SqliteJournalStore
from .narrative_store import SqliteNarrativeStore
from .plan_store import SqlitePlanStore
from .sqlite_init import init_db
from .transaction import write_transaction


class StoreGroup:
    """Stores sharing one database connection"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self.conn = conn
        self.write_lock = asyncio.Lock()
        self.job_store = SqliteJobStore(conn, self.write_lock)
        self.event_store = SqliteEventStore(conn, self.write_lock)
        self.journal_store = SqliteJournalStore(conn, self.write_lock)
        self.area_store = SqliteAreaStore(conn, self.write_lock)
        self.commitment_store = SqliteCommitmentStore(conn, self.write_lock)
        self.fulfilment_store = SqliteFulfilmentStore(conn, self.write_lock)
        self.narrative_store = SqliteNarrativeStore(conn, self.write_lock)
        self.integrity_store = SqliteIntegrityStore(conn, self.write_lock)
        self.plan_store = SqlitePlanStore(conn, self.write_lock)
        self.finance_store = SqliteFinanceStore(conn, self.write_lock)

    async def close(self) -> None:
        await self.conn.close()


async def create_store_group(db_path: str | Path) -> StoreGroup:
    """Open (and initialise) the database and build the store group

    Args:
        db_path: SQLite database file path

    Returns:
        StoreGroup instance
    """
    db_dir = Path(db_path).parent
    db_dir.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(str(db_path))
    conn.row_factory = aiosqlite.Row
    await init_db(conn)

    return StoreGroup(conn=conn)


__all__ = [
    "StoreGroup",
    "create_store_group",
    "SqliteJobStore",
    "SqliteEventStore",
    "SqliteJournalStore",
    "SqliteAreaStore",
    "SqliteCommitmentStore",
    "SqliteFulfilmentStore",
    "SqliteNarrativeStore",
    "SqliteIntegrityStore",
    "SqlitePlanStore",
    "SqliteFinanceStore",
    "init_db",
    "write_transaction",
]
