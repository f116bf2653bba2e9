"""JournalStore SQLite implementation -- entries plus area classification links"""

import asyncio
from datetime import datetime

import aiosqlite

from ..exceptions import ConflictError, NotFoundError
from ..models.journal import EntryAreaLink, JournalEntry
from .columns import dumps, loads, parse_ts, ts
from .transaction import is_unique_violation, write_transaction


class SqliteJournalStore:
    """JournalStore backed by SQLite"""

    def __init__(self, conn: aiosqlite.Connection, write_lock: asyncio.Lock) -> None:
        self._conn = conn
        self._write_lock = write_lock

    async def create_entry(self, entry: JournalEntry, links: list[EntryAreaLink]) -> JournalEntry:
        """Insert an entry together with its classification links

        Raises:
            ConflictError: entry_id already exists
        """
        async with write_transaction(self._conn, self._write_lock):
            try:
                await self._conn.execute(
                    """
                    INSERT INTO journal_entries (entry_id, user_id, content, entry_date,
                                                 sentiment, tags, locked, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        entry.entry_id,
                        entry.user_id,
                        entry.content,
                        ts(entry.entry_date),
                        entry.sentiment,
                        dumps(entry.tags),
                        int(entry.locked),
                        ts(entry.created_at),
                        ts(entry.updated_at),
                    ),
                )
            except aiosqlite.IntegrityError as e:
                if is_unique_violation(e):
                    raise ConflictError(f"Journal entry {entry.entry_id} already exists") from e
                raise
            await self._insert_links(links)
        return entry

    async def update_entry(
        self,
        entry: JournalEntry,
        links: list[EntryAreaLink] | None = None,
    ) -> JournalEntry:
        """Replace an entry's mutable columns; replace links when given"""
        async with write_transaction(self._conn, self._write_lock):
            cursor = await self._conn.execute(
                """
                UPDATE journal_entries
                SET content = ?, entry_date = ?, sentiment = ?, tags = ?, locked = ?,
                    updated_at = ?
                WHERE entry_id = ?
                """,
                (
                    entry.content,
                    ts(entry.entry_date),
                    entry.sentiment,
                    dumps(entry.tags),
                    int(entry.locked),
                    ts(entry.updated_at),
                    entry.entry_id,
                ),
            )
            if cursor.rowcount == 0:
                raise NotFoundError("JournalEntry", entry.entry_id)
            if links is not None:
                await self._conn.execute(
                    "DELETE FROM entry_area_links WHERE entry_id = ?", (entry.entry_id,)
                )
                await self._insert_links(links)
        return entry

    async def set_locked(self, entry_id: str, updated_at: datetime) -> None:
        async with write_transaction(self._conn, self._write_lock):
            await self._conn.execute(
                "UPDATE journal_entries SET locked = 1, updated_at = ? WHERE entry_id = ?",
                (ts(updated_at), entry_id),
            )

    async def get_entry(self, entry_id: str) -> JournalEntry | None:
        cursor = await self._conn.execute(
            "SELECT * FROM journal_entries WHERE entry_id = ?", (entry_id,)
        )
        row = await cursor.fetchone()
        return self._row_to_entry(row) if row else None

    async def find_by_user(
        self,
        user_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[JournalEntry]:
        """Entries of a user with ``start <= entry_date < end``, oldest first"""
        sql = "SELECT * FROM journal_entries WHERE user_id = ?"
        params: list = [user_id]
        if start is not None:
            sql += " AND entry_date >= ?"
            params.append(ts(start))
        if end is not None:
            sql += " AND entry_date < ?"
            params.append(ts(end))
        sql += " ORDER BY entry_date ASC, entry_id ASC"
        cursor = await self._conn.execute(sql, tuple(params))
        return [self._row_to_entry(row) for row in await cursor.fetchall()]

    async def list_links(self, entry_id: str) -> list[EntryAreaLink]:
        cursor = await self._conn.execute(
            "SELECT * FROM entry_area_links WHERE entry_id = ? ORDER BY area_id, dimension",
            (entry_id,),
        )
        return [self._row_to_link(row) for row in await cursor.fetchall()]

    async def list_users(self) -> list[str]:
        """Distinct users with at least one entry"""
        cursor = await self._conn.execute(
            "SELECT DISTINCT user_id FROM journal_entries ORDER BY user_id"
        )
        return [row[0] for row in await cursor.fetchall()]

    async def _insert_links(self, links: list[EntryAreaLink]) -> None:
        for link in links:
            await self._conn.execute(
                """
                INSERT OR REPLACE INTO entry_area_links (entry_id, area_id, dimension, weight,
                                                         confidence, signal)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    link.entry_id,
                    link.area_id,
                    link.dimension,
                    link.weight,
                    link.confidence,
                    link.signal,
                ),
            )

    @staticmethod
    def _row_to_entry(row: aiosqlite.Row) -> JournalEntry:
        return JournalEntry(
            entry_id=row["entry_id"],
            user_id=row["user_id"],
            content=row["content"],
            entry_date=parse_ts(row["entry_date"]),
            sentiment=row["sentiment"],
            tags=loads(row["tags"], []),
            locked=bool(row["locked"]),
            created_at=parse_ts(row["created_at"]),
            updated_at=parse_ts(row["updated_at"]),
        )

    @staticmethod
    def _row_to_link(row: aiosqlite.Row) -> EntryAreaLink:
        return EntryAreaLink(
            entry_id=row["entry_id"],
            area_id=row["area_id"],
            dimension=row["dimension"],
            weight=row["weight"],
            confidence=row["confidence"],
            signal=row["signal"],
        )
