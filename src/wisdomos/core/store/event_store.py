"""EventStore SQLite implementation

Events are append-only and idempotent on event_id. Per-agent processing is
recorded in ``event_processing`` so an agent handles an event at most once.
"""

import asyncio
from datetime import datetime

import aiosqlite

from ..models.enums import EventType
from ..models.event import DomainEvent, EventCausality
from .columns import dumps, loads, parse_ts, ts
from .transaction import write_transaction


class SqliteEventStore:
    """EventStore backed by SQLite"""

    def __init__(self, conn: aiosqlite.Connection, write_lock: asyncio.Lock) -> None:
        self._conn = conn
        self._write_lock = write_lock

    async def append_event(self, event: DomainEvent) -> bool:
        """Append an event

        Returns:
            False when an event with the same id was already stored
        """
        async with write_transaction(self._conn, self._write_lock):
            cursor = await self._conn.execute(
                """
                INSERT OR IGNORE INTO events (event_id, type, user_id, payload, created_at,
                                              schema_version, parent_event_id,
                                              root_event_id, depth, job_id)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    event.event_id,
                    event.type.value,
                    event.user_id,
                    dumps(event.payload),
                    ts(event.created_at),
                    event.schema_version,
                    event.causality.parent_event_id,
                    event.causality.root_event_id,
                    event.causality.depth,
                    event.causality.job_id,
                ),
            )
            return cursor.rowcount > 0

    async def get_event(self, event_id: str) -> DomainEvent | None:
        cursor = await self._conn.execute("SELECT * FROM events WHERE event_id = ?", (event_id,))
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_event(row, await self.processed_by(event_id))

    async def mark_processed(self, event_id: str, agent: str, processed_at: datetime) -> bool:
        """Record that ``agent`` handled ``event_id``

        Returns:
            False when the agent had already processed the event
        """
        async with write_transaction(self._conn, self._write_lock):
            cursor = await self._conn.execute(
                """
                INSERT OR IGNORE INTO event_processing (event_id, agent, processed_at)
                VALUES (?, ?, ?)
                """,
                (event_id, agent, ts(processed_at)),
            )
            return cursor.rowcount > 0

    async def processed_by(self, event_id: str) -> tuple[str, ...]:
        cursor = await self._conn.execute(
            "SELECT agent FROM event_processing WHERE event_id = ? ORDER BY agent",
            (event_id,),
        )
        return tuple(row[0] for row in await cursor.fetchall())

    async def list_events(
        self,
        event_type: EventType | None = None,
        user_id: str | None = None,
        after_event_id: str | None = None,
    ) -> list[DomainEvent]:
        """Events in publish order

        An unknown ``after_event_id`` replays the whole log.
        """
        clauses: list[str] = []
        params: list = []
        if event_type is not None:
            clauses.append("type = ?")
            params.append(event_type.value)
        if user_id is not None:
            clauses.append("user_id = ?")
            params.append(user_id)
        if after_event_id is not None:
            clauses.append(
                "rowid > COALESCE((SELECT rowid FROM events WHERE event_id = ?), 0)"
            )
            params.append(after_event_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        cursor = await self._conn.execute(
            f"SELECT * FROM events {where} ORDER BY rowid ASC", tuple(params)
        )
        rows = await cursor.fetchall()
        return [self._row_to_event(row, await self.processed_by(row["event_id"])) for row in rows]

    async def count_in_cascade(self, root_event_id: str) -> int:
        """Events descending from ``root_event_id`` (root excluded)"""
        cursor = await self._conn.execute(
            "SELECT COUNT(*) FROM events WHERE root_event_id = ?", (root_event_id,)
        )
        row = await cursor.fetchone()
        return row[0] if row else 0

    @staticmethod
    def _row_to_event(row: aiosqlite.Row, processed_by: tuple[str, ...]) -> DomainEvent:
        """Convert an events row to a DomainEvent"""
        return DomainEvent(
            event_id=row["event_id"],
            type=EventType(row["type"]),
            user_id=row["user_id"],
            payload=loads(row["payload"], {}),
            created_at=parse_ts(row["created_at"]),
            schema_version=row["schema_version"],
            causality=EventCausality(
                parent_event_id=row["parent_event_id"],
                root_event_id=row["root_event_id"],
                depth=row["depth"],
                job_id=row["job_id"],
            ),
            processed_by=processed_by,
        )
