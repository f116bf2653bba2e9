"""FulfilmentStore SQLite implementation -- rollups (upsert) and mirror entries"""

import asyncio
from datetime import date, datetime

import aiosqlite

from ..exceptions import ConflictError
from ..models.enums import PeriodType
from ..models.fulfilment import FulfilmentEntry, FulfilmentRollup
from .columns import day, dumps, loads, parse_ts, ts
from .transaction import is_unique_violation, write_transaction


class SqliteFulfilmentStore:
    """FulfilmentStore backed by SQLite"""

    def __init__(self, conn: aiosqlite.Connection, write_lock: asyncio.Lock) -> None:
        self._conn = conn
        self._write_lock = write_lock

    async def upsert_rollup(self, rollup: FulfilmentRollup) -> FulfilmentRollup:
        """Insert or replace the rollup of its (user, area, dimension, period) key

        The original rollup_id is kept on update, and a row whose values did
        not change keeps its updated_at.
        """
        async with write_transaction(self._conn, self._write_lock):
            await self._conn.execute(
                """
                INSERT INTO fulfilment_rollups (rollup_id, user_id, area_id, dimension,
                                                period_type, period_start, score, confidence,
                                                trend, observations, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (user_id, area_id, dimension, period_type, period_start)
                DO UPDATE SET score = excluded.score,
                              confidence = excluded.confidence,
                              trend = excluded.trend,
                              observations = excluded.observations,
                              updated_at = excluded.updated_at
                WHERE fulfilment_rollups.score IS NOT excluded.score
                   OR fulfilment_rollups.confidence IS NOT excluded.confidence
                   OR fulfilment_rollups.trend IS NOT excluded.trend
                   OR fulfilment_rollups.observations IS NOT excluded.observations
                """,
                (
                    rollup.rollup_id,
                    rollup.user_id,
                    rollup.area_id,
                    rollup.dimension,
                    rollup.period_type.value,
                    day(rollup.period_start),
                    rollup.score,
                    rollup.confidence,
                    rollup.trend,
                    rollup.observations,
                    ts(rollup.updated_at),
                ),
            )
        stored = await self.get_rollup(
            rollup.user_id,
            rollup.area_id,
            rollup.dimension,
            rollup.period_type,
            rollup.period_start,
        )
        assert stored is not None
        return stored

    async def get_rollup(
        self,
        user_id: str,
        area_id: str,
        dimension: str,
        period_type: PeriodType,
        period_start: date,
    ) -> FulfilmentRollup | None:
        cursor = await self._conn.execute(
            """
            SELECT * FROM fulfilment_rollups
            WHERE user_id = ? AND area_id = ? AND dimension = ?
              AND period_type = ? AND period_start = ?
            """,
            (user_id, area_id, dimension, period_type.value, day(period_start)),
        )
        row = await cursor.fetchone()
        return self._row_to_rollup(row) if row else None

    async def find_by_user(
        self,
        user_id: str,
        period_type: PeriodType | None = None,
        period_start: date | None = None,
    ) -> list[FulfilmentRollup]:
        sql = "SELECT * FROM fulfilment_rollups WHERE user_id = ?"
        params: list = [user_id]
        if period_type is not None:
            sql += " AND period_type = ?"
            params.append(period_type.value)
        if period_start is not None:
            sql += " AND period_start = ?"
            params.append(day(period_start))
        sql += " ORDER BY period_start ASC, area_id ASC, dimension ASC"
        cursor = await self._conn.execute(sql, tuple(params))
        return [self._row_to_rollup(row) for row in await cursor.fetchall()]

    async def record_entry(self, entry: FulfilmentEntry) -> FulfilmentEntry:
        """Mirror a contribution into a life area

        Raises:
            ConflictError: (user, life_area, source_type, source_id) already mirrored
        """
        async with write_transaction(self._conn, self._write_lock):
            try:
                await self._conn.execute(
                    """
                    INSERT INTO fulfilment_entries (entry_id, user_id, life_area, source_type,
                                                    source_id, title, metadata, occurred_at,
                                                    created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        entry.entry_id,
                        entry.user_id,
                        entry.life_area,
                        entry.source_type,
                        entry.source_id,
                        entry.title,
                        dumps(entry.metadata),
                        ts(entry.occurred_at),
                        ts(entry.created_at),
                    ),
                )
            except aiosqlite.IntegrityError as e:
                if is_unique_violation(e, "fulfilment_entries"):
                    raise ConflictError(
                        f"{entry.source_type}:{entry.source_id} already mirrored "
                        f"into {entry.life_area}"
                    ) from e
                raise
        return entry

    async def list_entries(
        self,
        user_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
        life_area: str | None = None,
    ) -> list[FulfilmentEntry]:
        sql = "SELECT * FROM fulfilment_entries WHERE user_id = ?"
        params: list = [user_id]
        if life_area is not None:
            sql += " AND life_area = ?"
            params.append(life_area)
        if start is not None:
            sql += " AND occurred_at >= ?"
            params.append(ts(start))
        if end is not None:
            sql += " AND occurred_at < ?"
            params.append(ts(end))
        sql += " ORDER BY occurred_at ASC"
        cursor = await self._conn.execute(sql, tuple(params))
        return [self._row_to_entry(row) for row in await cursor.fetchall()]

    @staticmethod
    def _row_to_rollup(row: aiosqlite.Row) -> FulfilmentRollup:
        return FulfilmentRollup(
            rollup_id=row["rollup_id"],
            user_id=row["user_id"],
            area_id=row["area_id"],
            dimension=row["dimension"],
            period_type=row["period_type"],
            period_start=date.fromisoformat(row["period_start"]),
            score=row["score"],
            confidence=row["confidence"],
            trend=row["trend"],
            observations=row["observations"],
            updated_at=parse_ts(row["updated_at"]),
        )

    @staticmethod
    def _row_to_entry(row: aiosqlite.Row) -> FulfilmentEntry:
        return FulfilmentEntry(
            entry_id=row["entry_id"],
            user_id=row["user_id"],
            life_area=row["life_area"],
            source_type=row["source_type"],
            source_id=row["source_id"],
            title=row["title"],
            metadata=loads(row["metadata"], {}),
            occurred_at=parse_ts(row["occurred_at"]),
            created_at=parse_ts(row["created_at"]),
        )
