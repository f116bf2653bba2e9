"""CommitmentStore SQLite implementation -- life areas, commitments, actions

Commitments are idempotent per (entry_id, statement). Status updates are
compare-and-swap against the expected status.
"""

import asyncio
from datetime import datetime

import aiosqlite

from ..exceptions import ConflictError, NotFoundError
from ..models.commitment import Commitment, CommitmentAction, LifeArea
from ..models.enums import ActionStatus, CommitmentStatus
from .columns import dumps, loads, parse_ts, ts
from .transaction import is_unique_violation, write_transaction


class SqliteAreaStore:
    """Life area repository"""

    def __init__(self, conn: aiosqlite.Connection, write_lock: asyncio.Lock) -> None:
        self._conn = conn
        self._write_lock = write_lock

    async def create_area(self, area: LifeArea) -> LifeArea:
        """Insert an area

        Raises:
            ConflictError: (user_id, code) already taken
        """
        async with write_transaction(self._conn, self._write_lock):
            try:
                await self._conn.execute(
                    """
                    INSERT INTO life_areas (area_id, user_id, code, name, dimensions,
                                            commitment_id, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        area.area_id,
                        area.user_id,
                        area.code,
                        area.name,
                        dumps(area.dimensions),
                        area.commitment_id,
                        ts(area.created_at),
                    ),
                )
            except aiosqlite.IntegrityError as e:
                if is_unique_violation(e):
                    raise ConflictError(
                        f"Area code {area.code} already exists for user {area.user_id}"
                    ) from e
                raise
        return area

    async def get_area(self, area_id: str) -> LifeArea | None:
        cursor = await self._conn.execute("SELECT * FROM life_areas WHERE area_id = ?", (area_id,))
        row = await cursor.fetchone()
        return self._row_to_area(row) if row else None

    async def get_by_code(self, user_id: str, code: str) -> LifeArea | None:
        cursor = await self._conn.execute(
            "SELECT * FROM life_areas WHERE user_id = ? AND code = ?", (user_id, code)
        )
        row = await cursor.fetchone()
        return self._row_to_area(row) if row else None

    async def find_by_user(self, user_id: str) -> list[LifeArea]:
        cursor = await self._conn.execute(
            "SELECT * FROM life_areas WHERE user_id = ? ORDER BY code", (user_id,)
        )
        return [self._row_to_area(row) for row in await cursor.fetchall()]

    async def count_spawned(self, user_id: str) -> int:
        """Number of commitment-spawned areas, drives the CMT_nnn sequence"""
        cursor = await self._conn.execute(
            "SELECT COUNT(*) FROM life_areas WHERE user_id = ? AND code LIKE 'CMT\\_%' ESCAPE '\\'",
            (user_id,),
        )
        row = await cursor.fetchone()
        return row[0] if row else 0

    @staticmethod
    def _row_to_area(row: aiosqlite.Row) -> LifeArea:
        return LifeArea(
            area_id=row["area_id"],
            user_id=row["user_id"],
            code=row["code"],
            name=row["name"],
            dimensions=loads(row["dimensions"], []),
            commitment_id=row["commitment_id"],
            created_at=parse_ts(row["created_at"]),
        )


class SqliteCommitmentStore:
    """Commitment and action repository"""

    def __init__(self, conn: aiosqlite.Connection, write_lock: asyncio.Lock) -> None:
        self._conn = conn
        self._write_lock = write_lock

    async def create_commitment(self, commitment: Commitment) -> tuple[Commitment, bool]:
        """Insert a commitment unless the same (entry, statement) exists

        Returns:
            (commitment, created) -- the stored row and whether it is new
        """
        if commitment.entry_id is not None:
            existing = await self.get_by_source(commitment.entry_id, commitment.statement)
            if existing is not None:
                return existing, False
        async with write_transaction(self._conn, self._write_lock):
            try:
                await self._conn.execute(
                    """
                    INSERT INTO commitments (commitment_id, user_id, statement, confidence,
                                             status, entry_id, area_id, target_date,
                                             created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        commitment.commitment_id,
                        commitment.user_id,
                        commitment.statement,
                        commitment.confidence,
                        commitment.status.value,
                        commitment.entry_id,
                        commitment.area_id,
                        ts(commitment.target_date),
                        ts(commitment.created_at),
                        ts(commitment.updated_at),
                    ),
                )
            except aiosqlite.IntegrityError as e:
                if not is_unique_violation(e):
                    raise
                created = False
            else:
                created = True
        if not created:
            existing = await self.get_by_source(commitment.entry_id or "", commitment.statement)
            if existing is None:
                raise ConflictError(f"Commitment {commitment.commitment_id} already exists")
            return existing, False
        return commitment, True

    async def get_commitment(self, commitment_id: str) -> Commitment | None:
        cursor = await self._conn.execute(
            "SELECT * FROM commitments WHERE commitment_id = ?", (commitment_id,)
        )
        row = await cursor.fetchone()
        return self._row_to_commitment(row) if row else None

    async def get_by_source(self, entry_id: str, statement: str) -> Commitment | None:
        cursor = await self._conn.execute(
            "SELECT * FROM commitments WHERE entry_id = ? AND statement = ?",
            (entry_id, statement),
        )
        row = await cursor.fetchone()
        return self._row_to_commitment(row) if row else None

    async def find_by_user(
        self,
        user_id: str,
        status: CommitmentStatus | None = None,
    ) -> list[Commitment]:
        sql = "SELECT * FROM commitments WHERE user_id = ?"
        params: list = [user_id]
        if status is not None:
            sql += " AND status = ?"
            params.append(status.value)
        sql += " ORDER BY created_at ASC, commitment_id ASC"
        cursor = await self._conn.execute(sql, tuple(params))
        return [self._row_to_commitment(row) for row in await cursor.fetchall()]

    async def list_users_with_active(self) -> list[str]:
        cursor = await self._conn.execute(
            "SELECT DISTINCT user_id FROM commitments WHERE status = ? ORDER BY user_id",
            (CommitmentStatus.ACTIVE.value,),
        )
        return [row[0] for row in await cursor.fetchall()]

    async def update_status(
        self,
        commitment_id: str,
        expected: CommitmentStatus,
        new: CommitmentStatus,
        updated_at: datetime,
    ) -> Commitment:
        """Compare-and-swap a commitment status

        Raises:
            NotFoundError: no such commitment
            ConflictError: current status differs from ``expected``
        """
        async with write_transaction(self._conn, self._write_lock):
            cursor = await self._conn.execute(
                """
                UPDATE commitments SET status = ?, updated_at = ?
                WHERE commitment_id = ? AND status = ?
                """,
                (new.value, ts(updated_at), commitment_id, expected.value),
            )
            updated = cursor.rowcount
        current = await self.get_commitment(commitment_id)
        if current is None:
            raise NotFoundError("Commitment", commitment_id)
        if updated == 0:
            raise ConflictError(
                f"Commitment {commitment_id} is {current.status}, expected {expected}"
            )
        return current

    async def set_area(self, commitment_id: str, area_id: str, updated_at: datetime) -> None:
        async with write_transaction(self._conn, self._write_lock):
            await self._conn.execute(
                "UPDATE commitments SET area_id = ?, updated_at = ? WHERE commitment_id = ?",
                (area_id, ts(updated_at), commitment_id),
            )

    async def set_target_date(
        self, commitment_id: str, target_date: datetime | None, updated_at: datetime
    ) -> None:
        async with write_transaction(self._conn, self._write_lock):
            await self._conn.execute(
                "UPDATE commitments SET target_date = ?, updated_at = ? WHERE commitment_id = ?",
                (ts(target_date), ts(updated_at), commitment_id),
            )

    async def create_action(self, action: CommitmentAction) -> CommitmentAction:
        async with write_transaction(self._conn, self._write_lock):
            await self._conn.execute(
                """
                INSERT INTO commitment_actions (action_id, commitment_id, user_id, title, status,
                                                due_at, completed_at, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    action.action_id,
                    action.commitment_id,
                    action.user_id,
                    action.title,
                    action.status.value,
                    ts(action.due_at),
                    ts(action.completed_at),
                    ts(action.created_at),
                    ts(action.updated_at),
                ),
            )
        return action

    async def update_action_status(
        self,
        action_id: str,
        status: ActionStatus,
        updated_at: datetime,
    ) -> CommitmentAction:
        """Set an action outcome; only pending actions may change

        Raises:
            NotFoundError: no such action
            ConflictError: action already has an outcome
        """
        completed_at = updated_at if status == ActionStatus.COMPLETED else None
        async with write_transaction(self._conn, self._write_lock):
            cursor = await self._conn.execute(
                """
                UPDATE commitment_actions SET status = ?, completed_at = ?, updated_at = ?
                WHERE action_id = ? AND status = ?
                """,
                (
                    status.value,
                    ts(completed_at),
                    ts(updated_at),
                    action_id,
                    ActionStatus.PENDING.value,
                ),
            )
            updated = cursor.rowcount
        action = await self.get_action(action_id)
        if action is None:
            raise NotFoundError("CommitmentAction", action_id)
        if updated == 0:
            raise ConflictError(f"Action {action_id} is already {action.status}")
        return action

    async def get_action(self, action_id: str) -> CommitmentAction | None:
        cursor = await self._conn.execute(
            "SELECT * FROM commitment_actions WHERE action_id = ?", (action_id,)
        )
        row = await cursor.fetchone()
        return self._row_to_action(row) if row else None

    async def list_actions(self, commitment_id: str) -> list[CommitmentAction]:
        cursor = await self._conn.execute(
            "SELECT * FROM commitment_actions WHERE commitment_id = ? ORDER BY created_at ASC",
            (commitment_id,),
        )
        return [self._row_to_action(row) for row in await cursor.fetchall()]

    @staticmethod
    def _row_to_commitment(row: aiosqlite.Row) -> Commitment:
        return Commitment(
            commitment_id=row["commitment_id"],
            user_id=row["user_id"],
            statement=row["statement"],
            confidence=row["confidence"],
            status=row["status"],
            entry_id=row["entry_id"],
            area_id=row["area_id"],
            target_date=parse_ts(row["target_date"]),
            created_at=parse_ts(row["created_at"]),
            updated_at=parse_ts(row["updated_at"]),
        )

    @staticmethod
    def _row_to_action(row: aiosqlite.Row) -> CommitmentAction:
        return CommitmentAction(
            action_id=row["action_id"],
            commitment_id=row["commitment_id"],
            user_id=row["user_id"],
            title=row["title"],
            status=row["status"],
            due_at=parse_ts(row["due_at"]),
            completed_at=parse_ts(row["completed_at"]),
            created_at=parse_ts(row["created_at"]),
            updated_at=parse_ts(row["updated_at"]),
        )
