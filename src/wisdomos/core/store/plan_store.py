"""PlanStore SQLite implementation -- plans with their task list as JSON"""

import asyncio

import aiosqlite

from ..models.plan import PlanDefinition, TaskDefinition
from .columns import dumps, loads, parse_ts, ts
from .transaction import write_transaction


class SqlitePlanStore:
    def __init__(self, conn: aiosqlite.Connection, write_lock: asyncio.Lock) -> None:
        self._conn = conn
        self._write_lock = write_lock

    async def create_plan(self, plan: PlanDefinition) -> PlanDefinition:
        async with write_transaction(self._conn, self._write_lock):
            await self._conn.execute(
                """
                INSERT INTO plans (plan_id, user_id, objective, constraints, priority,
                                   deadline, status, tasks, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    plan.plan_id,
                    plan.user_id,
                    plan.objective,
                    dumps(plan.constraints),
                    plan.priority,
                    ts(plan.deadline),
                    plan.status.value,
                    dumps([t.model_dump(mode="json") for t in plan.tasks]),
                    ts(plan.created_at),
                ),
            )
        return plan

    async def get_plan(self, plan_id: str) -> PlanDefinition | None:
        cursor = await self._conn.execute("SELECT * FROM plans WHERE plan_id = ?", (plan_id,))
        row = await cursor.fetchone()
        return self._row_to_plan(row) if row else None

    async def find_by_user(self, user_id: str) -> list[PlanDefinition]:
        cursor = await self._conn.execute(
            "SELECT * FROM plans WHERE user_id = ? ORDER BY created_at ASC", (user_id,)
        )
        return [self._row_to_plan(row) for row in await cursor.fetchall()]

    @staticmethod
    def _row_to_plan(row: aiosqlite.Row) -> PlanDefinition:
        return PlanDefinition(
            plan_id=row["plan_id"],
            user_id=row["user_id"],
            objective=row["objective"],
            constraints=loads(row["constraints"], []),
            priority=row["priority"],
            deadline=parse_ts(row["deadline"]),
            status=row["status"],
            tasks=[TaskDefinition.model_validate(t) for t in loads(row["tasks"], [])],
            created_at=parse_ts(row["created_at"]),
        )
