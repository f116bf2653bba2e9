"""JobStore SQLite implementation

Status writes are compare-and-swap: ``transition`` only updates a row whose
current status matches the expected one. ``deps_met`` is materialised and
recomputed for dependents whenever a job reaches a terminal state.
"""

import asyncio
from datetime import datetime
from typing import Any

import aiosqlite

from ..exceptions import ConflictError, JobStatusConflictError, NotFoundError
from ..models.enums import JobStatus, validate_job_transition
from ..models.job import Job
from .columns import dumps, loads, parse_ts, ts
from .transaction import is_unique_violation, write_transaction

_UPDATABLE = {
    "run_at",
    "attempts",
    "last_error",
    "cancel_requested",
    "updated_at",
}


class SqliteJobStore:
    """JobStore backed by SQLite. Owned by the orchestrator."""

    def __init__(self, conn: aiosqlite.Connection, write_lock: asyncio.Lock) -> None:
        self._conn = conn
        self._write_lock = write_lock

    async def create_job(self, job: Job) -> Job:
        """Insert a job and its dependency edges

        ``deps_met`` is computed from the current status of the dependencies.

        Raises:
            ConflictError: job_id or dedupe_key already present
        """
        async with write_transaction(self._conn, self._write_lock):
            deps_met = await self._all_completed(job.dependencies)
            job = job.model_copy(update={"deps_met": deps_met})
            try:
                await self._conn.execute(
                    """
                    INSERT INTO jobs (job_id, agent, intent, task, payload, user_id, status,
                                      run_at, attempts, max_attempts, backoff, last_error,
                                      deps_met, event_id, envelope, dedupe_key, lock_key,
                                      plan_id, expires_at, cancel_requested, created_at,
                                      updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        job.job_id,
                        job.agent,
                        job.intent.value,
                        job.task,
                        dumps(job.payload),
                        job.user_id,
                        job.status.value,
                        ts(job.run_at),
                        job.attempts,
                        job.max_attempts,
                        job.backoff.value,
                        job.last_error,
                        int(job.deps_met),
                        job.event_id,
                        dumps(job.envelope) if job.envelope is not None else None,
                        job.dedupe_key,
                        job.lock_key,
                        job.plan_id,
                        ts(job.expires_at),
                        int(job.cancel_requested),
                        ts(job.created_at),
                        ts(job.updated_at),
                    ),
                )
            except aiosqlite.IntegrityError as e:
                if is_unique_violation(e):
                    raise ConflictError(f"Job {job.job_id} already exists") from e
                raise
            for dep in job.dependencies:
                await self._conn.execute(
                    "INSERT INTO job_dependencies (job_id, depends_on_id) VALUES (?, ?)",
                    (job.job_id, dep),
                )
        return job

    async def get_job(self, job_id: str) -> Job | None:
        cursor = await self._conn.execute("SELECT * FROM jobs WHERE job_id = ?", (job_id,))
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_job(row, await self._dependencies_of(job_id))

    async def get_by_dedupe_key(self, dedupe_key: str) -> Job | None:
        cursor = await self._conn.execute(
            "SELECT job_id FROM jobs WHERE dedupe_key = ?", (dedupe_key,)
        )
        row = await cursor.fetchone()
        return await self.get_job(row[0]) if row else None

    async def jobs_exist(self, job_ids: list[str]) -> set[str]:
        """Subset of ``job_ids`` that exist"""
        if not job_ids:
            return set()
        placeholders = ",".join("?" for _ in job_ids)
        cursor = await self._conn.execute(
            f"SELECT job_id FROM jobs WHERE job_id IN ({placeholders})",
            tuple(job_ids),
        )
        return {row[0] for row in await cursor.fetchall()}

    async def transition(
        self,
        job_id: str,
        expected: JobStatus,
        new: JobStatus,
        **fields: Any,
    ) -> Job:
        """Compare-and-swap the status of a job

        Args:
            job_id: target job
            expected: status the caller believes the job is in
            new: status to move to
            **fields: extra columns to update (run_at, attempts, last_error, ...)

        Raises:
            ConflictError: illegal transition
            JobStatusConflictError: current status differs from ``expected``
            NotFoundError: no such job
        """
        if not validate_job_transition(expected, new):
            raise ConflictError(f"Illegal job transition {expected} -> {new}")
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update job columns: {sorted(unknown)}")

        assignments = ["status = ?"]
        params: list[Any] = [new.value]
        for name, value in fields.items():
            assignments.append(f"{name} = ?")
            if isinstance(value, datetime):
                value = ts(value)
            elif isinstance(value, bool):
                value = int(value)
            params.append(value)
        params.extend([job_id, expected.value])

        async with write_transaction(self._conn, self._write_lock):
            cursor = await self._conn.execute(
                f"UPDATE jobs SET {', '.join(assignments)} WHERE job_id = ? AND status = ?",
                tuple(params),
            )
            updated = cursor.rowcount

        if updated == 0:
            current = await self.get_job(job_id)
            if current is None:
                raise NotFoundError("Job", job_id)
            raise JobStatusConflictError(job_id, expected.value, current.status.value)

        job = await self.get_job(job_id)
        assert job is not None
        return job

    async def request_cancel(self, job_id: str, updated_at: datetime) -> None:
        """Flag a running job for cooperative cancellation"""
        async with write_transaction(self._conn, self._write_lock):
            await self._conn.execute(
                "UPDATE jobs SET cancel_requested = 1, updated_at = ? WHERE job_id = ?",
                (ts(updated_at), job_id),
            )

    async def list_runnable(
        self,
        now: datetime,
        limit: int,
        exclude_agents: tuple[str, ...] = (),
    ) -> list[Job]:
        """Ready jobs with dependencies met and run_at reached, oldest first"""
        if limit <= 0:
            return []
        sql = "SELECT * FROM jobs WHERE status = ? AND deps_met = 1 AND run_at <= ?"
        params: list[Any] = [JobStatus.READY.value, ts(now)]
        if exclude_agents:
            sql += f" AND agent NOT IN ({','.join('?' for _ in exclude_agents)})"
            params.extend(exclude_agents)
        sql += " ORDER BY run_at ASC, created_at ASC LIMIT ?"
        params.append(limit)
        cursor = await self._conn.execute(sql, tuple(params))
        rows = await cursor.fetchall()
        return [self._row_to_job(row, await self._dependencies_of(row["job_id"])) for row in rows]

    async def list_expired(self, now: datetime) -> list[Job]:
        """Ready jobs whose TTL elapsed"""
        cursor = await self._conn.execute(
            """
            SELECT * FROM jobs
            WHERE status = ? AND expires_at IS NOT NULL AND expires_at <= ?
            ORDER BY created_at ASC
            """,
            (JobStatus.READY.value, ts(now)),
        )
        rows = await cursor.fetchall()
        return [self._row_to_job(row, await self._dependencies_of(row["job_id"])) for row in rows]

    async def next_run_at(self, exclude_agents: tuple[str, ...] = ()) -> datetime | None:
        """Earliest run_at among ready jobs whose dependencies are met"""
        sql = "SELECT MIN(run_at) FROM jobs WHERE status = ? AND deps_met = 1"
        params: list[Any] = [JobStatus.READY.value]
        if exclude_agents:
            sql += f" AND agent NOT IN ({','.join('?' for _ in exclude_agents)})"
            params.extend(exclude_agents)
        cursor = await self._conn.execute(sql, tuple(params))
        row = await cursor.fetchone()
        return parse_ts(row[0]) if row and row[0] else None

    async def refresh_dependents(self, job_id: str) -> list[str]:
        """Recompute deps_met of every job depending on ``job_id``

        Returns:
            ids of dependents whose dependencies are now all completed
        """
        cursor = await self._conn.execute(
            "SELECT job_id FROM job_dependencies WHERE depends_on_id = ?", (job_id,)
        )
        dependents = [row[0] for row in await cursor.fetchall()]
        now_met: list[str] = []
        if not dependents:
            return now_met
        async with write_transaction(self._conn, self._write_lock):
            for dependent in dependents:
                deps = await self._dependencies_of(dependent)
                met = await self._all_completed(deps)
                await self._conn.execute(
                    "UPDATE jobs SET deps_met = ? WHERE job_id = ?",
                    (int(met), dependent),
                )
                if met:
                    now_met.append(dependent)
        return now_met

    async def list_blocked(self) -> list[Job]:
        """Ready jobs with at least one failed or cancelled dependency"""
        cursor = await self._conn.execute(
            """
            SELECT DISTINCT j.* FROM jobs j
            JOIN job_dependencies d ON d.job_id = j.job_id
            JOIN jobs dep ON dep.job_id = d.depends_on_id
            WHERE j.status = ? AND dep.status IN (?, ?)
            ORDER BY j.created_at ASC
            """,
            (JobStatus.READY.value, JobStatus.FAILED.value, JobStatus.CANCELLED.value),
        )
        rows = await cursor.fetchall()
        return [self._row_to_job(row, await self._dependencies_of(row["job_id"])) for row in rows]

    async def list_jobs(
        self,
        user_id: str | None = None,
        status: JobStatus | None = None,
        plan_id: str | None = None,
    ) -> list[Job]:
        """Jobs filtered by owner, status and plan, oldest first"""
        clauses: list[str] = []
        params: list[Any] = []
        if user_id is not None:
            clauses.append("user_id = ?")
            params.append(user_id)
        if status is not None:
            clauses.append("status = ?")
            params.append(status.value)
        if plan_id is not None:
            clauses.append("plan_id = ?")
            params.append(plan_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        cursor = await self._conn.execute(
            f"SELECT * FROM jobs {where} ORDER BY created_at ASC, job_id ASC",
            tuple(params),
        )
        rows = await cursor.fetchall()
        return [self._row_to_job(row, await self._dependencies_of(row["job_id"])) for row in rows]

    async def count_by_status(self) -> dict[str, int]:
        cursor = await self._conn.execute("SELECT status, COUNT(*) FROM jobs GROUP BY status")
        return {row[0]: row[1] for row in await cursor.fetchall()}

    async def _dependencies_of(self, job_id: str) -> list[str]:
        cursor = await self._conn.execute(
            "SELECT depends_on_id FROM job_dependencies WHERE job_id = ? ORDER BY depends_on_id",
            (job_id,),
        )
        return [row[0] for row in await cursor.fetchall()]

    async def _all_completed(self, job_ids: list[str]) -> bool:
        if not job_ids:
            return True
        placeholders = ",".join("?" for _ in job_ids)
        cursor = await self._conn.execute(
            f"SELECT COUNT(*) FROM jobs WHERE job_id IN ({placeholders}) AND status = ?",
            (*job_ids, JobStatus.COMPLETED.value),
        )
        row = await cursor.fetchone()
        return row is not None and row[0] == len(set(job_ids))

    @staticmethod
    def _row_to_job(row: aiosqlite.Row, dependencies: list[str]) -> Job:
        """Convert a jobs row to a Job"""
        return Job(
            job_id=row["job_id"],
            agent=row["agent"],
            intent=row["intent"],
            task=row["task"],
            payload=loads(row["payload"], {}),
            user_id=row["user_id"],
            status=row["status"],
            run_at=parse_ts(row["run_at"]),
            attempts=row["attempts"],
            max_attempts=row["max_attempts"],
            backoff=row["backoff"],
            last_error=row["last_error"],
            dependencies=dependencies,
            deps_met=bool(row["deps_met"]),
            event_id=row["event_id"],
            envelope=loads(row["envelope"]),
            dedupe_key=row["dedupe_key"],
            lock_key=row["lock_key"],
            plan_id=row["plan_id"],
            expires_at=parse_ts(row["expires_at"]),
            cancel_requested=bool(row["cancel_requested"]),
            created_at=parse_ts(row["created_at"]),
            updated_at=parse_ts(row["updated_at"]),
        )
