"""IntegrityStore SQLite implementation -- issues and the security audit log"""

import asyncio

import aiosqlite

from ..exceptions import NotFoundError
from ..models.enums import OPEN_ISSUE_STATES
from ..models.integrity import IntegrityIssue, SecurityEvent
from .columns import dumps, loads, parse_ts, ts
from .transaction import write_transaction


class SqliteIntegrityStore:
    """IntegrityStore backed by SQLite"""

    def __init__(self, conn: aiosqlite.Connection, write_lock: asyncio.Lock) -> None:
        self._conn = conn
        self._write_lock = write_lock

    async def raise_issue(self, issue: IntegrityIssue) -> tuple[IntegrityIssue, bool]:
        """Insert an issue unless (commitment, action, type) already has one

        Returns:
            (issue, created)
        """
        async with write_transaction(self._conn, self._write_lock):
            cursor = await self._conn.execute(
                """
                INSERT OR IGNORE INTO integrity_issues (issue_id, user_id, commitment_id,
                                                        action_id, issue_type, severity, status,
                                                        description, resolution, resolved_at,
                                                        created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    issue.issue_id,
                    issue.user_id,
                    issue.commitment_id,
                    issue.action_id or "",
                    issue.issue_type.value,
                    issue.severity.value,
                    issue.status.value,
                    issue.description,
                    issue.resolution,
                    ts(issue.resolved_at),
                    ts(issue.created_at),
                    ts(issue.updated_at),
                ),
            )
            created = cursor.rowcount > 0
        if created:
            return issue, True
        cursor = await self._conn.execute(
            """
            SELECT * FROM integrity_issues
            WHERE commitment_id = ? AND action_id = ? AND issue_type = ?
            """,
            (issue.commitment_id, issue.action_id or "", issue.issue_type.value),
        )
        row = await cursor.fetchone()
        return self._row_to_issue(row), False

    async def get_issue(self, issue_id: str) -> IntegrityIssue | None:
        cursor = await self._conn.execute(
            "SELECT * FROM integrity_issues WHERE issue_id = ?", (issue_id,)
        )
        row = await cursor.fetchone()
        return self._row_to_issue(row) if row else None

    async def update_issue(self, issue: IntegrityIssue) -> IntegrityIssue:
        async with write_transaction(self._conn, self._write_lock):
            cursor = await self._conn.execute(
                """
                UPDATE integrity_issues
                SET status = ?, resolution = ?, resolved_at = ?, updated_at = ?
                WHERE issue_id = ?
                """,
                (
                    issue.status.value,
                    issue.resolution,
                    ts(issue.resolved_at),
                    ts(issue.updated_at),
                    issue.issue_id,
                ),
            )
            if cursor.rowcount == 0:
                raise NotFoundError("IntegrityIssue", issue.issue_id)
        return issue

    async def find_by_user(self, user_id: str, open_only: bool = False) -> list[IntegrityIssue]:
        sql = "SELECT * FROM integrity_issues WHERE user_id = ?"
        params: list = [user_id]
        if open_only:
            states = sorted(s.value for s in OPEN_ISSUE_STATES)
            sql += f" AND status IN ({','.join('?' for _ in states)})"
            params.extend(states)
        sql += " ORDER BY created_at ASC, issue_id ASC"
        cursor = await self._conn.execute(sql, tuple(params))
        return [self._row_to_issue(row) for row in await cursor.fetchall()]

    async def log_security_event(self, event: SecurityEvent) -> SecurityEvent:
        async with write_transaction(self._conn, self._write_lock):
            await self._conn.execute(
                """
                INSERT INTO security_events (security_event_id, user_id, event, details,
                                             created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    event.security_event_id,
                    event.user_id,
                    event.event,
                    dumps(event.details),
                    ts(event.created_at),
                ),
            )
        return event

    async def list_security_events(self, user_id: str) -> list[SecurityEvent]:
        cursor = await self._conn.execute(
            "SELECT * FROM security_events WHERE user_id = ? ORDER BY created_at ASC",
            (user_id,),
        )
        return [
            SecurityEvent(
                security_event_id=row["security_event_id"],
                user_id=row["user_id"],
                event=row["event"],
                details=loads(row["details"], {}),
                created_at=parse_ts(row["created_at"]),
            )
            for row in await cursor.fetchall()
        ]

    @staticmethod
    def _row_to_issue(row: aiosqlite.Row) -> IntegrityIssue:
        return IntegrityIssue(
            issue_id=row["issue_id"],
            user_id=row["user_id"],
            commitment_id=row["commitment_id"],
            action_id=row["action_id"] or None,
            issue_type=row["issue_type"],
            severity=row["severity"],
            status=row["status"],
            description=row["description"],
            resolution=row["resolution"],
            resolved_at=parse_ts(row["resolved_at"]),
            created_at=parse_ts(row["created_at"]),
            updated_at=parse_ts(row["updated_at"]),
        )
