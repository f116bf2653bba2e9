"""IntegrityAgent -- promises vs. actions, issue life-cycle, time-lock enforcement

Issues are raised when an action tied to an active commitment fails or is
cancelled, and when a periodic sweep finds an active commitment past its
target date. The monthly integrity score is derived from open issues.
"""

from datetime import date
from typing import Any

import structlog
from pydantic import BaseModel, Field
from ulid import ULID

from wisdomos.core.bus import EventBus
from wisdomos.core.clock import Clock
from wisdomos.core.config import EngineConfig
from wisdomos.core.exceptions import ConflictError, NotFoundError, TimeLockViolation
from wisdomos.core.models import (
    OPEN_ISSUE_STATES,
    AgentType,
    CommitmentStatus,
    DomainEvent,
    EventType,
    IntegrityIssue,
    IssueStatus,
    IssueType,
    JournalEntry,
    PeriodType,
    SecurityEvent,
    Severity,
    TimeLockDecision,
)
from wisdomos.core.models.payloads import (
    ActionOutcomePayload,
    CommitmentStatusChangedPayload,
    FulfilmentRollupCompletedPayload,
    IntegrityIssueRaisedPayload,
    IntegrityIssueResolvedPayload,
    IntegrityScoreComputedPayload,
    JobOutcomePayload,
    SecurityViolationPayload,
)
from wisdomos.core.store.protocols import CommitmentStore, IntegrityStore, JournalStore

from .base import BaseAgent, Operation, ensure_owner, parse_task_payload
from .fulfilment import period_start
from .timelock import evaluate_time_lock

log = structlog.get_logger()

SEVERITY_PENALTY: dict[Severity, int] = {
    Severity.HIGH: 20,
    Severity.MEDIUM: 10,
    Severity.LOW: 5,
}


def severity_for(confidence: float) -> Severity:
    """>= 0.9 high, >= 0.75 medium, else low"""
    if confidence >= 0.9:
        return Severity.HIGH
    if confidence >= 0.75:
        return Severity.MEDIUM
    return Severity.LOW


def integrity_score(issues: list[IntegrityIssue], has_active_commitments: bool = True) -> int:
    """max(0, 100 - 20*high - 10*medium - 5*low) over open issues"""
    if not has_active_commitments:
        return 100
    penalty = sum(
        SEVERITY_PENALTY[issue.severity] for issue in issues if issue.status in OPEN_ISSUE_STATES
    )
    return max(0, 100 - penalty)


class SweepTaskPayload(BaseModel):
    user_id: str | None = Field(default=None, description="None sweeps every user")


class IssueTaskPayload(BaseModel):
    user_id: str = Field(min_length=1)
    issue_id: str = Field(min_length=1)
    resolution: str = ""


class EntryEditTaskPayload(BaseModel):
    user_id: str = Field(min_length=1)
    entry_id: str = Field(min_length=1)


class IntegrityAgent(BaseAgent):
    agent_type = AgentType.INTEGRITY
    subscriptions = (
        EventType.ACTION_FAILED,
        EventType.ACTION_CANCELLED,
        EventType.JOB_FAILED,
        EventType.JOB_CANCELLED,
        EventType.FULFILMENT_ROLLUP_COMPLETED,
    )

    def __init__(
        self,
        bus: EventBus,
        clock: Clock,
        config: EngineConfig,
        journal_store: JournalStore,
        commitment_store: CommitmentStore,
        integrity_store: IntegrityStore,
    ) -> None:
        super().__init__(bus, clock)
        self._config = config
        self._journal = journal_store
        self._commitments = commitment_store
        self._integrity = integrity_store

    @property
    def operations(self) -> dict[str, Operation]:
        return {
            "integrity.sweep": self._sweep_task,
            "integrity.resolve_issue": self._resolve_task,
            "integrity.acknowledge_issue": self._acknowledge_task,
            "integrity.dismiss_issue": self._dismiss_task,
            "integrity.validate_entry_edit": self._validate_edit_task,
        }

    async def on_event(self, payload: BaseModel, event: DomainEvent) -> None:
        match payload:
            case ActionOutcomePayload(
                status=status, commitment_id=commitment_id, action_id=action_id, title=title
            ):
                await self.on_action_missed(
                    commitment_id,
                    action_id=action_id,
                    description=f"Action '{title or action_id}' {status}",
                )
            case JobOutcomePayload(commitment_id=str() as commitment_id) as outcome:
                if outcome.rejected:
                    log.debug(
                        "integrity_rejection_ignored",
                        job_id=outcome.job_id,
                        error_type=outcome.error_type,
                    )
                    return
                await self.on_action_missed(
                    commitment_id,
                    action_id=None,
                    user_id=outcome.user_id,
                    description=(
                        f"Job {outcome.job_id} ({outcome.task or outcome.agent}) "
                        f"{event.type.rsplit('.', 1)[-1]}: {outcome.error or 'no error recorded'}"
                    ),
                )
            case FulfilmentRollupCompletedPayload(user_id=user_id):
                await self.sweep(user_id)
            case _:
                await super().on_event(payload, event)

    # ---- issues ----

    async def on_action_missed(
        self,
        commitment_id: str,
        action_id: str | None,
        description: str,
        user_id: str | None = None,
    ) -> IntegrityIssue | None:
        """Raise an action_missed issue when the commitment is still active

        With ``user_id`` set, only a failure on the owner's behalf counts.
        """
        commitment = await self._commitments.get_commitment(commitment_id)
        if commitment is None or commitment.status != CommitmentStatus.ACTIVE:
            log.debug(
                "integrity_check_skipped",
                commitment_id=commitment_id,
                status=commitment.status if commitment else None,
            )
            return None
        if user_id is not None and user_id != commitment.user_id:
            log.warning(
                "integrity_foreign_failure_ignored",
                commitment_id=commitment_id,
                user_id=user_id,
            )
            return None
        return await self._raise(
            user_id=commitment.user_id,
            commitment_id=commitment_id,
            action_id=action_id,
            issue_type=IssueType.ACTION_MISSED,
            severity=severity_for(commitment.confidence),
            description=description,
        )

    async def _raise(
        self,
        user_id: str,
        commitment_id: str,
        action_id: str | None,
        issue_type: IssueType,
        severity: Severity,
        description: str,
    ) -> IntegrityIssue:
        now = self._clock.now()
        issue, created = await self._integrity.raise_issue(
            IntegrityIssue(
                issue_id=str(ULID()),
                user_id=user_id,
                commitment_id=commitment_id,
                action_id=action_id,
                issue_type=issue_type,
                severity=severity,
                description=description,
                created_at=now,
                updated_at=now,
            )
        )
        if created:
            log.info(
                "integrity_issue_raised",
                issue_id=issue.issue_id,
                user_id=user_id,
                commitment_id=commitment_id,
                issue_type=issue_type,
                severity=severity,
            )
            await self.emit(
                EventType.INTEGRITY_ISSUE_RAISED,
                IntegrityIssueRaisedPayload(
                    issue_id=issue.issue_id,
                    user_id=user_id,
                    commitment_id=commitment_id,
                    issue_type=issue_type,
                    severity=severity,
                    action_id=action_id,
                ),
                user_id=user_id,
            )
        return issue

    async def resolve_issue(self, user_id: str, issue_id: str, resolution: str) -> IntegrityIssue:
        return await self._close_issue(user_id, issue_id, IssueStatus.RESOLVED, resolution)

    async def dismiss_issue(self, user_id: str, issue_id: str, resolution: str) -> IntegrityIssue:
        return await self._close_issue(user_id, issue_id, IssueStatus.DISMISSED, resolution)

    async def acknowledge_issue(self, user_id: str, issue_id: str) -> IntegrityIssue:
        issue = await self._owned_issue(user_id, issue_id)
        if issue.status != IssueStatus.OPEN:
            raise ConflictError(
                f"Issue {issue_id} is {issue.status}, only open issues can be acknowledged"
            )
        updated = await self._integrity.update_issue(
            issue.model_copy(
                update={"status": IssueStatus.ACKNOWLEDGED, "updated_at": self._clock.now()}
            )
        )
        log.info("integrity_issue_acknowledged", issue_id=issue_id, user_id=user_id)
        return updated

    async def _close_issue(
        self, user_id: str, issue_id: str, status: IssueStatus, resolution: str
    ) -> IntegrityIssue:
        issue = await self._owned_issue(user_id, issue_id)
        if issue.status not in OPEN_ISSUE_STATES:
            raise ConflictError(f"Issue {issue_id} is already {issue.status}")
        now = self._clock.now()
        updated = await self._integrity.update_issue(
            issue.model_copy(
                update={
                    "status": status,
                    "resolution": resolution,
                    "resolved_at": now,
                    "updated_at": now,
                }
            )
        )
        log.info("integrity_issue_closed", issue_id=issue_id, user_id=user_id, status=status)
        await self.emit(
            EventType.INTEGRITY_ISSUE_RESOLVED,
            IntegrityIssueResolvedPayload(
                issue_id=issue_id, user_id=user_id, status=status, resolution=resolution
            ),
            user_id=user_id,
        )
        return updated

    async def _owned_issue(self, user_id: str, issue_id: str) -> IntegrityIssue:
        issue = await self._integrity.get_issue(issue_id)
        if issue is None:
            raise NotFoundError("IntegrityIssue", issue_id)
        ensure_owner(issue.user_id, user_id, "IntegrityIssue", issue_id)
        return issue

    # ---- sweep ----

    async def sweep(self, user_id: str | None = None) -> dict[str, int]:
        """Break overdue active commitments and compute integrity scores

        Returns:
            user_id -> integrity score
        """
        users = [user_id] if user_id else await self._commitments.list_users_with_active()
        scores: dict[str, int] = {}
        for uid in users:
            self.checkpoint()
            scores[uid] = await self._sweep_user(uid)
        return scores

    async def _sweep_user(self, user_id: str) -> int:
        now = self._clock.now()
        active = await self._commitments.find_by_user(user_id, CommitmentStatus.ACTIVE)
        has_active = bool(active)

        for commitment in active:
            if commitment.target_date is None or commitment.target_date >= now:
                continue
            try:
                await self._commitments.update_status(
                    commitment.commitment_id,
                    CommitmentStatus.ACTIVE,
                    CommitmentStatus.BROKEN,
                    now,
                )
            except ConflictError:
                log.info(
                    "commitment_changed_during_sweep",
                    commitment_id=commitment.commitment_id,
                )
                continue
            await self.emit(
                EventType.COMMITMENT_STATUS_CHANGED,
                CommitmentStatusChangedPayload(
                    commitment_id=commitment.commitment_id,
                    user_id=user_id,
                    from_status=CommitmentStatus.ACTIVE,
                    to_status=CommitmentStatus.BROKEN,
                    reason="target_date_passed",
                ),
                user_id=user_id,
            )
            await self._raise(
                user_id=user_id,
                commitment_id=commitment.commitment_id,
                action_id=None,
                issue_type=IssueType.PROMISE_BROKEN,
                severity=Severity.HIGH,
                description=f"'{commitment.statement}' was not fulfilled by its target date",
            )

        open_issues = await self._integrity.find_by_user(user_id, open_only=True)
        score = integrity_score(open_issues, has_active)
        month: date = period_start(now, PeriodType.MONTH)
        await self.emit(
            EventType.INTEGRITY_SCORE_COMPUTED,
            IntegrityScoreComputedPayload(
                user_id=user_id,
                period_start=month,
                score=score,
                open_issues=len(open_issues),
            ),
            user_id=user_id,
        )
        log.info(
            "integrity_score_computed",
            user_id=user_id,
            score=score,
            open_issues=len(open_issues),
        )
        return score

    # ---- time-lock ----

    async def validate_entry_edit(self, entry: JournalEntry, user_id: str) -> TimeLockDecision:
        """Allow or reject an edit of ``entry``

        A rejected edit locks the entry, writes a security event and emits
        ``security.violation.detected`` before raising.

        Raises:
            UnauthorizedError: user does not own the entry
            TimeLockViolation: edit outside the lock window, or entry locked
        """
        ensure_owner(entry.user_id, user_id, "JournalEntry", entry.entry_id)
        now = self._clock.now()
        decision = evaluate_time_lock(
            entry.entry_date,
            now,
            grace_days=self._config.time_lock_grace_days,
            lock_days=self._config.time_lock_days,
        )
        if entry.locked:
            decision = TimeLockDecision(
                allowed=False, reason="entry_locked", days_difference=decision.days_difference
            )
        if decision.allowed:
            return decision

        if not entry.locked:
            await self._journal.set_locked(entry.entry_id, now)
        await self._integrity.log_security_event(
            SecurityEvent(
                security_event_id=str(ULID()),
                user_id=user_id,
                event="time_lock_violation",
                details={
                    "entry_id": entry.entry_id,
                    "days_difference": decision.days_difference,
                    "reason": decision.reason,
                },
                created_at=now,
            )
        )
        log.warning(
            "time_lock_violation",
            user_id=user_id,
            entry_id=entry.entry_id,
            days_difference=decision.days_difference,
            reason=decision.reason,
        )
        await self.emit(
            EventType.SECURITY_VIOLATION_DETECTED,
            SecurityViolationPayload(
                user_id=user_id,
                entry_id=entry.entry_id,
                violation=decision.reason,
                days_difference=decision.days_difference,
            ),
            user_id=user_id,
        )
        raise TimeLockViolation(entry.entry_id, decision.days_difference, decision.reason)

    # ---- tasks ----

    async def _sweep_task(self, payload: dict[str, Any]) -> None:
        task = parse_task_payload(SweepTaskPayload, payload)
        await self.sweep(task.user_id)

    async def _resolve_task(self, payload: dict[str, Any]) -> None:
        task = parse_task_payload(IssueTaskPayload, payload)
        await self.resolve_issue(task.user_id, task.issue_id, task.resolution)

    async def _acknowledge_task(self, payload: dict[str, Any]) -> None:
        task = parse_task_payload(IssueTaskPayload, payload)
        await self.acknowledge_issue(task.user_id, task.issue_id)

    async def _dismiss_task(self, payload: dict[str, Any]) -> None:
        task = parse_task_payload(IssueTaskPayload, payload)
        await self.dismiss_issue(task.user_id, task.issue_id, task.resolution)

    async def _validate_edit_task(self, payload: dict[str, Any]) -> None:
        task = parse_task_payload(EntryEditTaskPayload, payload)
        entry = await self._journal.get_entry(task.entry_id)
        if entry is None:
            raise NotFoundError("JournalEntry", task.entry_id)
        await self.validate_entry_edit(entry, task.user_id)
