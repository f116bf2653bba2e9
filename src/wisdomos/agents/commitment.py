"""CommitmentAgent -- commitment detection, confirmation and actions

On ``journal.entry.created`` the agent runs commitment detection over the
entry. Confident detections (above the auto-spawn threshold) start ``active``
and get an area immediately; the rest start ``detected`` and wait for a
human confirmation. Detection is idempotent per (entry, statement).
"""

from datetime import UTC, datetime
from typing import Any

import structlog
from pydantic import BaseModel, Field
from ulid import ULID

from wisdomos.classifier import Classifier, clamp
from wisdomos.core.bus import EventBus
from wisdomos.core.clock import Clock
from wisdomos.core.config import STATEMENT_MAX_LENGTH, EngineConfig
from wisdomos.core.exceptions import ConflictError, NotFoundError, ValidationError
from wisdomos.core.models import (
    ActionStatus,
    AgentType,
    Commitment,
    CommitmentAction,
    CommitmentStatus,
    DomainEvent,
    EventType,
    validate_commitment_transition,
)
from wisdomos.core.models.payloads import (
    ActionOutcomePayload,
    CommitmentConfirmedPayload,
    CommitmentDetectedPayload,
    CommitmentStatusChangedPayload,
    JournalEntryCreatedPayload,
)
from wisdomos.core.store.protocols import CommitmentStore, JournalStore

from .area_generator import AreaGeneratorAgent
from .base import BaseAgent, Operation, ensure_owner, parse_task_payload

log = structlog.get_logger()

_ACTION_EVENTS: dict[ActionStatus, EventType] = {
    ActionStatus.COMPLETED: EventType.ACTION_COMPLETED,
    ActionStatus.FAILED: EventType.ACTION_FAILED,
    ActionStatus.CANCELLED: EventType.ACTION_CANCELLED,
}


class CommitmentTaskPayload(BaseModel):
    user_id: str = Field(min_length=1)
    commitment_id: str = Field(min_length=1)
    target_date: datetime | None = None
    reason: str = ""


class RecordActionTaskPayload(BaseModel):
    user_id: str = Field(min_length=1)
    commitment_id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    due_at: datetime | None = None


class UpdateActionTaskPayload(BaseModel):
    user_id: str = Field(min_length=1)
    action_id: str = Field(min_length=1)
    status: ActionStatus


def _aware(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


class CommitmentAgent(BaseAgent):
    agent_type = AgentType.COMMITMENT
    subscriptions = (EventType.JOURNAL_ENTRY_CREATED,)

    def __init__(
        self,
        bus: EventBus,
        clock: Clock,
        config: EngineConfig,
        journal_store: JournalStore,
        commitment_store: CommitmentStore,
        classifier: Classifier,
        area_generator: AreaGeneratorAgent,
    ) -> None:
        super().__init__(bus, clock)
        self._config = config
        self._journal = journal_store
        self._commitments = commitment_store
        self._classifier = classifier
        self._area_generator = area_generator

    @property
    def operations(self) -> dict[str, Operation]:
        return {
            "commitment.confirm": self._confirm_task,
            "commitment.fulfil": self._fulfil_task,
            "commitment.cancel": self._cancel_task,
            "commitment.record_action": self._record_action_task,
            "commitment.update_action": self._update_action_task,
        }

    async def on_event(self, payload: BaseModel, event: DomainEvent) -> None:
        match payload:
            case JournalEntryCreatedPayload(entry_id=entry_id):
                await self.detect(entry_id)
            case _:
                await super().on_event(payload, event)

    # ---- detection ----

    async def detect(self, entry_id: str) -> list[Commitment]:
        """Create commitments for the statements found in an entry"""
        entry = await self._journal.get_entry(entry_id)
        if entry is None:
            raise NotFoundError("JournalEntry", entry_id)

        detection = await self._classifier.detect_commitments(entry.content)
        confidence = round(clamp(detection.confidence, 0.0, 1.0), 4)
        if not detection.statements:
            return []

        auto_spawn = confidence > self._config.auto_spawn_confidence
        results: list[Commitment] = []
        for raw in detection.statements:
            statement = raw.strip()[:STATEMENT_MAX_LENGTH]
            if not statement:
                continue
            self.checkpoint()
            now = self._clock.now()
            commitment, created = await self._commitments.create_commitment(
                Commitment(
                    commitment_id=str(ULID()),
                    user_id=entry.user_id,
                    statement=statement,
                    confidence=confidence,
                    status=CommitmentStatus.ACTIVE if auto_spawn else CommitmentStatus.DETECTED,
                    entry_id=entry_id,
                    created_at=now,
                    updated_at=now,
                )
            )
            results.append(commitment)
            if not created and (
                commitment.status != CommitmentStatus.ACTIVE or commitment.area_id is not None
            ):
                log.debug("commitment_already_detected", commitment_id=commitment.commitment_id)
                continue

            area_id = None
            if commitment.status == CommitmentStatus.ACTIVE:
                area = await self._area_generator.spawn_area(commitment)
                area_id = area.area_id

            log.info(
                "commitment_detected",
                commitment_id=commitment.commitment_id,
                user_id=entry.user_id,
                confidence=confidence,
                status=commitment.status,
            )
            await self.emit(
                EventType.COMMITMENT_DETECTED,
                CommitmentDetectedPayload(
                    commitment_id=commitment.commitment_id,
                    user_id=entry.user_id,
                    statement=statement,
                    confidence=confidence,
                    entry_id=entry_id,
                    requires_confirmation=area_id is None,
                    auto_spawned=area_id is not None,
                    area_id=area_id,
                ),
                user_id=entry.user_id,
            )
        return results

    # ---- life-cycle ----

    async def confirm(
        self, user_id: str, commitment_id: str, target_date: datetime | None = None
    ) -> Commitment:
        """detected -> confirmed; the area generator then activates it"""
        commitment = await self._owned(user_id, commitment_id)
        now = self._clock.now()
        if target_date is not None:
            await self._commitments.set_target_date(commitment_id, _aware(target_date), now)
        confirmed = await self._transition(commitment, CommitmentStatus.CONFIRMED, "user_confirmed")
        await self.emit(
            EventType.COMMITMENT_CONFIRMED,
            CommitmentConfirmedPayload(commitment_id=commitment_id, user_id=user_id),
            user_id=user_id,
        )
        return confirmed

    async def fulfil(self, user_id: str, commitment_id: str) -> Commitment:
        commitment = await self._owned(user_id, commitment_id)
        return await self._transition(commitment, CommitmentStatus.FULFILLED, "user_fulfilled")

    async def cancel(self, user_id: str, commitment_id: str, reason: str = "") -> Commitment:
        commitment = await self._owned(user_id, commitment_id)
        return await self._transition(
            commitment, CommitmentStatus.CANCELLED, reason or "user_cancelled"
        )

    async def _transition(
        self, commitment: Commitment, new: CommitmentStatus, reason: str
    ) -> Commitment:
        if not validate_commitment_transition(commitment.status, new):
            raise ConflictError(
                f"Commitment {commitment.commitment_id} cannot go from "
                f"{commitment.status} to {new}"
            )
        updated = await self._commitments.update_status(
            commitment.commitment_id, commitment.status, new, self._clock.now()
        )
        log.info(
            "commitment_status_changed",
            commitment_id=commitment.commitment_id,
            from_status=commitment.status,
            to_status=new,
        )
        await self.emit(
            EventType.COMMITMENT_STATUS_CHANGED,
            CommitmentStatusChangedPayload(
                commitment_id=commitment.commitment_id,
                user_id=commitment.user_id,
                from_status=commitment.status,
                to_status=new,
                reason=reason,
            ),
            user_id=commitment.user_id,
        )
        return updated

    async def _owned(self, user_id: str, commitment_id: str) -> Commitment:
        commitment = await self._commitments.get_commitment(commitment_id)
        if commitment is None:
            raise NotFoundError("Commitment", commitment_id)
        ensure_owner(commitment.user_id, user_id, "Commitment", commitment_id)
        return commitment

    # ---- actions ----

    async def record_action(
        self,
        user_id: str,
        commitment_id: str,
        title: str,
        due_at: datetime | None = None,
    ) -> CommitmentAction:
        commitment = await self._owned(user_id, commitment_id)
        if commitment.status in (
            CommitmentStatus.FULFILLED,
            CommitmentStatus.BROKEN,
            CommitmentStatus.CANCELLED,
        ):
            raise ConflictError(f"Commitment {commitment_id} is {commitment.status}")
        now = self._clock.now()
        action = await self._commitments.create_action(
            CommitmentAction(
                action_id=str(ULID()),
                commitment_id=commitment_id,
                user_id=user_id,
                title=title,
                due_at=_aware(due_at),
                created_at=now,
                updated_at=now,
            )
        )
        log.info(
            "commitment_action_recorded",
            action_id=action.action_id,
            commitment_id=commitment_id,
        )
        return action

    async def update_action(
        self, user_id: str, action_id: str, status: ActionStatus
    ) -> CommitmentAction:
        """Record an action outcome and announce it"""
        if status == ActionStatus.PENDING:
            raise ValidationError.single("status", "an outcome cannot be pending")
        action = await self._commitments.get_action(action_id)
        if action is None:
            raise NotFoundError("CommitmentAction", action_id)
        ensure_owner(action.user_id, user_id, "CommitmentAction", action_id)

        updated = await self._commitments.update_action_status(
            action_id, status, self._clock.now()
        )
        log.info("commitment_action_updated", action_id=action_id, status=status)
        await self.emit(
            _ACTION_EVENTS[status],
            ActionOutcomePayload(
                action_id=action_id,
                user_id=user_id,
                commitment_id=action.commitment_id,
                status=status,
                title=action.title,
            ),
            user_id=user_id,
        )
        return updated

    # ---- tasks ----

    async def _confirm_task(self, payload: dict[str, Any]) -> None:
        task = parse_task_payload(CommitmentTaskPayload, payload)
        await self.confirm(task.user_id, task.commitment_id, task.target_date)

    async def _fulfil_task(self, payload: dict[str, Any]) -> None:
        task = parse_task_payload(CommitmentTaskPayload, payload)
        await self.fulfil(task.user_id, task.commitment_id)

    async def _cancel_task(self, payload: dict[str, Any]) -> None:
        task = parse_task_payload(CommitmentTaskPayload, payload)
        await self.cancel(task.user_id, task.commitment_id, task.reason)

    async def _record_action_task(self, payload: dict[str, Any]) -> None:
        task = parse_task_payload(RecordActionTaskPayload, payload)
        await self.record_action(task.user_id, task.commitment_id, task.title, task.due_at)

    async def _update_action_task(self, payload: dict[str, Any]) -> None:
        task = parse_task_payload(UpdateActionTaskPayload, payload)
        await self.update_action(task.user_id, task.action_id, task.status)
