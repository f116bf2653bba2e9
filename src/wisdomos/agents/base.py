"""BaseAgent -- uniform contract of the reactive agents

An agent handles two kinds of input:

- ``DomainEvent``: the payload is parsed into its typed model and passed to
  ``on_event``, where subclasses pattern-match on the closed set of payload
  models.
- ``MessageEnvelope``: ``envelope.task`` selects an entry of ``operations``.

Agents never touch storage or inference directly: repositories and the
classifier are injected. ``emit`` builds a DomainEvent whose causality comes
from the job currently running (see ``wisdomos.core.cascade``).
"""

from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from ulid import ULID

from wisdomos.core.bus import EventBus
from wisdomos.core.cascade import checkpoint, current_job
from wisdomos.core.clock import Clock
from wisdomos.core.exceptions import FieldError, UnauthorizedError, ValidationError
from wisdomos.core.models import (
    AgentType,
    DomainEvent,
    EventCausality,
    EventType,
    MessageEnvelope,
    parse_event_payload,
)

log = structlog.get_logger()

P = TypeVar("P", bound=BaseModel)

Operation = Callable[[dict[str, Any]], Awaitable[Any]]

# Task name of plan tasks handed to an agent by the planner
PLAN_TASK = "plan.task"


def parse_task_payload(model: type[P], payload: dict[str, Any]) -> P:
    """Validate an envelope payload into a task payload model

    Raises:
        ValidationError: with one FieldError per broken field
    """
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        errors = [
            FieldError(
                field=".".join(str(p) for p in err["loc"]) or "payload",
                message=err["msg"],
            )
            for err in e.errors()
        ]
        raise ValidationError(f"Invalid payload for {model.__name__}", errors) from e


def ensure_owner(owner_id: str, user_id: str, entity: str, entity_id: str) -> None:
    """Reject access by anyone but the owning user"""
    if owner_id != user_id:
        raise UnauthorizedError(f"User {user_id} does not own {entity} {entity_id}")


class BaseAgent:
    """Reactive agent

    Subclasses set ``agent_type`` and ``subscriptions``, override
    ``on_event`` and fill ``operations``.
    """

    agent_type: AgentType
    subscriptions: tuple[EventType, ...] = ()

    def __init__(self, bus: EventBus, clock: Clock) -> None:
        self._bus = bus
        self._clock = clock

    @property
    def operations(self) -> dict[str, Operation]:
        """task name -> coroutine taking the envelope payload"""
        return {}

    async def handle(self, message: DomainEvent | MessageEnvelope) -> None:
        """Entry point used by the orchestrator

        Raises:
            ValidationError: unknown task or malformed payload
        """
        if isinstance(message, DomainEvent):
            payload = parse_event_payload(message.type, message.payload)
            await self.on_event(payload, message)
            return

        operation = self.operations.get(message.task)
        if operation is None and message.task == PLAN_TASK:
            operation = self.run_plan_task
        if operation is None:
            raise ValidationError.single(
                "task", f"{self.agent_type} has no operation {message.task!r}"
            )
        await operation(message.payload)

    async def run_plan_task(self, payload: dict[str, Any]) -> None:
        """Default handling of a planned task: acknowledge it

        A plan task describes work (research, drafting, a review) done
        outside the engine. The engine's part ends here: completing the job
        marks the task as handed off and releases its dependents. No domain
        state changes. Agents that can carry a task out themselves override
        this method.
        """
        log.info(
            "plan_task_acknowledged",
            agent=self.agent_type,
            task_id=payload.get("task_id"),
            plan_id=payload.get("plan_id"),
        )

    async def on_event(self, payload: BaseModel, event: DomainEvent) -> None:
        log.debug(
            "event_ignored",
            agent=self.agent_type,
            event_id=event.event_id,
            event_type=event.type,
        )

    async def emit(
        self,
        event_type: EventType,
        payload: BaseModel,
        user_id: str | None = None,
    ) -> DomainEvent:
        """Build a DomainEvent in the current cascade and publish it"""
        ctx = current_job()
        causality = ctx.causality_for_child() if ctx is not None else EventCausality()
        event = DomainEvent(
            event_id=str(ULID()),
            type=event_type,
            user_id=user_id,
            payload=payload.model_dump(mode="json"),
            created_at=self._clock.now(),
            causality=causality,
        )
        if ctx is not None:
            ctx.emitted.append(event.event_id)
        await self._bus.publish(event)
        return event

    def checkpoint(self) -> None:
        """Cooperative cancellation point"""
        checkpoint()
