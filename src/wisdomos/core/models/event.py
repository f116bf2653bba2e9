"""DomainEvent -- immutable record of something that happened

Events are append-only. ``processed_by`` is maintained by the event store
(one row per (event, agent)); the in-memory object is a snapshot.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .enums import EVENT_SCHEMA_VERSION, EventType


class EventCausality(BaseModel):
    """Causal chain of an event"""

    model_config = ConfigDict(frozen=True)

    parent_event_id: str | None = Field(default=None, description="Event that caused this one")
    root_event_id: str | None = Field(
        default=None,
        description="First event of the cascade, None when this event is the root",
    )
    depth: int = Field(default=0, ge=0, description="Hops from the root event")
    job_id: str | None = Field(default=None, description="Job whose execution emitted it")


class DomainEvent(BaseModel):
    """Domain event, validated against EVENT_PAYLOADS at publish time"""

    model_config = ConfigDict(frozen=True)

    event_id: str = Field(description="ULID, time ordered")
    type: EventType
    user_id: str | None = Field(default=None, description="Owner of the affected records")
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    schema_version: int = Field(default=EVENT_SCHEMA_VERSION)
    causality: EventCausality = Field(default_factory=EventCausality)
    processed_by: tuple[str, ...] = Field(
        default=(), description="Agents that already handled this event"
    )

    @property
    def root_id(self) -> str:
        return self.causality.root_event_id or self.event_id
