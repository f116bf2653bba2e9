"""MessageEnvelope -- canonical unit of work handed to the orchestrator

An envelope is immutable once built. ``validate_envelope`` is the only gate:
it is pure and reports every broken field at once.
"""

import re
import uuid
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError
from ulid import ULID

from ..exceptions import FieldError, ValidationError
from .enums import AgentType, BackoffStrategy, Intent, ProvenanceSource

_ULID_RE = re.compile(r"^[0-9A-HJKMNP-TV-Z]{26}$")


def is_valid_identifier(value: str) -> bool:
    """ULID (Crockford base32, 26 chars) or canonical UUID"""
    if not isinstance(value, str):
        return False
    if _ULID_RE.match(value.upper()):
        return True
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


class Provenance(BaseModel):
    """Where an envelope came from"""

    model_config = ConfigDict(frozen=True)

    source: ProvenanceSource = Field(description="system / user / import")
    version: str = Field(default="1.0", description="Producer version")
    metadata: dict[str, Any] = Field(default_factory=dict)


class RetryPolicy(BaseModel):
    """Retry budget carried by the envelope"""

    model_config = ConfigDict(frozen=True)

    count: int = Field(default=0, ge=0, description="Attempts already consumed")
    max: int = Field(default=3, ge=0, description="Maximum attempts")
    backoff: BackoffStrategy = Field(default=BackoffStrategy.EXPONENTIAL)


class MessageEnvelope(BaseModel):
    """Unit of work: which agent, what task, with which payload"""

    model_config = ConfigDict(frozen=True)

    message_id: str = Field(description="ULID or UUID, becomes the job id")
    created_at: datetime = Field(description="Timezone-aware creation instant")
    actor: AgentType = Field(description="Agent that executes the task")
    intent: Intent
    task: str = Field(description="Operation name, e.g. journal.ingest")
    payload: dict[str, Any] = Field(default_factory=dict)
    dependencies: tuple[str, ...] = Field(
        default=(), description="message_ids that must complete first"
    )
    provenance: Provenance = Field(
        default_factory=lambda: Provenance(source=ProvenanceSource.SYSTEM)
    )
    ttl_sec: int = Field(default=86400, gt=0, description="Time to live in seconds")
    retry: RetryPolicy = Field(default_factory=RetryPolicy)

    @field_validator("message_id")
    @classmethod
    def _check_message_id(cls, v: str) -> str:
        if not is_valid_identifier(v):
            raise ValueError("must be a ULID or UUID")
        return v

    @field_validator("created_at")
    @classmethod
    def _check_created_at(cls, v: datetime) -> datetime:
        if v.tzinfo is None or v.utcoffset() is None:
            raise ValueError("must be timezone-aware")
        return v

    @field_validator("task")
    @classmethod
    def _check_task(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be empty")
        return v

    @field_validator("dependencies")
    @classmethod
    def _check_dependencies(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        bad = [dep for dep in v if not is_valid_identifier(dep)]
        if bad:
            raise ValueError(f"malformed identifiers: {', '.join(bad)}")
        return v

    @model_validator(mode="after")
    def _check_retry_budget(self) -> "MessageEnvelope":
        if self.retry.count > self.retry.max:
            raise ValueError("retry.count must not exceed retry.max")
        return self

    @property
    def user_id(self) -> str | None:
        value = self.payload.get("user_id")
        return str(value) if value is not None else None


def _field_path(loc: tuple) -> str:
    path = ".".join(str(part) for part in loc if part != "__root__")
    return path or "envelope"


def validate_envelope(data: Mapping[str, Any] | MessageEnvelope) -> MessageEnvelope:
    """Validate raw data (or an already built envelope) into a MessageEnvelope

    Args:
        data: mapping from a hand-off boundary, or an envelope to re-check

    Returns:
        The validated, immutable envelope

    Raises:
        ValidationError: with one FieldError per broken field
    """
    if isinstance(data, MessageEnvelope):
        data = data.model_dump()
    try:
        return MessageEnvelope.model_validate(data)
    except PydanticValidationError as e:
        errors = []
        for err in e.errors():
            field = _field_path(err["loc"])
            if err["type"] == "value_error" and not err["loc"]:
                # model-level check, currently only the retry budget
                field = "retry.count"
            errors.append(FieldError(field=field, message=err["msg"]))
        raise ValidationError(
            f"Invalid envelope: {len(errors)} field error(s)",
            errors,
        ) from e


def new_envelope(
    actor: AgentType,
    task: str,
    payload: dict[str, Any] | None = None,
    intent: Intent = Intent.EXECUTE,
    dependencies: list[str] | tuple[str, ...] = (),
    source: ProvenanceSource = ProvenanceSource.SYSTEM,
    ttl_sec: int = 86400,
    max_attempts: int = 3,
    backoff: BackoffStrategy = BackoffStrategy.EXPONENTIAL,
    created_at: datetime | None = None,
    metadata: dict[str, Any] | None = None,
    message_id: str | None = None,
) -> MessageEnvelope:
    """Build a fresh envelope (new ULID unless ``message_id`` is given) and validate it"""
    return validate_envelope(
        {
            "message_id": message_id or str(ULID()),
            "created_at": created_at or datetime.now(UTC),
            "actor": actor,
            "intent": intent,
            "task": task,
            "payload": payload or {},
            "dependencies": tuple(dependencies),
            "provenance": {"source": source, "metadata": metadata or {}},
            "ttl_sec": ttl_sec,
            "retry": {"count": 0, "max": max_attempts, "backoff": backoff},
        }
    )
