"""Job Domain Model -- orchestrator-owned unit of scheduled execution

A job is created from either an envelope (``job_id == message_id``) or an
event fan-out (``dedupe_key == event:<event_id>:<agent>``). Only the
orchestrator writes job status.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from .enums import BackoffStrategy, Intent, JobStatus


class Job(BaseModel):
    """Job record"""

    job_id: str = Field(description="ULID; equals the envelope message_id")
    agent: str = Field(description="AgentType value, or 'human'")
    intent: Intent = Intent.EXECUTE
    task: str = Field(description="Operation name; empty for event reactions")
    payload: dict[str, Any] = Field(default_factory=dict)
    user_id: str | None = None
    status: JobStatus = JobStatus.READY
    run_at: datetime = Field(description="Not runnable before this instant")
    attempts: int = Field(default=0, ge=0, description="Retries consumed")
    max_attempts: int = Field(default=3, ge=1)
    backoff: BackoffStrategy = BackoffStrategy.EXPONENTIAL
    last_error: str | None = None
    dependencies: list[str] = Field(default_factory=list)
    deps_met: bool = True
    event_id: str | None = Field(default=None, description="Set for event reactions")
    envelope: dict[str, Any] | None = Field(
        default=None, description="Serialized envelope for envelope jobs"
    )
    dedupe_key: str | None = None
    lock_key: str | None = Field(default=None, description="Jobs sharing it never overlap")
    plan_id: str | None = None
    expires_at: datetime | None = None
    cancel_requested: bool = False
    created_at: datetime
    updated_at: datetime

    @property
    def is_event_reaction(self) -> bool:
        return self.event_id is not None


class RunSummary(BaseModel):
    """Outcome counters of an orchestrator drain"""

    dispatched: int = 0
    completed: int = 0
    retried: int = 0
    failed: int = 0
    cancelled: int = 0
    expired: int = 0
    blocked: list[str] = Field(default_factory=list, description="Jobs waiting on failed deps")
    cascade_refusals: int = 0
    terminal_errors: list[str] = Field(default_factory=list)
