"""Error taxonomy -- shared by agents, stores and the orchestrator

Every error carries ``retryable``. The orchestrator reads it to decide between
``running -> ready`` (retry with backoff) and ``running -> failed``.
``rejected`` marks requests refused before any state changed (bad input,
wrong owner, missing record, state conflict); their failures are not
missed actions.
"""

from pydantic import BaseModel, Field


class FieldError(BaseModel):
    """Single field-level validation failure"""

    field: str = Field(description="Dotted field path, e.g. retry.count")
    message: str = Field(description="Human readable reason")


class WisdomError(Exception):
    """Base error for the engine"""

    retryable: bool = False
    rejected: bool = False

    def __init__(self, message: str, retryable: bool | None = None) -> None:
        """
        Args:
            message: error description
            retryable: override the class default retry policy
        """
        super().__init__(message)
        self.message = message
        if retryable is not None:
            self.retryable = retryable


class ValidationError(WisdomError):
    """Input rejected at a boundary. Never retried."""

    rejected = True

    def __init__(self, message: str, errors: list[FieldError] | None = None) -> None:
        super().__init__(message, retryable=False)
        self.errors: list[FieldError] = errors or []

    @classmethod
    def single(cls, field: str, message: str) -> "ValidationError":
        return cls(f"{field}: {message}", [FieldError(field=field, message=message)])


class DependencyCycleError(WisdomError):
    """Plan task graph contains at least one cycle"""

    rejected = True

    def __init__(self, cycle: list[str]) -> None:
        super().__init__(f"Dependency cycle detected among tasks: {', '.join(cycle)}")
        self.cycle = cycle


CyclicDependencyError = DependencyCycleError


class RetryableAgentError(WisdomError):
    """Transient agent failure, e.g. classifier timeout or storage busy"""

    retryable = True


class TerminalJobError(WisdomError):
    """A job exhausted its attempts"""

    def __init__(self, job_id: str, agent: str, attempts: int, last_error: str) -> None:
        super().__init__(
            f"Job {job_id} on {agent} failed after {attempts} attempts: {last_error}"
        )
        self.job_id = job_id
        self.agent = agent
        self.attempts = attempts
        self.last_error = last_error


class TimeLockViolation(WisdomError):
    """Edit of an entry outside the lock window"""

    def __init__(self, entry_id: str, days_difference: int, reason: str) -> None:
        super().__init__(f"Entry {entry_id} is time-locked: {reason}")
        self.entry_id = entry_id
        self.days_difference = days_difference
        self.reason = reason


class UnauthorizedError(WisdomError):
    """Actor does not own the target record"""

    rejected = True


class NotFoundError(WisdomError):
    """Referenced record does not exist"""

    rejected = True

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class ConflictError(WisdomError):
    """Write rejected by a uniqueness or state constraint"""

    rejected = True


class JobStatusConflictError(ConflictError):
    """Compare-and-swap on a job status lost the race"""

    def __init__(self, job_id: str, expected: str, actual: str | None) -> None:
        super().__init__(
            f"Job {job_id} status conflict: expected {expected}, found {actual}"
        )
        self.job_id = job_id
        self.expected = expected
        self.actual = actual


class UnregisteredEventTypeError(WisdomError):
    """Event type has no payload schema. Programming error."""


class CascadeLimitExceeded(WisdomError):
    """Event chain exceeded the cascade depth or step budget"""

    def __init__(self, root_event_id: str, depth: int, steps: int) -> None:
        super().__init__(
            f"Cascade limit exceeded for root event {root_event_id} "
            f"(depth={depth}, steps={steps})"
        )
        self.root_event_id = root_event_id
        self.depth = depth
        self.steps = steps


class AgentNotRegisteredError(WisdomError):
    """Job targets an agent nobody registered"""


class JobCancelledError(WisdomError):
    """Raised at a cooperative checkpoint after the job was cancelled"""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job {job_id} was cancelled")
        self.job_id = job_id


def is_rejection(error: BaseException | None) -> bool:
    return isinstance(error, WisdomError) and error.rejected
