"""Execution context -- causality and cancellation for the running job

The orchestrator sets a ``JobContext`` around each job execution. Events
emitted inside inherit causality from it (parent, root, depth), and agents
poll its cancellation flag at checkpoints.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field

from .exceptions import JobCancelledError
from .models.event import DomainEvent, EventCausality


@dataclass
class CancellationToken:
    job_id: str
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise JobCancelledError(self.job_id)


@dataclass
class JobContext:
    job_id: str
    agent: str
    token: CancellationToken
    trigger: DomainEvent | None = None
    emitted: list[str] = field(default_factory=list)

    def causality_for_child(self) -> EventCausality:
        """Causality for an event emitted by this job"""
        if self.trigger is None:
            return EventCausality(job_id=self.job_id)
        return EventCausality(
            parent_event_id=self.trigger.event_id,
            root_event_id=self.trigger.root_id,
            depth=self.trigger.causality.depth + 1,
            job_id=self.job_id,
        )


_current_job: ContextVar[JobContext | None] = ContextVar("wisdomos_current_job", default=None)


def current_job() -> JobContext | None:
    return _current_job.get()


@contextmanager
def job_scope(ctx: JobContext) -> Iterator[JobContext]:
    """Bind ``ctx`` as the running job for the enclosed block"""
    reset = _current_job.set(ctx)
    try:
        yield ctx
    finally:
        _current_job.reset(reset)


def checkpoint() -> None:
    """Cooperative cancellation point; no-op outside a job"""
    ctx = _current_job.get()
    if ctx is not None:
        ctx.token.raise_if_cancelled()
