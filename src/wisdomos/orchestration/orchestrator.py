"""Orchestrator -- job scheduling, retries and event fan-out

The orchestrator is the only writer of job status. Work enters through
``submit`` (envelopes) or through the event fan-out (one reaction job per
subscribed agent). A poll loop dispatches runnable jobs as asyncio tasks,
bounded by ``max_concurrent_jobs``; every status change is a compare-and-swap
transition on the job store.
"""

import asyncio
from collections import defaultdict
from collections.abc import Mapping
from datetime import datetime, timedelta
from typing import Any

import structlog
from ulid import ULID

from wisdomos.agents.base import BaseAgent
from wisdomos.core.bus import EventBus
from wisdomos.core.cascade import CancellationToken, JobContext, job_scope
from wisdomos.core.clock import Clock
from wisdomos.core.config import CONTENT_PREVIEW_LENGTH, EngineConfig
from wisdomos.core.exceptions import (
    AgentNotRegisteredError,
    CascadeLimitExceeded,
    ConflictError,
    FieldError,
    JobCancelledError,
    JobStatusConflictError,
    NotFoundError,
    TerminalJobError,
    UnauthorizedError,
    ValidationError,
    WisdomError,
    is_rejection,
)
from wisdomos.core.locks import KeyedLocks
from wisdomos.core.models import (
    HUMAN_OWNER,
    BackoffStrategy,
    DomainEvent,
    EventCausality,
    EventType,
    Intent,
    Job,
    JobStatus,
    MessageEnvelope,
    RunSummary,
    validate_envelope,
)
from wisdomos.core.models.payloads import JobOutcomePayload
from wisdomos.core.store.job_store import SqliteJobStore
from wisdomos.core.store.protocols import EventStore

from .debounce import RollupDebouncer

log = structlog.get_logger()

# Agents the poll loop never dispatches; their jobs are completed explicitly
_MANUAL_AGENTS: tuple[str, ...] = (HUMAN_OWNER,)

_OUTCOME_EVENTS: dict[JobStatus, EventType] = {
    JobStatus.COMPLETED: EventType.JOB_COMPLETED,
    JobStatus.FAILED: EventType.JOB_FAILED,
    JobStatus.CANCELLED: EventType.JOB_CANCELLED,
}


def backoff_delay(strategy: BackoffStrategy, attempts: int, base: float = 2.0) -> float:
    """Seconds to wait before retry number ``attempts`` (1-based)"""
    match strategy:
        case BackoffStrategy.EXPONENTIAL:
            return base**attempts
        case BackoffStrategy.LINEAR:
            return base * attempts
        case _:
            return base


def dedupe_key_for(event_id: str, agent: str) -> str:
    return f"event:{event_id}:{agent}"


def _payload_summary(payload: dict[str, Any]) -> dict[str, str]:
    return {key: str(value)[:CONTENT_PREVIEW_LENGTH] for key, value in payload.items()}


class Orchestrator:
    """Schedules and executes jobs for the registered agents"""

    def __init__(
        self,
        job_store: SqliteJobStore,
        event_store: EventStore,
        bus: EventBus,
        clock: Clock,
        config: EngineConfig,
        locks: KeyedLocks | None = None,
    ) -> None:
        self._jobs = job_store
        self._events = event_store
        self._bus = bus
        self._clock = clock
        self._config = config
        self._locks = locks or KeyedLocks()
        self._debouncer = RollupDebouncer(config.rollup_debounce_sec)

        self._agents: dict[str, BaseAgent] = {}
        self._reactors: dict[EventType, list[BaseAgent]] = defaultdict(list)

        self._running: dict[str, tuple[asyncio.Task, CancellationToken]] = {}
        self._running_lock_keys: dict[str, str] = {}
        self._wake = asyncio.Event()
        self._loop_task: asyncio.Task | None = None
        self._stopping = False
        self.summary = RunSummary()

    # ---- registry ----

    @property
    def agents(self) -> dict[str, BaseAgent]:
        return dict(self._agents)

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def is_registered(self, agent: str) -> bool:
        return agent in self._agents

    def register(self, agent: BaseAgent) -> None:
        """Register an agent and subscribe the fan-out to its event types"""
        key = str(agent.agent_type)
        if key in self._agents:
            raise ConflictError(f"Agent {key} is already registered")
        self._agents[key] = agent
        for event_type in agent.subscriptions:
            if not self._reactors[event_type]:
                self._bus.subscribe(event_type, self._fan_out)
            self._reactors[event_type].append(agent)
        log.info(
            "agent_registered",
            agent=key,
            subscriptions=[str(t) for t in agent.subscriptions],
        )

    # ---- public API ----

    async def submit(
        self,
        envelope: MessageEnvelope | Mapping[str, Any],
        *,
        agent: str | None = None,
        run_at: datetime | None = None,
        plan_id: str | None = None,
        lock_key: str | None = None,
    ) -> Job:
        """Validate an envelope and enqueue it as a job (job_id = message_id)

        Resubmitting the same message_id returns the existing job.

        Raises:
            ValidationError: malformed envelope or unknown dependencies
        """
        envelope = validate_envelope(envelope)
        existing = await self._jobs.get_job(envelope.message_id)
        if existing is not None:
            log.info("job_already_submitted", job_id=existing.job_id)
            return existing

        dependencies = list(dict.fromkeys(envelope.dependencies))
        known = await self._jobs.jobs_exist(dependencies)
        missing = [dep for dep in dependencies if dep not in known]
        if missing:
            raise ValidationError(
                f"Unknown dependencies: {', '.join(missing)}",
                [FieldError(field="dependencies", message=f"unknown job {dep}") for dep in missing],
            )

        now = self._clock.now()
        job = Job(
            job_id=envelope.message_id,
            agent=agent or str(envelope.actor),
            intent=envelope.intent,
            task=envelope.task,
            payload=dict(envelope.payload),
            user_id=envelope.user_id,
            run_at=run_at or now,
            attempts=envelope.retry.count,
            max_attempts=max(1, envelope.retry.max),
            backoff=envelope.retry.backoff,
            dependencies=dependencies,
            envelope=envelope.model_dump(mode="json"),
            lock_key=lock_key,
            plan_id=plan_id,
            expires_at=envelope.created_at + timedelta(seconds=envelope.ttl_sec),
            created_at=now,
            updated_at=now,
        )
        try:
            job = await self._jobs.create_job(job)
        except ConflictError:
            existing = await self._jobs.get_job(envelope.message_id)
            if existing is None:
                raise
            log.info("job_already_submitted", job_id=existing.job_id)
            return existing

        log.info(
            "job_submitted",
            job_id=job.job_id,
            agent=job.agent,
            task=job.task,
            deps_met=job.deps_met,
        )
        self._wake.set()
        return job

    async def get_job(self, job_id: str) -> Job:
        job = await self._jobs.get_job(job_id)
        if job is None:
            raise NotFoundError("Job", job_id)
        return job

    async def jobs_for_user(self, user_id: str, status: JobStatus | None = None) -> list[Job]:
        return await self._jobs.list_jobs(user_id=user_id, status=status)

    async def jobs_for_plan(self, plan_id: str) -> list[Job]:
        return await self._jobs.list_jobs(plan_id=plan_id)

    async def cancel(self, job_id: str, user_id: str | None = None) -> Job:
        """Cancel a ready job, or flag a running one

        Cancelling an already cancelled job is a no-op.

        Raises:
            NotFoundError: unknown job
            UnauthorizedError: job belongs to another user
            ConflictError: job already completed or failed
        """
        job = await self.get_job(job_id)
        if user_id is not None and job.user_id != user_id:
            raise UnauthorizedError(f"User {user_id} does not own job {job_id}")

        if job.status == JobStatus.CANCELLED:
            return job
        if job.status in (JobStatus.COMPLETED, JobStatus.FAILED):
            raise ConflictError(f"Job {job_id} is already {job.status}")

        if job.status == JobStatus.READY:
            try:
                cancelled = await self._jobs.transition(
                    job_id,
                    JobStatus.READY,
                    JobStatus.CANCELLED,
                    last_error="cancelled",
                    updated_at=self._clock.now(),
                )
            except JobStatusConflictError:
                # dispatched meanwhile, fall through to the running path
                job = await self.get_job(job_id)
            else:
                log.info("job_cancelled", job_id=job_id, agent=job.agent)
                self.summary.cancelled += 1
                await self._finish(cancelled)
                return cancelled

        if job.status == JobStatus.RUNNING:
            await self._jobs.request_cancel(job_id, self._clock.now())
            running = self._running.get(job_id)
            if running is not None:
                running[1].cancel()
            log.info("job_cancel_requested", job_id=job_id, agent=job.agent)
            return await self.get_job(job_id)
        return job

    async def complete_human_task(self, job_id: str, user_id: str | None = None) -> Job:
        """Mark a human-owned job as done

        Raises:
            NotFoundError: unknown job
            UnauthorizedError: job belongs to another user
            ConflictError: not a human task, not ready, or dependencies pending
        """
        job = await self.get_job(job_id)
        if user_id is not None and job.user_id != user_id:
            raise UnauthorizedError(f"User {user_id} does not own job {job_id}")
        if job.agent != HUMAN_OWNER:
            raise ConflictError(f"Job {job_id} is owned by {job.agent}")
        if job.status != JobStatus.READY:
            raise ConflictError(f"Job {job_id} is {job.status}")
        if not job.deps_met:
            raise ConflictError(f"Job {job_id} still waits on its dependencies")

        now = self._clock.now()
        await self._jobs.transition(job_id, JobStatus.READY, JobStatus.RUNNING, updated_at=now)
        completed = await self._jobs.transition(
            job_id, JobStatus.RUNNING, JobStatus.COMPLETED, updated_at=now
        )
        log.info("human_task_completed", job_id=job_id, user_id=job.user_id)
        self.summary.completed += 1
        await self._finish(completed)
        return completed

    # ---- dispatch ----

    async def poll_once(self) -> int:
        """Expire stale jobs and dispatch what is runnable now

        Never awaits a job; returns the number of jobs dispatched.
        """
        now = self._clock.now()
        await self._expire(now)

        capacity = self._config.max_concurrent_jobs - len(self._running)
        if capacity <= 0:
            return 0

        dispatched = 0
        candidates = await self._jobs.list_runnable(now, capacity, exclude_agents=_MANUAL_AGENTS)
        for job in candidates:
            if job.lock_key is not None and job.lock_key in self._running_lock_keys:
                continue
            try:
                running = await self._jobs.transition(
                    job.job_id, JobStatus.READY, JobStatus.RUNNING, updated_at=now
                )
            except JobStatusConflictError:
                log.debug("job_dispatch_raced", job_id=job.job_id)
                continue

            token = CancellationToken(running.job_id)
            task = asyncio.create_task(self._execute(running, token))
            self._running[running.job_id] = (task, token)
            if running.lock_key is not None:
                self._running_lock_keys[running.lock_key] = running.job_id
            task.add_done_callback(lambda _t, job=running: self._release(job))
            dispatched += 1
            self.summary.dispatched += 1
        return dispatched

    def _release(self, job: Job) -> None:
        self._running.pop(job.job_id, None)
        if job.lock_key is not None and self._running_lock_keys.get(job.lock_key) == job.job_id:
            del self._running_lock_keys[job.lock_key]
        self._wake.set()

    async def _expire(self, now: datetime) -> None:
        for job in await self._jobs.list_expired(now):
            try:
                expired = await self._jobs.transition(
                    job.job_id,
                    JobStatus.READY,
                    JobStatus.CANCELLED,
                    last_error="ttl expired",
                    updated_at=now,
                )
            except JobStatusConflictError:
                continue
            log.warning(
                "job_expired", job_id=job.job_id, agent=job.agent, expires_at=job.expires_at
            )
            self.summary.expired += 1
            await self._finish(expired)

    async def drain(self) -> None:
        """Wait for every running job to finish"""
        while self._running:
            tasks = [task for task, _token in self._running.values()]
            await asyncio.gather(*tasks, return_exceptions=True)

    async def run_until_idle(self, max_iterations: int = 1000) -> RunSummary:
        """Poll and drain until nothing is runnable at the current time"""
        self.summary = RunSummary()
        for _ in range(max_iterations):
            dispatched = await self.poll_once()
            await self.drain()
            if dispatched == 0:
                break
        self.summary.blocked = [job.job_id for job in await self._jobs.list_blocked()]
        return self.summary

    async def start(self) -> None:
        if self._loop_task is not None:
            return
        self._stopping = False
        self._loop_task = asyncio.create_task(self._loop())
        log.info("orchestrator_started", max_concurrent_jobs=self._config.max_concurrent_jobs)

    async def stop(self) -> None:
        self._stopping = True
        self._wake.set()
        if self._loop_task is not None:
            await self._loop_task
            self._loop_task = None
        await self.drain()
        log.info("orchestrator_stopped")

    async def _loop(self) -> None:
        while not self._stopping:
            self._wake.clear()
            try:
                await self.poll_once()
            except Exception as e:
                log.error("orchestrator_poll_failed", error=str(e), error_type=type(e).__name__)
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self._config.poll_interval_s)
            except TimeoutError:
                pass

    # ---- execution ----

    async def _execute(self, job: Job, token: CancellationToken) -> None:
        with structlog.contextvars.bound_contextvars(job_id=job.job_id, agent=job.agent):
            try:
                trigger = await self._run(job, token)
            except JobCancelledError:
                await self._cancelled(job)
            except WisdomError as e:
                if e.retryable:
                    await self._retry_or_fail(job, e)
                else:
                    await self._fail(job, e)
            except Exception as e:
                log.warning(
                    "job_unexpected_error",
                    job_id=job.job_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                await self._retry_or_fail(job, e)
            else:
                await self._complete(job, trigger)

    async def _run(self, job: Job, token: CancellationToken) -> DomainEvent | None:
        agent = self._agents.get(job.agent)
        if agent is None:
            raise AgentNotRegisteredError(f"No agent registered as {job.agent}")

        trigger: DomainEvent | None = None
        if job.event_id is not None:
            trigger = await self._events.get_event(job.event_id)
            if trigger is None:
                raise NotFoundError("DomainEvent", job.event_id)
            message: DomainEvent | MessageEnvelope = trigger
        else:
            message = MessageEnvelope.model_validate(job.envelope)

        ctx = JobContext(job_id=job.job_id, agent=job.agent, token=token, trigger=trigger)
        log.debug("job_started", job_id=job.job_id, task=job.task, attempts=job.attempts)
        with job_scope(ctx):
            if job.lock_key is not None:
                async with self._locks.hold(job.lock_key):
                    await agent.handle(message)
            else:
                await agent.handle(message)
        return trigger

    async def _complete(self, job: Job, trigger: DomainEvent | None) -> None:
        now = self._clock.now()
        if trigger is not None:
            await self._events.mark_processed(trigger.event_id, job.agent, now)
        try:
            completed = await self._jobs.transition(
                job.job_id, JobStatus.RUNNING, JobStatus.COMPLETED, updated_at=now
            )
        except JobStatusConflictError as e:
            log.warning("job_completion_conflict", job_id=job.job_id, actual=e.actual)
            return
        log.info("job_completed", job_id=job.job_id, agent=job.agent, attempts=job.attempts)
        self.summary.completed += 1
        await self._finish(completed, trigger)

    async def _cancelled(self, job: Job) -> None:
        try:
            cancelled = await self._jobs.transition(
                job.job_id,
                JobStatus.RUNNING,
                JobStatus.CANCELLED,
                last_error="cancelled",
                updated_at=self._clock.now(),
            )
        except JobStatusConflictError as e:
            log.warning("job_cancel_conflict", job_id=job.job_id, actual=e.actual)
            return
        log.info("job_cancelled", job_id=job.job_id, agent=job.agent)
        self.summary.cancelled += 1
        await self._finish(cancelled)

    async def _retry_or_fail(self, job: Job, error: Exception) -> None:
        if job.attempts + 1 >= job.max_attempts:
            await self._fail(job, error)
            return
        attempts = job.attempts + 1
        delay = backoff_delay(job.backoff, attempts, self._config.backoff_base_s)
        now = self._clock.now()
        try:
            await self._jobs.transition(
                job.job_id,
                JobStatus.RUNNING,
                JobStatus.READY,
                attempts=attempts,
                run_at=now + timedelta(seconds=delay),
                last_error=str(error),
                updated_at=now,
            )
        except JobStatusConflictError as e:
            log.warning("job_retry_conflict", job_id=job.job_id, actual=e.actual)
            return
        log.warning(
            "job_retry_scheduled",
            job_id=job.job_id,
            agent=job.agent,
            attempts=attempts,
            delay_s=delay,
            error=str(error),
        )
        self.summary.retried += 1

    async def _fail(self, job: Job, error: Exception) -> None:
        try:
            failed = await self._jobs.transition(
                job.job_id,
                JobStatus.RUNNING,
                JobStatus.FAILED,
                last_error=str(error),
                updated_at=self._clock.now(),
            )
        except JobStatusConflictError as e:
            log.warning("job_failure_conflict", job_id=job.job_id, actual=e.actual)
            return
        terminal = TerminalJobError(job.job_id, job.agent, job.attempts, str(error))
        log.error(
            "job_failed_terminal",
            job_id=job.job_id,
            agent=job.agent,
            task=job.task,
            attempts=job.attempts,
            error=str(error),
            error_type=type(error).__name__,
            payload_summary=_payload_summary(job.payload),
        )
        self.summary.failed += 1
        self.summary.terminal_errors.append(str(terminal))
        await self._finish(failed, error=error)

    async def _finish(
        self,
        job: Job,
        trigger: DomainEvent | None = None,
        error: Exception | None = None,
    ) -> None:
        """Unblock dependents and announce the terminal state"""
        now_met = await self._jobs.refresh_dependents(job.job_id)
        if now_met:
            log.debug("dependents_unblocked", job_id=job.job_id, dependents=now_met)
            self._wake.set()

        if trigger is None and job.event_id is not None:
            trigger = await self._events.get_event(job.event_id)
        if trigger is not None:
            causality = EventCausality(
                parent_event_id=trigger.event_id,
                root_event_id=trigger.root_id,
                depth=trigger.causality.depth + 1,
                job_id=job.job_id,
            )
        else:
            causality = EventCausality(job_id=job.job_id)

        commitment_id = job.payload.get("commitment_id")
        payload = JobOutcomePayload(
            job_id=job.job_id,
            agent=job.agent,
            task=job.task,
            attempts=job.attempts,
            user_id=job.user_id,
            error=job.last_error if job.status != JobStatus.COMPLETED else None,
            error_type=type(error).__name__ if error is not None else None,
            rejected=is_rejection(error),
            commitment_id=commitment_id if isinstance(commitment_id, str) else None,
            plan_id=job.plan_id,
        )
        await self._bus.publish(
            DomainEvent(
                event_id=str(ULID()),
                type=_OUTCOME_EVENTS[job.status],
                user_id=job.user_id,
                payload=payload.model_dump(mode="json"),
                created_at=self._clock.now(),
                causality=causality,
            )
        )

    # ---- fan-out ----

    async def _fan_out(self, event: DomainEvent) -> None:
        """Enqueue one reaction job per subscribed agent"""
        agents = self._reactors.get(event.type, [])
        if not agents:
            return

        depth = event.causality.depth
        steps = await self._events.count_in_cascade(event.root_id)
        if depth >= self._config.max_cascade_depth or steps >= self._config.max_cascade_steps:
            refused = CascadeLimitExceeded(event.root_id, depth, steps)
            log.error(
                "cascade_limit_exceeded",
                event_id=event.event_id,
                event_type=event.type,
                root_event_id=event.root_id,
                depth=depth,
                steps=steps,
                error=str(refused),
            )
            self.summary.cascade_refusals += 1
            return

        processed = set(await self._events.processed_by(event.event_id))
        now = self._clock.now()
        for agent in agents:
            agent_type = str(agent.agent_type)
            if agent_type in processed:
                continue
            dedupe_key = dedupe_key_for(event.event_id, agent_type)
            if await self._jobs.get_by_dedupe_key(dedupe_key) is not None:
                continue

            run_at = now
            if event.type == EventType.FULFILMENT_ROLLUP_REQUESTED:
                key = (
                    event.payload.get("user_id"),
                    event.payload.get("period_type"),
                    event.payload.get("period_start"),
                )
                admitted = self._debouncer.admit(key, now)
                if admitted is None:
                    await self._events.mark_processed(event.event_id, agent_type, now)
                    log.info("rollup_request_coalesced", event_id=event.event_id, key=key)
                    continue
                run_at = admitted

            job = Job(
                job_id=str(ULID()),
                agent=agent_type,
                intent=Intent.EXECUTE,
                task="",
                user_id=event.user_id,
                run_at=run_at,
                max_attempts=self._config.job_max_attempts,
                backoff=self._config.job_backoff,
                event_id=event.event_id,
                dedupe_key=dedupe_key,
                created_at=now,
                updated_at=now,
            )
            try:
                await self._jobs.create_job(job)
            except ConflictError:
                log.debug("reaction_already_enqueued", event_id=event.event_id, agent=agent_type)
                continue
            log.debug(
                "reaction_enqueued",
                job_id=job.job_id,
                event_id=event.event_id,
                event_type=event.type,
                agent=agent_type,
            )
        self._wake.set()
