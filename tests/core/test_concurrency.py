"""Concurrency primitives -- KeyedLocks, cancellation tokens, job context

Covers:
1. one key is serialized, different keys run concurrently, entries are dropped
2. checkpoint is a no-op outside a job and raises after cancellation inside one
3. causality of events emitted by a job
"""

import asyncio
from datetime import UTC, datetime

import pytest
from wisdomos.core.cascade import (
    CancellationToken,
    JobContext,
    checkpoint,
    current_job,
    job_scope,
)
from wisdomos.core.exceptions import JobCancelledError
from wisdomos.core.locks import KeyedLocks
from wisdomos.core.models import DomainEvent, EventCausality, EventType


class TestKeyedLocks:
    async def test_same_key_serialized(self):
        locks = KeyedLocks()
        order: list[str] = []

        async def worker(name: str):
            async with locks.hold("k"):
                order.append(f"{name}:in")
                await asyncio.sleep(0.01)
                order.append(f"{name}:out")

        await asyncio.gather(worker("a"), worker("b"))
        assert order in (
            ["a:in", "a:out", "b:in", "b:out"],
            ["b:in", "b:out", "a:in", "a:out"],
        )

    async def test_different_keys_overlap(self):
        locks = KeyedLocks()
        inside = asyncio.Event()
        release = asyncio.Event()

        async def first():
            async with locks.hold("a"):
                inside.set()
                await release.wait()

        task = asyncio.create_task(first())
        await inside.wait()
        assert locks.is_locked("a")
        async with locks.hold("b"):
            assert locks.is_locked("b")
        release.set()
        await task

    async def test_entries_cleaned_up(self):
        locks = KeyedLocks()
        async with locks.hold("k"):
            assert len(locks) == 1
        assert len(locks) == 0
        assert not locks.is_locked("k")


class TestCancellation:
    def test_checkpoint_outside_job(self):
        """No running job, nothing to cancel"""
        assert current_job() is None
        checkpoint()

    def test_checkpoint_after_cancel(self):
        token = CancellationToken("job-1")
        with job_scope(JobContext(job_id="job-1", agent="JournalAgent", token=token)):
            checkpoint()
            token.cancel()
            with pytest.raises(JobCancelledError) as exc_info:
                checkpoint()
        assert exc_info.value.job_id == "job-1"
        assert current_job() is None


class TestCausality:
    def test_root_job(self):
        ctx = JobContext(job_id="j1", agent="JournalAgent", token=CancellationToken("j1"))
        assert ctx.causality_for_child() == EventCausality(job_id="j1")

    def test_child_of_trigger(self):
        """Children of a reaction inherit the cascade root and go one level deeper"""
        trigger = DomainEvent(
            event_id="E2",
            type=EventType.COMMITMENT_CONFIRMED,
            payload={"commitment_id": "c1", "user_id": "u1"},
            created_at=datetime(2025, 3, 10, tzinfo=UTC),
            causality=EventCausality(parent_event_id="E1", root_event_id="E1", depth=1),
        )
        ctx = JobContext(
            job_id="j2", agent="AreaGenerator", token=CancellationToken("j2"), trigger=trigger
        )
        child = ctx.causality_for_child()
        assert child.parent_event_id == "E2"
        assert child.root_event_id == "E1"
        assert child.depth == 2
        assert child.job_id == "j2"
