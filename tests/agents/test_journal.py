"""JournalAgent tests

Covers:
1. ingest scores, classifies and stores the entry with its links
2. ingest emits journal.entry.created then fulfilment.rollup.requested
3. tags restrict classification and guarantee a link per tagged area
4. time-locked edits: grace period, lock window, violation locks the entry
"""

from datetime import date

import pytest
from wisdomos.core.exceptions import (
    NotFoundError,
    TimeLockViolation,
    UnauthorizedError,
    ValidationError,
)
from wisdomos.core.models import AgentType, EventType, new_envelope


@pytest.fixture
def journal(system):
    return system.agents[AgentType.JOURNAL]


class TestIngest:
    async def test_entry_and_links_stored(self, journal, make_area, store_group):
        work = await make_area("u1", "WRK", "Work")
        entry = await journal.ingest("u1", "Great progress on the client project today.")

        assert entry.sentiment == 1.0
        stored = await store_group.journal_store.get_entry(entry.entry_id)
        assert stored is not None
        assert stored.content == entry.content

        links = await store_group.journal_store.list_links(entry.entry_id)
        assert sorted(link.dimension for link in links) == ["FIN", "FOR", "INT"]
        assert {link.area_id for link in links} == {work.area_id}
        assert all(link.weight == 1.0 for link in links)
        assert all(link.confidence == pytest.approx(0.7) for link in links)
        assert all(link.signal == 5.0 for link in links)

    async def test_events_emitted_in_order(self, journal, make_area, store_group):
        work = await make_area("u1", "WRK", "Work")
        entry = await journal.ingest("u1", "Great progress on the client project today.")

        events = await store_group.event_store.list_events(user_id="u1")
        types = [e.type for e in events]
        assert types == [
            EventType.JOURNAL_ENTRY_CREATED,
            EventType.FULFILMENT_ROLLUP_REQUESTED,
        ]
        created, requested = events
        assert created.payload["entry_id"] == entry.entry_id
        assert created.payload["area_ids"] == [work.area_id]
        assert requested.payload["period_type"] == "month"
        assert requested.payload["period_start"] == date(2025, 3, 1).isoformat()
        assert requested.payload["reason"] == "journal_entry_created"

    async def test_reactions_enqueued(self, journal, store_group):
        """Subscribed agents get one reaction job per event"""
        await journal.ingest("u1", "A quiet day.")
        jobs = await store_group.job_store.list_jobs(user_id="u1")
        assert sorted(job.agent for job in jobs) == [
            AgentType.COMMITMENT,
            AgentType.FULFILMENT,
            AgentType.NARRATIVE,
        ]

    async def test_without_areas(self, journal, store_group):
        entry = await journal.ingest("u1", "Walked by the sea.")
        assert await store_group.journal_store.list_links(entry.entry_id) == []

    async def test_validation(self, journal):
        with pytest.raises(ValidationError) as exc_info:
            await journal.ingest("", "   ")
        assert [e.field for e in exc_info.value.errors] == ["user_id", "content"]


class TestTags:
    async def test_tags_restrict_and_guarantee_links(self, journal, make_area, store_group):
        await make_area("u1", "WRK", "Work")
        music = await make_area("u1", "MUS", "Music")

        # mentions work, but only MUS is tagged
        entry = await journal.ingest("u1", "Calm evening after the client meeting.", tags=["mus"])
        links = await store_group.journal_store.list_links(entry.entry_id)

        assert {link.area_id for link in links} == {music.area_id}
        assert len(links) == 3
        assert all(link.confidence == 0.5 for link in links)
        assert all(link.weight == 1.0 for link in links)
        assert all(link.signal == 5.0 for link in links)


class TestUpdate:
    async def test_edit_within_grace_period(self, journal, make_area, clock, store_group):
        await make_area("u1", "WRK", "Work")
        entry = await journal.ingest("u1", "Great progress on the client project today.")
        clock.advance(days=2)

        updated = await journal.update(
            "u1", entry.entry_id, content="Tired after the client meeting."
        )

        assert updated.sentiment == -1.0
        assert updated.updated_at == clock.now()
        links = await store_group.journal_store.list_links(entry.entry_id)
        assert all(link.signal == 0.0 for link in links)

        events = await store_group.event_store.list_events(EventType.JOURNAL_ENTRY_UPDATED)
        assert events[0].payload["changed_fields"] == ["content", "sentiment"]

    async def test_edit_inside_lock_window(self, journal, clock):
        entry = await journal.ingest("u1", "First draft.")
        clock.advance(days=60)
        updated = await journal.update("u1", entry.entry_id, content="Second draft.")
        assert updated.content == "Second draft."

    async def test_no_change_is_noop(self, journal, store_group):
        entry = await journal.ingest("u1", "Same words.")
        unchanged = await journal.update("u1", entry.entry_id, content="Same words.")
        assert unchanged.updated_at == entry.updated_at
        assert await store_group.event_store.list_events(EventType.JOURNAL_ENTRY_UPDATED) == []

    async def test_violation_locks_entry(self, journal, clock, store_group):
        entry = await journal.ingest("u1", "Old memory.")
        clock.advance(days=100)

        with pytest.raises(TimeLockViolation) as exc_info:
            await journal.update("u1", entry.entry_id, content="Rewritten memory.")
        assert exc_info.value.days_difference == 100

        stored = await store_group.journal_store.get_entry(entry.entry_id)
        assert stored.locked is True
        assert stored.content == "Old memory."

        audit = await store_group.integrity_store.list_security_events("u1")
        assert [a.event for a in audit] == ["time_lock_violation"]
        violations = await store_group.event_store.list_events(
            EventType.SECURITY_VIOLATION_DETECTED
        )
        assert violations[0].payload["entry_id"] == entry.entry_id

    async def test_locked_entry_stays_locked(self, journal, clock):
        """Once locked, even an edit that would fit the window is rejected"""
        entry = await journal.ingest("u1", "Old memory.")
        clock.advance(days=100)
        with pytest.raises(TimeLockViolation):
            await journal.update("u1", entry.entry_id, content="Rewrite")

        clock.advance(days=-99)
        with pytest.raises(TimeLockViolation) as exc_info:
            await journal.update("u1", entry.entry_id, content="Rewrite")
        assert exc_info.value.reason == "entry_locked"

    async def test_unknown_entry(self, journal):
        with pytest.raises(NotFoundError):
            await journal.update("u1", "missing", content="x")

    async def test_other_user(self, journal):
        entry = await journal.ingest("u1", "Mine.")
        with pytest.raises(UnauthorizedError):
            await journal.update("u2", entry.entry_id, content="Yours now.")

    async def test_empty_content_rejected(self, journal):
        entry = await journal.ingest("u1", "Something.")
        with pytest.raises(ValidationError):
            await journal.update("u1", entry.entry_id, content="  ")


class TestIngestTask:
    async def test_envelope_runs_ingest(self, system, clock, store_group):
        envelope = new_envelope(
            AgentType.JOURNAL,
            "journal.ingest",
            {"user_id": "u1", "content": "Happy day."},
            created_at=clock.now(),
        )
        await system.orchestrator.submit(envelope)
        await system.orchestrator.run_until_idle()

        entries = await store_group.journal_store.find_by_user("u1")
        assert [e.content for e in entries] == ["Happy day."]
