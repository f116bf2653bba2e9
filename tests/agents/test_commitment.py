"""CommitmentAgent and AreaGeneratorAgent tests

Covers:
1. confident detections start active and spawn a CMT area, weak ones wait
2. detection is idempotent per (entry, statement)
3. confirmation hands over to the area generator, which activates
4. illegal transitions and closed commitments raise ConflictError
5. action outcomes are announced on the bus
6. similar commitments reuse an existing area, also when spawned concurrently
7. the auto-spawn threshold applied to classifier confidence
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from wisdomos.agents import default_dimensions
from wisdomos.classifier.models import CommitmentDetection
from wisdomos.core.exceptions import ConflictError, UnauthorizedError, ValidationError
from wisdomos.core.models import (
    ActionStatus,
    AgentType,
    CommitmentStatus,
    EventType,
)


@pytest.fixture
def journal(system):
    return system.agents[AgentType.JOURNAL]


@pytest.fixture
def commitments(system):
    return system.agents[AgentType.COMMITMENT]


@pytest.fixture
def generator(system):
    return system.agents[AgentType.AREA_GENERATOR]


async def _detect(journal, commitments, content: str, user_id: str = "u1"):
    entry = await journal.ingest(user_id, content)
    return entry, await commitments.detect(entry.entry_id)


class TestDetection:
    async def test_confident_detection_spawns_area(self, journal, commitments, store_group):
        _, found = await _detect(journal, commitments, "Long day. I will run every morning.")

        assert len(found) == 1
        commitment = await store_group.commitment_store.get_commitment(found[0].commitment_id)
        assert commitment.status == CommitmentStatus.ACTIVE
        assert commitment.confidence == pytest.approx(0.9)
        assert commitment.statement == "I will run every morning."

        area = await store_group.area_store.get_area(commitment.area_id)
        assert area.code == "CMT_001"
        assert area.name == "I will run every morning."
        assert area.dimensions == ["INT", "FOR"]
        assert area.commitment_id == commitment.commitment_id

        detected = await store_group.event_store.list_events(EventType.COMMITMENT_DETECTED)
        assert detected[0].payload["auto_spawned"] is True
        assert detected[0].payload["requires_confirmation"] is False
        assert detected[0].payload["area_id"] == area.area_id
        spawned = await store_group.event_store.list_events(EventType.AREA_SPAWNED)
        assert spawned[0].payload["reused"] is False

    async def test_weak_detection_waits(self, journal, commitments, store_group):
        _, found = await _detect(journal, commitments, "I plan to read more.")

        assert found[0].status == CommitmentStatus.DETECTED
        assert found[0].area_id is None
        detected = await store_group.event_store.list_events(EventType.COMMITMENT_DETECTED)
        assert detected[0].payload["requires_confirmation"] is True
        assert detected[0].payload["auto_spawned"] is False
        assert await store_group.area_store.find_by_user("u1") == []

    async def test_no_statements(self, journal, commitments):
        _, found = await _detect(journal, commitments, "Nothing much happened.")
        assert found == []

    async def test_idempotent(self, journal, commitments, store_group):
        entry, first = await _detect(journal, commitments, "I will run every morning.")
        second = await commitments.detect(entry.entry_id)

        assert [c.commitment_id for c in second] == [c.commitment_id for c in first]
        assert len(await store_group.commitment_store.find_by_user("u1")) == 1
        assert len(await store_group.event_store.list_events(EventType.COMMITMENT_DETECTED)) == 1

    async def test_reaction_to_entry(self, journal, system, store_group):
        """The fan-out runs detection without a direct call"""
        await journal.ingest("u1", "I promise to call my mother.")
        await system.orchestrator.run_until_idle()

        found = await store_group.commitment_store.find_by_user("u1")
        assert [c.statement for c in found] == ["I promise to call my mother."]
        assert found[0].status == CommitmentStatus.ACTIVE


class TestLifecycle:
    async def test_confirm_then_activate(self, journal, commitments, system, store_group):
        _, found = await _detect(journal, commitments, "I plan to read more.")
        commitment_id = found[0].commitment_id

        confirmed = await commitments.confirm("u1", commitment_id)
        assert confirmed.status == CommitmentStatus.CONFIRMED
        confirmed_events = await store_group.event_store.list_events(
            EventType.COMMITMENT_CONFIRMED
        )
        assert confirmed_events[0].payload["commitment_id"] == commitment_id

        await system.orchestrator.run_until_idle()

        active = await store_group.commitment_store.get_commitment(commitment_id)
        assert active.status == CommitmentStatus.ACTIVE
        assert active.area_id is not None

    async def test_activate_skips_unconfirmed(self, journal, commitments, generator):
        _, found = await _detect(journal, commitments, "I plan to read more.")
        skipped = await generator.activate(found[0].commitment_id)
        assert skipped.status == CommitmentStatus.DETECTED

    async def test_confirm_sets_target_date(self, journal, commitments, clock, store_group):
        _, found = await _detect(journal, commitments, "I plan to read more.")
        target = clock.now().replace(month=6)
        await commitments.confirm("u1", found[0].commitment_id, target_date=target)
        stored = await store_group.commitment_store.get_commitment(found[0].commitment_id)
        assert stored.target_date == target

    async def test_fulfil_twice_conflicts(self, journal, commitments):
        _, found = await _detect(journal, commitments, "I will run every morning.")
        fulfilled = await commitments.fulfil("u1", found[0].commitment_id)
        assert fulfilled.status == CommitmentStatus.FULFILLED
        with pytest.raises(ConflictError):
            await commitments.fulfil("u1", found[0].commitment_id)

    async def test_fulfil_detected_conflicts(self, journal, commitments):
        """Only active commitments can be fulfilled"""
        _, found = await _detect(journal, commitments, "I plan to read more.")
        with pytest.raises(ConflictError):
            await commitments.fulfil("u1", found[0].commitment_id)

    async def test_cancel(self, journal, commitments, store_group):
        _, found = await _detect(journal, commitments, "I plan to read more.")
        cancelled = await commitments.cancel("u1", found[0].commitment_id, "changed my mind")
        assert cancelled.status == CommitmentStatus.CANCELLED

        changes = await store_group.event_store.list_events(EventType.COMMITMENT_STATUS_CHANGED)
        assert changes[-1].payload["reason"] == "changed my mind"
        assert changes[-1].payload["to_status"] == "cancelled"

    async def test_other_user(self, journal, commitments):
        _, found = await _detect(journal, commitments, "I plan to read more.")
        with pytest.raises(UnauthorizedError):
            await commitments.confirm("u2", found[0].commitment_id)


class TestActions:
    async def test_record_and_complete(self, journal, commitments, store_group):
        _, found = await _detect(journal, commitments, "I will run every morning.")
        action = await commitments.record_action("u1", found[0].commitment_id, "Buy shoes")
        assert action.status == ActionStatus.PENDING

        done = await commitments.update_action("u1", action.action_id, ActionStatus.COMPLETED)
        assert done.status == ActionStatus.COMPLETED

        events = await store_group.event_store.list_events(EventType.ACTION_COMPLETED)
        assert events[0].payload["action_id"] == action.action_id
        assert events[0].payload["commitment_id"] == found[0].commitment_id
        assert events[0].payload["title"] == "Buy shoes"

    async def test_pending_is_not_an_outcome(self, journal, commitments):
        _, found = await _detect(journal, commitments, "I will run every morning.")
        action = await commitments.record_action("u1", found[0].commitment_id, "Buy shoes")
        with pytest.raises(ValidationError):
            await commitments.update_action("u1", action.action_id, ActionStatus.PENDING)

    async def test_closed_commitment_rejects_actions(self, journal, commitments):
        _, found = await _detect(journal, commitments, "I will run every morning.")
        await commitments.fulfil("u1", found[0].commitment_id)
        with pytest.raises(ConflictError):
            await commitments.record_action("u1", found[0].commitment_id, "Too late")


class TestAreaGenerator:
    async def test_similar_commitment_reuses_area(self, journal, commitments, store_group):
        _, first = await _detect(journal, commitments, "I will run every morning.")
        _, second = await _detect(journal, commitments, "I will run every morning!")

        store = store_group.commitment_store
        first_stored = await store.get_commitment(first[0].commitment_id)
        second_stored = await store.get_commitment(second[0].commitment_id)
        assert first_stored.area_id == second_stored.area_id
        assert len(await store_group.area_store.find_by_user("u1")) == 1

        spawned = await store_group.event_store.list_events(EventType.AREA_SPAWNED)
        assert [e.payload["reused"] for e in spawned] == [False, True]

    async def test_distinct_commitments_get_new_codes(self, journal, commitments, store_group):
        await _detect(journal, commitments, "I will run every morning.")
        await _detect(journal, commitments, "I commit to writing daily.")
        codes = [a.code for a in await store_group.area_store.find_by_user("u1")]
        assert codes == ["CMT_001", "CMT_002"]

    async def test_create_area_conflict(self, make_area):
        await make_area("u1", "WRK", "Work")
        with pytest.raises(ConflictError):
            await make_area("u1", "wrk", "Work again")

    async def test_default_dimensions(self):
        assert default_dimensions("WRK") == ["INT", "FOR", "FIN"]
        assert default_dimensions("HLT") == ["INT", "FOR"]

    async def test_concurrent_spawns_share_one_area(
        self, journal, commitments, generator, store_group
    ):
        """Two near-duplicate commitments spawned at once end up on one area"""
        _, first = await _detect(journal, commitments, "I plan to run every morning.")
        _, second = await _detect(journal, commitments, "I plan to run every morning.")

        areas = await asyncio.gather(
            generator.spawn_area(first[0]), generator.spawn_area(second[0])
        )

        assert areas[0].area_id == areas[1].area_id
        assert [a.code for a in await store_group.area_store.find_by_user("u1")] == ["CMT_001"]
        spawned = await store_group.event_store.list_events(EventType.AREA_SPAWNED)
        assert sorted(e.payload["reused"] for e in spawned) == [False, True]


class TestConfidenceThreshold:
    @pytest.mark.parametrize(
        ("confidence", "status", "spawns"),
        [
            (0.85, CommitmentStatus.ACTIVE, True),
            (0.5, CommitmentStatus.DETECTED, False),
        ],
    )
    async def test_classifier_confidence(
        self, monkeypatch, classifier, journal, commitments, store_group, confidence, status, spawns
    ):
        monkeypatch.setattr(
            classifier,
            "detect_commitments",
            AsyncMock(
                return_value=CommitmentDetection(
                    confidence=confidence, statements=["I will learn Spanish."]
                )
            ),
        )
        _, [found] = await _detect(journal, commitments, "Some thoughts about languages.")

        assert found.status == status
        assert found.confidence == pytest.approx(confidence)
        assert (len(await store_group.area_store.find_by_user("u1")) == 1) is spawns
        [detected] = await store_group.event_store.list_events(EventType.COMMITMENT_DETECTED)
        assert detected.payload["requires_confirmation"] is not spawns
