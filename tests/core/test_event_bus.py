"""EventBus and SqliteEventStore tests

Covers:
1. publish validates the payload, stores the event, delivers it
2. republishing is idempotent for storage and listeners, at-least-once for subscribers
3. per-agent processing marks
4. cascade counting and ordered listing
"""

import pytest
from ulid import ULID
from wisdomos.core.bus import EventBus
from wisdomos.core.exceptions import ValidationError
from wisdomos.core.models import DomainEvent, EventCausality, EventType


def _event(clock, event_type=EventType.COMMITMENT_CONFIRMED, payload=None, **kw) -> DomainEvent:
    kw.setdefault("event_id", str(ULID()))
    return DomainEvent(
        type=event_type,
        user_id="u1",
        payload=payload if payload is not None else {"commitment_id": "c1", "user_id": "u1"},
        created_at=clock.now(),
        **kw,
    )


@pytest.fixture
def bus(store_group):
    return EventBus(store_group.event_store)


class TestPublish:
    async def test_stores_and_delivers(self, bus, store_group, clock):
        received: list[DomainEvent] = []

        async def handler(event):
            received.append(event)

        bus.subscribe(EventType.COMMITMENT_CONFIRMED, handler)
        event = _event(clock)
        assert await bus.publish(event) is True
        assert received == [event]

        stored = await store_group.event_store.get_event(event.event_id)
        assert stored is not None
        assert stored.payload == event.payload
        assert stored.type == EventType.COMMITMENT_CONFIRMED

    async def test_only_matching_subscribers(self, bus, clock):
        received = []

        async def handler(event):
            received.append(event)

        bus.subscribe(EventType.AREA_SPAWNED, handler)
        await bus.publish(_event(clock))
        assert received == []

    async def test_invalid_payload_rejected(self, bus, store_group, clock):
        """A payload that does not match its schema never reaches the store"""
        event = _event(clock, payload={"commitment_id": "c1"})
        with pytest.raises(ValidationError):
            await bus.publish(event)
        assert await store_group.event_store.get_event(event.event_id) is None

    async def test_republish(self, bus, clock):
        """Subscribers see a republished event again; listeners only once"""
        delivered, observed = [], []

        async def handler(event):
            delivered.append(event.event_id)

        async def listener(event):
            observed.append(event.event_id)

        bus.subscribe(EventType.COMMITMENT_CONFIRMED, handler)
        bus.add_listener(listener)
        event = _event(clock)
        assert await bus.publish(event) is True
        assert await bus.publish(event) is False
        assert delivered == [event.event_id, event.event_id]
        assert observed == [event.event_id]

    async def test_remove_listener(self, bus, clock):
        observed = []

        async def listener(event):
            observed.append(event)

        bus.add_listener(listener)
        bus.remove_listener(listener)
        await bus.publish(_event(clock))
        assert observed == []


class TestEventStore:
    async def test_mark_processed_once(self, bus, store_group, clock):
        events = store_group.event_store
        event = _event(clock)
        await bus.publish(event)
        assert await events.mark_processed(event.event_id, "AreaGenerator", clock.now()) is True
        assert await events.mark_processed(event.event_id, "AreaGenerator", clock.now()) is False
        assert await events.processed_by(event.event_id) == ("AreaGenerator",)
        reloaded = await events.get_event(event.event_id)
        assert reloaded.processed_by == ("AreaGenerator",)

    async def test_cascade_count(self, bus, store_group, clock):
        root = _event(clock)
        await bus.publish(root)
        for depth in (1, 2):
            await bus.publish(
                _event(
                    clock,
                    causality=EventCausality(
                        parent_event_id=root.event_id, root_event_id=root.event_id, depth=depth
                    ),
                )
            )
        assert await store_group.event_store.count_in_cascade(root.event_id) == 2

    async def test_list_events_after(self, bus, store_group, clock):
        """Publish order, not id order"""
        first, second = _event(clock, event_id="E2"), _event(clock, event_id="E1")
        await bus.publish(first)
        await bus.publish(second)
        listed = await store_group.event_store.list_events(after_event_id=first.event_id)
        assert [e.event_id for e in listed] == [second.event_id]

    async def test_list_events_filters(self, bus, store_group, clock):
        await bus.publish(_event(clock))
        await bus.publish(
            _event(
                clock,
                EventType.JOURNAL_ENTRY_UPDATED,
                {"entry_id": "e1", "user_id": "u1", "changed_fields": ["content"]},
            )
        )
        listed = await store_group.event_store.list_events(
            event_type=EventType.JOURNAL_ENTRY_UPDATED, user_id="u1"
        )
        assert len(listed) == 1
        assert listed[0].root_id == listed[0].event_id
