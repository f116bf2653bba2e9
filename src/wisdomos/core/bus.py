"""EventBus -- publish/subscribe boundary between agents

``publish`` validates the payload against its event type, appends the event
to the event store (idempotent on event_id) and delivers it to every
subscriber of that type. Delivery is at-least-once: a republished event is
delivered again, so subscribers must be idempotent. Listeners (e.g. the SSE
hub) only see events the first time they are stored.
"""

from collections import defaultdict
from collections.abc import Awaitable, Callable

import structlog

from .models.enums import EventType
from .models.event import DomainEvent
from .models.payloads import parse_event_payload
from .store.protocols import EventStore

log = structlog.get_logger()

EventHandler = Callable[[DomainEvent], Awaitable[None]]


class EventBus:
    """In-process event bus backed by the event store"""

    def __init__(self, event_store: EventStore) -> None:
        self._event_store = event_store
        self._subscribers: dict[EventType, list[EventHandler]] = defaultdict(list)
        self._listeners: list[EventHandler] = []

    def subscribe(self, event_type: EventType, handler: EventHandler) -> None:
        """Register ``handler`` for one event type"""
        self._subscribers[EventType(event_type)].append(handler)

    def add_listener(self, handler: EventHandler) -> None:
        """Register an observer of every newly stored event"""
        self._listeners.append(handler)

    def remove_listener(self, handler: EventHandler) -> None:
        if handler in self._listeners:
            self._listeners.remove(handler)

    def subscribers(self, event_type: EventType) -> list[EventHandler]:
        return list(self._subscribers.get(EventType(event_type), []))

    async def publish(self, event: DomainEvent) -> bool:
        """Validate, store and deliver an event

        Returns:
            True when the event was stored for the first time

        Raises:
            UnregisteredEventTypeError: event type has no payload schema
            ValidationError: payload does not match its schema
        """
        parse_event_payload(event.type, event.payload)
        stored = await self._event_store.append_event(event)
        if not stored:
            log.debug("event_redelivered", event_id=event.event_id, event_type=event.type)

        log.info(
            "event_published",
            event_id=event.event_id,
            event_type=event.type,
            user_id=event.user_id,
            depth=event.causality.depth,
        )

        for handler in self._subscribers.get(event.type, []):
            await handler(event)

        if stored:
            for listener in list(self._listeners):
                await listener(event)
        return stored
