"""SSE event stream

GET /api/stream/user/{user_id}: pushes every new DomainEvent of a user.
A reconnecting client sends Last-Event-ID and first receives the events it
missed. A heartbeat comment keeps idle connections alive.
"""

import asyncio
import json

from fastapi import APIRouter, Depends, Request
from sse_starlette.sse import EventSourceResponse

from wisdomos.core.config import SSE_HEARTBEAT_INTERVAL
from wisdomos.core.models import DomainEvent

from ..deps import get_sse_hub, get_store_group

router = APIRouter()


def _event_to_sse_data(event: DomainEvent) -> dict:
    return {
        "event_id": event.event_id,
        "type": event.type.value,
        "user_id": event.user_id,
        "ts": event.created_at.isoformat(),
        "payload": event.payload,
        "parent_event_id": event.causality.parent_event_id,
        "root_event_id": event.root_id,
        "depth": event.causality.depth,
        "job_id": event.causality.job_id,
    }


def _to_sse(event: DomainEvent) -> dict:
    return {
        "id": event.event_id,
        "event": event.type.value,
        "data": json.dumps(_event_to_sse_data(event), ensure_ascii=False),
    }


@router.get("/api/stream/user/{user_id}")
async def stream_user_events(
    user_id: str,
    request: Request,
    store_group=Depends(get_store_group),
    sse_hub=Depends(get_sse_hub),
):
    last_event_id = request.headers.get("last-event-id")

    async def event_generator():
        # subscribe before replaying so nothing falls between the two
        queue = await sse_hub.subscribe(user_id)
        sent: set[str] = set()
        try:
            if last_event_id:
                missed = await store_group.event_store.list_events(
                    user_id=user_id, after_event_id=last_event_id
                )
                for event in missed:
                    sent.add(event.event_id)
                    yield _to_sse(event)

            while True:
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=SSE_HEARTBEAT_INTERVAL)
                except TimeoutError:
                    yield {"comment": "heartbeat"}
                    continue
                if event.event_id in sent:
                    continue
                yield _to_sse(event)
        finally:
            await sse_hub.unsubscribe(user_id, queue)

    return EventSourceResponse(event_generator())
