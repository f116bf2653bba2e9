"""Envelope hand-off route

POST /api/envelopes: submit a raw MessageEnvelope. Validation failures come
back as 422 with one entry per broken field.
"""

from typing import Any

from fastapi import APIRouter, Body, Depends
from starlette.responses import JSONResponse

from ..deps import get_system
from ..services.submission import accepted

router = APIRouter()


@router.post("/api/envelopes")
async def submit_envelope(
    envelope: dict[str, Any] = Body(description="MessageEnvelope as JSON"),
    system=Depends(get_system),
):
    """Validate and enqueue an envelope; resubmitting a message_id is a no-op"""
    job = await system.orchestrator.submit(envelope)
    return JSONResponse(status_code=202, content=accepted(job).model_dump())
