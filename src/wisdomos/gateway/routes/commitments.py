"""Commitment routes

GET  /api/users/{user_id}/commitments                      list, optional status
POST /api/users/{user_id}/commitments/{id}/confirm         detected -> confirmed
POST /api/users/{user_id}/commitments/{id}/fulfil
POST /api/users/{user_id}/commitments/{id}/cancel
POST /api/users/{user_id}/commitments/{id}/actions         record an action
POST /api/users/{user_id}/actions/{action_id}              record an action outcome
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from starlette.responses import JSONResponse

from wisdomos.core.models import ActionStatus, AgentType, CommitmentStatus

from ..deps import get_store_group, get_system
from ..services.submission import accepted, submit_task

router = APIRouter()


class ConfirmRequest(BaseModel):
    target_date: datetime | None = Field(default=None, description="Promise due date")


class CancelRequest(BaseModel):
    reason: str = ""


class ActionRequest(BaseModel):
    title: str = Field(min_length=1)
    due_at: datetime | None = None


class ActionOutcomeRequest(BaseModel):
    status: ActionStatus


async def _submit(system, task: str, payload: dict) -> JSONResponse:
    job = await submit_task(system, AgentType.COMMITMENT, task, payload)
    return JSONResponse(status_code=202, content=accepted(job).model_dump())


@router.get("/api/users/{user_id}/commitments")
async def list_commitments(
    user_id: str,
    status: CommitmentStatus | None = Query(default=None),
    store_group=Depends(get_store_group),
):
    commitments = await store_group.commitment_store.find_by_user(user_id, status)
    return {"commitments": [c.model_dump(mode="json") for c in commitments]}


@router.post("/api/users/{user_id}/commitments/{commitment_id}/confirm")
async def confirm_commitment(
    user_id: str,
    commitment_id: str,
    body: ConfirmRequest | None = None,
    system=Depends(get_system),
):
    target = body.target_date.isoformat() if body and body.target_date else None
    return await _submit(
        system,
        "commitment.confirm",
        {"user_id": user_id, "commitment_id": commitment_id, "target_date": target},
    )


@router.post("/api/users/{user_id}/commitments/{commitment_id}/fulfil")
async def fulfil_commitment(user_id: str, commitment_id: str, system=Depends(get_system)):
    return await _submit(
        system, "commitment.fulfil", {"user_id": user_id, "commitment_id": commitment_id}
    )


@router.post("/api/users/{user_id}/commitments/{commitment_id}/cancel")
async def cancel_commitment(
    user_id: str,
    commitment_id: str,
    body: CancelRequest | None = None,
    system=Depends(get_system),
):
    return await _submit(
        system,
        "commitment.cancel",
        {
            "user_id": user_id,
            "commitment_id": commitment_id,
            "reason": body.reason if body else "",
        },
    )


@router.post("/api/users/{user_id}/commitments/{commitment_id}/actions")
async def record_action(
    user_id: str, commitment_id: str, body: ActionRequest, system=Depends(get_system)
):
    return await _submit(
        system,
        "commitment.record_action",
        {"user_id": user_id, "commitment_id": commitment_id, **body.model_dump(mode="json")},
    )


@router.post("/api/users/{user_id}/actions/{action_id}")
async def update_action(
    user_id: str, action_id: str, body: ActionOutcomeRequest, system=Depends(get_system)
):
    return await _submit(
        system,
        "commitment.update_action",
        {"user_id": user_id, "action_id": action_id, "status": body.status.value},
    )
