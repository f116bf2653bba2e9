"""Integrity routes

GET  /api/users/{user_id}/integrity/issues                     issues, optional open_only
POST /api/users/{user_id}/integrity/issues/{issue_id}/{action} resolve / acknowledge / dismiss
POST /api/users/{user_id}/integrity/sweep                      broken promise sweep
"""

from typing import Literal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from starlette.responses import JSONResponse

from wisdomos.core.models import AgentType

from ..deps import get_store_group, get_system
from ..services.submission import accepted, submit_task

router = APIRouter()

_ISSUE_TASKS = {
    "resolve": "integrity.resolve_issue",
    "acknowledge": "integrity.acknowledge_issue",
    "dismiss": "integrity.dismiss_issue",
}


class IssueActionRequest(BaseModel):
    resolution: str = ""


@router.get("/api/users/{user_id}/integrity/issues")
async def list_issues(
    user_id: str,
    open_only: bool = Query(default=False),
    store_group=Depends(get_store_group),
):
    issues = await store_group.integrity_store.find_by_user(user_id, open_only=open_only)
    return {"issues": [i.model_dump(mode="json") for i in issues]}


@router.post("/api/users/{user_id}/integrity/issues/{issue_id}/{action}")
async def update_issue(
    user_id: str,
    issue_id: str,
    action: Literal["resolve", "acknowledge", "dismiss"],
    body: IssueActionRequest | None = None,
    system=Depends(get_system),
):
    job = await submit_task(
        system,
        AgentType.INTEGRITY,
        _ISSUE_TASKS[action],
        {
            "user_id": user_id,
            "issue_id": issue_id,
            "resolution": body.resolution if body else "",
        },
    )
    return JSONResponse(status_code=202, content=accepted(job).model_dump())


@router.post("/api/users/{user_id}/integrity/sweep")
async def sweep(user_id: str, system=Depends(get_system)):
    job = await system.run_scheduled_integrity_sweep(user_id)
    return JSONResponse(status_code=202, content=accepted(job).model_dump())
