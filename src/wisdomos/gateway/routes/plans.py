"""Plan routes

POST /api/users/{user_id}/plans  plan an objective (planner.generate_plan)
GET  /api/users/{user_id}/plans  plans of a user
GET  /api/plans/{plan_id}        plan with the status of its task jobs
"""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from starlette.responses import JSONResponse

from wisdomos.core.exceptions import NotFoundError
from wisdomos.core.models import AgentType, Intent

from ..deps import get_store_group, get_system
from ..services.submission import accepted, submit_task

router = APIRouter()


class PlanRequest(BaseModel):
    objective: str = Field(min_length=1)
    constraints: list[str] = Field(default_factory=list)
    current_state: dict[str, Any] = Field(default_factory=dict)
    deadline: datetime | None = None
    priority: int = Field(default=3, ge=1, le=5)


@router.post("/api/users/{user_id}/plans")
async def create_plan(user_id: str, body: PlanRequest, system=Depends(get_system)):
    job = await submit_task(
        system,
        AgentType.PLANNER,
        "planner.generate_plan",
        {"user_id": user_id, **body.model_dump(mode="json")},
        intent=Intent.PLAN,
    )
    return JSONResponse(status_code=202, content=accepted(job).model_dump())


@router.get("/api/users/{user_id}/plans")
async def list_plans(user_id: str, store_group=Depends(get_store_group)):
    plans = await store_group.plan_store.find_by_user(user_id)
    return {"plans": [p.model_dump(mode="json") for p in plans]}


@router.get("/api/plans/{plan_id}")
async def get_plan(plan_id: str, system=Depends(get_system)):
    plan = await system.stores.plan_store.get_plan(plan_id)
    if plan is None:
        raise NotFoundError("Plan", plan_id)
    jobs = await system.orchestrator.jobs_for_plan(plan_id)
    return {
        "plan": plan.model_dump(mode="json"),
        "jobs": [
            {"job_id": j.job_id, "agent": j.agent, "status": j.status.value} for j in jobs
        ],
    }
