"""Job routes

GET  /api/jobs/{job_id}            job detail
GET  /api/users/{user_id}/jobs     jobs of a user, optional status
POST /api/jobs/{job_id}/cancel     cancel ready job / flag running job
POST /api/jobs/{job_id}/complete   complete a human-owned plan task
"""

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from wisdomos.core.models import Job, JobStatus

from ..deps import get_system

router = APIRouter()


class JobView(BaseModel):
    job_id: str
    agent: str
    task: str
    status: str
    user_id: str | None
    attempts: int
    max_attempts: int
    run_at: str
    last_error: str | None
    dependencies: list[str]
    deps_met: bool
    plan_id: str | None
    event_id: str | None
    cancel_requested: bool


def _view(job: Job) -> JobView:
    return JobView(
        job_id=job.job_id,
        agent=job.agent,
        task=job.task,
        status=job.status.value,
        user_id=job.user_id,
        attempts=job.attempts,
        max_attempts=job.max_attempts,
        run_at=job.run_at.isoformat(),
        last_error=job.last_error,
        dependencies=job.dependencies,
        deps_met=job.deps_met,
        plan_id=job.plan_id,
        event_id=job.event_id,
        cancel_requested=job.cancel_requested,
    )


@router.get("/api/jobs/{job_id}", response_model=JobView)
async def get_job(job_id: str, system=Depends(get_system)):
    return _view(await system.orchestrator.get_job(job_id))


@router.get("/api/users/{user_id}/jobs")
async def list_jobs(
    user_id: str,
    status: JobStatus | None = Query(default=None),
    system=Depends(get_system),
):
    jobs = await system.orchestrator.jobs_for_user(user_id, status)
    return {"jobs": [_view(j).model_dump() for j in jobs]}


@router.post("/api/jobs/{job_id}/cancel", response_model=JobView)
async def cancel_job(
    job_id: str,
    user_id: str | None = Query(default=None, description="Owner check when given"),
    system=Depends(get_system),
):
    return _view(await system.orchestrator.cancel(job_id, user_id))


@router.post("/api/jobs/{job_id}/complete", response_model=JobView)
async def complete_job(
    job_id: str,
    user_id: str | None = Query(default=None, description="Owner check when given"),
    system=Depends(get_system),
):
    return _view(await system.orchestrator.complete_human_task(job_id, user_id))
