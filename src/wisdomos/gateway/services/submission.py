"""Envelope submission -- turns an HTTP request into an orchestrator job"""

from typing import Any

from pydantic import BaseModel

from wisdomos.core.models import AgentType, Intent, Job, ProvenanceSource, new_envelope
from wisdomos.orchestration import WisdomSystem


class JobAccepted(BaseModel):
    """202 response body of every submitting route"""

    job_id: str
    agent: str
    task: str
    status: str


def accepted(job: Job) -> JobAccepted:
    return JobAccepted(job_id=job.job_id, agent=job.agent, task=job.task, status=job.status.value)


async def submit_task(
    system: WisdomSystem,
    actor: AgentType,
    task: str,
    payload: dict[str, Any],
    intent: Intent = Intent.EXECUTE,
) -> Job:
    """Build a user-sourced envelope and submit it"""
    envelope = new_envelope(
        actor=actor,
        task=task,
        payload=payload,
        intent=intent,
        source=ProvenanceSource.USER,
        created_at=system.clock.now(),
        max_attempts=system.config.job_max_attempts,
        backoff=system.config.job_backoff,
    )
    return await system.orchestrator.submit(envelope)
