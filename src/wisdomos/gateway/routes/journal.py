"""Journal routes

POST  /api/users/{user_id}/journal             ingest an entry (journal.ingest)
PATCH /api/users/{user_id}/journal/{entry_id}  edit an entry, time-lock checked
GET   /api/users/{user_id}/journal             entries, optional date window
GET   /api/users/{user_id}/chapters            autobiography chapters
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from starlette.responses import JSONResponse

from wisdomos.core.models import AgentType

from ..deps import get_store_group, get_system
from ..services.submission import accepted, submit_task

router = APIRouter()


class IngestRequest(BaseModel):
    content: str = Field(min_length=1, description="Entry text")
    entry_date: datetime | None = Field(default=None, description="Defaults to now")
    tags: list[str] = Field(default_factory=list, description="Area codes")


class UpdateRequest(BaseModel):
    content: str | None = None
    entry_date: datetime | None = None
    tags: list[str] | None = None


@router.post("/api/users/{user_id}/journal")
async def ingest_entry(user_id: str, body: IngestRequest, system=Depends(get_system)):
    job = await submit_task(
        system,
        AgentType.JOURNAL,
        "journal.ingest",
        {"user_id": user_id, **body.model_dump(mode="json")},
    )
    return JSONResponse(status_code=202, content=accepted(job).model_dump())


@router.patch("/api/users/{user_id}/journal/{entry_id}")
async def update_entry(
    user_id: str, entry_id: str, body: UpdateRequest, system=Depends(get_system)
):
    job = await submit_task(
        system,
        AgentType.JOURNAL,
        "journal.update",
        {"user_id": user_id, "entry_id": entry_id, **body.model_dump(mode="json")},
    )
    return JSONResponse(status_code=202, content=accepted(job).model_dump())


@router.get("/api/users/{user_id}/journal")
async def list_entries(
    user_id: str,
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    store_group=Depends(get_store_group),
):
    entries = await store_group.journal_store.find_by_user(user_id, start, end)
    return {"entries": [e.model_dump(mode="json") for e in entries]}


@router.get("/api/users/{user_id}/chapters")
async def list_chapters(user_id: str, store_group=Depends(get_store_group)):
    chapters = await store_group.narrative_store.find_by_user(user_id)
    return {"chapters": [c.model_dump(mode="json") for c in chapters]}
