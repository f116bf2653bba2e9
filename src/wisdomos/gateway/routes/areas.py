"""Life area and fulfilment routes

GET  /api/users/{user_id}/areas     life areas
POST /api/users/{user_id}/areas     create an area (area.create)
GET  /api/users/{user_id}/rollups   fulfilment scores, optional period filter
POST /api/users/{user_id}/rollups   request a rollup (fulfilment.rollup)
"""

from datetime import date

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from starlette.responses import JSONResponse

from wisdomos.core.models import AgentType, PeriodType

from ..deps import get_store_group, get_system
from ..services.submission import accepted, submit_task

router = APIRouter()


class CreateAreaRequest(BaseModel):
    code: str = Field(min_length=1, max_length=16, description="Short code, e.g. WRK")
    name: str = Field(min_length=1)
    dimensions: list[str] | None = None


class RollupRequest(BaseModel):
    period_type: PeriodType = PeriodType.MONTH
    period_start: date | None = Field(default=None, description="Defaults to the current period")


@router.get("/api/users/{user_id}/areas")
async def list_areas(user_id: str, store_group=Depends(get_store_group)):
    areas = await store_group.area_store.find_by_user(user_id)
    return {"areas": [a.model_dump(mode="json") for a in areas]}


@router.post("/api/users/{user_id}/areas")
async def create_area(user_id: str, body: CreateAreaRequest, system=Depends(get_system)):
    job = await submit_task(
        system,
        AgentType.AREA_GENERATOR,
        "area.create",
        {"user_id": user_id, **body.model_dump(mode="json")},
    )
    return JSONResponse(status_code=202, content=accepted(job).model_dump())


@router.get("/api/users/{user_id}/rollups")
async def list_rollups(
    user_id: str,
    period_type: PeriodType | None = Query(default=None),
    period_start: date | None = Query(default=None),
    store_group=Depends(get_store_group),
):
    rollups = await store_group.fulfilment_store.find_by_user(user_id, period_type, period_start)
    return {"rollups": [r.model_dump(mode="json") for r in rollups]}


@router.post("/api/users/{user_id}/rollups")
async def request_rollup(
    user_id: str, body: RollupRequest | None = None, system=Depends(get_system)
):
    body = body or RollupRequest()
    job = await submit_task(
        system,
        AgentType.FULFILMENT,
        "fulfilment.rollup",
        {"user_id": user_id, **body.model_dump(mode="json")},
    )
    return JSONResponse(status_code=202, content=accepted(job).model_dump())
