"""Finance routes

POST /api/users/{user_id}/finance/ledger         ingest csv/json ledger rows
GET  /api/users/{user_id}/finance/profitability  income / expenses / net for a window
GET  /api/users/{user_id}/finance/cashflow       balance, burn and runway
"""

from datetime import datetime
from typing import Any, Literal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from starlette.responses import JSONResponse

from wisdomos.core.models import AgentType

from ..deps import get_system
from ..services.submission import accepted, submit_task

router = APIRouter()


class LedgerRequest(BaseModel):
    source: str = Field(min_length=1, description="Ledger source, e.g. bank-csv")
    format: Literal["csv", "json"] = "json"
    rows: list[dict[str, Any]] = Field(default_factory=list)
    data: str | None = Field(default=None, description="Raw CSV text, format=csv only")


@router.post("/api/users/{user_id}/finance/ledger")
async def ingest_ledger(user_id: str, body: LedgerRequest, system=Depends(get_system)):
    job = await submit_task(
        system,
        AgentType.FINANCE,
        "finance.ingest_ledger",
        {"user_id": user_id, **body.model_dump(mode="json")},
    )
    return JSONResponse(status_code=202, content=accepted(job).model_dump())


@router.get("/api/users/{user_id}/finance/profitability")
async def profitability(
    user_id: str,
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    area_code: str | None = Query(default=None),
    system=Depends(get_system),
):
    report = await system.agents[AgentType.FINANCE].profitability(user_id, start, end, area_code)
    return report.model_dump(mode="json")


@router.get("/api/users/{user_id}/finance/cashflow")
async def cashflow(user_id: str, system=Depends(get_system)):
    report = await system.agents[AgentType.FINANCE].cashflow(user_id)
    return report.model_dump(mode="json")
