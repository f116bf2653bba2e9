"""Fulfilment Domain Model -- periodic rollups and mirrored fulfilment entries"""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field

from .enums import PeriodType


class FulfilmentRollup(BaseModel):
    """Score of one (area, dimension) in one period

    Unique per (user_id, area_id, dimension, period_type, period_start).
    """

    rollup_id: str
    user_id: str
    area_id: str
    dimension: str
    period_type: PeriodType
    period_start: date
    score: float = Field(ge=0.0, le=5.0)
    confidence: float = Field(ge=0.0, le=1.0)
    trend: float = Field(default=0.0, description="Score minus prior period score")
    observations: int = Field(default=0, ge=0)
    updated_at: datetime


class FulfilmentEntry(BaseModel):
    """Mirror of an external contribution into a life area

    Unique per (user_id, life_area, source_type, source_id).
    """

    entry_id: str
    user_id: str
    life_area: str = Field(description="Area code")
    source_type: str = Field(description="e.g. finance_transaction, contribution")
    source_id: str
    title: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime
    created_at: datetime
