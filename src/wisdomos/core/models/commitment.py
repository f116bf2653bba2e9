"""Commitment Domain Model -- commitments, their actions, and life areas

Life areas are tracked dimensions of a user's life. Areas spawned from
commitments get a ``CMT_nnn`` code; seeded areas use short codes such as
WRK or MUS.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from .enums import ActionStatus, CommitmentStatus

DEFAULT_AREA_DIMENSIONS: list[str] = ["INT", "FOR"]


class LifeArea(BaseModel):
    """Tracked life area"""

    area_id: str
    user_id: str
    code: str = Field(description="Unique per user, e.g. WRK or CMT_001")
    name: str
    dimensions: list[str] = Field(default_factory=lambda: list(DEFAULT_AREA_DIMENSIONS))
    commitment_id: str | None = Field(default=None, description="Commitment that spawned it")
    created_at: datetime


class Commitment(BaseModel):
    """Promise extracted from a journal entry"""

    commitment_id: str
    user_id: str
    statement: str = Field(description="Up to 200 characters")
    confidence: float = Field(ge=0.0, le=1.0)
    status: CommitmentStatus = CommitmentStatus.DETECTED
    entry_id: str | None = None
    area_id: str | None = None
    target_date: datetime | None = None
    created_at: datetime
    updated_at: datetime


class CommitmentAction(BaseModel):
    """Concrete step towards a commitment"""

    action_id: str
    commitment_id: str
    user_id: str
    title: str
    status: ActionStatus = ActionStatus.PENDING
    due_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
