"""Journal Domain Model -- entries and their area classification links"""

from datetime import datetime

from pydantic import BaseModel, Field


class JournalEntry(BaseModel):
    """A user's journal entry"""

    entry_id: str
    user_id: str
    content: str
    entry_date: datetime = Field(description="Date the entry is about")
    sentiment: float = Field(default=0.0, ge=-1.0, le=1.0)
    tags: list[str] = Field(default_factory=list, description="User-supplied area codes")
    locked: bool = Field(default=False, description="Set once a time-lock violation occurred")
    created_at: datetime
    updated_at: datetime


class EntryAreaLink(BaseModel):
    """Classification of one entry against one (area, dimension)"""

    entry_id: str
    area_id: str
    dimension: str
    weight: float = Field(ge=0.0, le=1.0)
    confidence: float = Field(ge=0.0, le=1.0)
    signal: float = Field(ge=0.0, le=5.0, description="0-5 fulfilment signal")
