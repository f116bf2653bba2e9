"""Narrative Domain Model -- autobiography eras, chapters and entry links

Eras are fixed, non-overlapping, inclusive year ranges.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class Era(BaseModel):
    name: str
    start_year: int
    end_year: int

    def contains(self, year: int) -> bool:
        return self.start_year <= year <= self.end_year


ERAS: list[Era] = [
    Era(name="Foundation Years", start_year=1975, end_year=1984),
    Era(name="Growth Decade", start_year=1985, end_year=1994),
    Era(name="Digital Age", start_year=1995, end_year=2004),
    Era(name="Expansion", start_year=2005, end_year=2014),
    Era(name="Transformation", start_year=2015, end_year=2024),
    Era(name="Mastery", start_year=2025, end_year=2034),
    Era(name="Legacy", start_year=2035, end_year=2100),
]


def era_for_year(year: int) -> Era | None:
    """Era containing ``year``, None outside the covered range"""
    for era in ERAS:
        if era.contains(year):
            return era
    return None


class Chapter(BaseModel):
    """Autobiography chapter, unique per (user, era, area)"""

    chapter_id: str
    user_id: str
    era: str
    area_id: str
    title: str
    summary: str = ""
    themes: list[str] = Field(default_factory=list)
    coherence: float = Field(default=0.0, ge=0.0, le=1.0)
    entry_count: int = Field(default=0, ge=0)
    created_at: datetime
    updated_at: datetime


class ChapterLink(BaseModel):
    chapter_id: str
    entry_id: str
    relevance: float = Field(ge=0.0, le=1.0)
    created_at: datetime
