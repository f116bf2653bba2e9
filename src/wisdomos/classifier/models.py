"""Classifier data models and interface

All inference used by the agents goes through ``Classifier``. Implementations
are the offline ``KeywordClassifier``, the model-backed ``LiteLLMClassifier``
and ``FallbackClassifier`` chaining the two.
"""

from typing import Protocol

from pydantic import BaseModel, Field

from wisdomos.core.models import LifeArea


class AreaSignal(BaseModel):
    """Classification of a text against one (area, dimension)"""

    area_id: str
    dimension: str
    weight: float = Field(ge=0.0, le=1.0, description="Share of the text about this area")
    confidence: float = Field(ge=0.0, le=1.0)
    signal: float = Field(ge=0.0, le=5.0, description="0-5 fulfilment signal")


class CommitmentDetection(BaseModel):
    """Commitment statements found in a text"""

    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    statements: list[str] = Field(default_factory=list)


class Classifier(Protocol):
    async def classify(self, text: str, areas: list[LifeArea]) -> list[AreaSignal]:
        """Signals for the subset of ``areas`` the text is about"""
        ...

    async def sentiment(self, text: str) -> float:
        """Sentiment in [-1, 1]"""
        ...

    async def detect_commitments(self, text: str) -> CommitmentDetection: ...

    async def summarize(self, texts: list[str]) -> str: ...

    async def coherence(self, texts: list[str]) -> float:
        """How well the texts read as one story, in [0, 1]"""
        ...

    async def similarity(self, a: str, b: str) -> float:
        """Semantic similarity in [0, 1]"""
        ...

    async def extract_themes(self, texts: list[str]) -> list[str]: ...


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))
