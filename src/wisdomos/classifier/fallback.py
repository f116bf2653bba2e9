"""FallbackClassifier -- degrade from the model to keyword heuristics

Lazy probe: every call tries the primary first and switches to the fallback
on failure. No sticky "degraded" state is kept.
"""

from typing import Any

import structlog

from wisdomos.core.models import LifeArea

from .exceptions import ClassifierError
from .models import AreaSignal, Classifier, CommitmentDetection

log = structlog.get_logger()


class FallbackClassifier:
    """Classifier chain

    Degradation chain: LiteLLMClassifier -> KeywordClassifier.
    """

    def __init__(self, primary: Classifier, fallback: Classifier | None = None) -> None:
        """
        Args:
            primary: main classifier
            fallback: degraded classifier, None disables degradation
        """
        self._primary = primary
        self._fallback = fallback

    async def _call(self, operation: str, *args: Any) -> Any:
        """Run ``operation`` on the primary, then on the fallback

        Raises:
            ClassifierError: primary failed with no fallback, or both failed
        """
        try:
            return await getattr(self._primary, operation)(*args)
        except Exception as e:
            primary_error = e
            log.warning(
                "primary_classifier_failed_attempting_fallback",
                operation=operation,
                error=str(e),
            )

        if self._fallback is None:
            raise ClassifierError(
                f"{operation} failed with no fallback configured: {primary_error}"
            ) from primary_error

        try:
            result = await getattr(self._fallback, operation)(*args)
        except Exception as fallback_error:
            log.error(
                "both_primary_and_fallback_classifier_failed",
                operation=operation,
                primary_error=str(primary_error),
                fallback_error=str(fallback_error),
            )
            raise ClassifierError(
                f"{operation} failed. Primary: {primary_error}; Fallback: {fallback_error}"
            ) from fallback_error

        log.info("classifier_fallback_activated", operation=operation, reason=str(primary_error))
        return result

    async def classify(self, text: str, areas: list[LifeArea]) -> list[AreaSignal]:
        return await self._call("classify", text, areas)

    async def sentiment(self, text: str) -> float:
        return await self._call("sentiment", text)

    async def detect_commitments(self, text: str) -> CommitmentDetection:
        return await self._call("detect_commitments", text)

    async def summarize(self, texts: list[str]) -> str:
        return await self._call("summarize", texts)

    async def coherence(self, texts: list[str]) -> float:
        return await self._call("coherence", texts)

    async def similarity(self, a: str, b: str) -> float:
        return await self._call("similarity", a, b)

    async def extract_themes(self, texts: list[str]) -> list[str]:
        return await self._call("extract_themes", texts)
