"""LiteLLMClassifier -- classifier backed by a LiteLLM Proxy

Each operation is one ``litellm.acompletion()`` call asking for a JSON
answer. Connection failures raise ``ClassifierUnreachableError`` so
``FallbackClassifier`` can degrade to keyword heuristics.
"""

import json
import time
from typing import Any

import httpx
import structlog
from litellm import acompletion

from wisdomos.core.config import STATEMENT_MAX_LENGTH
from wisdomos.core.models import LifeArea

from .exceptions import ClassifierError, ClassifierUnreachableError
from .models import AreaSignal, CommitmentDetection, clamp

log = structlog.get_logger()

# Health checks must answer quickly
HEALTH_CHECK_TIMEOUT_S = 5

_CONNECTION_ERROR_TYPES = (
    ConnectionError,
    OSError,
    TimeoutError,
    httpx.ConnectError,
    httpx.ConnectTimeout,
    httpx.TimeoutException,
)

_SYSTEM_PROMPT = (
    "You are a journaling analysis engine. Answer with a single JSON object "
    "and nothing else."
)


def _is_connection_error(e: Exception) -> bool:
    if isinstance(e, _CONNECTION_ERROR_TYPES):
        return True
    return type(e).__name__ in ("APIConnectionError", "APITimeoutError")


class LiteLLMClassifier:
    """Classifier calling a model through the LiteLLM Proxy"""

    def __init__(
        self,
        proxy_base_url: str = "http://localhost:4000",
        proxy_api_key: str = "",
        model_alias: str = "classifier",
        timeout_s: int = 30,
    ) -> None:
        """
        Args:
            proxy_base_url: Proxy base URL
            proxy_api_key: Proxy access key (LITELLM_PROXY_KEY), not a provider key
            model_alias: model group routed by the proxy
            timeout_s: request timeout in seconds
        """
        self._proxy_base_url = proxy_base_url.rstrip("/")
        self._proxy_api_key = proxy_api_key
        self._model_alias = model_alias
        self._timeout_s = timeout_s

    async def _ask(self, operation: str, instruction: str) -> dict[str, Any]:
        """Run one JSON-returning completion

        Raises:
            ClassifierUnreachableError: proxy connection failure or timeout
            ClassifierError: proxy error or an answer that is not a JSON object
        """
        start_time = time.monotonic()
        try:
            response = await acompletion(
                model=self._model_alias,
                messages=[
                    {"role": "system", "content": _SYSTEM_PROMPT},
                    {"role": "user", "content": instruction},
                ],
                api_base=self._proxy_base_url,
                api_key=self._proxy_api_key or "no-key",
                temperature=0.0,
                timeout=self._timeout_s,
            )
        except Exception as e:
            log.error(
                "classifier_call_failed",
                operation=operation,
                error=str(e),
                error_type=type(e).__name__,
                duration_ms=int((time.monotonic() - start_time) * 1000),
            )
            if _is_connection_error(e):
                raise ClassifierUnreachableError(
                    base_url=self._proxy_base_url,
                    original_error=e,
                ) from e
            raise ClassifierError(f"Classifier call failed: {e}") from e

        content = response.choices[0].message.content or ""
        log.debug(
            "classifier_call_completed",
            operation=operation,
            model_alias=self._model_alias,
            duration_ms=int((time.monotonic() - start_time) * 1000),
        )
        return self._parse(operation, content)

    @staticmethod
    def _parse(operation: str, content: str) -> dict[str, Any]:
        text = content.strip()
        # Models sometimes wrap JSON in a fenced block
        if text.startswith("```"):
            text = text.strip("`")
            if text.startswith("json"):
                text = text[4:]
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ClassifierError(f"{operation}: answer is not JSON") from e
        if not isinstance(data, dict):
            raise ClassifierError(f"{operation}: answer is not a JSON object")
        return data

    async def classify(self, text: str, areas: list[LifeArea]) -> list[AreaSignal]:
        if not areas:
            return []
        catalog = [
            {"area_id": a.area_id, "code": a.code, "name": a.name, "dimensions": a.dimensions}
            for a in areas
        ]
        data = await self._ask(
            "classify",
            "Classify the journal text against these life areas. Return "
            '{"signals": [{"area_id", "dimension", "weight" 0-1, "confidence" 0-1, '
            '"signal" 0-5}]} using only the listed areas and dimensions.\n'
            f"Areas: {json.dumps(catalog)}\nText: {text}",
        )
        known = {a.area_id: set(a.dimensions) for a in areas}
        signals: list[AreaSignal] = []
        for item in data.get("signals", []):
            try:
                area_id = str(item["area_id"])
                dimension = str(item["dimension"])
                if dimension not in known.get(area_id, ()):
                    continue
                signals.append(
                    AreaSignal(
                        area_id=area_id,
                        dimension=dimension,
                        weight=clamp(float(item["weight"]), 0.0, 1.0),
                        confidence=clamp(float(item["confidence"]), 0.0, 1.0),
                        signal=clamp(float(item["signal"]), 0.0, 5.0),
                    )
                )
            except (KeyError, TypeError, ValueError) as e:
                raise ClassifierError(f"classify: malformed signal {item!r}") from e
        return signals

    async def sentiment(self, text: str) -> float:
        data = await self._ask(
            "sentiment",
            f'Rate the sentiment of the text from -1 to 1. Return {{"sentiment": x}}.\n'
            f"Text: {text}",
        )
        try:
            return clamp(float(data["sentiment"]), -1.0, 1.0)
        except (KeyError, TypeError, ValueError) as e:
            raise ClassifierError("sentiment: missing value") from e

    async def detect_commitments(self, text: str) -> CommitmentDetection:
        data = await self._ask(
            "detect_commitments",
            "Find explicit commitments the author makes. Return "
            '{"confidence": 0-1, "statements": [verbatim sentences]}.\n'
            f"Text: {text}",
        )
        try:
            statements = [str(s)[:STATEMENT_MAX_LENGTH] for s in data.get("statements", [])]
            confidence = clamp(float(data.get("confidence", 0.0)), 0.0, 1.0)
        except (TypeError, ValueError) as e:
            raise ClassifierError("detect_commitments: malformed answer") from e
        return CommitmentDetection(confidence=confidence, statements=statements)

    async def summarize(self, texts: list[str]) -> str:
        if not texts:
            return ""
        data = await self._ask(
            "summarize",
            'Summarize these journal entries in two sentences. Return {"summary": "..."}.\n'
            f"Entries: {json.dumps(texts)}",
        )
        return str(data.get("summary", ""))

    async def coherence(self, texts: list[str]) -> float:
        if not texts:
            return 0.0
        data = await self._ask(
            "coherence",
            "How well do these entries read as one continuous story, from 0 to 1? "
            f'Return {{"coherence": x}}.\nEntries: {json.dumps(texts)}',
        )
        try:
            return clamp(float(data["coherence"]), 0.0, 1.0)
        except (KeyError, TypeError, ValueError) as e:
            raise ClassifierError("coherence: missing value") from e

    async def similarity(self, a: str, b: str) -> float:
        data = await self._ask(
            "similarity",
            "Rate the semantic similarity of the two phrases from 0 to 1. "
            f'Return {{"similarity": x}}.\nA: {a}\nB: {b}',
        )
        try:
            return clamp(float(data["similarity"]), 0.0, 1.0)
        except (KeyError, TypeError, ValueError) as e:
            raise ClassifierError("similarity: missing value") from e

    async def extract_themes(self, texts: list[str]) -> list[str]:
        if not texts:
            return []
        data = await self._ask(
            "extract_themes",
            'List up to five recurring themes as short lowercase words. Return {"themes": [...]}.\n'
            f"Entries: {json.dumps(texts)}",
        )
        return [str(t) for t in data.get("themes", [])][:5]

    async def health_check(self) -> bool:
        """GET {proxy_base_url}/health/liveliness; never raises"""
        url = f"{self._proxy_base_url}/health/liveliness"
        try:
            async with httpx.AsyncClient() as http_client:
                resp = await http_client.get(url, timeout=HEALTH_CHECK_TIMEOUT_S)
                return resp.status_code == 200
        except httpx.HTTPError as e:
            log.debug("health_check_failed", url=url, error=str(e))
            return False
