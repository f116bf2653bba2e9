"""FallbackClassifier, factory and LiteLLMClassifier tests

Covers:
1. primary success does not touch the fallback
2. primary failure degrades to the fallback, both failing raises ClassifierError
3. lazy probe: the primary is tried again on the next call
4. build_classifier / load_classifier_config
5. LiteLLMClassifier parses JSON answers and maps connection errors
"""

from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
from wisdomos.classifier import (
    ClassifierConfig,
    ClassifierError,
    ClassifierUnreachableError,
    CommitmentDetection,
    FallbackClassifier,
    KeywordClassifier,
    LiteLLMClassifier,
    build_classifier,
    load_classifier_config,
)
from wisdomos.core.models import LifeArea


@pytest.fixture
def mock_primary():
    primary = AsyncMock()
    primary.sentiment = AsyncMock(return_value=0.8)
    return primary


@pytest.fixture
def mock_fallback():
    fallback = AsyncMock()
    fallback.sentiment = AsyncMock(return_value=-0.2)
    return fallback


def _completion(content: str):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class TestFallbackClassifier:
    async def test_primary_success(self, mock_primary, mock_fallback):
        fc = FallbackClassifier(primary=mock_primary, fallback=mock_fallback)
        assert await fc.sentiment("text") == 0.8
        mock_fallback.sentiment.assert_not_called()

    async def test_primary_failure_uses_fallback(self, mock_primary, mock_fallback):
        mock_primary.sentiment.side_effect = ClassifierUnreachableError(
            "http://proxy", ConnectionError("refused")
        )
        fc = FallbackClassifier(primary=mock_primary, fallback=mock_fallback)
        assert await fc.sentiment("text") == -0.2
        mock_fallback.sentiment.assert_called_once_with("text")

    async def test_both_fail(self, mock_primary, mock_fallback):
        mock_primary.sentiment.side_effect = RuntimeError("primary down")
        mock_fallback.sentiment.side_effect = RuntimeError("fallback down")
        fc = FallbackClassifier(primary=mock_primary, fallback=mock_fallback)
        with pytest.raises(ClassifierError) as exc_info:
            await fc.sentiment("text")
        assert "primary down" in str(exc_info.value)
        assert exc_info.value.retryable is True

    async def test_no_fallback(self, mock_primary):
        mock_primary.sentiment.side_effect = RuntimeError("down")
        fc = FallbackClassifier(primary=mock_primary, fallback=None)
        with pytest.raises(ClassifierError):
            await fc.sentiment("text")

    async def test_lazy_probe(self, mock_primary, mock_fallback):
        """No sticky degraded state: the next call goes to the primary again"""
        mock_primary.sentiment.side_effect = [RuntimeError("blip"), 0.5]
        fc = FallbackClassifier(primary=mock_primary, fallback=mock_fallback)
        assert await fc.sentiment("a") == -0.2
        assert await fc.sentiment("b") == 0.5
        assert mock_primary.sentiment.call_count == 2

    async def test_forwards_every_operation(self, mock_primary):
        mock_primary.detect_commitments = AsyncMock(
            return_value=CommitmentDetection(confidence=0.9, statements=["I will"])
        )
        fc = FallbackClassifier(primary=mock_primary, fallback=KeywordClassifier())
        detection = await fc.detect_commitments("I will")
        assert detection.confidence == 0.9


class TestFactory:
    def test_keyword_mode(self):
        assert isinstance(build_classifier(ClassifierConfig()), KeywordClassifier)

    def test_litellm_mode(self):
        classifier = build_classifier(ClassifierConfig(mode="litellm"))
        assert isinstance(classifier, FallbackClassifier)

    def test_env_config(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("WISDOMOS_CLASSIFIER_MODE", "litellm")
        monkeypatch.setenv("LITELLM_PROXY_URL", "http://proxy:4000")
        monkeypatch.setenv("LITELLM_PROXY_KEY", "secret")
        monkeypatch.setenv("WISDOMOS_CLASSIFIER_TIMEOUT_S", "nope")
        config = load_classifier_config()
        assert config.mode == "litellm"
        assert config.proxy_base_url == "http://proxy:4000"
        assert config.proxy_api_key.get_secret_value() == "secret"
        assert config.timeout_s == 30

    def test_invalid_mode(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("WISDOMOS_CLASSIFIER_MODE", "magic")
        assert load_classifier_config().mode == "keyword"


class TestLiteLLMClassifier:
    async def test_sentiment(self):
        with patch(
            "wisdomos.classifier.client.acompletion",
            new=AsyncMock(return_value=_completion('{"sentiment": 1.7}')),
        ):
            value = await LiteLLMClassifier().sentiment("text")
        # clamped to the valid range
        assert value == 1.0

    async def test_fenced_json(self):
        with patch(
            "wisdomos.classifier.client.acompletion",
            new=AsyncMock(return_value=_completion('```json\n{"similarity": 0.4}\n```')),
        ):
            assert await LiteLLMClassifier().similarity("a", "b") == pytest.approx(0.4)

    async def test_not_json(self):
        with patch(
            "wisdomos.classifier.client.acompletion",
            new=AsyncMock(return_value=_completion("I think it is positive")),
        ):
            with pytest.raises(ClassifierError):
                await LiteLLMClassifier().sentiment("text")

    async def test_connection_error(self):
        with patch(
            "wisdomos.classifier.client.acompletion",
            new=AsyncMock(side_effect=ConnectionError("refused")),
        ):
            with pytest.raises(ClassifierUnreachableError) as exc_info:
                await LiteLLMClassifier(proxy_base_url="http://proxy:4000/").sentiment("x")
        assert exc_info.value.base_url == "http://proxy:4000"

    async def test_classify_drops_unknown_dimensions(self):
        area = LifeArea(
            area_id="a1",
            user_id="u1",
            code="WRK",
            name="Work",
            created_at=datetime(2025, 1, 1, tzinfo=UTC),
        )
        answer = (
            '{"signals": ['
            '{"area_id": "a1", "dimension": "INT", "weight": 0.6, "confidence": 0.9, "signal": 4},'
            '{"area_id": "a1", "dimension": "XXX", "weight": 1, "confidence": 1, "signal": 5}'
            "]}"
        )
        with patch(
            "wisdomos.classifier.client.acompletion",
            new=AsyncMock(return_value=_completion(answer)),
        ):
            signals = await LiteLLMClassifier().classify("text", [area])
        assert [(s.area_id, s.dimension) for s in signals] == [("a1", "INT")]
        assert signals[0].signal == 4.0
