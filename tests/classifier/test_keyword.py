"""KeywordClassifier tests

Covers:
1. sentiment from word lists with negation
2. area classification weights, confidence and signal
3. commitment detection confidence tiers
4. summarize / coherence / similarity / themes
"""

from datetime import UTC, datetime

import pytest
from wisdomos.classifier import KeywordClassifier, log_confidence
from wisdomos.core.models import LifeArea


def _area(area_id: str, code: str, name: str, dimensions=None) -> LifeArea:
    return LifeArea(
        area_id=area_id,
        user_id="u1",
        code=code,
        name=name,
        dimensions=dimensions or ["INT", "FOR"],
        created_at=datetime(2025, 1, 1, tzinfo=UTC),
    )


@pytest.fixture
def kc() -> KeywordClassifier:
    return KeywordClassifier()


class TestSentiment:
    async def test_positive(self, kc):
        assert await kc.sentiment("A great and happy day") == 1.0

    async def test_negative(self, kc):
        assert await kc.sentiment("Tired and stressed") == -1.0

    async def test_mixed(self, kc):
        assert await kc.sentiment("Happy but tired, proud but anxious, calm") == pytest.approx(0.2)

    async def test_negation_flips(self, kc):
        assert await kc.sentiment("I am not happy") == -1.0

    async def test_neutral(self, kc):
        assert await kc.sentiment("The meeting is at noon") == 0.0


class TestClassify:
    async def test_weights_by_hits(self, kc):
        """Weight is the area's share of keyword hits, signal follows sentiment"""
        areas = [_area("a-wrk", "WRK", "Work"), _area("a-mus", "MUS", "Music")]
        signals = await kc.classify("Great client meeting, then guitar practice", areas)

        by_area = {(s.area_id, s.dimension): s for s in signals}
        assert set(by_area) == {
            ("a-wrk", "INT"),
            ("a-wrk", "FOR"),
            ("a-mus", "INT"),
            ("a-mus", "FOR"),
        }
        work = by_area[("a-wrk", "INT")]
        assert work.weight == pytest.approx(0.5)
        assert work.confidence == pytest.approx(0.7)
        assert work.signal == pytest.approx(5.0)

    async def test_area_name_counts(self, kc):
        """Custom areas are matched by the words of their name"""
        areas = [_area("a-cmt", "CMT_001", "Learn Spanish")]
        signals = await kc.classify("Spanish lesson today", areas)
        assert {s.area_id for s in signals} == {"a-cmt"}
        assert signals[0].weight == 1.0

    async def test_no_match(self, kc):
        areas = [_area("a-wrk", "WRK", "Work")]
        assert await kc.classify("Walked by the sea", areas) == []

    async def test_no_areas(self, kc):
        assert await kc.classify("anything", []) == []


class TestDetectCommitments:
    async def test_strong_cue_with_time_marker(self, kc):
        detection = await kc.detect_commitments(
            "Long day. I will run every morning. Dinner was fine."
        )
        assert detection.statements == ["I will run every morning."]
        assert detection.confidence == pytest.approx(0.9)

    async def test_strong_cue(self, kc):
        detection = await kc.detect_commitments("I promise to call my mother.")
        assert detection.confidence == pytest.approx(0.85)

    async def test_weak_cue(self, kc):
        detection = await kc.detect_commitments("I plan to read more.")
        assert detection.confidence == pytest.approx(0.6)
        assert detection.statements == ["I plan to read more."]

    async def test_best_sentence_wins(self, kc):
        detection = await kc.detect_commitments("I plan to read. I commit to writing daily.")
        assert len(detection.statements) == 2
        assert detection.confidence == pytest.approx(0.9)

    async def test_none(self, kc):
        detection = await kc.detect_commitments("Nothing much happened.")
        assert detection.statements == []
        assert detection.confidence == 0.0


class TestNarrativeHelpers:
    async def test_summarize_first_sentences(self, kc):
        summary = await kc.summarize(["First one. More text.", "Second one! Tail."])
        assert summary == "First one. Second one!"

    async def test_coherence(self, kc):
        assert await kc.coherence([]) == 0.0
        assert await kc.coherence(["single entry"]) == 1.0
        same = await kc.coherence(["guitar practice", "guitar practice"])
        assert same == 1.0
        disjoint = await kc.coherence(["guitar practice", "tax forms"])
        assert disjoint == 0.0

    async def test_similarity(self, kc):
        assert await kc.similarity("learn spanish", "Learn Spanish") == 1.0
        similar = await kc.similarity("learn spanish", "learn guitar")
        assert similar == pytest.approx(1 / 3, abs=1e-4)

    async def test_themes(self, kc):
        themes = await kc.extract_themes(
            ["guitar guitar practice", "guitar practice band", "band"]
        )
        # ties broken alphabetically
        assert themes == ["guitar", "band", "practice"]


class TestLogConfidence:
    def test_monotonic_and_capped(self):
        assert log_confidence(0) == 0.0
        assert log_confidence(1) < log_confidence(5) < log_confidence(10)
        assert log_confidence(10_000) == 1.0
