"""KeywordClassifier -- deterministic offline heuristics

Lexicon sentiment, cue-phrase commitment detection and token-overlap
similarity. Used as the default classifier and as the fallback of
``FallbackClassifier``. The same input always yields the same output.
"""

import math
import re
from collections import Counter

from wisdomos.core.config import STATEMENT_MAX_LENGTH
from wisdomos.core.models import LifeArea

from .models import AreaSignal, CommitmentDetection, clamp

_TOKEN_RE = re.compile(r"[a-z']+")
_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+|\n+")

_STOPWORDS = frozenset(
    """
    a an and are as at be been but by for from had has have i i'm it its me my of on or our
    so that the their them then there they this to was we were will with you your am is
    just very really about into over after before again more most some such than too
    """.split()
)

_POSITIVE = frozenset(
    """
    good great happy joy joyful love loved grateful thankful proud calm excited energized
    progress win won success successful peaceful content fulfilled inspired hopeful
    productive strong better best wonderful amazing accomplished focused rested
    """.split()
)

_NEGATIVE = frozenset(
    """
    bad sad angry upset tired exhausted anxious worried stressed stress fail failed failure
    lonely lost hurt pain afraid frustrated frustrating overwhelmed worse worst awful
    terrible sick broke guilty regret stuck missed
    """.split()
)

_NEGATIONS = frozenset({"not", "no", "never", "don't", "didn't", "isn't", "wasn't", "can't"})

# Strong cues read as explicit promises, weak cues as intentions
_STRONG_CUES = ("commit to", "i will", "promise to", "my goal is")
_WEAK_CUES = ("going to", "plan to")
_TIME_MARKERS = ("by ", "every ", "daily", "weekly", "tomorrow", "next week", "next month")

# Seed vocabulary for the standard area codes
AREA_KEYWORDS: dict[str, tuple[str, ...]] = {
    "WRK": ("work", "job", "career", "project", "meeting", "client", "office", "deadline"),
    "MUS": ("music", "song", "guitar", "piano", "practice", "band", "album", "spotify"),
    "WRT": ("write", "writing", "wrote", "book", "chapter", "article", "draft", "essay"),
    "SPE": ("speak", "speaking", "speech", "talk", "presentation", "keynote", "podcast"),
    "HLT": ("health", "run", "running", "gym", "sleep", "exercise", "workout", "doctor"),
    "REL": ("family", "friend", "friends", "partner", "wife", "husband", "kids", "date"),
    "FIN": ("money", "budget", "savings", "invest", "salary", "rent", "debt", "income"),
}


def tokenize(text: str) -> list[str]:
    return _TOKEN_RE.findall(text.lower())


def content_tokens(text: str) -> set[str]:
    return {t for t in tokenize(text) if t not in _STOPWORDS and len(t) > 1}


def split_sentences(text: str) -> list[str]:
    return [s.strip() for s in _SENTENCE_RE.split(text) if s.strip()]


def jaccard(a: set[str], b: set[str]) -> float:
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


class KeywordClassifier:
    """Classifier implementation built from word lists only"""

    async def sentiment(self, text: str) -> float:
        """(positive - negative) / (positive + negative), negation flips the next hit"""
        pos = neg = 0
        negate = False
        for token in tokenize(text):
            if token in _NEGATIONS:
                negate = True
                continue
            hit = 1 if token in _POSITIVE else -1 if token in _NEGATIVE else 0
            if hit:
                if negate:
                    hit = -hit
                if hit > 0:
                    pos += 1
                else:
                    neg += 1
                negate = False
        if pos + neg == 0:
            return 0.0
        return round(clamp((pos - neg) / (pos + neg), -1.0, 1.0), 4)

    async def classify(self, text: str, areas: list[LifeArea]) -> list[AreaSignal]:
        """Signals for areas whose vocabulary appears in the text

        Weight is the area's share of all keyword hits; the signal maps
        sentiment [-1, 1] onto [0, 5].
        """
        tokens = tokenize(text)
        if not tokens or not areas:
            return []
        counts = Counter(tokens)
        hits: dict[str, int] = {}
        for area in areas:
            vocabulary = set(AREA_KEYWORDS.get(area.code.upper(), ()))
            vocabulary |= content_tokens(area.name)
            vocabulary.add(area.code.lower())
            n = sum(counts[word] for word in vocabulary)
            if n:
                hits[area.area_id] = n
        total = sum(hits.values())
        if not total:
            return []

        signal = clamp(2.5 + 2.5 * await self.sentiment(text), 0.0, 5.0)
        signals: list[AreaSignal] = []
        for area in areas:
            n = hits.get(area.area_id)
            if not n:
                continue
            for dimension in area.dimensions:
                signals.append(
                    AreaSignal(
                        area_id=area.area_id,
                        dimension=dimension,
                        weight=round(n / total, 4),
                        confidence=round(min(1.0, 0.5 + 0.1 * n), 4),
                        signal=round(signal, 4),
                    )
                )
        return signals

    async def detect_commitments(self, text: str) -> CommitmentDetection:
        """Sentences carrying a commitment cue

        Strong cues score 0.85, weak cues 0.6; a time marker adds 0.05.
        """
        statements: list[str] = []
        best = 0.0
        for sentence in split_sentences(text):
            lowered = sentence.lower()
            if any(cue in lowered for cue in _STRONG_CUES):
                score = 0.85
            elif any(cue in lowered for cue in _WEAK_CUES):
                score = 0.6
            else:
                continue
            if any(marker in lowered for marker in _TIME_MARKERS):
                score += 0.05
            best = max(best, score)
            statement = sentence[:STATEMENT_MAX_LENGTH]
            if statement not in statements:
                statements.append(statement)
        return CommitmentDetection(confidence=round(min(best, 0.95), 4), statements=statements)

    async def summarize(self, texts: list[str]) -> str:
        """First sentence of each text, joined"""
        firsts = []
        for text in texts:
            sentences = split_sentences(text)
            if sentences:
                firsts.append(sentences[0])
        return " ".join(firsts)[:500]

    async def coherence(self, texts: list[str]) -> float:
        """Mean token overlap of consecutive texts; a single text is coherent"""
        token_sets = [content_tokens(t) for t in texts if t.strip()]
        if not token_sets:
            return 0.0
        if len(token_sets) == 1:
            return 1.0
        pairs = [jaccard(a, b) for a, b in zip(token_sets, token_sets[1:], strict=False)]
        return round(clamp(sum(pairs) / len(pairs), 0.0, 1.0), 4)

    async def similarity(self, a: str, b: str) -> float:
        return round(jaccard(content_tokens(a), content_tokens(b)), 4)

    async def extract_themes(self, texts: list[str]) -> list[str]:
        """Up to five most frequent content words, ties broken alphabetically"""
        counts: Counter[str] = Counter()
        for text in texts:
            counts.update(t for t in tokenize(text) if t not in _STOPWORDS and len(t) > 3)
        ranked = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
        return [word for word, _ in ranked[:5]]


def log_confidence(observations: int) -> float:
    """min(1, ln(1 + n) / 3): confidence grows with observation count"""
    return min(1.0, math.log1p(max(observations, 0)) / 3)
