"""Word-list sentiment classifier for interaction transcripts.

A stateless text -> score function. The ledger depends only on the
:data:`SentimentClassifier` callable shape, so a model-backed classifier
can replace this one without touching anything else.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass

from carewatch.core.storage.models import SentimentLabel

# Scores strictly above / below these bounds are positive / negative.
POSITIVE_BOUND = 0.3
NEGATIVE_BOUND = -0.3

_POSITIVE_WORDS = frozenset({
    "good", "great", "happy", "glad", "wonderful", "fine", "better", "love",
    "enjoyed", "fun", "excellent", "nice", "calm", "rested", "grateful",
    "bien", "bueno", "feliz", "contento", "contenta", "alegre", "genial",
    "excelente", "maravilloso", "tranquilo", "tranquila", "mejor",
})

_NEGATIVE_WORDS = frozenset({
    "bad", "sad", "tired", "pain", "hurt", "lonely", "worried", "afraid",
    "dizzy", "confused", "angry", "sick", "worse", "fell", "scared", "alone",
    "mal", "malo", "triste", "cansado", "cansada", "dolor", "solo", "sola",
    "preocupado", "preocupada", "miedo", "mareado", "mareada", "peor",
})

_WORD = re.compile(r"[^\W\d_]+", re.UNICODE)


@dataclass(frozen=True)
class SentimentResult:
    score: float  # [-1, 1]
    label: SentimentLabel
    confidence: float  # [0, 1]


SentimentClassifier = Callable[[str], SentimentResult]


def label_for_score(score: float) -> SentimentLabel:
    """Map a score in [-1, 1] to its label."""
    if score > POSITIVE_BOUND:
        return SentimentLabel.POSITIVE
    if score < NEGATIVE_BOUND:
        return SentimentLabel.NEGATIVE
    return SentimentLabel.NEUTRAL


def analyze_sentiment(text: str) -> SentimentResult:
    """Score a transcript by counting positive and negative words.

    Empty text is neutral with full confidence; text without any known
    word is neutral with confidence 0.5.
    """
    if not text or not text.strip():
        return SentimentResult(score=0.0, label=SentimentLabel.NEUTRAL, confidence=1.0)

    words = [w.lower() for w in _WORD.findall(text)]
    positive = sum(1 for w in words if w in _POSITIVE_WORDS)
    negative = sum(1 for w in words if w in _NEGATIVE_WORDS)
    matched = positive + negative

    if matched == 0:
        return SentimentResult(score=0.0, label=SentimentLabel.NEUTRAL, confidence=0.5)

    score = max(-1.0, min(1.0, (positive - negative) / matched))
    confidence = min(1.0, matched / max(len(words), 1) * 4)
    return SentimentResult(
        score=round(score, 4),
        label=label_for_score(score),
        confidence=round(confidence, 4),
    )
