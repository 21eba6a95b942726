from __future__ import annotations

from insightpulse.models.feedback import Sentiment, Urgency


def derive_urgency(sentiment: str, score: float | None, rating: int | None, provided: str | None = None) -> str:
    """Service-provided urgency wins; otherwise a fixed fallback on sentiment, then rating."""
    if provided:
        return Urgency(provided).value
    if sentiment == Sentiment.NEGATIVE.value and score is not None and score < -0.5:
        return Urgency.HIGH.value
    if rating is not None and rating <= 2:
        return Urgency.HIGH.value
    return Urgency.MEDIUM.value
