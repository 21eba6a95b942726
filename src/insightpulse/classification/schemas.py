from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field

from insightpulse.models.feedback import Sentiment, Urgency


class ClassificationRequest(BaseModel):
    content: str
    rating: int | None = None
    language: str | None = None


class ClassificationResult(BaseModel):
    sentiment: Sentiment
    sentiment_score: float = Field(..., ge=-1.0, le=1.0, alias="sentimentScore")
    urgency: Urgency | None = None
    categories: list[str] = Field(default_factory=list)
    emotions: dict[str, float] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True)
