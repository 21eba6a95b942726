from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class Source(str, Enum):
    INTERCOM = "intercom"
    ZENDESK = "zendesk"
    GOOGLE_PLAY = "google_play"
    APP_STORE = "app_store"
    TWITTER = "twitter"
    EMAIL = "email"
    NPS_SURVEY = "nps_survey"
    MANUAL = "manual"
    WEBHOOK = "webhook"
    API = "api"


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"
    MIXED = "mixed"


class Urgency(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ProcessingStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


DEFAULT_LANGUAGE = "en"


@dataclass
class PartialRecord:
    """Canonical skeleton produced by a provider adapter (no identity, no classification)."""
    source: Source
    content: str
    original_data: dict[str, Any]
    source_id: str | None = None
    title: str | None = None
    rating: int | None = None
    customer_id: str | None = None
    customer_name: str | None = None
    customer_email: str | None = None
    language: str = DEFAULT_LANGUAGE
    metadata: dict[str, Any] = field(default_factory=dict)


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
