from __future__ import annotations
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from insightpulse.models.feedback import Sentiment, Urgency, utcnow


class AlertType(str, Enum):
    SENTIMENT_SPIKE = "sentiment_spike"
    URGENT_FEEDBACK = "urgent_feedback"
    INTEGRATION_ERROR = "integration_error"
    QUOTA_EXCEEDED = "quota_exceeded"
    CUSTOM = "custom"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class AlertEvent:
    type: AlertType
    severity: Severity
    tenant_id: str
    title: str
    message: str
    related_feedback_ids: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "event": "alert",
            "id": self.id,
            "type": self.type.value,
            "severity": self.severity.value,
            "tenantId": self.tenant_id,
            "title": self.title,
            "message": self.message,
            "relatedFeedbackIds": list(self.related_feedback_ids),
            "metadata": dict(self.metadata),
            "createdAt": self.created_at.isoformat(),
        }


def needs_attention(record) -> bool:
    return (
        record.urgency in (Urgency.HIGH.value, Urgency.CRITICAL.value)
        or record.sentiment == Sentiment.NEGATIVE.value
    )


def classified_event(record) -> dict:
    """Live-dashboard payload for a record that just completed classification."""
    return {
        "event": "feedback.classified",
        "feedbackId": record.id,
        "tenantId": record.tenant_id,
        "source": record.source,
        "sentiment": record.sentiment,
        "sentimentScore": record.sentiment_score,
        "urgency": record.urgency,
        "categories": list(record.categories or []),
        "needsAttention": needs_attention(record),
        "classifiedAt": record.classified_at.isoformat() if record.classified_at else None,
    }
