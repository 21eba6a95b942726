"""Alert rules evaluated on each record after its classification is committed.

The evaluator reads records and shared window state; it never writes records.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime

from insightpulse.alerts.events import AlertEvent, AlertType, Severity
from insightpulse.alerts.state import AlertState
from insightpulse.models.feedback import Sentiment, utcnow

logger = logging.getLogger(__name__)


@dataclass
class SpikeConfig:
    window_seconds: int = 3600
    baseline_count: int = 5
    threshold_pct: float = 50.0

    @property
    def trigger_count(self) -> float:
        return self.baseline_count * (1 + self.threshold_pct / 100.0)


def urgent_severity(record) -> Severity | None:
    """critical/high for negative feedback that is strongly negative or poorly rated, else None."""
    if record.sentiment != Sentiment.NEGATIVE.value:
        return None
    score = record.sentiment_score
    rating = record.rating
    strongly_negative = score is not None and score <= -0.5
    poorly_rated = rating is not None and rating <= 2
    if not (strongly_negative or poorly_rated):
        return None
    if rating == 1 or (score is not None and score <= -0.8):
        return Severity.CRITICAL
    return Severity.HIGH


class AlertEvaluator:
    def __init__(self, state: AlertState, spike: SpikeConfig | None = None):
        self.state = state
        self.spike = spike or SpikeConfig()

    def evaluate(self, record) -> list[AlertEvent]:
        alerts: list[AlertEvent] = []
        urgent = self._urgent(record)
        if urgent:
            alerts.append(urgent)
        spike = self._spike(record)
        if spike:
            alerts.append(spike)
        return alerts

    def _urgent(self, record) -> AlertEvent | None:
        severity = urgent_severity(record)
        if severity is None:
            return None
        # one urgent alert per record even if classification is replayed
        if not self.state.acquire(f"urgent:{record.id}", record.created_at, 7 * 86400):
            return None
        return AlertEvent(
            type=AlertType.URGENT_FEEDBACK,
            severity=severity,
            tenant_id=record.tenant_id,
            title="Urgent Feedback Requires Attention",
            message="New urgent feedback has been received that requires immediate attention.",
            related_feedback_ids=[record.id],
            metadata={
                "urgency": record.urgency,
                "sentimentScore": record.sentiment_score,
                "rating": record.rating,
                "source": record.source,
            },
        )

    def _spike(self, record) -> AlertEvent | None:
        if record.sentiment != Sentiment.NEGATIVE.value:
            return None
        cfg = self.spike
        at = record.created_at or utcnow()
        ids = self.state.add_to_window(record.tenant_id, record.id, at, cfg.window_seconds)
        count = len(ids)
        if count <= cfg.trigger_count:
            return None
        if not self.state.acquire(f"spike:{record.tenant_id}", at, cfg.window_seconds):
            return None
        if cfg.baseline_count > 0:
            percentage = round((count - cfg.baseline_count) / cfg.baseline_count * 100, 1)
        else:
            percentage = float(count * 100)
        logger.info(f"Negative sentiment spike for tenant {record.tenant_id}: {count} in window (+{percentage}%)")
        return AlertEvent(
            type=AlertType.SENTIMENT_SPIKE,
            severity=Severity.HIGH if percentage > 50 else Severity.MEDIUM,
            tenant_id=record.tenant_id,
            title="Negative Sentiment Spike Detected",
            message=(
                "A significant increase in negative sentiment has been detected. "
                f"{percentage}% increase in negative feedback."
            ),
            related_feedback_ids=ids,
            metadata={
                "percentage": percentage,
                "negativeCount": count,
                "baselineCount": cfg.baseline_count,
                "timeRange": f"{cfg.window_seconds}s",
                "source": record.source,
            },
        )

    def integration_error(self, record, error: str) -> AlertEvent:
        return AlertEvent(
            type=AlertType.INTEGRATION_ERROR,
            severity=Severity.MEDIUM,
            tenant_id=record.tenant_id,
            title="Feedback Classification Failed",
            message=f"Classification failed permanently for feedback from {record.source}.",
            related_feedback_ids=[record.id],
            metadata={"source": record.source, "error": error, "attempts": record.attempts},
        )

    def quota_exceeded(self, tenant_id: str, source: str, at: datetime | None = None) -> AlertEvent | None:
        at = at or utcnow()
        if not self.state.acquire(f"quota:{tenant_id}", at, self.spike.window_seconds):
            return None
        return AlertEvent(
            type=AlertType.QUOTA_EXCEEDED,
            severity=Severity.HIGH,
            tenant_id=tenant_id,
            title="Feedback Quota Exceeded",
            message="Incoming feedback is being rejected because the tenant quota is exhausted.",
            metadata={"source": source},
        )
