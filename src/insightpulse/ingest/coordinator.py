"""Ingest coordinator: idempotent persist, quota gate and classification enqueue."""
from __future__ import annotations
import logging
from dataclasses import dataclass

import redis
from prometheus_client import Counter

from insightpulse.alerts.evaluator import AlertEvaluator
from insightpulse.alerts.fanout import EventPublisher, publish_alert
from insightpulse.classification_queue import ClassificationQueue
from insightpulse.errors import QueueFull, QuotaExceeded
from insightpulse.ingest.quota import QuotaGate
from insightpulse.models.feedback import PartialRecord
from insightpulse.models.tables import FeedbackRecord
from insightpulse.store import FeedbackStore

logger = logging.getLogger(__name__)

FEEDBACK_INGESTED = Counter('insightpulse_feedback_ingested_total', 'New feedback records persisted', ['source'])
FEEDBACK_DUPLICATES = Counter('insightpulse_feedback_duplicates_total', 'Redelivered feedback resolved to an existing record', ['source'])
QUOTA_REJECTIONS = Counter('insightpulse_quota_rejections_total', 'Ingests rejected by tenant quota', ['source'])

QUOTA_KIND = "feedback"


@dataclass
class IngestResult:
    record: FeedbackRecord
    created: bool
    queued: bool = False

    @property
    def duplicate(self) -> bool:
        return not self.created


class IngestCoordinator:
    def __init__(self, store: FeedbackStore, queue: ClassificationQueue, quota: QuotaGate,
                 evaluator: AlertEvaluator, publisher: EventPublisher):
        self.store = store
        self.queue = queue
        self.quota = quota
        self.evaluator = evaluator
        self.publisher = publisher

    def ingest(self, tenant_id: str, partial: PartialRecord) -> IngestResult:
        source = partial.source.value
        # redeliveries are answered from the store without touching quota
        existing = self.store.find_by_source(source, partial.source_id)
        if existing is not None:
            FEEDBACK_DUPLICATES.labels(source=source).inc()
            return IngestResult(existing, created=False)

        if not self.quota.check_and_reserve(tenant_id, QUOTA_KIND):
            QUOTA_REJECTIONS.labels(source=source).inc()
            alert = self.evaluator.quota_exceeded(tenant_id, source)
            if alert is not None:
                publish_alert(self.publisher, alert)
            raise QuotaExceeded(f"feedback quota exhausted for tenant {tenant_id}", tenant_id=tenant_id)

        record, created = self.store.insert_if_absent(tenant_id, partial)
        if not created:
            FEEDBACK_DUPLICATES.labels(source=source).inc()
            return IngestResult(record, created=False)

        FEEDBACK_INGESTED.labels(source=source).inc()
        return IngestResult(record, created=True, queued=self.enqueue(record.id, reason="ingest"))

    def enqueue(self, feedback_id: str, reason: str = "ingest") -> bool:
        """Queue a persisted record; on failure it stays pending for the sweep."""
        try:
            self.queue.enqueue(feedback_id, reason=reason)
        except QueueFull:
            logger.warning(f"Classification queue full; {feedback_id} deferred to reconciliation")
            return False
        except redis.RedisError as e:
            logger.error(f"Enqueue of {feedback_id} failed ({e}); deferred to reconciliation")
            return False
        self.store.mark_enqueued(feedback_id)
        return True

    def reprocess(self, tenant_id: str, feedback_id: str) -> FeedbackRecord | None:
        """Re-arm a terminally failed record and queue it again."""
        record = self.store.rearm(tenant_id, feedback_id)
        if record is None:
            return None
        self.enqueue(record.id, reason="reprocess")
        return record
