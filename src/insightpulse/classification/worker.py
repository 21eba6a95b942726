"""Per-record classification state machine.

pending ─claim─▶ processing ─┬─ success ──────────▶ completed
                             ├─ retryable error ──▶ failed + next_attempt_at (re-queued with backoff)
                             └─ permanent error ──▶ failed (terminal, integration_error alert)

Every write after the claim is fenced by this worker's lease; a worker whose
lease was reclaimed cannot overwrite the outcome of the worker that took over.
"""
from __future__ import annotations
import logging
from datetime import datetime, timedelta
from typing import Callable

import redis
from prometheus_client import Counter, Histogram

from insightpulse.alerts.evaluator import AlertEvaluator
from insightpulse.alerts.events import classified_event
from insightpulse.alerts.fanout import EventPublisher, publish_alert, publish_event
from insightpulse.classification.client import ClassificationClient
from insightpulse.classification.retry import RetryPolicy
from insightpulse.classification.urgency import derive_urgency
from insightpulse.classification_queue import ClassificationQueue
from insightpulse.errors import ClassificationPermanentFailure, ClassificationRetryable, QueueFull
from insightpulse.infrastructure.flow_control import FlowController
from insightpulse.models.feedback import utcnow
from insightpulse.models.tables import FeedbackRecord
from insightpulse.store import FeedbackStore

logger = logging.getLogger(__name__)

CLASSIFICATION_OUTCOMES = Counter('insightpulse_classification_outcomes_total', 'Per-record classification outcomes', ['outcome'])
CLASSIFICATION_DURATION = Histogram('insightpulse_classification_record_seconds', 'Claim-to-outcome duration per record')

COMPLETED = "completed"
RETRY_SCHEDULED = "retry_scheduled"
FAILED = "failed"
SKIPPED = "skipped"
THROTTLED = "throttled"
LEASE_LOST = "lease_lost"


class ClassificationWorker:
    def __init__(self, worker_id: str, store: FeedbackStore, queue: ClassificationQueue, client: ClassificationClient,
                 evaluator: AlertEvaluator, publisher: EventPublisher, retry_policy: RetryPolicy | None = None,
                 rate_limiter: FlowController | None = None, clock: Callable[[], datetime] = utcnow):
        self.worker_id = worker_id
        self.store = store
        self.queue = queue
        self.client = client
        self.evaluator = evaluator
        self.publisher = publisher
        self.retry_policy = retry_policy or RetryPolicy()
        self.rate_limiter = rate_limiter
        self.clock = clock

    def run_once(self) -> bool:
        """Process the next due id; False when the queue had nothing due."""
        feedback_id = self.queue.dequeue()
        if feedback_id is None:
            return False
        self.process(feedback_id)
        return True

    def process(self, feedback_id: str) -> str:
        if self.rate_limiter is not None and not self.rate_limiter.acquire(timeout=1.0):
            self._requeue(feedback_id, self.rate_limiter.wait_hint(), "throttled")
            return self._outcome(THROTTLED)

        record = self.store.claim(feedback_id, self.worker_id)
        if record is None:
            # already completed, terminally failed, held by another worker, or not yet due
            return self._outcome(SKIPPED)

        with CLASSIFICATION_DURATION.time():
            try:
                result = self.client.classify(record.content, rating=record.rating, language=record.language)
            except ClassificationPermanentFailure as e:
                return self._fail(record, f"{e.kind}: {e.detail}")
            except ClassificationRetryable as e:
                return self._retry(record, e)
            except Exception as e:
                # any other failure counts against the attempt budget
                logger.exception(f"Unexpected error classifying {record.id}")
                return self._retry(record, ClassificationRetryable("service_unavailable", f"{e.__class__.__name__}: {e}"))

            urgency = derive_urgency(
                result.sentiment.value, result.sentiment_score, record.rating,
                result.urgency.value if result.urgency else None,
            )
            updated = self.store.complete(
                record.id, self.worker_id,
                sentiment=result.sentiment.value,
                sentiment_score=result.sentiment_score,
                urgency=urgency,
                categories=sorted(set(result.categories)),
                emotions=result.emotions,
            )
        if updated is None:
            logger.warning(f"Worker {self.worker_id} lost lease on {record.id}; result discarded")
            return self._outcome(LEASE_LOST)

        self._after_commit(updated)
        return self._outcome(COMPLETED)

    def _after_commit(self, record: FeedbackRecord):
        publish_event(self.publisher, record.tenant_id, classified_event(record))
        for alert in self.evaluator.evaluate(record):
            publish_alert(self.publisher, alert)

    def _retry(self, record: FeedbackRecord, err: ClassificationRetryable) -> str:
        attempts = record.attempts + 1
        delay = self.retry_policy.next_delay(attempts, err.retry_after)
        if delay is None:
            return self._fail(record, f"retries exhausted after {attempts} attempts; last error {err.kind}: {err.detail}")
        next_at = self.clock() + timedelta(seconds=delay)
        if not self.store.schedule_retry(record.id, self.worker_id, f"{err.kind}: {err.detail}", next_at):
            logger.warning(f"Worker {self.worker_id} lost lease on {record.id} before scheduling retry")
            return self._outcome(LEASE_LOST)
        logger.info(f"Classification of {record.id} failed ({err.kind}), attempt {attempts}; retry in {delay:.2f}s")
        self._requeue(record.id, delay, "retry")
        return self._outcome(RETRY_SCHEDULED)

    def _fail(self, record: FeedbackRecord, error: str) -> str:
        if not self.store.mark_failed(record.id, self.worker_id, error):
            logger.warning(f"Worker {self.worker_id} lost lease on {record.id} before marking failed")
            return self._outcome(LEASE_LOST)
        logger.error(f"Classification of {record.id} failed permanently: {error}")
        failed = self.store.get(record.id) or record
        publish_alert(self.publisher, self.evaluator.integration_error(failed, error))
        return self._outcome(FAILED)

    def _requeue(self, feedback_id: str, delay: float, reason: str):
        try:
            self.queue.enqueue(feedback_id, delay=delay, reason=reason)
        except QueueFull:
            logger.warning(f"Queue full; {feedback_id} left for reconciliation ({reason})")
        except redis.RedisError as e:
            logger.error(f"Requeue of {feedback_id} failed ({e}); left for reconciliation")

    @staticmethod
    def _outcome(outcome: str) -> str:
        CLASSIFICATION_OUTCOMES.labels(outcome=outcome).inc()
        return outcome
