"""Assembles the pipeline components from settings.

Nothing here is a module-level singleton except the cached ``get_pipeline``
used by the API; workers receive their queue and store at construction.
"""
from __future__ import annotations
from dataclasses import dataclass
from functools import lru_cache

import redis
from sqlalchemy.orm import sessionmaker

from insightpulse.alerts.evaluator import AlertEvaluator, SpikeConfig
from insightpulse.alerts.fanout import EventPublisher, InMemoryEventBus, RedisEventPublisher
from insightpulse.alerts.state import AlertState, InMemoryAlertState, RedisAlertState
from insightpulse.classification.client import ClassificationClient, counts_as_outage
from insightpulse.classification.retry import RetryPolicy
from insightpulse.classification.worker import ClassificationWorker
from insightpulse.classification_queue import ClassificationQueue, InMemoryClassificationQueue, RedisClassificationQueue
from insightpulse.config import Settings, get_settings, parse_webhook_secrets
from insightpulse.infrastructure.circuit_breaker import CircuitBreaker, CircuitConfig
from insightpulse.infrastructure.db import get_session_factory
from insightpulse.infrastructure.flow_control import FlowControlConfig, FlowController
from insightpulse.ingest.coordinator import IngestCoordinator
from insightpulse.ingest.quota import AllowAllQuota, InMemoryDailyQuota, QuotaGate, RedisDailyQuota
from insightpulse.ingest.reconciliation import Reconciler
from insightpulse.security.secrets import WebhookSecretResolver
from insightpulse.store import FeedbackStore


@dataclass
class Pipeline:
    settings: Settings
    store: FeedbackStore
    queue: ClassificationQueue
    publisher: EventPublisher
    alert_state: AlertState
    evaluator: AlertEvaluator
    quota: QuotaGate
    coordinator: IngestCoordinator
    reconciler: Reconciler
    secrets: WebhookSecretResolver
    retry_policy: RetryPolicy
    rate_limiter: FlowController
    breaker: CircuitBreaker

    def classifier(self) -> ClassificationClient:
        s = self.settings
        return ClassificationClient(s.classifier_url, s.classifier_api_key, s.classifier_timeout_seconds, breaker=self.breaker)

    def worker(self, worker_id: str, client=None) -> ClassificationWorker:
        return ClassificationWorker(
            worker_id, self.store, self.queue, client or self.classifier(), self.evaluator, self.publisher,
            retry_policy=self.retry_policy, rate_limiter=self.rate_limiter,
        )


def build_pipeline(settings: Settings | None = None, session_factory: sessionmaker | None = None) -> Pipeline:
    s = settings or get_settings()
    factory = session_factory or get_session_factory()
    store = FeedbackStore(factory, lease_seconds=s.lease_timeout_seconds)

    if s.state_backend == "memory":
        queue = InMemoryClassificationQueue(s.classification_queue_max_depth)
        publisher = InMemoryEventBus()
        alert_state = InMemoryAlertState()
        quota = InMemoryDailyQuota(s.quota_daily_feedback_limit) if s.quota_daily_feedback_limit is not None else AllowAllQuota()
    elif s.state_backend == "redis":
        r = redis.Redis.from_url(s.redis_url)
        queue = RedisClassificationQueue(r, s.classification_queue_max_depth)
        publisher = RedisEventPublisher(r, s.event_channel_prefix)
        alert_state = RedisAlertState(r)
        quota = RedisDailyQuota(r, s.quota_daily_feedback_limit) if s.quota_daily_feedback_limit is not None else AllowAllQuota()
    else:
        raise ValueError(f"unknown STATE_BACKEND {s.state_backend!r} (expected redis or memory)")

    evaluator = AlertEvaluator(alert_state, SpikeConfig(
        window_seconds=s.spike_window_minutes * 60,
        baseline_count=s.spike_baseline_count,
        threshold_pct=s.spike_threshold_pct,
    ))
    return Pipeline(
        settings=s,
        store=store,
        queue=queue,
        publisher=publisher,
        alert_state=alert_state,
        evaluator=evaluator,
        quota=quota,
        coordinator=IngestCoordinator(store, queue, quota, evaluator, publisher),
        reconciler=Reconciler(store, queue, s.pending_grace_seconds, s.sweep_batch_size),
        secrets=WebhookSecretResolver(parse_webhook_secrets(s.webhook_secrets), factory),
        retry_policy=RetryPolicy(
            max_attempts=s.classifier_max_attempts,
            base_delay=s.classifier_backoff_base_seconds,
            max_delay=s.classifier_backoff_max_seconds,
        ),
        rate_limiter=FlowController("classifier", FlowControlConfig(s.classifier_rate_per_second, s.classifier_burst)),
        breaker=CircuitBreaker("classifier", CircuitConfig(counts_failure=counts_as_outage)),
    )


@lru_cache
def get_pipeline() -> Pipeline:
    return build_pipeline()
