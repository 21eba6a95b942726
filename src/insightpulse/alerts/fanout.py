"""Event fan-out: alert and classification events on a per-tenant channel.

Emission only; subscribers that are not listening miss the event.
"""
from __future__ import annotations
import json
import logging
import threading
from collections import defaultdict
from typing import Callable, Protocol

import redis
from prometheus_client import Counter

from insightpulse.alerts.events import AlertEvent

logger = logging.getLogger(__name__)

ALERTS_EMITTED = Counter('insightpulse_alerts_emitted_total', 'Alert events emitted', ['type', 'severity'])
EVENTS_PUBLISHED = Counter('insightpulse_events_published_total', 'Events published to tenant channels', ['event'])


class EventPublisher(Protocol):
    def publish(self, tenant_id: str, event: dict) -> None: ...


class RedisEventPublisher:
    def __init__(self, client: redis.Redis, channel_prefix: str):
        self.r = client
        self.channel_prefix = channel_prefix

    def channel(self, tenant_id: str) -> str:
        return f"{self.channel_prefix}:{tenant_id}"

    def publish(self, tenant_id: str, event: dict) -> None:
        self.r.publish(self.channel(tenant_id), json.dumps(event, default=str))
        EVENTS_PUBLISHED.labels(event=event.get("event", "unknown")).inc()


class InMemoryEventBus:
    def __init__(self):
        self.events: dict[str, list[dict]] = defaultdict(list)
        self._subscribers: dict[str, list[Callable[[dict], None]]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, tenant_id: str, callback: Callable[[dict], None]) -> None:
        with self._lock:
            self._subscribers[tenant_id].append(callback)

    def publish(self, tenant_id: str, event: dict) -> None:
        with self._lock:
            self.events[tenant_id].append(event)
            callbacks = list(self._subscribers[tenant_id])
        EVENTS_PUBLISHED.labels(event=event.get("event", "unknown")).inc()
        for cb in callbacks:
            cb(event)

    def alerts(self, tenant_id: str, type_: str | None = None) -> list[dict]:
        with self._lock:
            return [e for e in self.events[tenant_id]
                    if e.get("event") == "alert" and (type_ is None or e.get("type") == type_)]


def publish_alert(publisher: EventPublisher, alert: AlertEvent) -> None:
    """Publish one alert; a failing channel is logged and does not affect the record."""
    try:
        publisher.publish(alert.tenant_id, alert.to_dict())
    except redis.RedisError as e:
        logger.error(f"Failed to publish {alert.type.value} alert for tenant {alert.tenant_id}: {e}")
        return
    ALERTS_EMITTED.labels(type=alert.type.value, severity=alert.severity.value).inc()
    logger.info(f"Alert emitted: {alert.type.value}/{alert.severity.value} tenant={alert.tenant_id}")


def publish_event(publisher: EventPublisher, tenant_id: str, event: dict) -> None:
    try:
        publisher.publish(tenant_id, event)
    except redis.RedisError as e:
        logger.error(f"Failed to publish {event.get('event')} for tenant {tenant_id}: {e}")
