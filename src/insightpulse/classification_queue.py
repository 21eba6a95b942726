"""Classification queue: feedback ids ordered by the time they become due.

A Redis sorted set (score = unix time the id may be processed) gives natural
dedupe of ids and delayed delivery for retries. The queue is bounded; callers
get QueueFull and leave the record pending for the reconciliation sweep.
"""
from __future__ import annotations
import threading
import time
from typing import Callable, Protocol

import redis
from prometheus_client import Counter, Gauge

from insightpulse.errors import QueueFull

QUEUE_KEY = "insightpulse:classification:q"

CLASSIFICATION_QUEUE_DEPTH = Gauge('insightpulse_classification_queue_depth', 'Ids waiting in the classification queue')
CLASSIFICATION_ENQUEUED = Counter('insightpulse_classification_enqueued_total', 'Ids enqueued for classification', ['reason'])
CLASSIFICATION_DEFERRED = Counter('insightpulse_classification_enqueue_deferred_total', 'Enqueues deferred because the queue was full')


class ClassificationQueue(Protocol):
    def enqueue(self, feedback_id: str, delay: float = 0.0, reason: str = "ingest") -> None: ...
    def dequeue(self) -> str | None: ...
    def depth(self) -> int: ...


class RedisClassificationQueue:
    def __init__(self, client: redis.Redis, max_depth: int, key: str = QUEUE_KEY, clock: Callable[[], float] = time.time):
        self.r = client
        self.max_depth = max_depth
        self.key = key
        self._clock = clock

    @classmethod
    def from_url(cls, url: str, max_depth: int) -> "RedisClassificationQueue":
        return cls(redis.Redis.from_url(url), max_depth)

    def enqueue(self, feedback_id: str, delay: float = 0.0, reason: str = "ingest") -> None:
        if self.r.zscore(self.key, feedback_id) is None and self.r.zcard(self.key) >= self.max_depth:
            CLASSIFICATION_DEFERRED.inc()
            raise QueueFull(f"classification queue at capacity ({self.max_depth})", feedback_id=feedback_id)
        # LT: an earlier due time wins when the id is already queued
        self.r.zadd(self.key, {feedback_id: self._clock() + max(delay, 0.0)}, lt=True)
        CLASSIFICATION_ENQUEUED.labels(reason=reason).inc()
        CLASSIFICATION_QUEUE_DEPTH.set(self.r.zcard(self.key))

    def dequeue(self) -> str | None:
        due = self.r.zrangebyscore(self.key, "-inf", self._clock(), start=0, num=1)
        if not due:
            return None
        member = due[0]
        # only the consumer whose ZREM succeeds owns the id
        if not self.r.zrem(self.key, member):
            return None
        return member.decode() if isinstance(member, bytes) else member

    def depth(self) -> int:
        n = int(self.r.zcard(self.key))
        CLASSIFICATION_QUEUE_DEPTH.set(n)
        return n


class InMemoryClassificationQueue:
    """Single-process queue for tests and local development."""

    def __init__(self, max_depth: int, clock: Callable[[], float] = time.time):
        self.max_depth = max_depth
        self._items: dict[str, float] = {}
        self._clock = clock
        self._lock = threading.Lock()

    def enqueue(self, feedback_id: str, delay: float = 0.0, reason: str = "ingest") -> None:
        due = self._clock() + max(delay, 0.0)
        with self._lock:
            current = self._items.get(feedback_id)
            if current is None and len(self._items) >= self.max_depth:
                CLASSIFICATION_DEFERRED.inc()
                raise QueueFull(f"classification queue at capacity ({self.max_depth})", feedback_id=feedback_id)
            self._items[feedback_id] = due if current is None else min(current, due)
            depth = len(self._items)
        CLASSIFICATION_ENQUEUED.labels(reason=reason).inc()
        CLASSIFICATION_QUEUE_DEPTH.set(depth)

    def dequeue(self) -> str | None:
        now = self._clock()
        with self._lock:
            due = [(t, fid) for fid, t in self._items.items() if t <= now]
            if not due:
                return None
            _, fid = min(due)
            del self._items[fid]
            return fid

    def depth(self) -> int:
        with self._lock:
            n = len(self._items)
        CLASSIFICATION_QUEUE_DEPTH.set(n)
        return n

    def __contains__(self, feedback_id: str) -> bool:
        with self._lock:
            return feedback_id in self._items
