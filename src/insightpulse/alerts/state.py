"""Shared alert state: per-tenant negative-feedback windows and emission suppression.

Both live in Redis so that every worker process sees the same window. The
in-memory variants keep the same semantics for tests and single-process runs.
"""
from __future__ import annotations
import threading
from datetime import datetime
from typing import Protocol

import redis


class AlertState(Protocol):
    def add_to_window(self, tenant_id: str, feedback_id: str, at: datetime, window_seconds: int) -> list[str]:
        """Record a negative item; return the ids inside the trailing window ending at ``at``, oldest first."""
    def acquire(self, key: str, at: datetime, ttl_seconds: int) -> bool:
        """True for the first caller per key until ``ttl_seconds`` have passed."""


class RedisAlertState:
    def __init__(self, client: redis.Redis, prefix: str = "insightpulse:alerts"):
        self.r = client
        self.prefix = prefix

    def add_to_window(self, tenant_id: str, feedback_id: str, at: datetime, window_seconds: int) -> list[str]:
        key = f"{self.prefix}:negwin:{tenant_id}"
        ts = at.timestamp()
        pipe = self.r.pipeline()
        pipe.zadd(key, {feedback_id: ts})
        pipe.zremrangebyscore(key, 0, ts - window_seconds)
        pipe.zrangebyscore(key, ts - window_seconds, ts)
        pipe.expire(key, window_seconds * 2)
        _, _, members, _ = pipe.execute()
        return [m.decode() if isinstance(m, bytes) else m for m in members]

    def acquire(self, key: str, at: datetime, ttl_seconds: int) -> bool:
        return bool(self.r.set(f"{self.prefix}:sup:{key}", at.isoformat(), nx=True, ex=max(int(ttl_seconds), 1)))


class InMemoryAlertState:
    def __init__(self):
        self._windows: dict[str, dict[str, float]] = {}
        self._suppressed: dict[str, float] = {}
        self._lock = threading.Lock()

    def add_to_window(self, tenant_id: str, feedback_id: str, at: datetime, window_seconds: int) -> list[str]:
        ts = at.timestamp()
        with self._lock:
            win = self._windows.setdefault(tenant_id, {})
            win[feedback_id] = ts
            for fid in [fid for fid, t in win.items() if t <= ts - window_seconds]:
                del win[fid]
            return [fid for fid, t in sorted(win.items(), key=lambda kv: kv[1]) if t <= ts]

    def acquire(self, key: str, at: datetime, ttl_seconds: int) -> bool:
        ts = at.timestamp()
        with self._lock:
            expires = self._suppressed.get(key)
            if expires is not None and ts < expires:
                return False
            self._suppressed[key] = ts + ttl_seconds
            return True
