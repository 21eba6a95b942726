"""Per-tenant ingest quota.

Billing owns the real bookkeeping; the gates here give a daily cap per tenant
so the pipeline can run standalone. ``check_and_reserve`` returns False when
the tenant has no allowance left for ``kind``.
"""
from __future__ import annotations
import threading
from datetime import datetime
from typing import Callable, Protocol

import redis

from insightpulse.models.feedback import utcnow


class QuotaGate(Protocol):
    def check_and_reserve(self, tenant_id: str, kind: str) -> bool: ...


class AllowAllQuota:
    def check_and_reserve(self, tenant_id: str, kind: str) -> bool:
        return True


def _day_key(tenant_id: str, kind: str, now: datetime) -> str:
    return f"insightpulse:quota:{tenant_id}:{kind}:{now:%Y%m%d}"


class RedisDailyQuota:
    def __init__(self, client: redis.Redis, limit: int, clock: Callable[[], datetime] = utcnow):
        self.r = client
        self.limit = limit
        self.clock = clock

    def check_and_reserve(self, tenant_id: str, kind: str) -> bool:
        key = _day_key(tenant_id, kind, self.clock())
        pipe = self.r.pipeline()
        pipe.incr(key)
        pipe.expire(key, 2 * 86400)
        used, _ = pipe.execute()
        if int(used) > self.limit:
            # give the reservation back so the counter reflects accepted items
            self.r.decr(key)
            return False
        return True


class InMemoryDailyQuota:
    def __init__(self, limit: int, clock: Callable[[], datetime] = utcnow):
        self.limit = limit
        self.clock = clock
        self._used: dict[str, int] = {}
        self._lock = threading.Lock()

    def check_and_reserve(self, tenant_id: str, kind: str) -> bool:
        key = _day_key(tenant_id, kind, self.clock())
        with self._lock:
            used = self._used.get(key, 0)
            if used >= self.limit:
                return False
            self._used[key] = used + 1
            return True
