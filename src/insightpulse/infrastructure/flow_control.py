"""Token-bucket rate limiting for calls to rate-limited downstream services.

One limiter is shared by every worker thread in a pool process, so the pool as
a whole stays under the configured calls per second.
"""
from __future__ import annotations
import time
import threading
from typing import Callable, Optional
from dataclasses import dataclass
from prometheus_client import Gauge, Counter


@dataclass
class FlowControlConfig:
    max_requests_per_second: float = 5.0
    burst_capacity: int = 5


FLOW_CONTROL_RATE = Gauge('insightpulse_flow_control_rate_per_second', 'Configured allowed rate', ['service'])
FLOW_CONTROL_THROTTLED = Counter('insightpulse_flow_control_throttled_total', 'Acquisitions that timed out', ['service'])


class FlowController:
    def __init__(self, service_name: str, config: Optional[FlowControlConfig] = None,
                 clock: Callable[[], float] = time.monotonic, sleep: Callable[[float], None] = time.sleep):
        self.service_name = service_name
        self.config = config or FlowControlConfig()
        self.token_bucket = float(self.config.burst_capacity)
        self._clock = clock
        self._sleep = sleep
        self.last_refill = clock()
        self._lock = threading.Lock()
        FLOW_CONTROL_RATE.labels(service=service_name).set(self.config.max_requests_per_second)

    def try_acquire(self) -> bool:
        with self._lock:
            self._refill_tokens()
            if self.token_bucket >= 1:
                self.token_bucket -= 1
                return True
            return False

    def acquire(self, timeout: float = 1.0) -> bool:
        """Block up to ``timeout`` seconds for a token."""
        deadline = self._clock() + timeout
        while True:
            if self.try_acquire():
                return True
            remaining = deadline - self._clock()
            if remaining <= 0:
                FLOW_CONTROL_THROTTLED.labels(service=self.service_name).inc()
                return False
            self._sleep(min(remaining, self.wait_hint()))

    def wait_hint(self) -> float:
        """Seconds until the next token is available."""
        rate = self.config.max_requests_per_second
        if rate <= 0:
            return 1.0
        with self._lock:
            missing = max(0.0, 1 - self.token_bucket)
        return max(missing / rate, 0.001)

    def _refill_tokens(self):
        now = self._clock()
        elapsed = now - self.last_refill
        self.token_bucket = min(self.config.burst_capacity, self.token_bucket + elapsed * self.config.max_requests_per_second)
        self.last_refill = now
