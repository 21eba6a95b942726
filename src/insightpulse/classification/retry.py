from __future__ import annotations
import random
from dataclasses import dataclass


@dataclass
class RetryPolicy:
    max_attempts: int = 5
    base_delay: float = 2.0
    max_delay: float = 300.0
    exponential_base: float = 2.0
    jitter: bool = True

    def next_delay(self, attempts: int, retry_after: float | None = None) -> float | None:
        """Seconds to wait after the ``attempts``-th failed call, or None once attempts are exhausted.

        A server-supplied Retry-After is honoured as a floor (capped at max_delay).
        """
        if attempts >= self.max_attempts:
            return None
        delay = min(self.base_delay * (self.exponential_base ** max(attempts - 1, 0)), self.max_delay)
        if self.jitter:
            delay *= (0.5 + random.random() * 0.5)  # 50-100% of calculated delay
        if retry_after:
            delay = max(delay, min(float(retry_after), self.max_delay))
        return delay
