"""HTTP client for the external classification service.

Transport and HTTP failures are mapped onto the typed error kinds the worker
state machine understands. Calls go through a circuit breaker; an open circuit
is reported as a retryable ``service_unavailable``.
"""
from __future__ import annotations
import logging
import time

import requests
from pydantic import ValidationError
from prometheus_client import Counter, Histogram

from insightpulse.classification.schemas import ClassificationRequest, ClassificationResult
from insightpulse.errors import ClassificationPermanentFailure, ClassificationRetryable
from insightpulse.infrastructure.circuit_breaker import CircuitBreaker, CircuitBreakerOpenError, CircuitConfig

logger = logging.getLogger(__name__)

CLASSIFIER_CALLS = Counter('insightpulse_classifier_calls_total', 'Calls to the classification service', ['result'])
CLASSIFIER_LATENCY = Histogram('insightpulse_classifier_latency_seconds', 'Classification service latency',
                               buckets=(0.1, 0.25, 0.5, 1, 2, 5, 10, 20, 30))


def _retry_after(resp: requests.Response) -> float | None:
    raw = resp.headers.get("Retry-After")
    if not raw:
        return None
    try:
        return max(float(raw), 0.0)
    except ValueError:
        return None  # HTTP-date form is not used by the service


def counts_as_outage(exc: BaseException) -> bool:
    # throttling and bad input say nothing about service health
    return isinstance(exc, ClassificationRetryable) and exc.kind in ("timeout", "service_unavailable")


class ClassificationClient:
    def __init__(self, url: str, api_key: str | None = None, timeout: float = 20.0,
                 breaker: CircuitBreaker | None = None, session: requests.Session | None = None):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        self.breaker = breaker or CircuitBreaker("classifier", CircuitConfig(counts_failure=counts_as_outage))
        self.session = session or requests.Session()

    def classify(self, content: str, rating: int | None = None, language: str | None = None) -> ClassificationResult:
        body = ClassificationRequest(content=content, rating=rating, language=language).model_dump(exclude_none=True)
        start = time.time()
        try:
            result = self.breaker.call(self._post, body)
        except CircuitBreakerOpenError as e:
            CLASSIFIER_CALLS.labels(result="circuit_open").inc()
            raise ClassificationRetryable(
                "service_unavailable", str(e), retry_after=self.breaker.config.recovery_timeout
            ) from e
        except ClassificationRetryable as e:
            CLASSIFIER_CALLS.labels(result=e.kind).inc()
            raise
        except ClassificationPermanentFailure as e:
            CLASSIFIER_CALLS.labels(result=e.kind).inc()
            raise
        finally:
            CLASSIFIER_LATENCY.observe(time.time() - start)
        CLASSIFIER_CALLS.labels(result="success").inc()
        return result

    def _post(self, body: dict) -> ClassificationResult:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        try:
            resp = self.session.post(self.url, json=body, headers=headers, timeout=self.timeout)
        except requests.Timeout as e:
            raise ClassificationRetryable("timeout", f"no response within {self.timeout}s") from e
        except requests.ConnectionError as e:
            raise ClassificationRetryable("service_unavailable", f"connection failed: {e}") from e
        except requests.RequestException as e:
            raise ClassificationRetryable("service_unavailable", f"request failed: {e.__class__.__name__}: {e}") from e

        status = resp.status_code
        if status == 429:
            raise ClassificationRetryable("rate_limited", "classifier throttled the request", retry_after=_retry_after(resp))
        if status in (408, 504):
            raise ClassificationRetryable("timeout", f"classifier returned {status}")
        if status in (400, 422):
            raise ClassificationPermanentFailure("invalid_input", f"classifier rejected input ({status}): {resp.text[:200]}")
        if status >= 500:
            raise ClassificationRetryable("service_unavailable", f"classifier returned {status}", retry_after=_retry_after(resp))
        if status >= 300:
            raise ClassificationRetryable("service_unavailable", f"unexpected classifier status {status}")

        try:
            return ClassificationResult.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            logger.warning(f"Malformed classifier response: {e}")
            raise ClassificationRetryable("service_unavailable", "malformed classifier response") from e
