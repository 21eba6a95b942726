"""
Pytest configuration and shared fixtures.

Tests run against an in-memory SQLite database and the in-memory state backend
(queue, alert windows, event bus, quota), so neither Postgres nor Redis is needed.
"""

import base64
import hashlib
import hmac
import os
import time

os.environ.setdefault("STATE_BACKEND", "memory")
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from insightpulse.api.main import app
from insightpulse.classification.schemas import ClassificationResult
from insightpulse.config import Settings
from insightpulse.infrastructure.db import Base
from insightpulse.models import tables  # noqa: F401
from insightpulse.pipeline import build_pipeline, get_pipeline

WEBHOOK_SECRETS = ";".join([
    "intercom:ic-secret",
    "zendesk:zd-secret",
    "twitter:tw-secret",
    "google_play:gp-secret",
    "app_store:as-secret",
    "webhook:wh-secret",
    "acme/zendesk:acme-zd-secret",
])


def make_settings(**overrides) -> Settings:
    values = {
        "STATE_BACKEND": "memory",
        "DATABASE_URL": "sqlite://",
        "WEBHOOK_SECRETS": WEBHOOK_SECRETS,
        "API_KEYS": None,
        "QUOTA_DAILY_FEEDBACK_LIMIT": None,
        "CLASSIFIER_MAX_ATTEMPTS": 5,
        "CLASSIFIER_BACKOFF_BASE_SECONDS": 0,
        "CLASSIFIER_BACKOFF_MAX_SECONDS": 0,
        "CLASSIFIER_RATE_PER_SECOND": 1000,
        "CLASSIFIER_BURST": 1000,
        "CLASSIFICATION_QUEUE_MAX_DEPTH": 100,
        "LEASE_TIMEOUT_SECONDS": 300,
        "PENDING_GRACE_SECONDS": 120,
        "SPIKE_WINDOW_MINUTES": 60,
        "SPIKE_BASELINE_COUNT": 5,
        "SPIKE_THRESHOLD_PCT": 50,
    }
    values.update(overrides)
    return Settings(**values)


class FakeClassifier:
    """Scripted classification service: each call consumes the next outcome.

    An outcome is either an exception instance (raised) or a dict/ClassificationResult
    (returned). Once the script runs out, ``default`` is returned.
    """

    def __init__(self, *outcomes, default=None):
        self.outcomes = list(outcomes)
        self.default = default or {"sentiment": "neutral", "sentimentScore": 0.0, "categories": [], "emotions": {}}
        self.calls = []

    def classify(self, content, rating=None, language=None):
        self.calls.append({"content": content, "rating": rating, "language": language})
        outcome = self.outcomes.pop(0) if self.outcomes else self.default
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, ClassificationResult):
            return outcome
        return ClassificationResult.model_validate(outcome)


def negative(score=-0.9, **extra):
    return {"sentiment": "negative", "sentimentScore": score, "categories": ["bug"], "emotions": {"anger": 0.8}, **extra}


def positive(score=0.8, **extra):
    return {"sentiment": "positive", "sentimentScore": score, "categories": ["praise"], "emotions": {"joy": 0.9}, **extra}


def sign_intercom(body: bytes, secret: str = "ic-secret") -> dict:
    return {"X-Hub-Signature": "sha1=" + hmac.new(secret.encode(), body, hashlib.sha1).hexdigest()}


def zendesk_timestamp(offset_seconds: int = 0) -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(time.time() + offset_seconds))


def sign_zendesk(body: bytes, secret: str = "zd-secret", ts: str | None = None) -> dict:
    ts = ts or zendesk_timestamp()
    digest = hmac.new(secret.encode(), ts.encode() + body, hashlib.sha256).digest()
    return {
        "X-Zendesk-Webhook-Signature": base64.b64encode(digest).decode(),
        "X-Zendesk-Webhook-Signature-Timestamp": ts,
    }


def sign_twitter(body: bytes, secret: str = "tw-secret") -> dict:
    digest = hmac.new(secret.encode(), body, hashlib.sha256).digest()
    return {"X-Twitter-Webhooks-Signature": "sha256=" + base64.b64encode(digest).decode()}


def sign_store(body: bytes, secret: str) -> dict:
    return {"X-Signature": "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()}


def intercom_payload(conversation_id="conv-1", body="<p>The app crashes on login</p>"):
    return {
        "type": "notification_event",
        "topic": "conversation.user.created",
        "data": {
            "item": {
                "type": "conversation",
                "id": conversation_id,
                "conversation_message": {"body": body, "subject": "Crash"},
                "user": {"id": "u-1", "email": "Jane@Example.com", "name": "Jane"},
            }
        },
    }


@pytest.fixture
def engine():
    e = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(e)
    yield e
    e.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def pipeline(settings, session_factory):
    return build_pipeline(settings, session_factory)


@pytest.fixture
def client(pipeline):
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def drain(pipeline):
    """Run a worker until the queue has nothing due."""

    def _drain(classifier, worker_id="worker-1", max_iterations=50):
        worker = pipeline.worker(worker_id, client=classifier)
        for _ in range(max_iterations):
            if not worker.run_once():
                break
        return worker

    return _drain
