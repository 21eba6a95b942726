"""Tests for POST /webhooks/{provider}/{tenant_id}."""

import json

from conftest import intercom_payload, make_settings, sign_intercom, sign_zendesk, zendesk_timestamp
from insightpulse.models.feedback import utcnow
from insightpulse.pipeline import build_pipeline
from insightpulse.security.hmac import sign_generic


def _post(client, provider, tenant, body: bytes, headers: dict):
    return client.post(f"/webhooks/{provider}/{tenant}", content=body,
                       headers={"Content-Type": "application/json", **headers})


def _count(pipeline):
    return sum(pipeline.store.count_by_status().values())


class TestAccepted:
    def test_signed_intercom_event_is_accepted_and_queued(self, client, pipeline):
        body = json.dumps(intercom_payload()).encode()
        resp = _post(client, "intercom", "acme", body, sign_intercom(body))
        assert resp.status_code == 202
        data = resp.json()
        assert data["status"] == "accepted"
        assert data["duplicate"] is False
        rec = pipeline.store.get(data["feedbackId"])
        assert rec.tenant_id == "acme"
        assert rec.processing_status == "pending"
        assert rec.enqueued_at is not None
        assert pipeline.queue.depth() == 1

    def test_redelivery_returns_the_original_record(self, client, pipeline):
        first = json.dumps(intercom_payload(body="first")).encode()
        second = json.dumps(intercom_payload(body="second")).encode()
        r1 = _post(client, "intercom", "acme", first, sign_intercom(first))
        r2 = _post(client, "intercom", "acme", second, sign_intercom(second))
        r3 = _post(client, "intercom", "acme", first, sign_intercom(first))
        assert r1.json()["feedbackId"] == r2.json()["feedbackId"] == r3.json()["feedbackId"]
        assert r2.json()["duplicate"] is True
        assert _count(pipeline) == 1
        assert pipeline.store.get(r1.json()["feedbackId"]).content == "first"

    def test_tenant_scoped_secret_takes_precedence(self, client):
        body = json.dumps({"ticket": {"id": 1, "description": "help"}}).encode()
        assert _post(client, "zendesk", "acme", body, sign_zendesk(body, "acme-zd-secret")).status_code == 202
        assert _post(client, "zendesk", "acme", body, sign_zendesk(body, "zd-secret")).status_code == 401

    def test_wrong_typed_optional_fields_degrade(self, client, pipeline):
        payload = intercom_payload(conversation_id="conv-typed")
        payload["data"]["item"]["user"] = "bob"
        body = json.dumps(payload).encode()
        resp = _post(client, "intercom", "acme", body, sign_intercom(body))
        assert resp.status_code == 202
        assert pipeline.store.get(resp.json()["feedbackId"]).customer_name is None

    def test_stale_zendesk_timestamp_is_rejected(self, client, pipeline):
        body = json.dumps({"ticket": {"id": 7, "description": "Late"}}).encode()
        resp = _post(client, "zendesk", "globex", body, sign_zendesk(body, ts=zendesk_timestamp(-3600)))
        assert resp.status_code == 401
        assert _count(pipeline) == 0

    def test_generic_alias(self, client, pipeline):
        body = json.dumps({"source": "typeform", "data": {"id": "x1", "text": "hello"}}).encode()
        resp = _post(client, "generic", "acme", body, {"X-Signature": sign_generic(body, "wh-secret")})
        assert resp.status_code == 202
        assert pipeline.store.get(resp.json()["feedbackId"]).source == "webhook"


class TestRejected:
    def test_altered_body_is_rejected_before_persistence(self, client, pipeline):
        body = json.dumps(intercom_payload()).encode()
        headers = sign_intercom(body)
        tampered = body.replace(b"crashes", b"works!!")
        resp = _post(client, "intercom", "acme", tampered, headers)
        assert resp.status_code == 401
        assert resp.json()["error"] == "authentication_failed"
        assert _count(pipeline) == 0
        assert pipeline.queue.depth() == 0

    def test_missing_signature(self, client):
        body = json.dumps(intercom_payload()).encode()
        assert _post(client, "intercom", "acme", body, {}).status_code == 401

    def test_unknown_provider(self, client):
        resp = _post(client, "myspace", "acme", b"{}", {})
        assert resp.status_code == 404
        assert resp.json()["error"] == "unsupported_provider"

    def test_non_webhook_source(self, client):
        assert _post(client, "email", "acme", b"{}", {}).status_code == 404

    def test_malformed_json(self, client):
        body = b"{not json"
        resp = _post(client, "intercom", "acme", body, sign_intercom(body))
        assert resp.status_code == 400
        assert resp.json()["error"] == "malformed_body"

    def test_validation_failure(self, client, pipeline):
        body = json.dumps({"topic": "user.created", "data": {"item": {"type": "user"}}}).encode()
        resp = _post(client, "intercom", "acme", body, sign_intercom(body))
        assert resp.status_code == 422
        assert resp.json()["error"] == "validation_failed"
        assert _count(pipeline) == 0

    def test_quota_exceeded(self, session_factory):
        from fastapi.testclient import TestClient
        from insightpulse.api.main import app
        from insightpulse.pipeline import get_pipeline

        pipeline = build_pipeline(make_settings(QUOTA_DAILY_FEEDBACK_LIMIT=1), session_factory)
        app.dependency_overrides[get_pipeline] = lambda: pipeline
        try:
            with TestClient(app) as c:
                b1 = json.dumps(intercom_payload("c-1")).encode()
                b2 = json.dumps(intercom_payload("c-2")).encode()
                b3 = json.dumps(intercom_payload("c-3")).encode()
                assert _post(c, "intercom", "acme", b1, sign_intercom(b1)).status_code == 202
                # redelivery of an accepted item is not charged
                assert _post(c, "intercom", "acme", b1, sign_intercom(b1)).status_code == 202
                r2 = _post(c, "intercom", "acme", b2, sign_intercom(b2))
                r3 = _post(c, "intercom", "acme", b3, sign_intercom(b3))
        finally:
            app.dependency_overrides.clear()
        assert r2.status_code == 429
        assert r2.json()["error"] == "quota_exceeded"
        assert r3.status_code == 429
        assert _count(pipeline) == 1
        assert len(pipeline.publisher.alerts("acme", "quota_exceeded")) == 1


class TestIntegrationSecrets:
    def test_secret_from_integration_row(self, client, pipeline, session_factory, monkeypatch):
        from cryptography.fernet import Fernet
        from insightpulse.config import reset_settings
        from insightpulse.models.tables import Integration
        from insightpulse.security.crypto import encrypt_secret, get_fernet

        monkeypatch.setenv("INTEGRATION_SECRET_KEY", Fernet.generate_key().decode())
        reset_settings()
        get_fernet.cache_clear()
        try:
            with session_factory() as s:
                s.add(Integration(tenant_id="globex", provider="intercom",
                                  webhook_secret=encrypt_secret("globex-ic"), active=1, created_at=utcnow()))
                s.commit()
            body = json.dumps(intercom_payload("g-1")).encode()
            assert _post(client, "intercom", "globex", body, sign_intercom(body, "globex-ic")).status_code == 202
            assert _post(client, "intercom", "globex", body, sign_intercom(body, "ic-secret")).status_code == 401
        finally:
            monkeypatch.delenv("INTEGRATION_SECRET_KEY")
            reset_settings()
            get_fernet.cache_clear()


class TestHealth:
    def test_webhooks_health(self, client):
        data = client.get("/webhooks/health").json()
        assert data["status"] == "healthy"
        assert "intercom" in data["providers"]

    def test_app_health_and_metrics(self, client):
        assert client.get("/health").json() == {"db": True, "status": "ok"}
        metrics = client.get("/metrics")
        assert metrics.status_code == 200
        assert "insightpulse_webhook_requests_total" in metrics.text
