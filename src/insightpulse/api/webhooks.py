from __future__ import annotations
import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from prometheus_client import Counter

from insightpulse.adapters import WEBHOOK_PROVIDERS, parse, resolve_provider
from insightpulse.errors import MalformedPayload, PipelineError, ValidationFailure
from insightpulse.pipeline import Pipeline, get_pipeline
from insightpulse.security.hmac import verify_signature

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

WEBHOOK_REQUESTS = Counter('insightpulse_webhook_requests_total', 'Inbound webhook requests', ['provider', 'outcome'])

_LOGGED_PAYLOAD_CHARS = 2000


def _decode(body: bytes) -> dict:
    try:
        payload = json.loads(body)
    except ValueError as e:
        raise MalformedPayload(f"body is not valid JSON: {e}") from None
    if not isinstance(payload, dict):
        raise MalformedPayload("body must be a JSON object")
    return payload


@router.get("/health")
def webhooks_health():
    return {"status": "healthy", "providers": sorted(s.value for s in WEBHOOK_PROVIDERS)}


@router.post("/{provider}/{tenant_id}", status_code=202)
async def receive_webhook(provider: str, tenant_id: str, request: Request, pipeline: Pipeline = Depends(get_pipeline)):
    body = await request.body()
    label = "unknown"
    try:
        source = resolve_provider(provider)
        label = source.value
        secret = await run_in_threadpool(pipeline.secrets.resolve, tenant_id, source)
        # raw bytes as received; nothing is parsed before the signature checks out
        verify_signature(source, request.headers, body, secret, pipeline.settings.webhook_timestamp_tolerance_seconds)
        payload = _decode(body)
        try:
            partial = parse(source, payload)
        except ValidationFailure as e:
            logger.warning(f"{source.value} webhook for {tenant_id} rejected ({e.detail}): "
                           f"{body[:_LOGGED_PAYLOAD_CHARS].decode(errors='replace')}")
            raise
        result = await run_in_threadpool(pipeline.coordinator.ingest, tenant_id, partial)
    except PipelineError as e:
        WEBHOOK_REQUESTS.labels(provider=label, outcome=e.code).inc()
        if e.status_code == 401:
            logger.warning(f"Webhook signature rejected for {label}/{tenant_id}: {e.detail}")
        raise
    WEBHOOK_REQUESTS.labels(provider=label, outcome="duplicate" if result.duplicate else "accepted").inc()
    return {"status": "accepted", "feedbackId": result.record.id, "duplicate": result.duplicate}
