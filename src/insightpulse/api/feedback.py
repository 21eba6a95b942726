from __future__ import annotations
from typing import Optional

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Query
from fastapi.concurrency import run_in_threadpool

from insightpulse.adapters import parse
from insightpulse.config import parse_api_keys
from insightpulse.models.feedback import Source
from insightpulse.pipeline import Pipeline, get_pipeline

router = APIRouter(tags=["feedback"])


def require_api_key(
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
    pipeline: Pipeline = Depends(get_pipeline),
):
    keys = parse_api_keys(pipeline.settings.api_keys)
    if keys and x_api_key not in keys:
        raise HTTPException(status_code=401, detail="invalid api key")


@router.post("/tenants/{tenant_id}/feedback", status_code=202, dependencies=[Depends(require_api_key)])
async def submit_feedback(
    tenant_id: str,
    payload: dict = Body(...),
    source: str = Query("manual", pattern="^(manual|api)$"),
    pipeline: Pipeline = Depends(get_pipeline),
):
    partial = parse(Source(source), payload)
    result = await run_in_threadpool(pipeline.coordinator.ingest, tenant_id, partial)
    return {"status": "accepted", "feedbackId": result.record.id, "duplicate": result.duplicate}


@router.get("/tenants/{tenant_id}/feedback/{feedback_id}", dependencies=[Depends(require_api_key)])
def get_feedback(tenant_id: str, feedback_id: str, pipeline: Pipeline = Depends(get_pipeline)):
    rec = pipeline.store.get_for_tenant(tenant_id, feedback_id)
    if rec is None:
        raise HTTPException(status_code=404, detail="feedback not found")
    return rec.to_dict()


@router.post("/tenants/{tenant_id}/feedback/{feedback_id}/reprocess", status_code=202,
             dependencies=[Depends(require_api_key)])
def reprocess_feedback(tenant_id: str, feedback_id: str, pipeline: Pipeline = Depends(get_pipeline)):
    rec = pipeline.coordinator.reprocess(tenant_id, feedback_id)
    if rec is not None:
        return {"status": "requeued", "feedbackId": rec.id}
    if pipeline.store.get_for_tenant(tenant_id, feedback_id) is None:
        raise HTTPException(status_code=404, detail="feedback not found")
    raise HTTPException(status_code=409, detail="only permanently failed feedback can be reprocessed")


@router.get("/ops/feedback/failed", dependencies=[Depends(require_api_key)])
def failed_feedback(
    tenant_id: Optional[str] = None,
    limit: int = Query(100, ge=1, le=1000),
    pipeline: Pipeline = Depends(get_pipeline),
):
    rows = pipeline.store.list_failed(tenant_id, limit)
    return [
        {
            "id": r.id,
            "tenantId": r.tenant_id,
            "source": r.source,
            "attempts": r.attempts,
            "lastError": r.last_error,
            "retrying": r.next_attempt_at is not None,
            "nextAttemptAt": r.next_attempt_at.isoformat() if r.next_attempt_at else None,
            "updatedAt": r.updated_at.isoformat() if r.updated_at else None,
        }
        for r in rows
    ]


@router.get("/ops/queue", dependencies=[Depends(require_api_key)])
def queue_status(pipeline: Pipeline = Depends(get_pipeline)):
    return {"depth": pipeline.queue.depth(), "statuses": pipeline.store.count_by_status()}
