from __future__ import annotations
import json
import logging
import time
import uuid

from fastapi import Depends, FastAPI, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, Histogram, generate_latest

from insightpulse.api.feedback import router as feedback_router
from insightpulse.api.webhooks import router as webhooks_router
from insightpulse.config import get_settings
from insightpulse.errors import PipelineError
from insightpulse.infrastructure.db import healthcheck
from insightpulse.pipeline import Pipeline, get_pipeline

logging.basicConfig(level=get_settings().log_level.upper(), format="%(asctime)s %(levelname)s %(name)s %(message)s")

LATENCY = Histogram('insightpulse_api_request_latency_seconds', 'API request latency', ['endpoint'],
                    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1, 2, 5))

app = FastAPI(title="InsightPulse Feedback Ingestion API", version="0.1.0")
app.include_router(webhooks_router)
app.include_router(feedback_router)


@app.middleware("http")
async def correlation_and_latency(request: Request, call_next):
    correlation_id = request.headers.get("X-Correlation-ID", str(uuid.uuid4()))
    request.state.correlation_id = correlation_id
    start = time.time()
    response = await call_next(request)
    route = request.scope.get("route")
    LATENCY.labels(endpoint=getattr(route, "path", None) or "unmatched").observe(time.time() - start)
    response.headers["X-Correlation-ID"] = correlation_id
    return response


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    cid = getattr(request.state, "correlation_id", "n/a")
    logging.getLogger("app").error(json.dumps({
        "event": "error",
        "path": request.url.path,
        "detail": str(exc),
        "correlation_id": cid,
        "type": exc.__class__.__name__,
    }))
    return Response(content=json.dumps({"error": "internal_error", "correlation_id": cid}), media_type="application/json", status_code=500)


@app.get("/health")
def health(pipeline: Pipeline = Depends(get_pipeline)):
    return {"db": healthcheck(pipeline.store.session_factory), "status": "ok"}


@app.get("/metrics")
def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
