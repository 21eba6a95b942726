#!/usr/bin/env python3
"""
Local development server for the InsightPulse ingestion API.

Creates the tables in the configured database and, with the in-memory state
backend, runs the classification pool in this process next to the API.
"""

import os

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()

os.environ.setdefault('APP_ENV', 'development')
os.environ.setdefault('STATE_BACKEND', 'memory')

if __name__ == "__main__":
    import uvicorn
    from insightpulse.api.main import app
    from insightpulse.classification.pool import WorkerPool
    from insightpulse.config import get_settings
    from insightpulse.infrastructure.db import Base, engine
    from insightpulse.pipeline import get_pipeline
    import insightpulse.models.tables  # noqa: F401

    settings = get_settings()
    Base.metadata.create_all(engine)

    pool = None
    if settings.state_backend == "memory":
        pipeline = get_pipeline()
        pool = WorkerPool(pipeline.worker, settings.worker_concurrency, settings.worker_idle_sleep_seconds)
        pool.start()

    print("Starting InsightPulse ingestion API")
    print(f"Docs: http://localhost:{settings.api_port}/docs")
    print(f"Health Check: http://localhost:{settings.api_port}/health")
    print(f"State backend: {settings.state_backend}")
    print("Press Ctrl+C to stop\n")

    try:
        uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_level=settings.log_level.lower())
    finally:
        if pool is not None:
            pool.stop()
