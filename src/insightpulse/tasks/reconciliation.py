"""Periodic reconciliation tasks run by Celery beat."""
from __future__ import annotations
import logging
from celery import shared_task

from insightpulse.pipeline import get_pipeline

logger = logging.getLogger(__name__)


@shared_task
def reclaim_expired_leases():
    result = get_pipeline().reconciler.reclaim_expired_leases()
    if result["reclaimed"]:
        logger.info(f"Lease sweep: {result}")
    return result


@shared_task
def requeue_stale_pending():
    result = get_pipeline().reconciler.requeue_stale_pending()
    if result["stale"]:
        logger.info(f"Pending sweep: {result}")
    return result


@shared_task
def requeue_due_retries():
    return get_pipeline().reconciler.requeue_due_retries()


@shared_task
def report_queue_depth():
    pipeline = get_pipeline()
    # depth() refreshes the queue depth gauge
    return {"depth": pipeline.queue.depth(), "statuses": pipeline.store.count_by_status()}
