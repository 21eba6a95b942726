"""Reconciliation sweeps that repair the non-atomic persist/enqueue boundary.

- expired leases: processing rows whose worker vanished go back to pending
- stale pending: rows that never made it onto the queue (or fell off it)
- due retries: failed rows whose backoff has elapsed
"""
from __future__ import annotations
import logging

import redis
from prometheus_client import Counter

from insightpulse.classification_queue import ClassificationQueue
from insightpulse.errors import QueueFull
from insightpulse.store import FeedbackStore

logger = logging.getLogger(__name__)

SWEEP_RESULTS = Counter('insightpulse_reconciliation_requeued_total', 'Records requeued by reconciliation sweeps', ['sweep'])
LEASES_RECLAIMED = Counter('insightpulse_leases_reclaimed_total', 'Processing leases reclaimed after expiry')


class Reconciler:
    def __init__(self, store: FeedbackStore, queue: ClassificationQueue, pending_grace_seconds: int = 120,
                 batch_size: int = 500):
        self.store = store
        self.queue = queue
        self.pending_grace_seconds = pending_grace_seconds
        self.batch_size = batch_size

    def reclaim_expired_leases(self) -> dict:
        ids = self.store.reclaim_expired_leases(limit=self.batch_size)
        if ids:
            LEASES_RECLAIMED.inc(len(ids))
            logger.warning(f"Reclaimed {len(ids)} expired processing leases")
        return {"reclaimed": len(ids), "requeued": self._requeue(ids, "lease_reclaim")}

    def requeue_stale_pending(self) -> dict:
        ids = self.store.stale_pending(self.pending_grace_seconds, limit=self.batch_size)
        return {"stale": len(ids), "requeued": self._requeue(ids, "stale_pending")}

    def requeue_due_retries(self) -> dict:
        ids = self.store.due_retries(limit=self.batch_size)
        return {"due": len(ids), "requeued": self._requeue(ids, "retry_due", mark=False)}

    def run_all(self) -> dict:
        return {
            "leases": self.reclaim_expired_leases(),
            "pending": self.requeue_stale_pending(),
            "retries": self.requeue_due_retries(),
        }

    def _requeue(self, ids: list[str], sweep: str, mark: bool = True) -> int:
        requeued = 0
        for fid in ids:
            try:
                self.queue.enqueue(fid, reason=sweep)
            except QueueFull:
                logger.warning(f"{sweep}: queue full after {requeued}/{len(ids)}; remaining left for next sweep")
                break
            except redis.RedisError as e:
                logger.error(f"{sweep}: enqueue failed ({e}); stopping sweep")
                break
            if mark:
                self.store.mark_enqueued(fid)
            requeued += 1
        if requeued:
            SWEEP_RESULTS.labels(sweep=sweep).inc(requeued)
        return requeued
