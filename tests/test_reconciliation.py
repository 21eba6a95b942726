"""Tests for lease reclaim and the pending/retry sweeps."""

from datetime import timedelta

from conftest import FakeClassifier, negative
from insightpulse.models.feedback import PartialRecord, Source, utcnow
from insightpulse.models.tables import FeedbackRecord


def ingest(pipeline, source_id="t-1"):
    partial = PartialRecord(source=Source.ZENDESK, source_id=source_id, content="Login fails",
                            original_data={"ticket": {"id": source_id}})
    return pipeline.coordinator.ingest("acme", partial).record.id


def expire_lease(session_factory, fid):
    with session_factory() as s:
        row = s.get(FeedbackRecord, fid)
        row.lease_expires_at = utcnow() - timedelta(seconds=1)
        s.commit()


class TestLeaseReclaim:
    def test_stuck_record_is_reprocessed_once_by_another_worker(self, pipeline, session_factory, drain):
        fid = ingest(pipeline)
        assert pipeline.queue.dequeue() == fid
        # worker-a claims the record and then dies
        assert pipeline.store.claim(fid, "worker-a") is not None
        expire_lease(session_factory, fid)

        result = pipeline.reconciler.reclaim_expired_leases()
        assert result == {"reclaimed": 1, "requeued": 1}
        assert pipeline.store.get(fid).processing_status == "pending"

        drain(FakeClassifier(negative()), worker_id="worker-b")
        rec = pipeline.store.get(fid)
        assert rec.processing_status == "completed"

        # the original worker comes back and tries to write its result
        late = pipeline.store.complete(fid, "worker-a", sentiment="positive", sentiment_score=0.9,
                                       urgency="low", categories=[], emotions={})
        assert late is None
        assert pipeline.store.get(fid).sentiment == "negative"
        classified = [e for e in pipeline.publisher.events["acme"] if e["event"] == "feedback.classified"]
        assert len(classified) == 1

    def test_live_lease_is_left_alone(self, pipeline):
        fid = ingest(pipeline)
        pipeline.store.claim(fid, "worker-a")
        assert pipeline.reconciler.reclaim_expired_leases()["reclaimed"] == 0
        assert pipeline.store.get(fid).lease_owner == "worker-a"


class TestSweeps:
    def test_stale_pending_respects_grace_period(self, pipeline):
        fid = ingest(pipeline)
        assert pipeline.queue.dequeue() == fid
        assert pipeline.reconciler.requeue_stale_pending()["stale"] == 0
        pipeline.store.clock = lambda: utcnow() + timedelta(seconds=pipeline.settings.pending_grace_seconds + 1)
        assert pipeline.reconciler.requeue_stale_pending() == {"stale": 1, "requeued": 1}
        assert fid in pipeline.queue

    def test_due_retries_are_requeued(self, pipeline):
        fid = ingest(pipeline)
        pipeline.queue.dequeue()
        pipeline.store.claim(fid, "w")
        pipeline.store.schedule_retry(fid, "w", "timeout: slow", utcnow() - timedelta(seconds=1))
        assert pipeline.reconciler.requeue_due_retries() == {"due": 1, "requeued": 1}

    def test_terminal_failures_are_not_swept(self, pipeline):
        fid = ingest(pipeline)
        pipeline.queue.dequeue()
        pipeline.store.claim(fid, "w")
        pipeline.store.mark_failed(fid, "w", "invalid_input: nope")
        pipeline.store.clock = lambda: utcnow() + timedelta(days=1)
        assert pipeline.reconciler.run_all() == {
            "leases": {"reclaimed": 0, "requeued": 0},
            "pending": {"stale": 0, "requeued": 0},
            "retries": {"due": 0, "requeued": 0},
        }
