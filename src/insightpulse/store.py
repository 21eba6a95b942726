"""Feedback record store.

All state transitions are single conditional UPDATEs so that concurrent
workers and sweeps never overwrite each other: a claim only succeeds on a
claimable row, and completion/failure writes are fenced by the lease owner.
Transient database errors are retried before surfacing as PersistenceFailure.
"""
from __future__ import annotations
import functools
import logging
import uuid
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from insightpulse.errors import PersistenceFailure
from insightpulse.models.feedback import PartialRecord, ProcessingStatus, utcnow
from insightpulse.models.tables import FeedbackRecord

logger = logging.getLogger(__name__)

PENDING = ProcessingStatus.PENDING.value
PROCESSING = ProcessingStatus.PROCESSING.value
COMPLETED = ProcessingStatus.COMPLETED.value
FAILED = ProcessingStatus.FAILED.value


def _persistent(fn):
    retrying = retry(
        retry=retry_if_exception_type(OperationalError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        reraise=True,
    )(fn)

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return retrying(*args, **kwargs)
        except SQLAlchemyError as e:
            logger.error(f"{fn.__name__} failed: {e.__class__.__name__}: {e}")
            raise PersistenceFailure(f"store unavailable during {fn.__name__}") from e
    return wrapper


class FeedbackStore:
    def __init__(self, session_factory: sessionmaker, lease_seconds: int = 300,
                 clock: Callable[[], datetime] = utcnow):
        self.session_factory = session_factory
        self.lease_seconds = lease_seconds
        self.clock = clock

    # -- reads ---------------------------------------------------------------

    @_persistent
    def get(self, feedback_id: str) -> FeedbackRecord | None:
        with self.session_factory() as s:
            return s.get(FeedbackRecord, feedback_id)

    @_persistent
    def get_for_tenant(self, tenant_id: str, feedback_id: str) -> FeedbackRecord | None:
        with self.session_factory() as s:
            rec = s.get(FeedbackRecord, feedback_id)
            return rec if rec is not None and rec.tenant_id == tenant_id else None

    @_persistent
    def find_by_source(self, source: str, source_id: str | None) -> FeedbackRecord | None:
        if source_id is None:
            return None
        with self.session_factory() as s:
            return s.execute(
                select(FeedbackRecord).where(FeedbackRecord.source == source, FeedbackRecord.source_id == source_id)
            ).scalar_one_or_none()

    @_persistent
    def list_failed(self, tenant_id: str | None = None, limit: int = 100) -> list[FeedbackRecord]:
        q = select(FeedbackRecord).where(FeedbackRecord.processing_status == FAILED)
        if tenant_id:
            q = q.where(FeedbackRecord.tenant_id == tenant_id)
        with self.session_factory() as s:
            return list(s.execute(q.order_by(FeedbackRecord.updated_at.desc()).limit(limit)).scalars())

    @_persistent
    def count_by_status(self) -> dict[str, int]:
        with self.session_factory() as s:
            rows = s.execute(
                select(FeedbackRecord.processing_status, func.count()).group_by(FeedbackRecord.processing_status)
            ).all()
        counts = {st.value: 0 for st in ProcessingStatus}
        counts.update({status: int(n) for status, n in rows})
        return counts

    # -- ingest --------------------------------------------------------------

    @_persistent
    def insert_if_absent(self, tenant_id: str, partial: PartialRecord) -> tuple[FeedbackRecord, bool]:
        """Insert a pending record; on a (source, source_id) collision return the stored one."""
        now = self.clock()
        rec = FeedbackRecord(
            id=str(uuid.uuid4()),
            tenant_id=tenant_id,
            source=partial.source.value,
            source_id=partial.source_id,
            customer_id=partial.customer_id,
            customer_name=partial.customer_name,
            customer_email=partial.customer_email,
            content=partial.content,
            title=partial.title,
            rating=partial.rating,
            language=partial.language,
            source_metadata=partial.metadata or {},
            original_data=partial.original_data,
            processing_status=PENDING,
            attempts=0,
            created_at=now,
            updated_at=now,
        )
        with self.session_factory() as s:
            s.add(rec)
            try:
                s.commit()
                return rec, True
            except IntegrityError:
                s.rollback()
        existing = self.find_by_source(partial.source.value, partial.source_id)
        if existing is None:
            raise PersistenceFailure("insert rejected by a constraint other than source uniqueness")
        return existing, False

    @_persistent
    def mark_enqueued(self, feedback_id: str) -> None:
        with self.session_factory() as s:
            s.execute(update(FeedbackRecord).where(FeedbackRecord.id == feedback_id).values(enqueued_at=self.clock()))
            s.commit()

    # -- worker transitions --------------------------------------------------

    @_persistent
    def claim(self, feedback_id: str, worker_id: str) -> FeedbackRecord | None:
        """pending (or failed and due for retry) -> processing under a lease held by worker_id."""
        now = self.clock()
        claimable = or_(
            FeedbackRecord.processing_status == PENDING,
            and_(
                FeedbackRecord.processing_status == FAILED,
                FeedbackRecord.next_attempt_at.is_not(None),
                FeedbackRecord.next_attempt_at <= now,
            ),
        )
        with self.session_factory() as s:
            res = s.execute(
                update(FeedbackRecord)
                .where(FeedbackRecord.id == feedback_id, claimable)
                .values(
                    processing_status=PROCESSING,
                    lease_owner=worker_id,
                    lease_expires_at=now + timedelta(seconds=self.lease_seconds),
                    next_attempt_at=None,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            s.commit()
            if res.rowcount != 1:
                return None
            return s.get(FeedbackRecord, feedback_id, populate_existing=True)

    def _fenced(self, feedback_id: str, worker_id: str):
        return and_(
            FeedbackRecord.id == feedback_id,
            FeedbackRecord.processing_status == PROCESSING,
            FeedbackRecord.lease_owner == worker_id,
        )

    @_persistent
    def complete(self, feedback_id: str, worker_id: str, *, sentiment: str, sentiment_score: float,
                 urgency: str, categories: list[str], emotions: dict[str, float]) -> FeedbackRecord | None:
        """Write classification output and mark completed; None if the lease was lost."""
        if not sentiment or sentiment_score is None or not urgency:
            raise ValueError("completion requires sentiment, score and urgency")
        if not -1.0 <= sentiment_score <= 1.0:
            raise ValueError(f"sentiment_score out of range: {sentiment_score}")
        now = self.clock()
        with self.session_factory() as s:
            res = s.execute(
                update(FeedbackRecord)
                .where(self._fenced(feedback_id, worker_id))
                .values(
                    sentiment=sentiment,
                    sentiment_score=sentiment_score,
                    urgency=urgency,
                    categories=list(categories),
                    emotions=dict(emotions),
                    processing_status=COMPLETED,
                    classified_at=now,
                    last_error=None,
                    next_attempt_at=None,
                    lease_owner=None,
                    lease_expires_at=None,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            s.commit()
            if res.rowcount != 1:
                return None
            return s.get(FeedbackRecord, feedback_id, populate_existing=True)

    @_persistent
    def schedule_retry(self, feedback_id: str, worker_id: str, error: str, next_attempt_at: datetime) -> bool:
        return self._fail(feedback_id, worker_id, error, next_attempt_at)

    @_persistent
    def mark_failed(self, feedback_id: str, worker_id: str, error: str) -> bool:
        """Terminal failure: no next attempt is scheduled."""
        return self._fail(feedback_id, worker_id, error, None)

    def _fail(self, feedback_id: str, worker_id: str, error: str, next_attempt_at: datetime | None) -> bool:
        now = self.clock()
        with self.session_factory() as s:
            res = s.execute(
                update(FeedbackRecord)
                .where(self._fenced(feedback_id, worker_id))
                .values(
                    processing_status=FAILED,
                    attempts=FeedbackRecord.attempts + 1,
                    last_error=(error or "")[:512],
                    next_attempt_at=next_attempt_at,
                    lease_owner=None,
                    lease_expires_at=None,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            s.commit()
            return res.rowcount == 1

    # -- operator actions ----------------------------------------------------

    @_persistent
    def rearm(self, tenant_id: str, feedback_id: str) -> FeedbackRecord | None:
        """Terminally failed -> pending with a fresh attempt budget."""
        now = self.clock()
        with self.session_factory() as s:
            res = s.execute(
                update(FeedbackRecord)
                .where(
                    FeedbackRecord.id == feedback_id,
                    FeedbackRecord.tenant_id == tenant_id,
                    FeedbackRecord.processing_status == FAILED,
                    FeedbackRecord.next_attempt_at.is_(None),
                )
                .values(processing_status=PENDING, attempts=0, last_error=None, enqueued_at=None, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            s.commit()
            if res.rowcount != 1:
                return None
            return s.get(FeedbackRecord, feedback_id, populate_existing=True)

    # -- reconciliation ------------------------------------------------------

    @_persistent
    def reclaim_expired_leases(self, limit: int = 500) -> list[str]:
        """processing rows whose lease expired -> pending. Returns the reclaimed ids."""
        now = self.clock()
        expired = and_(FeedbackRecord.processing_status == PROCESSING, FeedbackRecord.lease_expires_at < now)
        reclaimed: list[str] = []
        with self.session_factory() as s:
            ids = list(s.execute(select(FeedbackRecord.id).where(expired).limit(limit)).scalars())
            for fid in ids:
                res = s.execute(
                    update(FeedbackRecord)
                    .where(FeedbackRecord.id == fid, expired)
                    .values(processing_status=PENDING, lease_owner=None, lease_expires_at=None,
                            enqueued_at=None, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                if res.rowcount == 1:
                    reclaimed.append(fid)
            s.commit()
        return reclaimed

    @_persistent
    def stale_pending(self, older_than_seconds: int, limit: int = 500) -> list[str]:
        cutoff = self.clock() - timedelta(seconds=older_than_seconds)
        since = func.coalesce(FeedbackRecord.enqueued_at, FeedbackRecord.created_at)
        with self.session_factory() as s:
            return list(s.execute(
                select(FeedbackRecord.id)
                .where(FeedbackRecord.processing_status == PENDING, since < cutoff)
                .order_by(FeedbackRecord.created_at)
                .limit(limit)
            ).scalars())

    @_persistent
    def due_retries(self, limit: int = 500) -> list[str]:
        now = self.clock()
        with self.session_factory() as s:
            return list(s.execute(
                select(FeedbackRecord.id)
                .where(
                    FeedbackRecord.processing_status == FAILED,
                    FeedbackRecord.next_attempt_at.is_not(None),
                    FeedbackRecord.next_attempt_at <= now,
                )
                .order_by(FeedbackRecord.next_attempt_at)
                .limit(limit)
            ).scalars())
