from __future__ import annotations
from datetime import datetime
from sqlalchemy import String, Integer, DateTime, JSON, Float, Text, Index, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, validates
from insightpulse.infrastructure.db import Base
from insightpulse.models.feedback import ProcessingStatus, utcnow


class FeedbackRecord(Base):
    """Canonical feedback record.

    Identity and content are written once at ingest. Classification columns are
    owned by the worker holding the `processing` lease (lease_owner / lease_expires_at).
    A failed row with next_attempt_at set is awaiting a retry; a failed row without it
    is terminal.
    """
    __tablename__ = "feedback_records"
    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(64), index=True)
    source: Mapped[str] = mapped_column(String(32), index=True)
    source_id: Mapped[str | None] = mapped_column(String(128), default=None)
    customer_id: Mapped[str | None] = mapped_column(String(128), default=None)
    customer_name: Mapped[str | None] = mapped_column(String(256), default=None)
    customer_email: Mapped[str | None] = mapped_column(String(256), default=None)
    content: Mapped[str] = mapped_column(Text)
    title: Mapped[str | None] = mapped_column(String(512), default=None)
    rating: Mapped[int | None] = mapped_column(Integer, default=None)
    language: Mapped[str] = mapped_column(String(10), default="en")
    source_metadata: Mapped[dict | None] = mapped_column("metadata", JSON, default=None)
    original_data: Mapped[dict | None] = mapped_column(JSON, default=None)
    # classification outputs
    sentiment: Mapped[str | None] = mapped_column(String(16), default=None, index=True)
    sentiment_score: Mapped[float | None] = mapped_column(Float, default=None)
    urgency: Mapped[str | None] = mapped_column(String(16), default=None, index=True)
    categories: Mapped[list | None] = mapped_column(JSON, default=None)
    emotions: Mapped[dict | None] = mapped_column(JSON, default=None)
    # processing state
    processing_status: Mapped[str] = mapped_column(String(16), default=ProcessingStatus.PENDING.value)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    last_error: Mapped[str | None] = mapped_column(String(512), default=None)
    next_attempt_at: Mapped[datetime | None] = mapped_column(DateTime, default=None)
    lease_owner: Mapped[str | None] = mapped_column(String(64), default=None)
    lease_expires_at: Mapped[datetime | None] = mapped_column(DateTime, default=None)
    enqueued_at: Mapped[datetime | None] = mapped_column(DateTime, default=None)
    classified_at: Mapped[datetime | None] = mapped_column(DateTime, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)

    __table_args__ = (
        Index("ux_feedback_source_source_id", "source", "source_id", unique=True),
        Index("ix_feedback_tenant_created", "tenant_id", "created_at"),
        # reconciliation sweeps
        Index("ix_feedback_status_updated", "processing_status", "updated_at"),
        Index("ix_feedback_status_lease", "processing_status", "lease_expires_at"),
        CheckConstraint("rating IS NULL OR (rating >= 1 AND rating <= 5)", name="ck_feedback_rating_range"),
        CheckConstraint("sentiment_score IS NULL OR (sentiment_score >= -1 AND sentiment_score <= 1)", name="ck_feedback_score_range"),
    )

    @property
    def is_processed(self) -> bool:
        return self.processing_status == ProcessingStatus.COMPLETED.value

    @validates("original_data")
    def _freeze_original_data(self, key, value):
        if self.original_data is not None:
            raise ValueError("original_data is immutable once written")
        return value

    @validates("rating")
    def _check_rating(self, key, value):
        if value is not None and not 1 <= value <= 5:
            raise ValueError(f"rating out of range: {value}")
        return value

    @validates("sentiment_score")
    def _check_score(self, key, value):
        if value is not None and not -1.0 <= value <= 1.0:
            raise ValueError(f"sentiment_score out of range: {value}")
        return value

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenantId": self.tenant_id,
            "source": self.source,
            "sourceId": self.source_id,
            "customerId": self.customer_id,
            "customerName": self.customer_name,
            "customerEmail": self.customer_email,
            "content": self.content,
            "title": self.title,
            "rating": self.rating,
            "language": self.language,
            "metadata": self.source_metadata or {},
            "sentiment": self.sentiment,
            "sentimentScore": self.sentiment_score,
            "urgency": self.urgency,
            "categories": self.categories or [],
            "emotions": self.emotions or {},
            "processingStatus": self.processing_status,
            "isProcessed": self.is_processed,
            "attempts": self.attempts,
            "lastError": self.last_error,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "classifiedAt": self.classified_at.isoformat() if self.classified_at else None,
        }


class Integration(Base):
    """Per-tenant provider integration; webhook_secret is Fernet-encrypted (see security.crypto)."""
    __tablename__ = "integrations"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(64), index=True)
    provider: Mapped[str] = mapped_column(String(32), index=True)
    name: Mapped[str | None] = mapped_column(String(128), default=None)
    webhook_secret: Mapped[str | None] = mapped_column(String(1024), default=None)
    active: Mapped[int] = mapped_column(Integer, default=1, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    __table_args__ = (
        Index("ux_integration_tenant_provider", "tenant_id", "provider", unique=True),
    )
