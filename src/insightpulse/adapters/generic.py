"""Generic webhook: `{"source": "...", "data": {...}}` posted by custom integrations.

The caller-declared source is provenance only; the canonical source is always
`webhook`. Without a caller id the record is not deduplicated.
"""
from __future__ import annotations
import copy

from insightpulse.adapters import fields as f
from insightpulse.errors import ValidationFailure
from insightpulse.models.feedback import PartialRecord, Source


def parse(payload: dict) -> PartialRecord:
    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(data, dict):
        raise ValidationFailure("generic webhook payload has no data object", field="data")
    content = f.require_content(
        f.first(f.text(data.get("content")), f.text(data.get("message")), f.text(data.get("text"))),
        "webhook",
        "content/message/text",
    )
    declared = f.text(payload.get("source"), 64)
    extra = data.get("metadata") if isinstance(data.get("metadata"), dict) else {}
    return PartialRecord(
        source=Source.WEBHOOK,
        source_id=f.identifier(data.get("id")),
        content=content,
        title=f.text(f.first(data.get("title"), data.get("subject")), 512) or "Webhook Feedback",
        rating=f.rating(data.get("rating")),
        customer_id=f.identifier(data.get("customerId")),
        customer_name=f.text(data.get("customerName"), 256),
        customer_email=f.email(data.get("customerEmail")),
        language=f.language(data.get("language")),
        metadata=f.compact({**extra, "declaredSource": declared or "unknown"}),
        original_data=copy.deepcopy(payload),
    )
