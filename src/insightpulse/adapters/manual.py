from __future__ import annotations
import copy

from insightpulse.adapters import fields as f
from insightpulse.errors import ValidationFailure
from insightpulse.models.feedback import PartialRecord, Source


def _parse(payload: dict, source: Source) -> PartialRecord:
    if not isinstance(payload, dict):
        raise ValidationFailure("submission must be a JSON object")
    content = f.require_content(payload.get("content"), source.value, "content")
    extra = payload.get("metadata") if isinstance(payload.get("metadata"), dict) else {}
    return PartialRecord(
        source=source,
        source_id=f.identifier(payload.get("sourceId")),
        content=content,
        title=f.text(payload.get("title"), 512),
        rating=f.rating(payload.get("rating")),
        customer_id=f.identifier(payload.get("customerId")),
        customer_name=f.text(payload.get("customerName"), 256),
        customer_email=f.email(payload.get("customerEmail")),
        language=f.language(payload.get("language")),
        metadata=dict(extra),
        original_data=copy.deepcopy(payload),
    )


def parse(payload: dict) -> PartialRecord:
    return _parse(payload, Source.MANUAL)


def parse_api(payload: dict) -> PartialRecord:
    return _parse(payload, Source.API)
