from __future__ import annotations
import copy

from insightpulse.adapters import fields as f
from insightpulse.errors import ValidationFailure
from insightpulse.models.feedback import PartialRecord, Source


def parse(payload: dict) -> PartialRecord:
    review = payload.get("review") if isinstance(payload, dict) else None
    if not isinstance(review, dict):
        raise ValidationFailure("app store payload has no review", field="review")
    # App Store Connect exposes the review under `attributes`; flattened relays do not
    attrs = review.get("attributes") if isinstance(review.get("attributes"), dict) else review
    content = f.require_content(f.first(f.text(attrs.get("review")), f.text(attrs.get("body"))), "app_store", "review text")
    nickname = f.text(attrs.get("reviewerNickname"), 256)
    return PartialRecord(
        source=Source.APP_STORE,
        source_id=f.identifier(review.get("id")),
        content=content,
        title=f.text(attrs.get("title"), 512) or "App Store Review",
        rating=f.rating(attrs.get("rating")),
        customer_id=nickname,
        customer_name=nickname,
        language=f.language(attrs.get("language")),
        metadata=f.compact({
            "appVersion": attrs.get("version"),
            "territory": attrs.get("territory"),
            "createdDate": attrs.get("createdDate"),
        }),
        original_data=copy.deepcopy(payload),
    )
