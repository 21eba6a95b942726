from __future__ import annotations
import copy

from insightpulse.adapters import fields as f
from insightpulse.errors import ValidationFailure
from insightpulse.models.feedback import PartialRecord, Source


def parse(payload: dict) -> PartialRecord:
    review = payload.get("review") if isinstance(payload, dict) else None
    if not isinstance(review, dict):
        raise ValidationFailure("google play payload has no review", field="review")
    # Publisher API nests the text under comments[0].userComment; the flat form puts it on the review
    user_comment = f.mapping(f.dig(review, "comments", 0, "userComment"))
    content = f.require_content(
        f.first(f.text(review.get("comment")), f.text(user_comment.get("text"))),
        "google_play",
        "review comment",
    )
    review_id = f.identifier(review.get("reviewId"))
    device = f.mapping(review.get("deviceMetadata"), user_comment.get("deviceMetadata"))
    return PartialRecord(
        source=Source.GOOGLE_PLAY,
        source_id=review_id,
        content=content,
        title=f"Google Play Review - {review_id}" if review_id else "Google Play Review",
        rating=f.rating(f.first(review.get("starRating"), user_comment.get("starRating"))),
        customer_id=f.text(review.get("authorName"), 128),
        customer_name=f.text(review.get("authorName"), 256),
        language=f.language(f.first(review.get("reviewerLanguage"), user_comment.get("reviewerLanguage"))),
        metadata=f.compact({
            "appVersion": f.first(review.get("appVersionName"), user_comment.get("appVersionName")),
            "device": device.get("productName") or device.get("device"),
            "androidOsVersion": f.first(review.get("androidOsVersion"), user_comment.get("androidOsVersion")),
            "lastModified": f.first(review.get("lastModified"), f.dig(user_comment, "lastModified")),
        }),
        original_data=copy.deepcopy(payload),
    )
