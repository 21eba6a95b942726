from __future__ import annotations
import copy

from insightpulse.adapters import fields as f
from insightpulse.errors import ValidationFailure
from insightpulse.models.feedback import PartialRecord, Source


def _tweet(payload: dict) -> dict | None:
    if isinstance(payload.get("tweet"), dict):
        return payload["tweet"]
    # Account Activity API batches mentions under tweet_create_events
    return f.dig(payload, "tweet_create_events", 0)


def parse(payload: dict) -> PartialRecord:
    tweet = _tweet(payload) if isinstance(payload, dict) else None
    if not isinstance(tweet, dict):
        raise ValidationFailure("twitter payload has no tweet", field="tweet")
    content = f.require_content(
        f.first(f.text(f.dig(tweet, "extended_tweet", "full_text")), f.text(tweet.get("full_text")), f.text(tweet.get("text"))),
        "twitter",
        "tweet text",
    )
    user = tweet.get("user") if isinstance(tweet.get("user"), dict) else {}
    handle = f.text(user.get("screen_name"), 128)
    return PartialRecord(
        source=Source.TWITTER,
        source_id=f.identifier(f.first(tweet.get("id_str"), tweet.get("id"))),
        content=content,
        title=f"Tweet from @{handle}" if handle else "Tweet",
        customer_id=f.identifier(f.first(user.get("id_str"), user.get("id"))),
        customer_name=f.text(f.first(user.get("name"), handle), 256),
        language=f.language(tweet.get("lang")),
        metadata=f.compact({
            "screenName": handle,
            "retweetCount": tweet.get("retweet_count"),
            "favoriteCount": tweet.get("favorite_count"),
            "replyCount": tweet.get("reply_count"),
            "inReplyTo": tweet.get("in_reply_to_status_id_str"),
            "createdAt": tweet.get("created_at"),
        }),
        original_data=copy.deepcopy(payload),
    )
