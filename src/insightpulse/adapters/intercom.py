"""Intercom conversation webhooks (topics conversation.user.created / conversation.user.replied).

Accepts both the nested form (`data.item.conversation`) and the flat form where
`data.item` itself is the conversation. Message bodies arrive as HTML.
"""
from __future__ import annotations
import copy

from insightpulse.adapters import fields as f
from insightpulse.errors import ValidationFailure
from insightpulse.models.feedback import PartialRecord, Source


def parse(payload: dict) -> PartialRecord:
    item = f.dig(payload, "data", "item")
    if not isinstance(item, dict) or item.get("type") != "conversation":
        raise ValidationFailure(
            "intercom event is not a conversation message",
            field="data.item.type",
            topic=payload.get("topic"),
        )
    conv = item.get("conversation") if isinstance(item.get("conversation"), dict) else item
    message = f.mapping(f.dig(conv, "conversation_message"), f.dig(conv, "source"))

    body = f.strip_html(message.get("body"))
    if body is None:
        # replies carry the text on the newest conversation part
        body = f.strip_html(f.dig(conv, "conversation_parts", "conversation_parts", -1, "body"))
    content = f.require_content(body, "intercom", "conversation message body")

    user = f.mapping(f.dig(conv, "user"), f.dig(message, "author"), f.dig(conv, "contacts", "contacts", 0))
    return PartialRecord(
        source=Source.INTERCOM,
        source_id=f.identifier(conv.get("id")),
        content=content,
        title=f.text(f.strip_html(message.get("subject")), 512) or "Intercom Conversation",
        customer_id=f.identifier(user.get("id")),
        customer_name=f.text(user.get("name"), 256),
        customer_email=f.email(user.get("email")),
        metadata=f.compact({
            "topic": payload.get("topic"),
            "conversationType": conv.get("conversation_type"),
            "createdAt": conv.get("created_at"),
            "updatedAt": conv.get("updated_at"),
            "assignee": conv.get("assignee"),
            "tags": conv.get("tags"),
        }),
        original_data=copy.deepcopy(payload),
    )
