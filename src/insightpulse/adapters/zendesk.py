from __future__ import annotations
import copy

from insightpulse.adapters import fields as f
from insightpulse.errors import ValidationFailure
from insightpulse.models.feedback import PartialRecord, Source

# CSAT arrives as a label rather than stars
_SATISFACTION_LABELS = {"good": 5, "bad": 1}


def _satisfaction(value) -> int | None:
    if isinstance(value, dict):
        value = value.get("score")
    if isinstance(value, str) and value.lower() in _SATISFACTION_LABELS:
        return _SATISFACTION_LABELS[value.lower()]
    return f.rating(value)


def parse(payload: dict) -> PartialRecord:
    ticket = payload.get("ticket") if isinstance(payload, dict) else None
    if not isinstance(ticket, dict):
        raise ValidationFailure("zendesk payload has no ticket", field="ticket")
    content = f.require_content(
        f.first(f.text(ticket.get("description")), f.strip_html(f.dig(ticket, "comment", "body"))),
        "zendesk",
        "ticket body",
    )
    requester = ticket.get("requester") if isinstance(ticket.get("requester"), dict) else {}
    return PartialRecord(
        source=Source.ZENDESK,
        source_id=f.identifier(ticket.get("id")),
        content=content,
        title=f.text(ticket.get("subject"), 512) or "Zendesk Ticket",
        rating=_satisfaction(ticket.get("satisfaction_rating")),
        customer_id=f.identifier(f.first(ticket.get("requester_id"), requester.get("id"))),
        customer_name=f.text(requester.get("name"), 256),
        customer_email=f.email(requester.get("email")),
        language=f.language(f.first(requester.get("locale"), ticket.get("locale"))),
        metadata=f.compact({
            "ticketId": ticket.get("id"),
            "status": ticket.get("status"),
            "priority": ticket.get("priority"),
            "assigneeId": ticket.get("assignee_id"),
            "tags": ticket.get("tags"),
            "createdAt": ticket.get("created_at"),
            "updatedAt": ticket.get("updated_at"),
        }),
        original_data=copy.deepcopy(payload),
    )
