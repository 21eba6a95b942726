"""Coercion helpers shared by the provider adapters.

All helpers are total: they return None for anything they cannot interpret so
adapters degrade to an absent canonical field instead of raising.
"""
from __future__ import annotations
import html
import math
import re
from typing import Any

from insightpulse.errors import ValidationFailure
from insightpulse.models.feedback import DEFAULT_LANGUAGE

_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_LANG_RE = re.compile(r"^[A-Za-z]{2,3}([-_][A-Za-z0-9]{2,8})*$")


def dig(obj: Any, *path: str | int) -> Any:
    """Walk nested dicts/lists; None as soon as a hop is missing or of the wrong type."""
    cur = obj
    for key in path:
        if isinstance(key, int):
            if not isinstance(cur, list) or not -len(cur) <= key < len(cur):
                return None
            cur = cur[key]
        else:
            if not isinstance(cur, dict):
                return None
            cur = cur.get(key)
        if cur is None:
            return None
    return cur


def first(*values: Any) -> Any:
    for v in values:
        if v is not None and v != "":
            return v
    return None


def mapping(*values: Any) -> dict:
    """First value that is a dict; {} when none is."""
    for v in values:
        if isinstance(v, dict):
            return v
    return {}


def text(value: Any, max_len: int | None = None) -> str | None:
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    s = str(value).strip()
    if not s:
        return None
    return s[:max_len] if max_len else s


def strip_html(value: Any) -> str | None:
    s = text(value)
    if s is None:
        return None
    s = _TAG_RE.sub(" ", s.replace("<br>", "\n").replace("<br/>", "\n"))
    s = html.unescape(s)
    return text(_WS_RE.sub(" ", s))


def identifier(value: Any) -> str | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        # 1.0 and 1 name the same id; 1.2 keeps its fraction
        return str(int(value)) if value.is_integer() else repr(value)
    return text(value, 128)


def rating(value: Any) -> int | None:
    """1..5 star rating; anything else (incl. out-of-range) is absent."""
    if isinstance(value, bool) or value is None:
        return None
    try:
        n = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if not math.isfinite(n) or not n.is_integer() or not 1 <= n <= 5:
        return None
    return int(n)


def email(value: Any) -> str | None:
    s = text(value, 256)
    if s and _EMAIL_RE.match(s):
        return s.lower()
    return None


def language(value: Any) -> str:
    s = text(value, 35)
    if not s or not _LANG_RE.match(s):
        return DEFAULT_LANGUAGE
    return s.replace("_", "-").lower()[:10]


def require_content(value: Any, provider: str, what: str) -> str:
    s = text(value)
    if not s:
        raise ValidationFailure(f"{provider} payload has no {what}", field="content", provider=provider)
    return s


def compact(d: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in d.items() if v is not None}
