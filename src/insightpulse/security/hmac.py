"""Webhook signature verification, one signing scheme per provider.

All comparisons go through ``hmac.compare_digest``; any missing header,
unparseable value or mismatch raises AuthenticationFailure.
"""
from __future__ import annotations
import base64
import hashlib
import hmac
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Mapping

from insightpulse.errors import AuthenticationFailure, UnsupportedProvider
from insightpulse.models.feedback import Source


@dataclass(frozen=True)
class SignatureScheme:
    header: str
    digest: Callable = hashlib.sha256
    encoding: str = "hex"  # hex|base64
    prefix: str = ""  # e.g. "sha1=" stripped before comparison
    timestamp_header: str | None = None  # signed message is timestamp + body


SCHEMES: dict[Source, SignatureScheme] = {
    Source.INTERCOM: SignatureScheme("X-Hub-Signature", hashlib.sha1, "hex", "sha1="),
    Source.ZENDESK: SignatureScheme(
        "X-Zendesk-Webhook-Signature", hashlib.sha256, "base64",
        timestamp_header="X-Zendesk-Webhook-Signature-Timestamp",
    ),
    Source.TWITTER: SignatureScheme("X-Twitter-Webhooks-Signature", hashlib.sha256, "base64", "sha256="),
    Source.GOOGLE_PLAY: SignatureScheme("X-Signature", hashlib.sha256, "hex", "sha256="),
    Source.APP_STORE: SignatureScheme("X-Signature", hashlib.sha256, "hex", "sha256="),
}

# generic webhooks use "<unix ts>,<hex sha256 of '<ts>.' + body>"
GENERIC_HEADER = "X-Signature"


def _header(headers: Mapping[str, str], name: str) -> str | None:
    value = headers.get(name)
    if value is None:
        value = headers.get(name.lower())
    return value


def _timestamp_seconds(value: str) -> float | None:
    """Unix seconds from an ISO-8601 (Zendesk) or integer timestamp header."""
    value = value.strip()
    if value.isdigit():
        return float(value)
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


def compute_signature(scheme: SignatureScheme, body: bytes, secret: str, timestamp: str | None = None) -> str:
    message = (timestamp or "").encode() + body if scheme.timestamp_header else body
    mac = hmac.new(secret.encode(), msg=message, digestmod=scheme.digest).digest()
    encoded = base64.b64encode(mac).decode() if scheme.encoding == "base64" else mac.hex()
    return f"{scheme.prefix}{encoded}"


def sign_generic(body: bytes, secret: str, ts: int | None = None) -> str:
    ts = int(time.time()) if ts is None else ts
    sig = hmac.new(secret.encode(), msg=f"{ts}.".encode() + body, digestmod=hashlib.sha256).hexdigest()
    return f"{ts},{sig}"


def verify_hmac(signature: str | None, body: bytes, secret: str, tolerance_seconds: int = 300):
    """Verify a generic ``<ts>,<sig>`` header, rejecting stale timestamps."""
    if not signature:
        raise AuthenticationFailure("missing signature header")
    try:
        ts_str, sig = signature.split(",", 1)
        ts = int(ts_str)
    except ValueError:
        raise AuthenticationFailure("invalid signature header") from None
    if abs(time.time() - ts) > tolerance_seconds:
        raise AuthenticationFailure("signature timestamp expired")
    expected = hmac.new(secret.encode(), msg=f"{ts}.".encode() + body, digestmod=hashlib.sha256).hexdigest()
    if not hmac.compare_digest(expected, sig.strip()):
        raise AuthenticationFailure("invalid signature")


def verify_signature(source: Source, headers: Mapping[str, str], body: bytes, secret: str | None,
                     tolerance_seconds: int = 300):
    if not secret:
        raise AuthenticationFailure("no webhook secret configured", provider=source.value)
    if source == Source.WEBHOOK:
        verify_hmac(_header(headers, GENERIC_HEADER), body, secret, tolerance_seconds)
        return
    scheme = SCHEMES.get(source)
    if scheme is None:
        raise UnsupportedProvider(f"no signing scheme for {source.value}", provider=source.value)
    provided = _header(headers, scheme.header)
    if not provided:
        raise AuthenticationFailure(f"missing {scheme.header} header", provider=source.value)
    timestamp = None
    if scheme.timestamp_header:
        timestamp = _header(headers, scheme.timestamp_header)
        if not timestamp:
            raise AuthenticationFailure(f"missing {scheme.timestamp_header} header", provider=source.value)
        signed_at = _timestamp_seconds(timestamp)
        if signed_at is None:
            raise AuthenticationFailure("invalid signature timestamp", provider=source.value)
        if abs(time.time() - signed_at) > tolerance_seconds:
            raise AuthenticationFailure("signature timestamp expired", provider=source.value)
    expected = compute_signature(scheme, body, secret, timestamp)
    if not hmac.compare_digest(expected.encode(), provided.strip().encode()):
        raise AuthenticationFailure("invalid signature", provider=source.value)
