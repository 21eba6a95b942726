"""Error taxonomy shared by the gateway, ingest coordinator and classification workers.

Every pipeline error carries a machine-readable ``code`` and the HTTP status the
API maps it to. Classification errors never reach webhook callers; they are
handled inside the worker state machine.
"""
from __future__ import annotations


class PipelineError(Exception):
    code = "pipeline_error"
    status_code = 500

    def __init__(self, detail: str = "", **context):
        super().__init__(detail or self.code)
        self.detail = detail or self.code
        self.context = context

    def to_dict(self) -> dict:
        return {"error": self.code, "detail": self.detail}


class AuthenticationFailure(PipelineError):
    """Missing or mismatching webhook signature. Always fails closed."""
    code = "authentication_failed"
    status_code = 401


class MalformedPayload(PipelineError):
    """Body is not parseable JSON (or not a JSON object)."""
    code = "malformed_body"
    status_code = 400


class UnsupportedProvider(PipelineError):
    """Provider tag has no adapter/signing scheme: a configuration error."""
    code = "unsupported_provider"
    status_code = 404


class ValidationFailure(PipelineError):
    """Adapter could not derive the required canonical fields."""
    code = "validation_failed"
    status_code = 422

    def __init__(self, detail: str = "", field: str | None = None, **context):
        super().__init__(detail, **context)
        self.field = field

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.field:
            data["field"] = self.field
        return data


class QuotaExceeded(PipelineError):
    code = "quota_exceeded"
    status_code = 429


class PersistenceFailure(PipelineError):
    """Store unavailable; the whole ingest is safe to retry (idempotent)."""
    code = "persistence_failed"
    status_code = 503


class QueueFull(PipelineError):
    code = "queue_full"
    status_code = 503


class ClassificationError(PipelineError):
    code = "classification_error"

    def __init__(self, kind: str, detail: str = "", retry_after: float | None = None):
        super().__init__(detail or kind)
        self.kind = kind
        self.retry_after = retry_after


class ClassificationRetryable(ClassificationError):
    """rate_limited | timeout | service_unavailable."""
    code = "classification_retryable"


class ClassificationPermanentFailure(ClassificationError):
    """invalid_input, or retry attempts exhausted."""
    code = "classification_failed"


RETRYABLE_KINDS = frozenset({"rate_limited", "timeout", "service_unavailable"})
PERMANENT_KINDS = frozenset({"invalid_input"})
