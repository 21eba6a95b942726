from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Core API Settings
    api_host: str = Field("0.0.0.0", alias="API_HOST")
    api_port: int = Field(8000, alias="API_PORT")
    app_env: str = Field("dev", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    api_keys: str | None = Field(None, alias="API_KEYS")  # comma-separated list guarding manual/ops routes

    # Storage
    database_url: str = Field("sqlite:///./insightpulse.db", alias="DATABASE_URL")
    redis_url: str = Field("redis://localhost:6379/0", alias="REDIS_URL")
    state_backend: str = Field("redis", alias="STATE_BACKEND")  # redis|memory (queue, alert windows, fan-out, quota)

    # Webhook gateway
    webhook_secrets: str | None = Field(None, alias="WEBHOOK_SECRETS")  # format provider:secret;tenant/provider:secret
    webhook_timestamp_tolerance_seconds: int = Field(300, alias="WEBHOOK_TIMESTAMP_TOLERANCE_SECONDS")
    integration_secret_key: str | None = Field(None, alias="INTEGRATION_SECRET_KEY")  # Fernet key for integrations.webhook_secret

    # Quota (per tenant, per UTC day); None disables the built-in gate
    quota_daily_feedback_limit: int | None = Field(None, alias="QUOTA_DAILY_FEEDBACK_LIMIT")

    # Classification service
    classifier_url: str = Field("http://localhost:8081/v1/classify", alias="CLASSIFIER_URL")
    classifier_api_key: str | None = Field(None, alias="CLASSIFIER_API_KEY")
    classifier_timeout_seconds: float = Field(20.0, alias="CLASSIFIER_TIMEOUT_SECONDS")
    classifier_max_attempts: int = Field(5, alias="CLASSIFIER_MAX_ATTEMPTS")
    classifier_backoff_base_seconds: float = Field(2.0, alias="CLASSIFIER_BACKOFF_BASE_SECONDS")
    classifier_backoff_max_seconds: float = Field(300.0, alias="CLASSIFIER_BACKOFF_MAX_SECONDS")
    classifier_rate_per_second: float = Field(5.0, alias="CLASSIFIER_RATE_PER_SECOND")
    classifier_burst: int = Field(5, alias="CLASSIFIER_BURST")

    # Worker pool & queue
    worker_concurrency: int = Field(4, alias="WORKER_CONCURRENCY")
    worker_idle_sleep_seconds: float = Field(0.5, alias="WORKER_IDLE_SLEEP_SECONDS")
    classification_queue_max_depth: int = Field(10000, alias="CLASSIFICATION_QUEUE_MAX_DEPTH")
    lease_timeout_seconds: int = Field(300, alias="LEASE_TIMEOUT_SECONDS")
    pending_grace_seconds: int = Field(120, alias="PENDING_GRACE_SECONDS")
    sweep_batch_size: int = Field(500, alias="SWEEP_BATCH_SIZE")

    # Alerting
    spike_window_minutes: int = Field(60, alias="SPIKE_WINDOW_MINUTES")
    spike_baseline_count: int = Field(5, alias="SPIKE_BASELINE_COUNT")  # expected negatives per window
    spike_threshold_pct: float = Field(50.0, alias="SPIKE_THRESHOLD_PCT")
    event_channel_prefix: str = Field("insightpulse:tenant", alias="EVENT_CHANNEL_PREFIX")

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "allow"  # Allow extra environment variables


@lru_cache
def get_settings() -> Settings:
    return Settings()


def reset_settings():
    """Clear cached settings (useful in tests when env vars change)."""
    get_settings.cache_clear()


def parse_api_keys(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [k.strip() for k in raw.split(",") if k.strip()]


def parse_webhook_secrets(raw: str | None) -> dict[str, str]:
    """Parse `provider:secret;tenant/provider:secret` into a lookup map.

    Keys are either a bare provider (`zendesk`) or a tenant-scoped provider
    (`acme/zendesk`). Secrets may themselves contain ':'.
    """
    mapping: dict[str, str] = {}
    if not raw:
        return mapping
    for entry in [e for e in raw.split(";") if e.strip()]:
        if ":" in entry:
            k, v = entry.split(":", 1)
            if k.strip() and v.strip():
                mapping[k.strip().lower()] = v.strip()
    return mapping
