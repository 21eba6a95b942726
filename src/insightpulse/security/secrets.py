from __future__ import annotations
import logging
from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from insightpulse.models.feedback import Source
from insightpulse.models.tables import Integration
from insightpulse.security.crypto import EncryptionError, decrypt_secret

logger = logging.getLogger(__name__)


class WebhookSecretResolver:
    """Resolve the signing secret for (tenant, provider).

    Lookup order: configured ``tenant/provider`` entry, active integration row
    (decrypted), configured bare ``provider`` entry. Returns None when nothing
    is configured; callers must fail closed.
    """

    def __init__(self, configured: dict[str, str], session_factory: sessionmaker | None = None):
        self._configured = {k.lower(): v for k, v in configured.items()}
        self._session_factory = session_factory

    def resolve(self, tenant_id: str, source: Source) -> str | None:
        provider = source.value
        scoped = self._configured.get(f"{tenant_id.lower()}/{provider}")
        if scoped:
            return scoped
        stored = self._from_integration(tenant_id, provider)
        if stored:
            return stored
        return self._configured.get(provider)

    def _from_integration(self, tenant_id: str, provider: str) -> str | None:
        if self._session_factory is None:
            return None
        with self._session_factory() as s:
            token = s.execute(
                select(Integration.webhook_secret).where(
                    Integration.tenant_id == tenant_id,
                    Integration.provider == provider,
                    Integration.active == 1,
                )
            ).scalar_one_or_none()
        if not token:
            return None
        try:
            return decrypt_secret(token)
        except EncryptionError as e:
            logger.error(f"Cannot decrypt webhook secret for {tenant_id}/{provider}: {e}")
            return None
