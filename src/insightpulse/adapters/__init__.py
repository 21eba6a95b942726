"""Provider adapters: pure `payload -> PartialRecord` functions selected by source tag."""
from __future__ import annotations
from typing import Callable

from insightpulse.adapters import app_store, generic, google_play, intercom, manual, twitter, zendesk
from insightpulse.errors import UnsupportedProvider
from insightpulse.models.feedback import PartialRecord, Source

Adapter = Callable[[dict], PartialRecord]

ADAPTERS: dict[Source, Adapter] = {
    Source.INTERCOM: intercom.parse,
    Source.ZENDESK: zendesk.parse,
    Source.GOOGLE_PLAY: google_play.parse,
    Source.APP_STORE: app_store.parse,
    Source.TWITTER: twitter.parse,
    Source.WEBHOOK: generic.parse,
    Source.MANUAL: manual.parse,
    Source.API: manual.parse_api,
}

# sources that arrive over POST /webhooks/{provider}
WEBHOOK_PROVIDERS = frozenset({
    Source.INTERCOM, Source.ZENDESK, Source.GOOGLE_PLAY, Source.APP_STORE, Source.TWITTER, Source.WEBHOOK,
})

_ALIASES = {
    "google-play": Source.GOOGLE_PLAY,
    "googleplay": Source.GOOGLE_PLAY,
    "app-store": Source.APP_STORE,
    "appstore": Source.APP_STORE,
    "generic": Source.WEBHOOK,
}


def resolve_provider(name: str) -> Source:
    """Map a webhook path segment to its source; unknown or non-webhook sources fail fast."""
    key = (name or "").strip().lower()
    source = _ALIASES.get(key)
    if source is None:
        try:
            source = Source(key)
        except ValueError:
            raise UnsupportedProvider(f"unsupported provider: {name}", provider=name) from None
    if source not in WEBHOOK_PROVIDERS:
        raise UnsupportedProvider(f"provider {name} does not accept webhooks", provider=name)
    return source


def parse(source: Source, payload: dict) -> PartialRecord:
    adapter = ADAPTERS.get(source)
    if adapter is None:
        raise UnsupportedProvider(f"no adapter for source {source.value}", provider=source.value)
    return adapter(payload)
