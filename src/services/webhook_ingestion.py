"""
Webhook ingestion - turns a raw provider POST into a queued event.

Ingestion never waits on processing: it validates, resolves the dedup key,
enqueues, kicks the provider's dispatch loop in the background and returns.
Only client mistakes (empty provider, malformed JSON) are rejected here.
"""
import json
import logging
import random
import re
import string
import time
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from src.integrations import EVENT_ID_EXTRACTORS
from src.utils.logging import get_correlation_id

logger = logging.getLogger(__name__)

DEFAULT_EVENT_NAME = "event.received"
EVENT_ID_HEADERS = ("x-event-id", "x-request-id")

_EVENT_NAME_INVALID = re.compile(r"[^a-z0-9._-]+")
_BASE36 = string.digits + string.ascii_lowercase


class WebhookIngestionError(ValueError):
    """The webhook request is malformed; nothing was enqueued."""


@dataclass(frozen=True)
class IngestResult:
    accepted: bool
    duplicate: bool
    event_id: str
    provider: str
    event_name: str


def normalize_provider(provider: Optional[str]) -> str:
    return (provider or "").strip().lower()


def normalize_event_name(event_name: Optional[str]) -> str:
    """Lowercase, collapse anything outside [a-z0-9._-] to '-', trim '-'."""
    normalized = _EVENT_NAME_INVALID.sub("-", (event_name or "").strip().lower())
    return normalized.strip("-") or DEFAULT_EVENT_NAME


def parse_payload(raw_payload: Union[bytes, str, None]) -> Any:
    """Decode a webhook body. Empty bodies decode to {}."""
    if raw_payload is None:
        return {}
    if isinstance(raw_payload, bytes):
        try:
            raw_payload = raw_payload.decode("utf-8")
        except UnicodeDecodeError:
            raise WebhookIngestionError("payload must be UTF-8 encoded JSON")
    if not raw_payload.strip():
        return {}
    try:
        payload = json.loads(raw_payload)
    except json.JSONDecodeError:
        raise WebhookIngestionError("payload must be valid JSON")
    return {} if payload is None else payload


def _synthesize_event_id(provider: str) -> str:
    suffix = "".join(random.choices(_BASE36, k=8))
    return f"{provider}-{int(time.time() * 1000)}-{suffix}"


def infer_external_event_id(
    provider: str,
    payload: Any,
    headers: Optional[Mapping[str, str]] = None,
) -> str:
    """
    Resolve the dedup id for a webhook without an explicit one.

    Priority: x-event-id / x-request-id header, then the provider's own
    extractor, then a top-level "event_id" (providers without an extractor),
    then a synthesized "{provider}-{ms}-{random}" id.
    """
    lowered = {str(k).lower(): str(v) for k, v in (headers or {}).items()}
    for header in EVENT_ID_HEADERS:
        if lowered.get(header, "").strip():
            return lowered[header].strip()

    extractor = EVENT_ID_EXTRACTORS.get(provider)
    if extractor is not None:
        extracted = extractor(payload)
        if extracted:
            return extracted
    elif isinstance(payload, dict):
        direct = payload.get("event_id")
        if isinstance(direct, str) and direct.strip():
            return direct.strip()

    return _synthesize_event_id(provider)


async def ingest_provider_webhook(
    store,
    dispatcher,
    *,
    provider: Optional[str],
    event_name: Optional[str],
    raw_payload: Union[bytes, str, None],
    headers: Optional[Mapping[str, str]] = None,
    external_event_id: Optional[str] = None,
) -> IngestResult:
    """Validate, enqueue and trigger dispatch. Raises WebhookIngestionError on bad input."""
    provider = normalize_provider(provider)
    if not provider:
        raise WebhookIngestionError("provider is required")

    payload = parse_payload(raw_payload)
    event_name = normalize_event_name(event_name)
    external_event_id = (external_event_id or "").strip() or infer_external_event_id(
        provider, payload, headers
    )

    queued = await store.enqueue(
        provider,
        event_name,
        external_event_id,
        payload,
        correlation_id=get_correlation_id(),
    )
    dispatcher.trigger(provider)

    return IngestResult(
        accepted=True,
        duplicate=queued.duplicate,
        event_id=queued.event_id,
        provider=provider,
        event_name=event_name,
    )
