"""
Provider registry - which webhook providers the dispatcher can route to.
"""
from typing import Any, Callable, Optional

from src.integrations.provider_base import WebhookProviderHandler
from src.integrations.typeform import TypeformHandler, extract_typeform_event_id

# Provider -> payload event id extractor, used while ingesting
EVENT_ID_EXTRACTORS: dict[str, Callable[[Any], Optional[str]]] = {
    "typeform": extract_typeform_event_id,
}


def build_provider_handlers(driver_store) -> dict[str, WebhookProviderHandler]:
    """Instantiate one handler per supported provider."""
    handlers = [TypeformHandler(driver_store)]
    return {handler.provider: handler for handler in handlers}
