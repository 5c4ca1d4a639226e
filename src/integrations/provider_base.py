"""
Webhook provider interface - every form provider integration implements this.
Handlers run inside the dispatch loop, never in the HTTP request path.
"""
from abc import ABC, abstractmethod
from typing import Any


class WebhookProviderHandler(ABC):
    """Applies one queued provider event to the driver records."""

    provider: str = ""

    @abstractmethod
    async def handle(self, payload: Any, external_event_id: str) -> None:
        """
        Process a single event payload.
        Raise on anything that should be retried or recorded as a failure.
        """
        ...
