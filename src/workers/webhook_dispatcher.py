"""
Webhook dispatcher - drains queued provider events through their handlers.

One drain loop per provider at a time (per dispatcher instance). A trigger
that arrives while a drain is running just asks that drain to look again
before it exits. Correctness does not depend on this guard: the claim in the
event store is atomic, so two processes draining the same provider never
receive the same event.

Per event:
- handler returns           -> mark_processed
- handler raises (anything) -> mark_failed with the message and claim attempts
- store raises on claim/ack -> the drain stops; the event is left as-is for
                               the next trigger or the poller's stale-claim sweep
"""
import asyncio
import logging
from typing import Mapping, Optional

from src.integrations.provider_base import WebhookProviderHandler
from src.services.webhook_queue import ClaimedEvent, WebhookEventStore
from src.utils.logging import generate_correlation_id, set_correlation_id

logger = logging.getLogger(__name__)


class UnknownProviderError(LookupError):
    """No handler is registered for the event's provider."""


class WebhookDispatcher:
    def __init__(
        self,
        store: WebhookEventStore,
        handlers: Mapping[str, WebhookProviderHandler],
    ):
        self.store = store
        self.handlers = dict(handlers)
        self._draining: set[str] = set()
        self._rerun_requested: set[str] = set()
        self._tasks: set[asyncio.Task] = set()

    def is_draining(self, provider: str) -> bool:
        return provider in self._draining

    def trigger(self, provider: str) -> Optional[asyncio.Task]:
        """Start a background drain for provider unless one is already running."""
        if provider in self._draining:
            self._rerun_requested.add(provider)
            logger.debug("Drain already running for %s, rerun requested", provider)
            return None
        task = asyncio.create_task(self.drain(provider), name=f"webhook-drain:{provider}")
        self._tasks.add(task)
        task.add_done_callback(self._on_drain_done)
        return task

    def _on_drain_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Webhook drain aborted (%s): %s", task.get_name(), str(exc),
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    async def drain(self, provider: str) -> int:
        """Process due events for provider until none are left. Returns how many were handled."""
        if provider in self._draining:
            self._rerun_requested.add(provider)
            return 0

        self._draining.add(provider)
        handled = 0
        try:
            while True:
                self._rerun_requested.discard(provider)
                event = await self.store.claim_next(provider)
                if event is None:
                    if provider in self._rerun_requested:
                        continue
                    break
                await self._process(event)
                handled += 1
                # Let ingestion requests in between events
                await asyncio.sleep(0)
        finally:
            self._draining.discard(provider)
            self._rerun_requested.discard(provider)

        if handled:
            logger.info("Webhook drain finished: provider=%s handled=%d", provider, handled)
        return handled

    async def _process(self, event: ClaimedEvent) -> bool:
        set_correlation_id(event.correlation_id or generate_correlation_id())
        handler = self.handlers.get(event.provider)
        try:
            if handler is None:
                raise UnknownProviderError(
                    f'No webhook handler registered for provider "{event.provider}"'
                )
            await handler.handle(event.payload, event.external_event_id)
        except Exception as e:
            message = str(e) or e.__class__.__name__
            logger.warning(
                "Webhook handler failed: provider=%s event=%s attempt=%d error=%s",
                event.provider, event.id[:8], event.attempts, message,
                extra={
                    "provider": event.provider,
                    "event_id": event.id,
                    "external_event_id": event.external_event_id,
                    "attempt": event.attempts,
                },
            )
            await self.store.mark_failed(event.id, message, event.attempts)
            return False

        await self.store.mark_processed(event.id)
        return True

    async def join(self) -> None:
        """Wait for every in-flight drain task to finish."""
        while True:
            running = [task for task in self._tasks if not task.done()]
            if not running:
                return
            await asyncio.gather(*running, return_exceptions=True)

    async def shutdown(self, timeout: float = 10.0) -> None:
        """Give running drains a grace period, then cancel them."""
        tasks = list(self._tasks)
        if not tasks:
            return
        done, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        logger.info(
            "Webhook dispatcher stopped: %d drains finished, %d cancelled",
            len(done), len(pending),
        )
