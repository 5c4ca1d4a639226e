"""
Webhook poller - background safety net for the dispatch loop.

Ingestion triggers a drain immediately, but nothing triggers one when a
retried event's backoff window runs out. Every cycle this worker:
1. Releases PROCESSING claims that were never acknowledged (crash, lost ack)
2. Drains every provider that has due PENDING events
3. Writes a heartbeat for the readiness check
"""
import asyncio
import logging

from src.config import get_settings
from src.utils.heartbeat import write_heartbeat

logger = logging.getLogger(__name__)

WORKER_NAME = "webhook_poller"


async def poll_once(dispatcher) -> int:
    """Run one poll cycle. Returns the number of events handled."""
    store = dispatcher.store
    await store.release_stale_claims()

    handled = 0
    for provider in await store.due_providers():
        handled += await dispatcher.drain(provider)
    return handled


async def run_webhook_poller(dispatcher, interval_seconds: int = None):
    """Main loop - sweep the webhook queue every interval."""
    interval = interval_seconds or get_settings().webhook_poll_interval_seconds
    logger.info("Webhook poller started (poll every %ds)", interval)

    while True:
        try:
            handled = await poll_once(dispatcher)
            if handled:
                logger.info("Webhook poller handled %d events", handled)
        except Exception as e:
            logger.error("Webhook poller cycle error: %s", str(e), exc_info=True)

        await write_heartbeat(WORKER_NAME, ttl_seconds=max(120, interval * 4))
        await asyncio.sleep(interval)
