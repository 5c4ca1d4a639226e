"""
Tests for src/workers/webhook_poller.py and the Redis heartbeat helpers.
"""
import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.models.webhook_event import STATUS_PROCESSED, WebhookEvent
from src.workers.webhook_dispatcher import WebhookDispatcher
from src.workers.webhook_poller import poll_once, run_webhook_poller


class _CountingHandler:
    provider = "typeform"

    def __init__(self):
        self.seen = []

    async def handle(self, payload, external_event_id):
        self.seen.append(external_event_id)


class TestPollOnce:
    async def test_drains_events_whose_backoff_expired(self, webhook_store, db):
        queued = await webhook_store.enqueue("typeform", "form_response", "evt-retry", {})
        await webhook_store.mark_failed(queued.event_id, "first try failed", 1)
        row = await db.get(WebhookEvent, uuid.UUID(queued.event_id))
        row.available_at = datetime.now(timezone.utc) - timedelta(seconds=1)
        await db.commit()

        handler = _CountingHandler()
        dispatcher = WebhookDispatcher(webhook_store, {"typeform": handler})

        assert await poll_once(dispatcher) == 1
        assert handler.seen == ["evt-retry"]
        assert (await webhook_store.get_event(queued.event_id)).status == STATUS_PROCESSED

    async def test_leaves_events_in_backoff(self, webhook_store):
        queued = await webhook_store.enqueue("typeform", "form_response", "evt-wait", {})
        await webhook_store.mark_failed(queued.event_id, "later", 1)
        dispatcher = WebhookDispatcher(webhook_store, {"typeform": _CountingHandler()})

        assert await poll_once(dispatcher) == 0

    async def test_recovers_stale_claims(self, webhook_store, db):
        queued = await webhook_store.enqueue("typeform", "form_response", "evt-orphan", {})
        await webhook_store.claim_next("typeform")
        row = await db.get(WebhookEvent, uuid.UUID(queued.event_id))
        row.claimed_at = datetime.now(timezone.utc) - timedelta(hours=1)
        await db.commit()

        handler = _CountingHandler()
        dispatcher = WebhookDispatcher(webhook_store, {"typeform": handler})

        assert await poll_once(dispatcher) == 1
        assert handler.seen == ["evt-orphan"]

    async def test_drains_every_due_provider(self, webhook_store):
        await webhook_store.enqueue("typeform", "form_response", "t-1", {})
        await webhook_store.enqueue("jotform", "submit", "j-1", {})
        typeform, jotform = _CountingHandler(), _CountingHandler()
        dispatcher = WebhookDispatcher(webhook_store, {"typeform": typeform, "jotform": jotform})

        assert await poll_once(dispatcher) == 2
        assert typeform.seen == ["t-1"]
        assert jotform.seen == ["j-1"]


class TestRunWebhookPoller:
    async def test_cycle_errors_do_not_stop_the_loop(self, mock_redis):
        dispatcher = MagicMock()
        cycles = []

        async def _failing_poll(_dispatcher):
            cycles.append(1)
            if len(cycles) >= 2:
                raise asyncio.CancelledError()
            raise RuntimeError("db blip")

        with (
            patch("src.workers.webhook_poller.poll_once", side_effect=_failing_poll),
            patch("src.workers.webhook_poller.asyncio.sleep", new_callable=AsyncMock),
        ):
            with pytest.raises(asyncio.CancelledError):
                await run_webhook_poller(dispatcher, interval_seconds=1)

        assert len(cycles) == 2
        mock_redis.set.assert_awaited()
        key = mock_redis.set.call_args.args[0]
        assert key == "driverdesk:worker_health:webhook_poller"
        assert mock_redis.set.call_args.kwargs["ex"] == 120


class TestHeartbeat:
    async def test_write_heartbeat_swallows_redis_errors(self):
        from src.utils.heartbeat import write_heartbeat

        with patch(
            "src.utils.heartbeat.get_redis",
            new_callable=AsyncMock,
            side_effect=ConnectionError("no redis"),
        ):
            await write_heartbeat("webhook_poller")  # must not raise

    async def test_read_heartbeat(self, mock_redis):
        from src.utils.heartbeat import read_heartbeat

        mock_redis.get = AsyncMock(return_value="2026-10-19T10:00:00+00:00")

        assert await read_heartbeat("webhook_poller") == "2026-10-19T10:00:00+00:00"
        mock_redis.get.assert_awaited_once_with("driverdesk:worker_health:webhook_poller")
