"""
Tests for src/api/webhooks.py - webhook ingestion endpoints.

Covers:
- Typeform legacy endpoint and the generic /webhooks/{provider}/{event_name}
- 202 response shape and duplicate detection
- 400 INVALID_WEBHOOK for malformed requests
- Infrastructure errors surface as 500, not 400
"""
import json
from unittest.mock import AsyncMock, MagicMock

from src.api.dependencies import get_webhook_store
from src.models.webhook_event import STATUS_PROCESSED


# ---------------------------------------------------------------------------
# POST /webhooks/typeform
# ---------------------------------------------------------------------------


class TestTypeformEndpoint:
    async def test_accepted_and_processed(self, client, dispatcher, driver_store, jordan_lee, typeform_payload):
        body = typeform_payload(event_id="evt-http-1", hidden={"monday_id": "5"})

        response = await client.post("/webhooks/typeform", content=json.dumps(body))

        assert response.status_code == 202
        data = response.json()
        assert data["accepted"] is True
        assert data["duplicate"] is False
        assert data["provider"] == "typeform"
        assert data["eventName"] == "submission.received"
        assert data["eventId"]

        await dispatcher.join()
        event = await dispatcher.store.get_event(data["eventId"])
        assert event.status == STATUS_PROCESSED
        assert event.external_event_id == "evt-http-1"
        driver = await driver_store.get_driver("5")
        assert "(event evt-http-1)" in driver.notes

    async def test_duplicate_delivery(self, client, typeform_payload):
        body = json.dumps(typeform_payload(event_id="evt-http-dup"))

        first = await client.post("/webhooks/typeform", content=body)
        second = await client.post("/webhooks/typeform", content=body)

        assert first.status_code == 202
        assert second.status_code == 202
        assert second.json()["duplicate"] is True
        assert second.json()["eventId"] == first.json()["eventId"]

    async def test_invalid_json(self, client):
        response = await client.post("/webhooks/typeform", content=b"{not json")

        assert response.status_code == 400
        assert response.json() == {
            "error": {"code": "INVALID_WEBHOOK", "message": "payload must be valid JSON"}
        }


# ---------------------------------------------------------------------------
# POST /webhooks/{provider}/{event_name}
# ---------------------------------------------------------------------------


class TestGenericEndpoint:
    async def test_provider_and_event_normalized(self, client, webhook_store):
        response = await client.post(
            "/webhooks/JotForm/Form%20Submit",
            content=b'{"answer": 1}',
            headers={"X-Event-Id": "jf-123"},
        )

        assert response.status_code == 202
        data = response.json()
        assert data["provider"] == "jotform"
        assert data["eventName"] == "form-submit"

        events = await webhook_store.list_events(provider="jotform")
        assert events[0].external_event_id == "jf-123"

    async def test_empty_body_accepted(self, client, webhook_store):
        response = await client.post("/webhooks/typeform/form_response", content=b"")

        assert response.status_code == 202
        event = await webhook_store.get_event(response.json()["eventId"])
        assert event.payload == {}
        assert event.external_event_id.startswith("typeform-")

    async def test_blank_provider_rejected(self, client):
        response = await client.post("/webhooks/%20/form_response", content=b"{}")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_WEBHOOK"
        assert response.json()["error"]["message"] == "provider is required"

    async def test_unknown_provider_still_queued(self, client, dispatcher):
        response = await client.post(
            "/webhooks/acme/thing", content=b"{}", headers={"x-request-id": "acme-1"}
        )

        assert response.status_code == 202
        await dispatcher.join()
        event = await dispatcher.store.get_event(response.json()["eventId"])
        assert event.error_message == 'No webhook handler registered for provider "acme"'

    async def test_store_failure_is_server_error(self, app, client):
        broken = MagicMock()
        broken.enqueue = AsyncMock(side_effect=ConnectionError("database unavailable"))
        app.dependency_overrides[get_webhook_store] = lambda: broken

        response = await client.post("/webhooks/typeform/form_response", content=b"{}")

        assert response.status_code == 500

    async def test_correlation_id_echoed(self, client):
        response = await client.post(
            "/webhooks/typeform/form_response",
            content=b"{}",
            headers={"X-Correlation-ID": "cid-abc"},
        )
        assert response.headers["X-Correlation-ID"] == "cid-abc"
