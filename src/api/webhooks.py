"""
Webhook endpoints - receive form provider submissions.

Ingestion only validates and queues: the response is 202 as soon as the event
is stored (or recognised as a duplicate), and processing happens in the
background dispatch loop. Malformed requests get
400 {"error": {"code": "INVALID_WEBHOOK", "message": ...}}.
"""
import logging
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from src.api.dependencies import get_dispatcher, get_webhook_store
from src.schemas.api_responses import ErrorResponse, WebhookAcceptedResponse
from src.services.webhook_ingestion import WebhookIngestionError, ingest_provider_webhook
from src.services.webhook_queue import WebhookEventStore
from src.workers.webhook_dispatcher import WebhookDispatcher

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/webhooks", tags=["webhooks"])

LEGACY_TYPEFORM_EVENT_NAME = "submission.received"

_WEBHOOK_RESPONSES = {400: {"model": ErrorResponse, "description": "Invalid webhook"}}


def _invalid_webhook(message: str) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": {"code": "INVALID_WEBHOOK", "message": message}},
    )


async def _ingest(
    request: Request,
    provider: str,
    event_name: str,
    store: WebhookEventStore,
    dispatcher: WebhookDispatcher,
):
    body = await request.body()
    try:
        result = await ingest_provider_webhook(
            store,
            dispatcher,
            provider=provider,
            event_name=event_name,
            raw_payload=body,
            headers=dict(request.headers),
        )
    except WebhookIngestionError as e:
        logger.warning(
            "Rejected webhook: provider=%s event=%s error=%s",
            provider, event_name, str(e),
        )
        return _invalid_webhook(str(e))

    return WebhookAcceptedResponse(
        accepted=result.accepted,
        duplicate=result.duplicate,
        event_id=result.event_id,
        provider=result.provider,
        event_name=result.event_name,
    )


@router.post(
    "/typeform",
    status_code=202,
    response_model=WebhookAcceptedResponse,
    responses=_WEBHOOK_RESPONSES,
)
async def typeform_webhook(
    request: Request,
    store: WebhookEventStore = Depends(get_webhook_store),
    dispatcher: WebhookDispatcher = Depends(get_dispatcher),
):
    """Backward-compatible Typeform endpoint (the form's original webhook URL)."""
    return await _ingest(request, "typeform", LEGACY_TYPEFORM_EVENT_NAME, store, dispatcher)


@router.post(
    "/{provider}/{event_name}",
    status_code=202,
    response_model=WebhookAcceptedResponse,
    responses=_WEBHOOK_RESPONSES,
)
async def provider_webhook(
    provider: str,
    event_name: str,
    request: Request,
    store: WebhookEventStore = Depends(get_webhook_store),
    dispatcher: WebhookDispatcher = Depends(get_dispatcher),
):
    """Generic provider webhook: POST /webhooks/{provider}/{event_name}."""
    return await _ingest(request, provider, event_name, store, dispatcher)
