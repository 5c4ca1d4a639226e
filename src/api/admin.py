"""
Operator endpoints - webhook monitoring and driver record maintenance.

Mounted under /api/v1. Authentication is handled by the gateway in front of
this service.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import IntegrityError

from src.api.dependencies import get_dispatcher, get_driver_store, get_webhook_store
from src.schemas.api_responses import (
    FormInvitationResponse,
    WebhookEventListResponse,
    WebhookEventSummary,
)
from src.schemas.drivers import DriverCreateRequest, DriverRecord, DriverUpdateRequest
from src.services.driver_store import DriverStore
from src.services.forms import FormInvitationError, send_additional_details_form
from src.services.webhook_queue import (
    WebhookEventNotFoundError,
    WebhookEventStateError,
    WebhookEventStore,
)
from src.workers.webhook_dispatcher import WebhookDispatcher

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["admin"])


# ---------------------------------------------------------------------------
# Webhook monitoring
# ---------------------------------------------------------------------------

@router.get("/webhook-events", response_model=WebhookEventListResponse)
async def list_webhook_events(
    provider: Optional[str] = Query(None),
    limit: Optional[int] = Query(None),
    store: WebhookEventStore = Depends(get_webhook_store),
):
    """Newest-first webhook events. limit defaults to 50, capped at 200."""
    events = await store.list_events(provider=provider, limit=limit)
    normalized = (provider or "").strip().lower() or None
    return WebhookEventListResponse(
        events=events,
        provider=normalized,
        limit=store.clamp_limit(limit),
    )


@router.post("/webhook-events/{event_id}/retry", response_model=WebhookEventSummary)
async def retry_webhook_event(
    event_id: str,
    store: WebhookEventStore = Depends(get_webhook_store),
    dispatcher: WebhookDispatcher = Depends(get_dispatcher),
):
    """Requeue a FAILED event with a fresh attempt budget."""
    try:
        summary = await store.requeue_failed(event_id)
    except WebhookEventNotFoundError:
        raise HTTPException(status_code=404, detail="Webhook event not found")
    except WebhookEventStateError as e:
        raise HTTPException(status_code=409, detail=str(e))

    dispatcher.trigger(summary.provider)
    return summary


# ---------------------------------------------------------------------------
# Drivers
# ---------------------------------------------------------------------------

@router.get("/drivers/{driver_id}", response_model=DriverRecord)
async def get_driver(
    driver_id: str,
    drivers: DriverStore = Depends(get_driver_store),
):
    driver = await drivers.get_driver(driver_id)
    if driver is None:
        raise HTTPException(status_code=404, detail="Driver not found")
    return driver


@router.post("/drivers", response_model=DriverRecord, status_code=201)
async def create_driver(
    payload: DriverCreateRequest,
    drivers: DriverStore = Depends(get_driver_store),
):
    record = DriverRecord(**payload.model_dump(exclude={"actor"}))
    try:
        return await drivers.create_driver(record, actor=payload.actor)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except IntegrityError:
        logger.warning("Driver create rejected, id already exists: driver=%s", payload.id)
        raise HTTPException(status_code=409, detail="Driver already exists")


@router.put("/drivers/{driver_id}", response_model=DriverRecord)
async def update_driver(
    driver_id: str,
    payload: DriverUpdateRequest,
    drivers: DriverStore = Depends(get_driver_store),
):
    """Merge the supplied fields onto the stored driver; one audit event per change."""
    current = await drivers.get_driver(driver_id)
    if current is None:
        raise HTTPException(status_code=404, detail="Driver not found")

    incoming = current.model_copy(update=payload.patch())
    try:
        updated = await drivers.update_driver(incoming, actor=payload.actor)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    if updated is None:
        raise HTTPException(status_code=404, detail="Driver not found")
    return updated


@router.post(
    "/drivers/{driver_id}/additional-details-form",
    response_model=FormInvitationResponse,
)
async def send_driver_additional_details_form(
    driver_id: str,
    monday_id: Optional[str] = Query(None),
    drivers: DriverStore = Depends(get_driver_store),
):
    """Email the driver a prefilled Typeform link for their additional details."""
    driver = await drivers.get_driver(driver_id)
    if driver is None:
        raise HTTPException(status_code=404, detail="Driver not found")

    try:
        result = await send_additional_details_form(driver, monday_id=monday_id)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except FormInvitationError as e:
        raise HTTPException(status_code=502, detail=str(e))

    return FormInvitationResponse(
        sent=result.sent,
        prefilled_url=result.prefilled_url,
        qr_code_url=result.qr_code_url,
        message_id=result.message_id,
    )
