"""
API response schemas for the webhook ingestion and operator endpoints.
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class WebhookAcceptedResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    accepted: bool = True
    duplicate: bool
    event_id: str = Field(alias="eventId")
    provider: str
    event_name: str = Field(alias="eventName")


class ErrorDetail(BaseModel):
    code: str
    message: str


class ErrorResponse(BaseModel):
    error: ErrorDetail


class WebhookEventSummary(BaseModel):
    id: str
    provider: str
    event_name: str
    external_event_id: str
    status: str
    attempts: int
    available_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    error_message: str = ""


class WebhookEventListResponse(BaseModel):
    events: list[WebhookEventSummary]
    provider: Optional[str] = None
    limit: int


class FormInvitationResponse(BaseModel):
    sent: bool
    prefilled_url: str
    qr_code_url: str
    message_id: str = ""
