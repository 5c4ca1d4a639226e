"""
Database models - import all models here so Alembic can discover them.
"""
from src.models.driver import Driver
from src.models.audit_event import AuditEvent
from src.models.webhook_event import WebhookEvent

__all__ = [
    "Driver",
    "AuditEvent",
    "WebhookEvent",
]
