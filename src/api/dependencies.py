"""
Shared FastAPI dependencies - the stores and dispatcher built in the lifespan.
Tests swap them out with app.dependency_overrides.
"""
from fastapi import Request

from src.services.driver_store import DriverStore
from src.services.webhook_queue import WebhookEventStore
from src.workers.webhook_dispatcher import WebhookDispatcher


def get_webhook_store(request: Request) -> WebhookEventStore:
    return request.app.state.webhook_store


def get_driver_store(request: Request) -> DriverStore:
    return request.app.state.driver_store


def get_dispatcher(request: Request) -> WebhookDispatcher:
    return request.app.state.dispatcher
