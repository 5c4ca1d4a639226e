"""
Test configuration and fixtures.
Uses a temp-file SQLite database so concurrent sessions see each other's
commits. Mocks Redis and SendGrid.
"""
import pytest
from unittest.mock import AsyncMock, patch
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.dialects.postgresql import JSONB

import src.models  # noqa: F401  (registers tables on Base.metadata)
from src.database import Base
from src.schemas.drivers import DriverRecord
from src.services.driver_store import DriverStore
from src.services.webhook_queue import WebhookEventStore


# Register JSONB as JSON for SQLite compatibility in tests
@compiles(JSONB, "sqlite")
def _compile_jsonb_sqlite(type_, compiler, **kw):
    return "JSON"


@pytest.fixture
async def engine(tmp_path):
    """File-backed SQLite engine with the full schema."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'driverdesk.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def webhook_store(session_factory):
    return WebhookEventStore(session_factory)


@pytest.fixture
def driver_store(session_factory):
    return DriverStore(session_factory)


def _jordan_lee_record(**overrides) -> DriverRecord:
    """Reference driver used across the Typeform scenarios."""
    data = {
        "id": "5",
        "name": "Jordan Lee",
        "first_name": "Jordan",
        "last_name": "Lee",
        "email": "jordan.lee@example.com",
        "phone": "+1 555-0105",
        "status": "INTERNAL_DETAILS_COMPLETED",
        "applied_at": "2025-02-05T16:45:00Z",
        "date_of_birth": "1996-12-29",
        "national_insurance_number": "QQ523456G",
        "id_document_type": "Passport",
        "id_check_completed": True,
        "address_line_1": "8 West End",
        "city": "Birmingham",
        "postcode": "B1 1AA",
        "emergency_contact_name": "Chris Lee",
        "emergency_contact_phone": "+44 7700 900555",
        "vehicle_type": "Car",
        "notes": "Strong customer rating in prior role.",
    }
    data.update(overrides)
    return DriverRecord(**data)


@pytest.fixture
def make_driver():
    """Factory for DriverRecords based on Jordan Lee, with overrides."""
    return _jordan_lee_record


@pytest.fixture
async def jordan_lee(driver_store):
    """Jordan Lee stored with a CREATED audit event."""
    return await driver_store.create_driver(_jordan_lee_record(), actor="seed")


@pytest.fixture
def mock_redis():
    """Mock for async Redis, prevents real Redis calls in tests."""
    with patch("src.utils.heartbeat.get_redis", new_callable=AsyncMock) as mock:
        redis_mock = AsyncMock()
        redis_mock.set = AsyncMock(return_value=True)
        redis_mock.get = AsyncMock(return_value=None)
        redis_mock.ping = AsyncMock(return_value=True)
        mock.return_value = redis_mock
        yield redis_mock


@pytest.fixture
def typeform_payload():
    """Build a Typeform form_response webhook body."""

    def _build(
        *,
        event_id: str | None = "evt-typeform-1",
        token: str | None = "tok-1",
        hidden: dict | None = None,
        answers: list | None = None,
        submitted_at: str | None = "2026-03-01T09:30:00Z",
    ) -> dict:
        return {
            "event_id": event_id,
            "event_type": "form_response",
            "form_response": {
                "form_id": "IlRPTScI",
                "token": token,
                "submitted_at": submitted_at,
                "hidden": hidden if hidden is not None else {},
                "answers": answers if answers is not None else [],
            },
        }

    return _build


@pytest.fixture
def dispatcher(webhook_store, driver_store):
    from src.integrations import build_provider_handlers
    from src.workers.webhook_dispatcher import WebhookDispatcher
    return WebhookDispatcher(webhook_store, build_provider_handlers(driver_store))


@pytest.fixture
def app(webhook_store, driver_store, dispatcher):
    """App wired to the test stores. The lifespan (poller, Sentry) is not run."""
    from src.api.dependencies import get_dispatcher, get_driver_store, get_webhook_store
    from src.main import create_app

    application = create_app()
    application.dependency_overrides[get_webhook_store] = lambda: webhook_store
    application.dependency_overrides[get_driver_store] = lambda: driver_store
    application.dependency_overrides[get_dispatcher] = lambda: dispatcher
    return application


@pytest.fixture
async def client(app, dispatcher):
    import httpx

    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
    await dispatcher.join()
