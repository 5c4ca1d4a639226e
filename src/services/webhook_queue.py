"""
Webhook event store - the durable, deduplicated queue behind provider webhooks.

Contract:
- enqueue() is idempotent on (provider, external_event_id). A duplicate, even
  one that loses a concurrent insert race, gets the existing id back with
  duplicate=True instead of an error.
- claim_next() atomically flips the oldest due PENDING event to PROCESSING and
  bumps attempts. The claim is a single UPDATE whose target row is picked by
  a FOR UPDATE SKIP LOCKED subquery; the outer status guard makes it a
  compare-and-swap on engines without row locks.
- mark_failed() applies linear backoff (attempts * 5s, floor 5s, cap 60s) and
  parks the event in FAILED once attempts are exhausted.

Each call runs in its own short transaction from the injected session factory.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Union

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import aliased

from src.models.webhook_event import (
    STATUS_FAILED,
    STATUS_PENDING,
    STATUS_PROCESSED,
    STATUS_PROCESSING,
    WebhookEvent,
)
from src.schemas.api_responses import WebhookEventSummary

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 5
BACKOFF_STEP_SECONDS = 5
BACKOFF_MIN_SECONDS = 5
BACKOFF_MAX_SECONDS = 60
STALE_CLAIM_SECONDS = 300
DEFAULT_LIST_LIMIT = 50
MAX_LIST_LIMIT = 200
MAX_ERROR_MESSAGE_LENGTH = 2000

EventId = Union[str, uuid.UUID]


class WebhookEventNotFoundError(LookupError):
    """No webhook event with the given id."""


class WebhookEventStateError(ValueError):
    """The event is not in a state that allows the requested transition."""


@dataclass(frozen=True)
class EnqueueResult:
    queued: bool
    event_id: str
    duplicate: bool


@dataclass(frozen=True)
class ClaimedEvent:
    """Snapshot of an event at the moment it was claimed."""
    id: str
    provider: str
    event_type: str
    external_event_id: str
    payload: Any
    attempts: int
    correlation_id: Optional[str] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def compute_backoff_seconds(
    attempts: int,
    step_seconds: int = BACKOFF_STEP_SECONDS,
    min_seconds: int = BACKOFF_MIN_SECONDS,
    max_seconds: int = BACKOFF_MAX_SECONDS,
) -> int:
    """Linear backoff: attempts * step, clamped to [min, max]."""
    return min(max_seconds, max(min_seconds, attempts * step_seconds))


def clamp_list_limit(
    limit: Optional[int],
    default: int = DEFAULT_LIST_LIMIT,
    maximum: int = MAX_LIST_LIMIT,
) -> int:
    """Non-positive or missing limits fall back to the default; never above maximum."""
    if limit is None or limit <= 0:
        return default
    return min(maximum, int(limit))


def _parse_event_id(event_id: EventId) -> Optional[uuid.UUID]:
    if isinstance(event_id, uuid.UUID):
        return event_id
    try:
        return uuid.UUID(str(event_id))
    except ValueError:
        return None


def _to_summary(event: WebhookEvent) -> WebhookEventSummary:
    return WebhookEventSummary(
        id=str(event.id),
        provider=event.provider,
        event_name=event.event_type,
        external_event_id=event.external_event_id,
        status=event.status,
        attempts=event.attempts,
        available_at=event.available_at,
        created_at=event.created_at,
        processed_at=event.processed_at,
        error_message=event.error_message or "",
    )


class WebhookEventStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        max_attempts: int = MAX_ATTEMPTS,
        backoff_step_seconds: int = BACKOFF_STEP_SECONDS,
        backoff_min_seconds: int = BACKOFF_MIN_SECONDS,
        backoff_max_seconds: int = BACKOFF_MAX_SECONDS,
        stale_claim_seconds: int = STALE_CLAIM_SECONDS,
        default_list_limit: int = DEFAULT_LIST_LIMIT,
        max_list_limit: int = MAX_LIST_LIMIT,
    ):
        self._session_factory = session_factory
        self.max_attempts = max_attempts
        self.backoff_step_seconds = backoff_step_seconds
        self.backoff_min_seconds = backoff_min_seconds
        self.backoff_max_seconds = backoff_max_seconds
        self.stale_claim_seconds = stale_claim_seconds
        self.default_list_limit = default_list_limit
        self.max_list_limit = max_list_limit

    @classmethod
    def from_settings(cls, session_factory, settings) -> "WebhookEventStore":
        return cls(
            session_factory,
            max_attempts=settings.webhook_max_attempts,
            backoff_step_seconds=settings.webhook_backoff_step_seconds,
            backoff_min_seconds=settings.webhook_backoff_min_seconds,
            backoff_max_seconds=settings.webhook_backoff_max_seconds,
            stale_claim_seconds=settings.webhook_stale_claim_seconds,
            default_list_limit=settings.webhook_list_default_limit,
            max_list_limit=settings.webhook_list_max_limit,
        )

    def clamp_limit(self, limit: Optional[int]) -> int:
        return clamp_list_limit(limit, self.default_list_limit, self.max_list_limit)

    def backoff_seconds(self, attempts: int) -> int:
        return compute_backoff_seconds(
            attempts,
            self.backoff_step_seconds,
            self.backoff_min_seconds,
            self.backoff_max_seconds,
        )

    async def enqueue(
        self,
        provider: str,
        event_type: str,
        external_event_id: str,
        payload: Any,
        correlation_id: Optional[str] = None,
    ) -> EnqueueResult:
        """Insert a PENDING event, or report the existing one for a duplicate key."""
        now = _utcnow()
        event = WebhookEvent(
            id=uuid.uuid4(),
            provider=provider,
            event_type=event_type,
            external_event_id=external_event_id,
            payload=payload,
            status=STATUS_PENDING,
            attempts=0,
            available_at=now,
            created_at=now,
            correlation_id=correlation_id,
        )

        async with self._session_factory() as session:
            session.add(event)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                result = await session.execute(
                    select(WebhookEvent.id).where(
                        WebhookEvent.provider == provider,
                        WebhookEvent.external_event_id == external_event_id,
                    )
                )
                existing_id = result.scalar_one_or_none()
                if existing_id is None:
                    # Some other constraint failed
                    raise
                logger.info(
                    "Duplicate webhook ignored: provider=%s external_id=%s existing=%s",
                    provider, external_event_id[:40], str(existing_id)[:8],
                )
                return EnqueueResult(queued=False, event_id=str(existing_id), duplicate=True)

        logger.info(
            "Webhook queued: provider=%s type=%s external_id=%s event=%s",
            provider, event_type, external_event_id[:40], str(event.id)[:8],
        )
        return EnqueueResult(queued=True, event_id=str(event.id), duplicate=False)

    async def claim_next(self, provider: str) -> Optional[ClaimedEvent]:
        """Claim the oldest due PENDING event for a provider, or None if none is due."""
        now = _utcnow()
        # Aliased so the subquery is not correlated to the UPDATE target
        queued = aliased(WebhookEvent)
        candidate = (
            select(queued.id)
            .where(
                queued.provider == provider,
                queued.status == STATUS_PENDING,
                queued.available_at <= now,
            )
            .order_by(queued.created_at.asc(), queued.id.asc())
            .limit(1)
            .with_for_update(skip_locked=True)
            .scalar_subquery()
        )
        stmt = (
            update(WebhookEvent)
            .where(
                WebhookEvent.id == candidate,
                WebhookEvent.status == STATUS_PENDING,
            )
            .values(
                status=STATUS_PROCESSING,
                attempts=WebhookEvent.attempts + 1,
                claimed_at=now,
            )
            .returning(
                WebhookEvent.id,
                WebhookEvent.provider,
                WebhookEvent.event_type,
                WebhookEvent.external_event_id,
                WebhookEvent.payload,
                WebhookEvent.attempts,
                WebhookEvent.correlation_id,
            )
            .execution_options(synchronize_session=False)
        )

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            row = result.first()
            await session.commit()

        if row is None:
            return None

        claimed = ClaimedEvent(
            id=str(row.id),
            provider=row.provider,
            event_type=row.event_type,
            external_event_id=row.external_event_id,
            payload=row.payload,
            attempts=row.attempts,
            correlation_id=row.correlation_id,
        )
        logger.debug(
            "Webhook claimed: provider=%s event=%s attempt=%d",
            provider, claimed.id[:8], claimed.attempts,
        )
        return claimed

    async def mark_processed(self, event_id: EventId) -> None:
        now = _utcnow()
        async with self._session_factory() as session:
            await session.execute(
                update(WebhookEvent)
                .where(WebhookEvent.id == _parse_event_id(event_id))
                .values(status=STATUS_PROCESSED, processed_at=now, error_message=None)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
        logger.info("Webhook processed: event=%s", str(event_id)[:8])

    async def mark_failed(self, event_id: EventId, message: str, attempts: int) -> str:
        """
        Record a handler failure for a claimed event.

        attempts is the count as of the claim. Returns the resulting status:
        PENDING (scheduled for retry) or FAILED (attempts exhausted).
        """
        now = _utcnow()
        message = (message or "Unknown webhook processing error")[:MAX_ERROR_MESSAGE_LENGTH]

        if attempts >= self.max_attempts:
            values = {"status": STATUS_FAILED, "error_message": message}
        else:
            delay = self.backoff_seconds(attempts)
            values = {
                "status": STATUS_PENDING,
                "available_at": now + timedelta(seconds=delay),
                "error_message": message,
            }

        async with self._session_factory() as session:
            await session.execute(
                update(WebhookEvent)
                .where(WebhookEvent.id == _parse_event_id(event_id))
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await session.commit()

        if values["status"] == STATUS_FAILED:
            logger.error(
                "Webhook permanently failed after %d attempts: event=%s error=%s",
                attempts, str(event_id)[:8], message[:200],
            )
        else:
            logger.warning(
                "Webhook retry %d/%d scheduled in %ds: event=%s error=%s",
                attempts, self.max_attempts, self.backoff_seconds(attempts),
                str(event_id)[:8], message[:200],
            )
        return values["status"]

    async def get_event(self, event_id: EventId) -> Optional[WebhookEvent]:
        parsed = _parse_event_id(event_id)
        if parsed is None:
            return None
        async with self._session_factory() as session:
            return await session.get(WebhookEvent, parsed)

    async def list_events(
        self,
        provider: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[WebhookEventSummary]:
        """Newest-first event summaries, optionally for a single provider."""
        provider = (provider or "").strip().lower()
        limit = clamp_list_limit(limit, self.default_list_limit, self.max_list_limit)

        query = select(WebhookEvent).order_by(WebhookEvent.created_at.desc()).limit(limit)
        if provider:
            query = query.where(WebhookEvent.provider == provider)

        async with self._session_factory() as session:
            result = await session.execute(query)
            events = result.scalars().all()

        return [_to_summary(event) for event in events]

    async def requeue_failed(self, event_id: EventId) -> WebhookEventSummary:
        """Operator retry: put a FAILED event back to PENDING with a fresh attempt budget."""
        parsed = _parse_event_id(event_id)
        if parsed is None:
            raise WebhookEventNotFoundError(str(event_id))

        now = _utcnow()
        async with self._session_factory() as session:
            event = await session.get(WebhookEvent, parsed, with_for_update=True)
            if event is None:
                raise WebhookEventNotFoundError(str(event_id))
            if event.status != STATUS_FAILED:
                raise WebhookEventStateError(
                    f"Only FAILED events can be retried (status is {event.status})"
                )
            event.status = STATUS_PENDING
            event.attempts = 0
            event.available_at = now
            await session.commit()
            summary = _to_summary(event)

        logger.info("Webhook requeued by operator: event=%s", str(parsed)[:8])
        return summary

    async def release_stale_claims(self, older_than_seconds: Optional[int] = None) -> int:
        """Return PROCESSING events whose claim was never acknowledged to PENDING."""
        seconds = self.stale_claim_seconds if older_than_seconds is None else older_than_seconds
        now = _utcnow()
        cutoff = now - timedelta(seconds=seconds)

        async with self._session_factory() as session:
            result = await session.execute(
                update(WebhookEvent)
                .where(
                    WebhookEvent.status == STATUS_PROCESSING,
                    WebhookEvent.claimed_at < cutoff,
                )
                .values(
                    status=STATUS_PENDING,
                    available_at=now,
                    error_message="Claim expired before acknowledgement",
                )
                .execution_options(synchronize_session=False)
            )
            await session.commit()

        released = result.rowcount or 0
        if released:
            logger.warning("Released %d stale webhook claims (older than %ds)", released, seconds)
        return released

    async def due_providers(self) -> list[str]:
        """Providers that currently have claimable events."""
        now = _utcnow()
        async with self._session_factory() as session:
            result = await session.execute(
                select(WebhookEvent.provider)
                .where(
                    WebhookEvent.status == STATUS_PENDING,
                    WebhookEvent.available_at <= now,
                )
                .distinct()
            )
            return list(result.scalars().all())
