"""Webhook inbox: durable record of every acknowledged Telnyx webhook.

The receiver stores the raw payload and answers Telnyx right away.
``process_event`` then applies it in its own session, and ``retry_pending``
re-runs events whose processing failed or never finished.

Status lifecycle:
    received -> processed | ignored | failed
    failed   -> processed | failed | dead  (after WEBHOOK_MAX_ATTEMPTS)

A dead event posts a system alert to the notification channel.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone

from pydantic import ValidationError
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from prontoplus.app.config import get_settings
from prontoplus.domain.enums import WebhookEventStatus
from prontoplus.domain.models import WebhookEvent
from prontoplus.domain.telnyx_events import event_type_of, external_call_id_of, parse_event
from prontoplus.infra.database import async_session
from prontoplus.services.feature_flags import FlagEvaluator
from prontoplus.services.notification_service import send_system_alert
from prontoplus.services.slack_service import MessageSender
from prontoplus.services.telnyx_service import TelnyxService

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = (
    WebhookEventStatus.PROCESSED.value,
    WebhookEventStatus.IGNORED.value,
    WebhookEventStatus.DEAD.value,
)

MAX_ERROR_LENGTH = 2000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def record_event(db: AsyncSession, payload: dict) -> WebhookEvent:
    """Insert a ``received`` row for a raw webhook body. Caller commits."""
    event = WebhookEvent(
        event_type=event_type_of(payload),
        external_call_id=external_call_id_of(payload),
        payload=payload,
        status=WebhookEventStatus.RECEIVED.value,
        attempts=0,
        received_at=_utcnow(),
    )
    db.add(event)
    await db.flush()
    logger.info("Webhook recorded: %s (type=%s)", event.id, event.event_type)
    return event


async def process_event(
    event_id: str,
    session_factory: async_sessionmaker = async_session,
    sender: MessageSender | None = None,
    flags: FlagEvaluator | None = None,
) -> str | None:
    """Apply one inbox event in a fresh session and record the outcome.

    Returns the resulting status, or None if the event does not exist.
    Handler exceptions are logged and stored on the row, never raised.
    """
    max_attempts = get_settings().webhook_max_attempts

    async with session_factory() as db:
        row = await db.get(WebhookEvent, event_id)
        if row is None:
            logger.warning("Webhook event %s not found", event_id)
            return None
        if row.status in TERMINAL_STATUSES:
            return row.status

        try:
            event = parse_event(row.payload)
        except ValidationError as e:
            logger.warning("Malformed %s webhook %s: %s", row.event_type, event_id, e)
            row.status = WebhookEventStatus.IGNORED.value
            row.last_error = str(e)[:MAX_ERROR_LENGTH]
            row.processed_at = _utcnow()
            await db.commit()
            return row.status

        if event is None:
            logger.info("Unhandled Telnyx event type %r, ignoring", row.event_type)
            row.status = WebhookEventStatus.IGNORED.value
            row.processed_at = _utcnow()
            await db.commit()
            return row.status

        event_type = row.event_type
        attempts = (row.attempts or 0) + 1
        try:
            service = TelnyxService(db, sender=sender, flags=flags)
            await service.handle_event(event)

            row.status = WebhookEventStatus.PROCESSED.value
            row.attempts = attempts
            row.last_error = None
            row.processed_at = _utcnow()
            await db.commit()
            return row.status
        except Exception as e:
            logger.error(
                "Webhook %s (%s) failed on attempt %d: %s",
                event_id, event_type, attempts, e, exc_info=True,
            )
            error = str(e)[:MAX_ERROR_LENGTH]
            await db.rollback()

        # Handler writes were rolled back; record only the failure
        row = await db.get(WebhookEvent, event_id)
        row.attempts = attempts
        row.last_error = error
        if attempts >= max_attempts:
            row.status = WebhookEventStatus.DEAD.value
            logger.error("Webhook %s marked dead after %d attempts", event_id, attempts)
        else:
            row.status = WebhookEventStatus.FAILED.value
        await db.commit()

        if row.status == WebhookEventStatus.DEAD.value:
            await send_system_alert(
                "Webhook processing failed",
                f"Telnyx {event_type or 'unknown'} event {event_id} gave up after {attempts} attempts: {error}",
                severity="error",
                sender=sender,
            )
        return row.status


async def retry_pending(
    session_factory: async_sessionmaker = async_session,
    now: datetime | None = None,
    sender: MessageSender | None = None,
    flags: FlagEvaluator | None = None,
) -> int:
    """Re-run failed events and events stuck in ``received``.

    Returns the number of events retried.
    """
    settings = get_settings()
    now = now or _utcnow()
    stale_before = now - timedelta(seconds=settings.webhook_stale_after_seconds)

    async with session_factory() as db:
        result = await db.execute(
            select(WebhookEvent.id)
            .where(
                or_(
                    WebhookEvent.status == WebhookEventStatus.FAILED.value,
                    (WebhookEvent.status == WebhookEventStatus.RECEIVED.value)
                    & (WebhookEvent.received_at <= stale_before),
                ),
                WebhookEvent.attempts < settings.webhook_max_attempts,
            )
            .order_by(WebhookEvent.received_at)
        )
        event_ids = list(result.scalars().all())

    # Oldest first so call.initiated lands before later events for the same call
    for event_id in event_ids:
        await process_event(event_id, session_factory=session_factory, sender=sender, flags=flags)

    if event_ids:
        logger.info("Webhook inbox: retried %d events", len(event_ids))
    return len(event_ids)


async def inbox_retry_loop():
    """Run the inbox retry sweep every WEBHOOK_RETRY_INTERVAL_SECONDS."""
    interval = get_settings().webhook_retry_interval_seconds
    while True:
        await asyncio.sleep(interval)
        try:
            await retry_pending()
        except Exception as e:
            logger.error("Webhook inbox retry error: %s", e, exc_info=True)
