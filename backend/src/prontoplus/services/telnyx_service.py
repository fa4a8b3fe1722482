"""Telnyx call lifecycle handling.

Handles five Telnyx event types:
- call.initiated: create the Call row, capture a lead when caller id is present
- call.answered: mark the call answered
- call.completed: close the call, score the lead, notify sales
- call.recording.saved: attach the recording URL
- call.transcript.ready: attach the transcript URL

Recording and transcript events race with completion; they patch whatever
Call row exists when they arrive.
"""

import hashlib
import hmac
import logging
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from prontoplus.domain.enums import CallDirection, CallStatus
from prontoplus.domain.models import Call
from prontoplus.domain.telnyx_events import (
    CallAnswered,
    CallCompleted,
    CallInitiated,
    RecordingSaved,
    TelnyxEvent,
    TranscriptReady,
)
from prontoplus.services.feature_flags import LEAD_NOTIFICATIONS, FlagEvaluator, SettingsFlagEvaluator
from prontoplus.services.lead_service import CallMetrics, LeadService
from prontoplus.services.notification_gate import NotificationGate
from prontoplus.services.notification_service import LeadNotificationService
from prontoplus.services.slack_service import MessageSender
from prontoplus.services.telnyx_client import TelnyxClient

logger = logging.getLogger(__name__)

SIGNATURE_HEADERS = ("telnyx-signature", "x-telnyx-signature")

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


class CallNotFoundError(Exception):
    """Raised when a call id does not exist."""

    def __init__(self, call_id: str):
        super().__init__(f"Call with ID {call_id} not found")
        self.call_id = call_id


def verify_webhook_signature(body: bytes, signature: str | None, secret: str | None) -> bool:
    """Check an HMAC-SHA256 hex signature over the raw request body.

    Accepts everything when no secret is configured (local dev).
    """
    if not secret:
        return True
    if not signature:
        return False

    if signature.startswith("sha256="):
        signature = signature[len("sha256="):]

    expected = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(signature.encode(), expected.encode())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class TelnyxService:
    """Applies Telnyx webhook events to calls and leads, and queries calls."""

    def __init__(
        self,
        db: AsyncSession,
        sender: MessageSender | None = None,
        flags: FlagEvaluator | None = None,
        gate: NotificationGate | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.db = db
        self.clock = clock
        self.leads = LeadService(db)
        self.notifications = LeadNotificationService(db, sender=sender, clock=clock)
        self.flags = flags or SettingsFlagEvaluator()
        self.gate = gate or NotificationGate(db, clock=clock)
        self._handlers = {
            CallInitiated: self.handle_call_initiated,
            CallAnswered: self.handle_call_answered,
            CallCompleted: self.handle_call_completed,
            RecordingSaved: self.handle_recording_saved,
            TranscriptReady: self.handle_transcript_ready,
        }

    async def handle_event(self, event: TelnyxEvent) -> None:
        """Dispatch a parsed event to its handler."""
        handler = self._handlers.get(type(event))
        if handler is None:
            logger.info("No handler for Telnyx event %s", type(event).__name__)
            return
        await handler(event)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_call_by_telnyx_id(self, telnyx_call_id: str) -> Call | None:
        result = await self.db.execute(
            select(Call).where(Call.telnyx_call_id == telnyx_call_id)
        )
        return result.scalar_one_or_none()

    async def get_call(self, call_id: str) -> Call:
        call = await self.db.get(Call, call_id)
        if not call:
            raise CallNotFoundError(call_id)
        return call

    async def get_recording_url(self, call_id: str, client: TelnyxClient) -> str | None:
        """Stored recording URL, else look it up on Telnyx and store it.

        Raises TelnyxAPIError when the lookup fails.
        """
        call = await self.get_call(call_id)
        if call.recording_url or not call.telnyx_call_control_id or not client.configured:
            return call.recording_url

        url = await client.get_call_recording(call.telnyx_call_control_id)
        if url:
            call.recording_url = url
            await self.db.flush()
            logger.info("Recording fetched from Telnyx for call %s", call_id)
        return url

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    async def handle_call_initiated(self, event: CallInitiated) -> Call:
        existing = await self.get_call_by_telnyx_id(event.id)
        if existing:
            logger.info("Duplicate call.initiated for %s ignored", event.id)
            return existing

        now = self.clock()
        call = Call(
            telnyx_call_id=event.id,
            telnyx_call_control_id=event.call_control_id,
            phone_number=event.from_,
            caller_name=event.from_display_name,
            direction=(CallDirection.INBOUND if event.is_inbound else CallDirection.OUTBOUND).value,
            status=CallStatus.INITIATED.value,
            call_duration=0,
            started_at=_as_utc(event.created_at) or now,
            call_metadata=event.raw(),
        )
        self.db.add(call)
        await self.db.flush()
        logger.info("Call initiated: %s from %s", event.id, event.from_ or "unknown")

        if event.from_:
            await self.leads.capture_lead_from_call(call.id, event.from_, now=now)
        return call

    async def handle_call_answered(self, event: CallAnswered) -> Call | None:
        call = await self.get_call_by_telnyx_id(event.id)
        if not call:
            logger.warning("call.answered for unknown call %s", event.id)
            return None

        call.status = CallStatus.ANSWERED.value
        call.answered_at = _as_utc(event.answered_at) or self.clock()
        await self.db.flush()
        logger.info("Call answered: %s", event.id)
        return call

    async def handle_call_completed(self, event: CallCompleted) -> Call | None:
        call = await self.get_call_by_telnyx_id(event.id)
        if not call:
            logger.warning("call.completed for unknown call %s", event.id)
            return None

        now = self.clock()
        call.status = CallStatus.COMPLETED.value
        call.call_duration = event.duration_seconds
        call.ended_at = _as_utc(event.ended_at) or now
        call.call_metadata = {**(call.call_metadata or {}), **event.raw()}
        await self.db.flush()
        logger.info("Call completed: %s (%ds)", event.id, event.duration_seconds)

        metrics = CallMetrics(
            duration=event.duration_seconds,
            transcript=event.transcript,
            sentiment=event.sentiment_score,
            topics=tuple(event.topics),
        )
        lead = await self.leads.capture_and_score(call.id, call.phone_number, metrics, now=now)

        if not self.flags.is_enabled(LEAD_NOTIFICATIONS, default=True):
            logger.info("Lead notifications disabled, skipping lead %s", lead.id)
        elif await self.gate.should_notify(lead.id):
            await self.notifications.send_lead_notification(call, lead)
        return call

    async def handle_recording_saved(self, event: RecordingSaved) -> Call | None:
        call = await self.get_call_by_telnyx_id(event.call_id)
        if not call:
            logger.warning("call.recording.saved for unknown call %s", event.call_id)
            return None

        url = event.recording_url
        if url:
            call.recording_url = url
            await self.db.flush()
            logger.info("Recording saved for call %s", event.call_id)
        return call

    async def handle_transcript_ready(self, event: TranscriptReady) -> Call | None:
        call = await self.get_call_by_telnyx_id(event.call_id)
        if not call:
            logger.warning("call.transcript.ready for unknown call %s", event.call_id)
            return None

        if event.transcript_url:
            call.transcript_url = event.transcript_url
            await self.db.flush()
            logger.info("Transcript ready for call %s", event.call_id)
        return call

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_calls(
        self,
        status: CallStatus | None = None,
        direction: CallDirection | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> tuple[list[Call], int]:
        """Newest-first page of calls plus the total matching count."""
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        page = max(1, page)

        filters = []
        if status is not None:
            filters.append(Call.status == CallStatus(status).value)
        if direction is not None:
            filters.append(Call.direction == CallDirection(direction).value)
        if start_date is not None:
            filters.append(Call.started_at >= start_date)
        if end_date is not None:
            filters.append(Call.started_at <= end_date)

        total_result = await self.db.execute(
            select(func.count()).select_from(Call).where(*filters)
        )
        total = total_result.scalar() or 0

        result = await self.db.execute(
            select(Call)
            .where(*filters)
            .order_by(Call.started_at.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        )
        return list(result.scalars().all()), total

    async def get_call_analytics(
        self,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> dict:
        filters = []
        if start_date is not None:
            filters.append(Call.started_at >= start_date)
        if end_date is not None:
            filters.append(Call.started_at <= end_date)

        total_result = await self.db.execute(
            select(func.count()).select_from(Call).where(*filters)
        )
        total = total_result.scalar() or 0

        completed_result = await self.db.execute(
            select(func.count(), func.avg(Call.call_duration))
            .select_from(Call)
            .where(*filters, Call.status == CallStatus.COMPLETED.value)
        )
        completed, avg_duration = completed_result.one()

        return {
            "total": total,
            "completed": completed or 0,
            "averageDuration": float(avg_duration or 0),
            "completionRate": (completed / total) * 100 if total > 0 else 0,
        }
