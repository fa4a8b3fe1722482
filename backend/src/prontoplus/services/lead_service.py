"""Lead Service: capture, scoring, deduplication and reporting for demo leads."""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from prontoplus.domain.enums import LeadInterest
from prontoplus.domain.models import Lead
from prontoplus.services.lead_scorer import LeadScore, score_lead

logger = logging.getLogger(__name__)

# Repeat calls from one number inside this window collapse onto one lead
DEDUP_WINDOW = timedelta(days=7)

DEFAULT_PAGE_SIZE = 50


class LeadNotFoundError(Exception):
    """Raised when a lead id does not exist."""

    def __init__(self, lead_id: str):
        super().__init__(f"Lead with ID {lead_id} not found")
        self.lead_id = lead_id


@dataclass(frozen=True)
class CallMetrics:
    """Inputs the scorer needs from a completed call."""

    duration: int = 0
    transcript: Optional[str] = None
    sentiment: Optional[float] = None
    topics: tuple[str, ...] = ()


class LeadService:
    """Persists and queries leads derived from Telnyx calls."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_lead(self, lead_id: str) -> Lead:
        lead = await self.db.get(Lead, lead_id)
        if not lead:
            raise LeadNotFoundError(lead_id)
        return lead

    async def get_lead_by_call_id(self, call_id: str) -> Lead | None:
        result = await self.db.execute(select(Lead).where(Lead.call_id == call_id))
        return result.scalar_one_or_none()

    async def find_recent_lead_by_phone(
        self, caller_phone: str, now: datetime | None = None
    ) -> Lead | None:
        """Most recent lead for this number created inside the dedup window."""
        now = now or datetime.now(timezone.utc)
        result = await self.db.execute(
            select(Lead)
            .where(
                Lead.caller_phone == caller_phone,
                Lead.created_at >= now - DEDUP_WINDOW,
            )
            .order_by(Lead.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------

    async def capture_lead_from_call(
        self,
        call_id: str,
        caller_phone: str | None,
        now: datetime | None = None,
    ) -> Lead | None:
        """Record an unscored lead as soon as a call with caller id starts.

        Returns the call's existing lead, or the caller's lead from the dedup
        window, before creating anything. Without a caller id nothing is
        captured here; the completion event still scores the call.
        """
        existing = await self.get_lead_by_call_id(call_id)
        if existing:
            logger.info("Lead already exists for call %s", call_id)
            return existing

        if not caller_phone:
            return None

        now = now or datetime.now(timezone.utc)
        recent = await self.find_recent_lead_by_phone(caller_phone, now=now)
        if recent:
            logger.info("Repeat caller %s within dedup window, reusing lead %s", caller_phone, recent.id)
            return recent

        lead = Lead(
            call_id=call_id,
            caller_phone=caller_phone,
            captured=True,
            captured_at=now,
            created_at=now,
            updated_at=now,
        )
        self.db.add(lead)
        await self.db.flush()

        logger.info("Lead captured for call %s: %s", call_id, lead.id)
        return lead

    async def capture_and_score(
        self,
        call_id: str,
        caller_phone: str | None,
        metrics: CallMetrics,
        now: datetime | None = None,
    ) -> Lead:
        """Score a completed call and upsert the caller's lead.

        A lead for the same phone created in the trailing 7 days is
        overwritten with this call's scoring (last call wins; earlier
        signals are not merged). Otherwise a new lead tied to ``call_id``
        is created.
        """
        now = now or datetime.now(timezone.utc)
        scoring = score_lead(
            duration=metrics.duration,
            transcript=metrics.transcript,
            sentiment=metrics.sentiment,
            topics=metrics.topics,
        )

        lead = None
        if caller_phone:
            lead = await self.find_recent_lead_by_phone(caller_phone, now=now)
        if lead is None:
            # No caller id: the only lead this call can own is its own
            lead = await self.get_lead_by_call_id(call_id)

        if lead is not None:
            self._apply_scoring(lead, scoring, metrics)
            lead.updated_at = now
            await self.db.flush()
            logger.info(
                "Lead %s re-scored from call %s: %d (%s)",
                lead.id, call_id, scoring.score, scoring.quality.value,
            )
            return lead

        lead = Lead(
            call_id=call_id,
            caller_phone=caller_phone,
            captured=True,
            captured_at=now,
            created_at=now,
            updated_at=now,
        )
        self._apply_scoring(lead, scoring, metrics)
        self.db.add(lead)
        await self.db.flush()

        logger.info(
            "Lead %s created from call %s: %d (%s)",
            lead.id, call_id, scoring.score, scoring.quality.value,
        )
        return lead

    @staticmethod
    def _apply_scoring(lead: Lead, scoring: LeadScore, metrics: CallMetrics) -> None:
        lead.lead_score = scoring.score
        lead.lead_quality = scoring.quality.value
        lead.interest_level = scoring.quality.value
        lead.sentiment_score = metrics.sentiment
        lead.questions_asked = list(metrics.topics)
        lead.mentioned_pricing = scoring.mentioned_pricing
        lead.mentioned_insurance = scoring.mentioned_insurance
        lead.mentioned_scheduling = scoring.mentioned_scheduling
        lead.qualification_notes = json.dumps(scoring.breakdown)

    # ------------------------------------------------------------------
    # Staff actions
    # ------------------------------------------------------------------

    async def update_lead_interest(self, lead_id: str, interest: LeadInterest) -> Lead:
        lead = await self.get_lead(lead_id)
        lead.interest_level = LeadInterest(interest).value
        await self.db.flush()
        logger.info("Lead interest updated: %s -> %s", lead_id, lead.interest_level)
        return lead

    async def enrich_lead(
        self,
        lead_id: str,
        email: str | None = None,
        name: str | None = None,
        practice_name: str | None = None,
        notes: str | None = None,
    ) -> Lead:
        """Fill in contact details collected outside the call."""
        lead = await self.get_lead(lead_id)
        if email is not None:
            lead.email = email
        if name is not None:
            lead.name = name
        if practice_name is not None:
            lead.practice_name = practice_name
        if notes is not None:
            lead.notes = notes
        lead.captured = True
        lead.captured_at = datetime.now(timezone.utc)
        await self.db.flush()
        logger.info("Lead enriched: %s", lead_id)
        return lead

    async def mark_follow_up_sent(self, lead_id: str) -> Lead:
        lead = await self.get_lead(lead_id)
        lead.follow_up_sent = True
        lead.follow_up_date = datetime.now(timezone.utc)
        await self.db.flush()
        logger.info("Follow-up marked as sent for lead: %s", lead_id)
        return lead

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    async def get_leads(
        self,
        interest_level: LeadInterest | None = None,
        captured: bool | None = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> tuple[list[Lead], int]:
        """Newest-first page of leads plus the total matching count."""
        filters = []
        if interest_level is not None:
            filters.append(Lead.interest_level == LeadInterest(interest_level).value)
        if captured is not None:
            filters.append(Lead.captured == captured)

        total_result = await self.db.execute(
            select(func.count()).select_from(Lead).where(*filters)
        )
        total = total_result.scalar() or 0

        result = await self.db.execute(
            select(Lead)
            .where(*filters)
            .order_by(Lead.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), total

    async def get_lead_analytics(
        self,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> dict:
        """Capture rate and interest breakdown, optionally within a date range."""
        filters = []
        if start_date is not None:
            filters.append(Lead.created_at >= start_date)
        if end_date is not None:
            filters.append(Lead.created_at <= end_date)

        total_result = await self.db.execute(
            select(func.count()).select_from(Lead).where(*filters)
        )
        total = total_result.scalar() or 0

        captured_result = await self.db.execute(
            select(func.count()).select_from(Lead).where(*filters, Lead.captured.is_(True))
        )
        captured = captured_result.scalar() or 0

        interest_result = await self.db.execute(
            select(Lead.interest_level, func.count())
            .where(*filters, Lead.interest_level.is_not(None))
            .group_by(Lead.interest_level)
        )
        by_interest = {level: count for level, count in interest_result.all()}

        return {
            "totalLeads": total,
            "capturedLeads": captured,
            "captureRate": (captured / total) * 100 if total > 0 else 0,
            "interestBreakdown": {
                interest.value.lower(): by_interest.get(interest.value, 0)
                for interest in LeadInterest
            },
        }
