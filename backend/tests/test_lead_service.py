"""Lead capture, deduplication and reporting against a real database session."""

import json
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from prontoplus.domain.enums import LeadInterest
from prontoplus.domain.models import Lead
from prontoplus.services.lead_service import CallMetrics, LeadNotFoundError, LeadService

PHONE = "+15551234567"
T0 = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)

HOT_METRICS = CallMetrics(
    duration=600,
    transcript="What is the cost? Do you take insurance? Can I schedule an appointment?",
    sentiment=0.9,
    topics=("pricing", "insurance", "scheduling"),
)
COLD_METRICS = CallMetrics(duration=40, transcript="wrong number", sentiment=0.1)


async def _lead_count(db_session) -> int:
    result = await db_session.execute(select(func.count()).select_from(Lead))
    return result.scalar()


# ---------------------------------------------------------------------------
# Capture and score
# ---------------------------------------------------------------------------

class TestCaptureAndScore:
    async def test_creates_scored_lead(self, db_session, make_call):
        call = await make_call(phone_number=PHONE)
        lead = await LeadService(db_session).capture_and_score(call.id, PHONE, HOT_METRICS, now=T0)

        assert lead.call_id == call.id
        assert lead.lead_score == 100
        assert lead.lead_quality == "HOT"
        assert lead.interest_level == "HOT"
        assert lead.captured is True
        assert lead.mentioned_pricing and lead.mentioned_insurance and lead.mentioned_scheduling
        assert lead.sentiment_score == 0.9
        assert lead.questions_asked == ["pricing", "insurance", "scheduling"]
        assert json.loads(lead.qualification_notes)["call_duration"] == 30

    async def test_repeat_call_two_days_later_overwrites_same_lead(self, db_session, make_call):
        service = LeadService(db_session)
        first_call = await make_call(phone_number=PHONE)
        second_call = await make_call(phone_number=PHONE)

        first = await service.capture_and_score(first_call.id, PHONE, HOT_METRICS, now=T0)
        second = await service.capture_and_score(
            second_call.id, PHONE, COLD_METRICS, now=T0 + timedelta(days=2),
        )

        assert second.id == first.id
        assert await _lead_count(db_session) == 1
        # Last call wins, nothing from the first call survives
        assert second.lead_score == 4 + 2
        assert second.lead_quality == "COLD"
        assert second.mentioned_pricing is False
        assert second.questions_asked == []
        # The lead stays tied to the call that created it
        assert second.call_id == first_call.id

    async def test_repeat_call_eight_days_later_creates_new_lead(self, db_session, make_call):
        service = LeadService(db_session)
        first_call = await make_call(phone_number=PHONE)
        second_call = await make_call(phone_number=PHONE)

        first = await service.capture_and_score(first_call.id, PHONE, HOT_METRICS, now=T0)
        second = await service.capture_and_score(
            second_call.id, PHONE, COLD_METRICS, now=T0 + timedelta(days=8),
        )

        assert second.id != first.id
        assert second.call_id == second_call.id
        assert await _lead_count(db_session) == 2

    async def test_window_is_inclusive_at_seven_days(self, db_session, make_call):
        service = LeadService(db_session)
        first_call = await make_call(phone_number=PHONE)
        second_call = await make_call(phone_number=PHONE)

        first = await service.capture_and_score(first_call.id, PHONE, HOT_METRICS, now=T0)
        second = await service.capture_and_score(
            second_call.id, PHONE, COLD_METRICS, now=T0 + timedelta(days=7),
        )
        assert second.id == first.id

    async def test_different_phone_is_not_deduplicated(self, db_session, make_call):
        service = LeadService(db_session)
        a = await make_call(phone_number=PHONE)
        b = await make_call(phone_number="+15559876543")

        await service.capture_and_score(a.id, PHONE, HOT_METRICS, now=T0)
        await service.capture_and_score(b.id, "+15559876543", HOT_METRICS, now=T0)
        assert await _lead_count(db_session) == 2

    async def test_no_caller_id_scores_lead_for_the_call(self, db_session, make_call):
        call = await make_call(phone_number=None)
        lead = await LeadService(db_session).capture_and_score(call.id, None, COLD_METRICS, now=T0)
        assert lead.call_id == call.id
        assert lead.caller_phone is None


# ---------------------------------------------------------------------------
# Capture on initiation
# ---------------------------------------------------------------------------

class TestCaptureLeadFromCall:
    async def test_creates_unscored_lead(self, db_session, make_call):
        call = await make_call(phone_number=PHONE)
        lead = await LeadService(db_session).capture_lead_from_call(call.id, PHONE, now=T0)
        assert lead.captured is True
        assert lead.lead_score == 0
        assert lead.lead_quality is None

    async def test_returns_existing_lead_for_call(self, db_session, make_call):
        service = LeadService(db_session)
        call = await make_call(phone_number=PHONE)
        first = await service.capture_lead_from_call(call.id, PHONE, now=T0)
        again = await service.capture_lead_from_call(call.id, PHONE, now=T0)
        assert again.id == first.id

    async def test_reuses_recent_lead_for_phone(self, db_session, make_call):
        service = LeadService(db_session)
        first = await service.capture_lead_from_call((await make_call()).id, PHONE, now=T0)
        second = await service.capture_lead_from_call(
            (await make_call()).id, PHONE, now=T0 + timedelta(days=2),
        )
        assert second.id == first.id
        assert await _lead_count(db_session) == 1

    async def test_no_caller_id_captures_nothing(self, db_session, make_call):
        call = await make_call(phone_number=None)
        assert await LeadService(db_session).capture_lead_from_call(call.id, None, now=T0) is None


# ---------------------------------------------------------------------------
# Staff actions
# ---------------------------------------------------------------------------

class TestStaffActions:
    async def test_update_interest(self, db_session, make_lead):
        lead = await make_lead(interest_level="COLD")
        updated = await LeadService(db_session).update_lead_interest(lead.id, LeadInterest.UNQUALIFIED)
        assert updated.interest_level == "UNQUALIFIED"

    async def test_update_interest_unknown_lead(self, db_session):
        with pytest.raises(LeadNotFoundError):
            await LeadService(db_session).update_lead_interest("missing", LeadInterest.HOT)

    async def test_enrich_sets_only_given_fields(self, db_session, make_lead):
        lead = await make_lead(captured=False)
        enriched = await LeadService(db_session).enrich_lead(
            lead.id, email="dr@smile.example", practice_name="Smile Ortho",
        )
        assert enriched.email == "dr@smile.example"
        assert enriched.practice_name == "Smile Ortho"
        assert enriched.name is None
        assert enriched.captured is True
        assert enriched.captured_at is not None

    async def test_mark_follow_up_sent(self, db_session, make_lead):
        lead = await make_lead()
        updated = await LeadService(db_session).mark_follow_up_sent(lead.id)
        assert updated.follow_up_sent is True
        assert updated.follow_up_date is not None


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------

class TestReporting:
    async def test_get_leads_filters_and_counts(self, db_session, make_lead):
        await make_lead(caller_phone="+15550000001", interest_level="HOT", created_at=T0)
        await make_lead(caller_phone="+15550000002", interest_level="HOT", created_at=T0 + timedelta(hours=1))
        await make_lead(caller_phone="+15550000003", interest_level="COLD", captured=False)

        leads, total = await LeadService(db_session).get_leads(interest_level=LeadInterest.HOT)
        assert total == 2
        # Newest first
        assert [l.caller_phone for l in leads] == ["+15550000002", "+15550000001"]

        leads, total = await LeadService(db_session).get_leads(captured=False)
        assert total == 1
        assert leads[0].caller_phone == "+15550000003"

    async def test_get_leads_paginates(self, db_session, make_lead):
        for i in range(5):
            await make_lead(caller_phone=f"+1555000000{i}", created_at=T0 + timedelta(minutes=i))

        leads, total = await LeadService(db_session).get_leads(limit=2, offset=2)
        assert total == 5
        assert [l.caller_phone for l in leads] == ["+15550000002", "+15550000001"]

    async def test_analytics(self, db_session, make_lead):
        await make_lead(caller_phone="+15550000001", interest_level="HOT")
        await make_lead(caller_phone="+15550000002", interest_level="WARM")
        await make_lead(caller_phone="+15550000003", interest_level="WARM", captured=False)
        await make_lead(caller_phone="+15550000004", interest_level=None, captured=False)

        analytics = await LeadService(db_session).get_lead_analytics()
        assert analytics["totalLeads"] == 4
        assert analytics["capturedLeads"] == 2
        assert analytics["captureRate"] == 50
        assert analytics["interestBreakdown"] == {"hot": 1, "warm": 2, "cold": 0, "unqualified": 0}

    async def test_analytics_empty(self, db_session):
        analytics = await LeadService(db_session).get_lead_analytics()
        assert analytics["totalLeads"] == 0
        assert analytics["captureRate"] == 0
