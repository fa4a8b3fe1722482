"""Pydantic v2 schemas for API request/response validation.

Responses use camelCase keys, matching the admin dashboard.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from prontoplus.domain.enums import LeadInterest


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Leads
# ---------------------------------------------------------------------------


class LeadResponse(_CamelModel):
    """Schema for lead API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    call_id: str
    caller_phone: str | None = None
    email: str | None = None
    name: str | None = None
    practice_name: str | None = None
    notes: str | None = None
    interest_level: str | None = None
    captured: bool
    captured_at: datetime | None = None
    follow_up_sent: bool
    follow_up_date: datetime | None = None
    lead_score: int
    lead_quality: str | None = None
    sentiment_score: float | None = None
    questions_asked: list[str] | None = None
    mentioned_pricing: bool
    mentioned_insurance: bool
    mentioned_scheduling: bool
    qualification_notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class LeadListResponse(_CamelModel):
    leads: list[LeadResponse]
    total: int


class LeadInterestUpdate(_CamelModel):
    """Staff override of a lead's interest tier."""

    interest_level: LeadInterest


class LeadDetailsUpdate(_CamelModel):
    """Contact details collected outside the call."""

    email: str | None = Field(default=None, max_length=255)
    name: str | None = Field(default=None, max_length=255)
    practice_name: str | None = Field(default=None, max_length=255)
    notes: str | None = None


# ---------------------------------------------------------------------------
# Calls
# ---------------------------------------------------------------------------


class CallResponse(_CamelModel):
    """Schema for call API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    telnyx_call_id: str
    telnyx_call_control_id: str | None = None
    phone_number: str | None = None
    caller_name: str | None = None
    direction: str
    status: str
    call_duration: int
    recording_url: str | None = None
    transcript_url: str | None = None
    started_at: datetime | None = None
    answered_at: datetime | None = None
    ended_at: datetime | None = None
    metadata: dict | None = Field(default=None, validation_alias="call_metadata", serialization_alias="metadata")
    created_at: datetime | None = None
    updated_at: datetime | None = None


class CallWithLeadResponse(CallResponse):
    """Call plus its lead. Built from a CallResponse, never from the ORM row."""

    lead: LeadResponse | None = None


class CallListResponse(_CamelModel):
    calls: list[CallWithLeadResponse]
    total: int
    page: int
    limit: int


class CallRecordingResponse(_CamelModel):
    call_id: str
    recording_url: str | None = None


class CallLiveDetailsResponse(_CamelModel):
    """Call state as Telnyx currently reports it."""

    call_id: str
    telnyx_call_control_id: str
    details: dict


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------


class CallStats(_CamelModel):
    total: int
    completed: int
    average_duration: float
    completion_rate: float


class InterestBreakdown(BaseModel):
    hot: int = 0
    warm: int = 0
    cold: int = 0
    unqualified: int = 0


class LeadStats(_CamelModel):
    total_leads: int
    captured_leads: int
    capture_rate: float
    interest_breakdown: InterestBreakdown


class AnalyticsResponse(_CamelModel):
    calls: CallStats
    leads: LeadStats


# ---------------------------------------------------------------------------
# Webhook
# ---------------------------------------------------------------------------


class WebhookAck(BaseModel):
    success: bool
    message: str
