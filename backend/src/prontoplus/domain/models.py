"""SQLAlchemy ORM models for ProntoPlus.

All models use SQLite-compatible types:
- String(36) for UUID primary keys
- JSON for structured data (no JSONB)
- DateTime(timezone=True) for timestamps, always written as UTC
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from prontoplus.domain.enums import (
    CallDirection,
    CallStatus,
    NotificationStatus,
    WebhookEventStatus,
)
from prontoplus.infra.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Calls
# ---------------------------------------------------------------------------


class Call(Base):
    """One inbound or outbound Telnyx session, keyed by the Telnyx call id."""

    __tablename__ = "calls"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    telnyx_call_id = Column(String(100), unique=True, nullable=False, index=True)
    telnyx_call_control_id = Column(String(200), nullable=True)
    phone_number = Column(String(50), nullable=True)
    caller_name = Column(String(200), nullable=True)
    direction = Column(String(10), nullable=False, default=CallDirection.INBOUND.value)
    status = Column(String(20), nullable=False, default=CallStatus.INITIATED.value, index=True)
    call_duration = Column(Integer, nullable=False, default=0)  # seconds

    # Populated asynchronously by recording / transcript events
    recording_url = Column(String(500), nullable=True)
    transcript_url = Column(String(500), nullable=True)

    started_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    answered_at = Column(DateTime(timezone=True), nullable=True)
    ended_at = Column(DateTime(timezone=True), nullable=True)
    # "metadata" is reserved on declarative classes
    call_metadata = Column("metadata", JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    lead = relationship("Lead", back_populates="call", uselist=False)


# ---------------------------------------------------------------------------
# Leads
# ---------------------------------------------------------------------------


class Lead(Base):
    """Scored sales prospect derived from at most one Call.

    Repeat callers inside the dedup window collapse onto one row, so call_id
    points at the call that created the lead, not the latest one.
    """

    __tablename__ = "demo_leads"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    call_id = Column(String(36), ForeignKey("calls.id", ondelete="CASCADE"), unique=True, nullable=False)
    caller_phone = Column(String(50), nullable=True, index=True)

    # Enrichment
    email = Column(String(255), nullable=True)
    name = Column(String(255), nullable=True)
    practice_name = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)

    interest_level = Column(String(20), nullable=True)  # HOT, WARM, COLD, UNQUALIFIED
    captured = Column(Boolean, nullable=False, default=False, index=True)
    captured_at = Column(DateTime(timezone=True), nullable=True)
    follow_up_sent = Column(Boolean, nullable=False, default=False)
    follow_up_date = Column(DateTime(timezone=True), nullable=True)

    # Scoring
    lead_score = Column(Integer, nullable=False, default=0, index=True)
    lead_quality = Column(String(10), nullable=True, index=True)
    sentiment_score = Column(Float, nullable=True)
    questions_asked = Column(JSON, default=list)
    mentioned_pricing = Column(Boolean, nullable=False, default=False)
    mentioned_insurance = Column(Boolean, nullable=False, default=False)
    mentioned_scheduling = Column(Boolean, nullable=False, default=False)
    qualification_notes = Column(Text, nullable=True)  # JSON score breakdown

    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    call = relationship("Call", back_populates="lead")
    notifications = relationship("NotificationLog", back_populates="lead")


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class NotificationLog(Base):
    """One outbound notification attempt. Append-only."""

    __tablename__ = "notification_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    lead_id = Column(String(36), ForeignKey("demo_leads.id"), nullable=False, index=True)
    type = Column(String(20), nullable=False, default="slack")
    channel = Column(String(100), nullable=False)
    recipient = Column(String(100), nullable=False)
    message = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default=NotificationStatus.SENT.value, index=True)
    sent_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    # Relationships
    lead = relationship("Lead", back_populates="notifications")


# ---------------------------------------------------------------------------
# Webhook inbox
# ---------------------------------------------------------------------------


class WebhookEvent(Base):
    """Raw webhook as acknowledged to Telnyx, plus its processing outcome."""

    __tablename__ = "webhook_events"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_type = Column(String(100), nullable=True, index=True)
    external_call_id = Column(String(100), nullable=True, index=True)
    payload = Column(JSON, nullable=False)
    status = Column(String(20), nullable=False, default=WebhookEventStatus.RECEIVED.value, index=True)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    received_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)
