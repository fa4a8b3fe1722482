"""Shared test infrastructure for the ProntoPlus test suite.

Provides:
- db_session: async SQLite in-memory session with all tables created
- session_factory: sessionmaker over a shared in-memory database, for code
  that opens its own sessions (webhook inbox)
- fake_sender: MessageSender stand-in capturing outbound messages
- telnyx_payload: factory for Telnyx webhook JSON
- make_call / make_lead: factories for Call and Lead rows
"""

import uuid
from datetime import datetime, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Import Base first, then models to register all tables
from prontoplus.infra.database import Base

import prontoplus.domain.models  # noqa: F401

from prontoplus.domain.enums import CallDirection, CallStatus
from prontoplus.domain.models import Call, Lead


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
async def db_session():
    """Async SQLite in-memory session with all tables created.

    Creates a fresh engine + tables for each test, yields a session,
    then rolls back and tears down.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def session_factory():
    """Sessionmaker whose sessions all see the same in-memory database.

    StaticPool keeps one connection, so use the sessions one at a time.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


# ---------------------------------------------------------------------------
# Message sender fake
# ---------------------------------------------------------------------------

class FakeSender:
    """MessageSender that records messages instead of posting them."""

    def __init__(self, result: dict | None = None, configured: bool = True):
        self.channel = "test-leads"
        self.sent: list[dict] = []
        self.result = result or {"ok": True, "status": 200}
        self._configured = configured

    @property
    def configured(self) -> bool:
        return self._configured

    async def send(self, message: dict) -> dict:
        self.sent.append(message)
        return self.result


@pytest.fixture
def fake_sender():
    return FakeSender()


@pytest.fixture
def make_sender():
    """Factory for FakeSender with a chosen result or configuration."""
    return FakeSender


# ---------------------------------------------------------------------------
# Telnyx webhook payload factory
# ---------------------------------------------------------------------------

@pytest.fixture
def telnyx_payload():
    """Factory that builds Telnyx webhook JSON.

    Usage:
        payload = telnyx_payload("call.initiated", id="call-1", **{"from": "+15551234567"})
    """
    def _factory(event_type: str, **data) -> dict:
        return {
            "meta": {"event_type": event_type},
            "data": data,
        }

    return _factory


# ---------------------------------------------------------------------------
# Row factories
# ---------------------------------------------------------------------------

@pytest.fixture
def make_call(db_session):
    """Factory that creates a Call row.

    Usage:
        call = await make_call(phone_number="+15551234567")
    """
    async def _factory(
        telnyx_call_id: str | None = None,
        phone_number: str | None = "+15551234567",
        status: CallStatus = CallStatus.INITIATED,
        direction: CallDirection = CallDirection.INBOUND,
        call_duration: int = 0,
        started_at: datetime | None = None,
    ) -> Call:
        call = Call(
            id=str(uuid.uuid4()),
            telnyx_call_id=telnyx_call_id or f"v3:{uuid.uuid4().hex}",
            phone_number=phone_number,
            status=status.value,
            direction=direction.value,
            call_duration=call_duration,
            started_at=started_at or datetime.now(timezone.utc),
        )
        db_session.add(call)
        await db_session.flush()
        return call

    return _factory


@pytest.fixture
def make_lead(db_session, make_call):
    """Factory that creates a Lead row, with its Call unless ``call`` is given.

    Usage:
        lead = await make_lead(lead_score=80, lead_quality="HOT")
    """
    async def _factory(
        call: Call | None = None,
        caller_phone: str | None = "+15551234567",
        lead_score: int = 0,
        lead_quality: str | None = None,
        interest_level: str | None = None,
        captured: bool = True,
        created_at: datetime | None = None,
    ) -> Lead:
        if call is None:
            call = await make_call(phone_number=caller_phone)
        created_at = created_at or datetime.now(timezone.utc)
        lead = Lead(
            id=str(uuid.uuid4()),
            call_id=call.id,
            caller_phone=caller_phone,
            lead_score=lead_score,
            lead_quality=lead_quality,
            interest_level=interest_level,
            captured=captured,
            captured_at=created_at if captured else None,
            created_at=created_at,
            updated_at=created_at,
        )
        db_session.add(lead)
        await db_session.flush()
        return lead

    return _factory
