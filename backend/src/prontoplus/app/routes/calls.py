"""Call and lead query API for the admin dashboard."""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from prontoplus.domain.enums import CallDirection, CallStatus, LeadInterest
from prontoplus.domain.models import Call, Lead
from prontoplus.domain.schemas import (
    AnalyticsResponse,
    CallListResponse,
    CallLiveDetailsResponse,
    CallRecordingResponse,
    CallResponse,
    CallWithLeadResponse,
    LeadDetailsUpdate,
    LeadInterestUpdate,
    LeadListResponse,
    LeadResponse,
)
from prontoplus.infra.database import get_db
from prontoplus.services.lead_service import DEFAULT_PAGE_SIZE, LeadNotFoundError, LeadService
from prontoplus.services.telnyx_client import TelnyxAPIError, TelnyxClient, get_telnyx_client
from prontoplus.services.telnyx_service import CallNotFoundError, MAX_PAGE_SIZE, TelnyxService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/telnyx", tags=["calls"])


def _with_lead(call: Call, lead: Lead | None) -> CallWithLeadResponse:
    # Never touch call.lead here: lazy loads are not allowed under asyncio
    return CallWithLeadResponse(
        **CallResponse.model_validate(call).model_dump(),
        lead=LeadResponse.model_validate(lead) if lead else None,
    )


async def _leads_by_call_id(db: AsyncSession, call_ids: list[str]) -> dict[str, Lead]:
    if not call_ids:
        return {}
    result = await db.execute(select(Lead).where(Lead.call_id.in_(call_ids)))
    return {lead.call_id: lead for lead in result.scalars().all()}


# ---------------------------------------------------------------------------
# Calls
# ---------------------------------------------------------------------------


@router.get("/calls", response_model=CallListResponse)
async def list_calls(
    status: CallStatus | None = None,
    direction: CallDirection | None = None,
    start_date: datetime | None = Query(None, alias="startDate"),
    end_date: datetime | None = Query(None, alias="endDate"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1),
    db: AsyncSession = Depends(get_db),
):
    """List calls newest first, each with its lead."""
    limit = min(limit, MAX_PAGE_SIZE)
    service = TelnyxService(db)
    calls, total = await service.get_calls(
        status=status,
        direction=direction,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )
    leads = await _leads_by_call_id(db, [c.id for c in calls])
    return CallListResponse(
        calls=[_with_lead(c, leads.get(c.id)) for c in calls],
        total=total,
        page=page,
        limit=limit,
    )


@router.get("/calls/{call_id}", response_model=CallWithLeadResponse)
async def get_call(call_id: str, db: AsyncSession = Depends(get_db)):
    service = TelnyxService(db)
    try:
        call = await service.get_call(call_id)
    except CallNotFoundError:
        raise HTTPException(status_code=404, detail="Call not found")
    lead = await LeadService(db).get_lead_by_call_id(call.id)
    return _with_lead(call, lead)


@router.get("/calls/{call_id}/recording", response_model=CallRecordingResponse)
async def get_call_recording(
    call_id: str,
    db: AsyncSession = Depends(get_db),
    client: TelnyxClient = Depends(get_telnyx_client),
):
    """Recording URL for a call, fetched from Telnyx when the webhook never delivered one."""
    try:
        url = await TelnyxService(db).get_recording_url(call_id, client)
    except CallNotFoundError:
        raise HTTPException(status_code=404, detail="Call not found")
    except TelnyxAPIError as e:
        logger.error("Recording lookup failed for call %s: %s", call_id, e)
        raise HTTPException(status_code=502, detail="Telnyx recording lookup failed")
    await db.commit()
    return CallRecordingResponse(call_id=call_id, recording_url=url)


@router.get("/calls/{call_id}/live", response_model=CallLiveDetailsResponse)
async def get_call_live_details(
    call_id: str,
    db: AsyncSession = Depends(get_db),
    client: TelnyxClient = Depends(get_telnyx_client),
):
    """Current call state from the Telnyx API."""
    try:
        call = await TelnyxService(db).get_call(call_id)
    except CallNotFoundError:
        raise HTTPException(status_code=404, detail="Call not found")
    if not call.telnyx_call_control_id:
        raise HTTPException(status_code=404, detail="Call has no Telnyx call control id")
    if not client.configured:
        raise HTTPException(status_code=503, detail="Telnyx API not configured")

    try:
        details = await client.get_call_details(call.telnyx_call_control_id)
    except TelnyxAPIError as e:
        logger.error("Call details lookup failed for call %s: %s", call_id, e)
        raise HTTPException(status_code=502, detail="Telnyx call lookup failed")
    return CallLiveDetailsResponse(
        call_id=call.id,
        telnyx_call_control_id=call.telnyx_call_control_id,
        details=details,
    )


@router.get("/analytics", response_model=AnalyticsResponse)
async def get_analytics(
    start_date: datetime | None = Query(None, alias="startDate"),
    end_date: datetime | None = Query(None, alias="endDate"),
    db: AsyncSession = Depends(get_db),
):
    """Call completion and lead capture statistics."""
    calls = await TelnyxService(db).get_call_analytics(start_date, end_date)
    leads = await LeadService(db).get_lead_analytics(start_date, end_date)
    return {"calls": calls, "leads": leads}


# ---------------------------------------------------------------------------
# Leads
# ---------------------------------------------------------------------------


@router.get("/leads", response_model=LeadListResponse)
async def list_leads(
    interest_level: LeadInterest | None = Query(None, alias="interestLevel"),
    captured: bool | None = None,
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    leads, total = await LeadService(db).get_leads(
        interest_level=interest_level,
        captured=captured,
        limit=limit,
        offset=offset,
    )
    return LeadListResponse(
        leads=[LeadResponse.model_validate(lead) for lead in leads],
        total=total,
    )


@router.patch("/leads/{lead_id}", response_model=LeadResponse)
async def update_lead_interest(
    lead_id: str,
    body: LeadInterestUpdate,
    db: AsyncSession = Depends(get_db),
):
    """Override the interest tier the scorer assigned."""
    try:
        lead = await LeadService(db).update_lead_interest(lead_id, body.interest_level)
    except LeadNotFoundError:
        raise HTTPException(status_code=404, detail="Lead not found")
    await db.commit()
    return LeadResponse.model_validate(lead)


@router.patch("/leads/{lead_id}/details", response_model=LeadResponse)
async def update_lead_details(
    lead_id: str,
    body: LeadDetailsUpdate,
    db: AsyncSession = Depends(get_db),
):
    try:
        lead = await LeadService(db).enrich_lead(
            lead_id,
            email=body.email,
            name=body.name,
            practice_name=body.practice_name,
            notes=body.notes,
        )
    except LeadNotFoundError:
        raise HTTPException(status_code=404, detail="Lead not found")
    await db.commit()
    return LeadResponse.model_validate(lead)


@router.post("/leads/{lead_id}/follow-up", response_model=LeadResponse)
async def mark_follow_up_sent(lead_id: str, db: AsyncSession = Depends(get_db)):
    try:
        lead = await LeadService(db).mark_follow_up_sent(lead_id)
    except LeadNotFoundError:
        raise HTTPException(status_code=404, detail="Lead not found")
    await db.commit()
    return LeadResponse.model_validate(lead)
