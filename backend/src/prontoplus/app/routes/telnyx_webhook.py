"""Telnyx call lifecycle webhook endpoint.

Verifies the signature, stores the event in the webhook inbox, answers 200
and applies the event in a background task. Telnyx only needs the
acknowledgment; processing failures are tracked on the inbox row.

Every request is answered 200 with ``{success, message}``. A bad signature
or an unparseable body gets ``success: false`` and is never recorded.
"""

import asyncio
import json
import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from prontoplus.app.config import get_settings
from prontoplus.infra.database import get_db
from prontoplus.services.telnyx_service import SIGNATURE_HEADERS, verify_webhook_signature
from prontoplus.services.webhook_inbox import process_event, record_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

# Strong references to in-flight processing tasks
_background_tasks: set = set()


def _signature_from(request: Request) -> str | None:
    for header in SIGNATURE_HEADERS:
        value = request.headers.get(header)
        if value:
            return value
    return None


@router.post("/telnyx")
async def telnyx_webhook(request: Request, db: AsyncSession = Depends(get_db)):
    """Receive a Telnyx webhook and queue it for processing."""
    body_bytes = await request.body()

    # Verify before parsing, over the exact bytes Telnyx signed
    if not verify_webhook_signature(
        body_bytes, _signature_from(request), get_settings().telnyx_webhook_secret
    ):
        logger.warning("Telnyx webhook rejected: invalid signature")
        return {"success": False, "message": "Invalid webhook signature"}

    try:
        payload = json.loads(body_bytes)
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.warning("Telnyx webhook body is not valid JSON")
        return {"success": False, "message": "Invalid JSON payload"}

    if not isinstance(payload, dict):
        logger.warning("Telnyx webhook body is not a JSON object")
        return {"success": False, "message": "Invalid JSON payload"}

    event = await record_event(db, payload)
    await db.commit()

    logger.info("Telnyx webhook received: %s", event.event_type)

    # Commit first so the background session can read the row
    task = asyncio.create_task(process_event(event.id))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)

    return {"success": True, "message": "Webhook received and queued for processing"}
