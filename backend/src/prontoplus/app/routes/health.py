"""Service health endpoint."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from prontoplus.app.config import get_settings
from prontoplus.infra.database import ping_db
from prontoplus.services.feature_flags import SettingsFlagEvaluator
from prontoplus.services.slack_service import SlackService, get_slack_service
from prontoplus.services.telnyx_client import TelnyxClient, get_telnyx_client

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(
    deep: bool = False,
    telnyx: TelnyxClient = Depends(get_telnyx_client),
    slack: SlackService = Depends(get_slack_service),
):
    """Return service health status.

    503 when the database is unreachable. Telnyx connectivity is checked whenever
    an API key is set; Slack only with ``?deep=true`` because its check posts
    a test message. A failed check marks the service ``degraded``.
    """
    settings = get_settings()

    database_ok = True
    try:
        await ping_db()
    except Exception as e:
        logger.error("Health check: database unreachable: %s", e)
        database_ok = False

    if not telnyx.configured:
        telnyx_check = "not_configured"
    else:
        telnyx_check = "ok" if await telnyx.check_connectivity() else "error"

    if not slack.configured:
        slack_check = "not_configured"
    elif deep:
        slack_check = "ok" if await slack.check_connectivity() else "error"
    else:
        slack_check = "configured"

    if not database_ok:
        status = "error"
    elif "error" in (telnyx_check, slack_check):
        status = "degraded"
    else:
        status = "ok"

    body = {
        "status": status,
        "service": "prontoplus-api",
        "environment": settings.environment,
        "checks": {
            "database": "ok" if database_ok else "error",
            "slack": slack_check,
            "telnyx": telnyx_check,
            "webhookSignature": "enforced" if settings.telnyx_webhook_secret else "disabled",
        },
        "featureFlags": SettingsFlagEvaluator().all_flags(),
    }
    return JSONResponse(status_code=200 if database_ok else 503, content=body)
