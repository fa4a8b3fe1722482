"""Notification gate: per-lead cooldown and quiet hours.

A suppressed notification is dropped, never queued for later.
"""

import logging
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Callable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from prontoplus.app.config import get_settings
from prontoplus.domain.enums import NotificationStatus
from prontoplus.domain.models import NotificationLog

logger = logging.getLogger(__name__)

NOTIFICATION_COOLDOWN = timedelta(hours=24)

# [22:00, 08:00) local time
QUIET_HOURS_START = 22
QUIET_HOURS_END = 8


def is_quiet_hour(hour: int) -> bool:
    return hour >= QUIET_HOURS_START or hour < QUIET_HOURS_END


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def resolve_quiet_hours_tz(tz_name: str | None) -> tzinfo | None:
    """Timezone for quiet hours; ``None`` means server local time."""
    if not tz_name:
        return None
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown quiet hours timezone %r, using server local time", tz_name)
        return None


class NotificationGate:
    """Decides whether a lead notification may go out right now."""

    def __init__(
        self,
        db: AsyncSession,
        clock: Callable[[], datetime] = _utcnow,
        quiet_hours_tz: tzinfo | None = None,
    ):
        self.db = db
        self.clock = clock
        if quiet_hours_tz is None:
            quiet_hours_tz = resolve_quiet_hours_tz(get_settings().quiet_hours_timezone)
        self.quiet_hours_tz = quiet_hours_tz

    def in_quiet_hours(self, now: datetime | None = None) -> bool:
        now = now or self.clock()
        # astimezone(None) converts to the server's local zone
        return is_quiet_hour(now.astimezone(self.quiet_hours_tz).hour)

    async def in_cooldown(self, lead_id: str, now: datetime | None = None) -> bool:
        """True if a notification was sent for this lead in the last 24 hours."""
        now = now or self.clock()
        result = await self.db.execute(
            select(NotificationLog.id)
            .where(
                NotificationLog.lead_id == lead_id,
                NotificationLog.status == NotificationStatus.SENT.value,
                NotificationLog.sent_at >= now - NOTIFICATION_COOLDOWN,
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def should_notify(self, lead_id: str) -> bool:
        now = self.clock()
        if await self.in_cooldown(lead_id, now=now):
            logger.info("Notification for lead %s suppressed: cooldown", lead_id)
            return False
        if self.in_quiet_hours(now=now):
            logger.info("Notification for lead %s suppressed: quiet hours", lead_id)
            return False
        return True
