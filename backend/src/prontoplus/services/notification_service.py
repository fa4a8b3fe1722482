"""Lead Notification Service: formats lead alerts and records every delivery attempt."""

import logging
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from prontoplus.app.config import get_settings
from prontoplus.domain.enums import LeadQuality, NotificationStatus
from prontoplus.domain.models import Call, Lead, NotificationLog
from prontoplus.services.slack_service import MessageSender, SlackService

logger = logging.getLogger(__name__)

HEADERS = {
    LeadQuality.HOT: ":fire: HOT LEAD - Immediate Follow-Up Required!",
    LeadQuality.WARM: ":zap: WARM LEAD - Follow Up Within 24 Hours",
    LeadQuality.COLD: ":snowflake: COLD LEAD - Add to Nurture Campaign",
}

EMOJI = {
    LeadQuality.HOT: ":fire:",
    LeadQuality.WARM: ":zap:",
    LeadQuality.COLD: ":snowflake:",
}

VERY_POSITIVE_SENTIMENT = 0.7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _quality_of(lead: Lead) -> LeadQuality:
    try:
        return LeadQuality(lead.lead_quality)
    except ValueError:
        return LeadQuality.COLD


def format_duration(seconds: int | None) -> str:
    seconds = seconds or 0
    return f"{seconds // 60}m {seconds % 60}s"


def build_lead_message(call: Call, lead: Lead, frontend_url: str) -> dict:
    """Slack Block Kit payload for a scored lead."""
    quality = _quality_of(lead)
    phone = lead.caller_phone or "Unknown"

    indicators = []
    if lead.mentioned_pricing:
        indicators.append(":moneybag: Asked about pricing")
    if lead.mentioned_insurance:
        indicators.append(":hospital: Asked about insurance")
    if lead.mentioned_scheduling:
        indicators.append(":date: Interested in scheduling")
    if lead.sentiment_score is not None and lead.sentiment_score > VERY_POSITIVE_SENTIMENT:
        indicators.append(":blush: Very positive sentiment")

    topics = lead.questions_asked or []
    topics_text = "\n".join(f"• {t}" for t in topics) if topics else "• No specific topics captured"

    text = f"{EMOJI[quality]} New Demo Lead - Score: {lead.lead_score}/100"
    if quality is LeadQuality.HOT:
        text = f"<!channel> {text}"

    return {
        "text": text,
        "blocks": [
            {"type": "header", "text": {"type": "plain_text", "text": HEADERS[quality]}},
            {
                "type": "section",
                "fields": [
                    {"type": "mrkdwn", "text": f"*Phone:*\n{phone}"},
                    {"type": "mrkdwn", "text": f"*Lead Score:*\n{lead.lead_score}/100"},
                    {"type": "mrkdwn", "text": f"*Quality:*\n{quality.value}"},
                    {"type": "mrkdwn", "text": f"*Call Duration:*\n{format_duration(call.call_duration)}"},
                ],
            },
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": "*Engagement Indicators:*\n" + ("\n".join(indicators) or "None detected"),
                },
            },
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": f"*Topics Discussed:*\n{topics_text}"},
            },
            {
                "type": "actions",
                "elements": [
                    {
                        "type": "button",
                        "text": {"type": "plain_text", "text": "Listen to Recording"},
                        "url": call.recording_url or frontend_url,
                        "style": "primary",
                    },
                    {
                        "type": "button",
                        "text": {"type": "plain_text", "text": "View Dashboard"},
                        "url": f"{frontend_url}/admin/calls",
                    },
                    {
                        "type": "button",
                        "text": {"type": "plain_text", "text": "Call Back"},
                        "url": f"tel:{lead.caller_phone or ''}",
                    },
                ],
            },
        ],
    }


class LeadNotificationService:
    """Sends lead alerts through a MessageSender and logs each attempt."""

    def __init__(
        self,
        db: AsyncSession,
        sender: MessageSender | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.db = db
        self.sender = sender or SlackService()
        self.clock = clock
        self.frontend_url = get_settings().frontend_url.rstrip("/")

    async def send_lead_notification(self, call: Call, lead: Lead) -> NotificationLog | None:
        """Deliver the alert. Returns the log row, or None if no channel is configured.

        Delivery failures are logged and recorded, never raised.
        """
        if not self.sender.configured:
            logger.debug("Notification channel not configured, skipping lead %s", lead.id)
            return None

        message = build_lead_message(call, lead, self.frontend_url)
        is_hot = _quality_of(lead) is LeadQuality.HOT

        result = await self.sender.send(message)
        now = self.clock()

        log = NotificationLog(
            lead_id=lead.id,
            type="slack",
            channel=self.sender.channel,
            recipient="@channel" if is_hot else "general",
            message=message["text"],
            sent_at=now,
        )
        if result.get("ok"):
            log.status = NotificationStatus.SENT.value
            log.delivered_at = now
            logger.info("Lead notification sent for lead %s (score=%d)", lead.id, lead.lead_score)
        else:
            log.status = NotificationStatus.FAILED.value
            log.error_message = str(result.get("error", "unknown"))
            logger.error("Lead notification failed for lead %s: %s", lead.id, log.error_message)

        self.db.add(log)
        await self.db.flush()
        return log


# ---------------------------------------------------------------------------
# System alerts
# ---------------------------------------------------------------------------

ALERT_STYLE = {
    "info": (":information_source:", "#36a64f"),
    "warning": (":warning:", "#ff9500"),
    "error": (":rotating_light:", "#ff0000"),
}


def build_system_alert(title: str, message: str, severity: str, now: datetime) -> dict:
    emoji, color = ALERT_STYLE.get(severity, ALERT_STYLE["info"])
    return {
        "text": f"{emoji} {title}",
        "attachments": [
            {
                "color": color,
                "fields": [
                    {"title": "Message", "value": message, "short": False},
                    {"title": "Timestamp", "value": now.isoformat(), "short": True},
                ],
            },
        ],
    }


async def send_system_alert(
    title: str,
    message: str,
    severity: str = "info",
    sender: MessageSender | None = None,
    clock: Callable[[], datetime] = _utcnow,
) -> dict | None:
    """Post an operational alert to the lead channel.

    Returns the sender result, or None when no channel is configured.
    """
    sender = sender or SlackService()
    if not sender.configured:
        logger.debug("Notification channel not configured, skipping alert %r", title)
        return None

    result = await sender.send(build_system_alert(title, message, severity, clock()))
    if result.get("ok"):
        logger.info("System alert sent: %s", title)
    else:
        logger.error("System alert %r failed: %s", title, result.get("error", "unknown"))
    return result
