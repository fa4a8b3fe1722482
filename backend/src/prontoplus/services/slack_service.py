"""Slack delivery via an incoming-webhook URL.

Endpoints used:
- POST {SLACK_WEBHOOK_URL}: JSON body with ``text`` and optional ``blocks``
"""

import asyncio
import logging
from typing import Protocol

import httpx

from prontoplus.app.config import get_settings

logger = logging.getLogger(__name__)


class MessageSender(Protocol):
    """Anything that can deliver a structured message to a channel."""

    channel: str

    @property
    def configured(self) -> bool: ...

    async def send(self, message: dict) -> dict: ...


class SlackService:
    """Send messages to a Slack channel through its incoming webhook."""

    def __init__(self, webhook_url: str | None = None, channel: str | None = None):
        settings = get_settings()
        self.webhook_url = settings.slack_webhook_url if webhook_url is None else webhook_url
        self.channel = channel or settings.slack_channel

    @property
    def configured(self) -> bool:
        return bool(self.webhook_url)

    async def send(self, message: dict) -> dict:
        """POST a message. Never raises; failures come back as ``{"ok": False, ...}``."""
        if not self.configured:
            logger.warning("Slack webhook not configured, message not sent")
            return {"ok": False, "error": "slack_not_configured"}

        for attempt in range(2):
            try:
                async with httpx.AsyncClient(timeout=10.0) as client:
                    resp = await client.post(self.webhook_url, json=message)

                if 200 <= resp.status_code < 300:
                    logger.info("Slack message delivered (status=%d)", resp.status_code)
                    return {"ok": True, "status": resp.status_code}

                # Slack asks callers to back off on 429
                if resp.status_code == 429 and attempt == 0:
                    try:
                        wait = min(int(resp.headers.get("retry-after", "1")), 5)
                    except ValueError:
                        wait = 1
                    logger.warning("Slack rate limited, retrying in %ds", wait)
                    await asyncio.sleep(wait)
                    continue

                logger.error("Slack webhook failed (%d): %s", resp.status_code, resp.text[:300])
                return {"ok": False, "error": f"http_{resp.status_code}", "status": resp.status_code}

            except httpx.TimeoutException:
                logger.error("Slack webhook timed out")
                return {"ok": False, "error": "timeout"}
            except httpx.HTTPError as e:
                logger.error("Slack webhook error: %s", e)
                return {"ok": False, "error": str(e)}

        return {"ok": False, "error": "max_retries"}

    async def check_connectivity(self) -> bool:
        """Post a test message to the channel. Never raises."""
        if not self.configured:
            return False
        result = await self.send({
            "text": ":wrench: Slack webhook connectivity test",
            "blocks": [
                {
                    "type": "section",
                    "text": {"type": "mrkdwn", "text": "This is a connectivity test from ProntoPlus API."},
                },
            ],
        })
        return bool(result.get("ok"))


def get_slack_service() -> SlackService:
    """FastAPI dependency for the configured Slack sender."""
    return SlackService()
