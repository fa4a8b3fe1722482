"""Lead notification formatting, delivery logging and the Slack sender."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from sqlalchemy import select

from prontoplus.domain.models import NotificationLog
from prontoplus.services.notification_service import (
    LeadNotificationService,
    build_lead_message,
    format_duration,
    send_system_alert,
)
from prontoplus.services.slack_service import SlackService


def _block_text(message: dict) -> str:
    parts = [message["text"]]
    for block in message["blocks"]:
        if "text" in block:
            parts.append(block["text"]["text"])
        for field in block.get("fields", []):
            parts.append(field["text"])
        for element in block.get("elements", []):
            parts.append(element.get("url", ""))
    return "\n".join(parts)


# ---------------------------------------------------------------------------
# Message formatting
# ---------------------------------------------------------------------------

class TestBuildLeadMessage:
    async def test_hot_lead_pings_channel(self, make_call, make_lead):
        call = await make_call(call_duration=125)
        lead = await make_lead(call=call, lead_score=90, lead_quality="HOT")
        lead.mentioned_pricing = True
        lead.questions_asked = ["pricing"]

        message = build_lead_message(call, lead, "https://app.example.com")
        text = _block_text(message)

        assert message["text"].startswith("<!channel>")
        assert "90/100" in message["text"]
        assert "HOT LEAD" in text
        assert "2m 5s" in text
        assert "Asked about pricing" in text
        assert "• pricing" in text
        assert "https://app.example.com/admin/calls" in text
        assert f"tel:{lead.caller_phone}" in text

    async def test_warm_lead_does_not_ping(self, make_call, make_lead):
        call = await make_call()
        lead = await make_lead(call=call, lead_score=60, lead_quality="WARM")
        message = build_lead_message(call, lead, "https://app.example.com")
        assert not message["text"].startswith("<!channel>")
        assert "No specific topics captured" in _block_text(message)

    def test_format_duration(self):
        assert format_duration(0) == "0m 0s"
        assert format_duration(None) == "0m 0s"
        assert format_duration(61) == "1m 1s"


# ---------------------------------------------------------------------------
# Delivery + NotificationLog
# ---------------------------------------------------------------------------

class TestSendLeadNotification:
    async def test_success_writes_sent_log(self, db_session, make_call, make_lead, fake_sender):
        call = await make_call()
        lead = await make_lead(call=call, lead_score=90, lead_quality="HOT")

        log = await LeadNotificationService(db_session, sender=fake_sender).send_lead_notification(call, lead)

        assert len(fake_sender.sent) == 1
        assert log.status == "sent"
        assert log.recipient == "@channel"
        assert log.channel == "test-leads"
        assert log.delivered_at is not None
        assert log.error_message is None

    async def test_failure_writes_failed_log(self, db_session, make_call, make_lead, make_sender):
        sender = make_sender(result={"ok": False, "error": "http_500"})
        call = await make_call()
        lead = await make_lead(call=call, lead_score=55, lead_quality="WARM")

        log = await LeadNotificationService(db_session, sender=sender).send_lead_notification(call, lead)

        assert log.status == "failed"
        assert log.recipient == "general"
        assert log.error_message == "http_500"
        rows = (await db_session.execute(select(NotificationLog))).scalars().all()
        assert len(rows) == 1

    async def test_unconfigured_sender_skips(self, db_session, make_call, make_lead, make_sender):
        sender = make_sender(configured=False)
        call = await make_call()
        lead = await make_lead(call=call)

        log = await LeadNotificationService(db_session, sender=sender).send_lead_notification(call, lead)

        assert log is None
        assert sender.sent == []


# ---------------------------------------------------------------------------
# System alerts
# ---------------------------------------------------------------------------

class TestSendSystemAlert:
    async def test_error_alert_layout(self, fake_sender):
        now = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
        result = await send_system_alert(
            "Webhook processing failed", "event abc gave up", severity="error",
            sender=fake_sender, clock=lambda: now,
        )

        assert result == {"ok": True, "status": 200}
        [message] = fake_sender.sent
        assert message["text"] == ":rotating_light: Webhook processing failed"
        attachment = message["attachments"][0]
        assert attachment["color"] == "#ff0000"
        assert attachment["fields"][0] == {"title": "Message", "value": "event abc gave up", "short": False}
        assert attachment["fields"][1]["value"] == now.isoformat()

    async def test_unknown_severity_uses_info(self, fake_sender):
        await send_system_alert("Heads up", "x", severity="bogus", sender=fake_sender)
        assert fake_sender.sent[0]["text"].startswith(":information_source:")

    async def test_unconfigured_sender_skips(self, make_sender):
        sender = make_sender(configured=False)
        assert await send_system_alert("t", "m", sender=sender) is None
        assert sender.sent == []


# ---------------------------------------------------------------------------
# Slack sender
# ---------------------------------------------------------------------------

def _mock_client(*responses):
    client = MagicMock()
    client.post = AsyncMock(side_effect=list(responses))
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)
    return client


def _response(status_code: int, headers: dict | None = None) -> httpx.Response:
    return httpx.Response(status_code, headers=headers or {}, text="ok" if status_code < 300 else "error")


class TestSlackService:
    async def test_not_configured(self):
        result = await SlackService(webhook_url="", channel="c").send({"text": "hi"})
        assert result == {"ok": False, "error": "slack_not_configured"}

    async def test_success(self):
        client = _mock_client(_response(200))
        with patch("prontoplus.services.slack_service.httpx.AsyncClient", return_value=client):
            result = await SlackService(webhook_url="https://hooks.slack.test/x").send({"text": "hi"})
        assert result == {"ok": True, "status": 200}
        client.post.assert_awaited_once_with("https://hooks.slack.test/x", json={"text": "hi"})

    async def test_http_error_status(self):
        client = _mock_client(_response(500))
        with patch("prontoplus.services.slack_service.httpx.AsyncClient", return_value=client):
            result = await SlackService(webhook_url="https://hooks.slack.test/x").send({"text": "hi"})
        assert result["ok"] is False
        assert result["error"] == "http_500"

    async def test_rate_limit_retries_once(self):
        client = _mock_client(_response(429, {"retry-after": "1"}), _response(200))
        with (
            patch("prontoplus.services.slack_service.httpx.AsyncClient", return_value=client),
            patch("prontoplus.services.slack_service.asyncio.sleep", new_callable=AsyncMock) as mock_sleep,
        ):
            result = await SlackService(webhook_url="https://hooks.slack.test/x").send({"text": "hi"})
        assert result["ok"] is True
        assert client.post.await_count == 2
        mock_sleep.assert_awaited_once_with(1)

    async def test_timeout_does_not_raise(self):
        client = _mock_client(httpx.ReadTimeout("slow"))
        with patch("prontoplus.services.slack_service.httpx.AsyncClient", return_value=client):
            result = await SlackService(webhook_url="https://hooks.slack.test/x").send({"text": "hi"})
        assert result == {"ok": False, "error": "timeout"}

    async def test_connectivity_posts_test_message(self):
        client = _mock_client(_response(200))
        with patch("prontoplus.services.slack_service.httpx.AsyncClient", return_value=client):
            assert await SlackService(webhook_url="https://hooks.slack.test/x").check_connectivity() is True
        assert "connectivity test" in client.post.await_args.kwargs["json"]["text"]

    async def test_connectivity_failure_and_unconfigured(self):
        client = _mock_client(_response(500))
        with patch("prontoplus.services.slack_service.httpx.AsyncClient", return_value=client):
            assert await SlackService(webhook_url="https://hooks.slack.test/x").check_connectivity() is False
        assert await SlackService(webhook_url="", channel="c").check_connectivity() is False
