"""Telnyx REST API client (v2) for call lookups and connectivity checks.

Uses Bearer auth with TELNYX_API_KEY.

Endpoints used:
- GET /v2/calls/{call_control_id}: live call status
- GET /v2/recordings?filter[call_control_id]=...: recordings for a call
- GET /v2/balance: cheapest authenticated request, used as a connectivity check
"""

import logging

import httpx

from prontoplus.app.config import get_settings

logger = logging.getLogger(__name__)


class TelnyxAPIError(Exception):
    """Raised when a Telnyx API lookup fails."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class TelnyxClient:
    """Minimal async wrapper over the Telnyx API."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self.api_key = settings.telnyx_api_key if api_key is None else api_key
        self.base_url = (base_url or settings.telnyx_api_base_url).rstrip("/")
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def _get(self, path: str, params: dict | None = None) -> dict:
        if not self.configured:
            raise TelnyxAPIError("telnyx_not_configured")

        try:
            async with httpx.AsyncClient(timeout=10.0, transport=self.transport) as client:
                resp = await client.get(
                    f"{self.base_url}{path}",
                    params=params,
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Accept": "application/json",
                    },
                )
        except httpx.TimeoutException as e:
            raise TelnyxAPIError("timeout") from e
        except httpx.HTTPError as e:
            raise TelnyxAPIError(str(e)) from e

        if not 200 <= resp.status_code < 300:
            logger.error("Telnyx GET %s failed (%d): %s", path, resp.status_code, resp.text[:300])
            raise TelnyxAPIError(f"http_{resp.status_code}", status=resp.status_code)

        try:
            return resp.json()
        except ValueError as e:
            raise TelnyxAPIError("invalid_json", status=resp.status_code) from e

    async def get_call_details(self, call_control_id: str) -> dict:
        """Live call state as Telnyx reports it (the ``data`` object)."""
        body = await self._get(f"/calls/{call_control_id}")
        return body.get("data") or {}

    async def get_call_recording(self, call_control_id: str) -> str | None:
        """URL of the first recording for a call, mp3 preferred."""
        body = await self._get(
            "/recordings",
            params={"filter[call_control_id]": call_control_id, "page[size]": 1},
        )
        recordings = body.get("data") or []
        if not recordings:
            return None
        urls = recordings[0].get("download_urls") or recordings[0].get("recording_urls") or {}
        return urls.get("mp3") or urls.get("wav")

    async def check_connectivity(self) -> bool:
        """True when an authenticated request succeeds. Never raises."""
        try:
            await self._get("/balance")
            return True
        except TelnyxAPIError as e:
            logger.error("Telnyx API connectivity check failed: %s", e)
            return False


def get_telnyx_client() -> TelnyxClient:
    """FastAPI dependency for the configured Telnyx client."""
    return TelnyxClient()
