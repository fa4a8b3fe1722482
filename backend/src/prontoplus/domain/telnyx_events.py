"""Typed Telnyx call-lifecycle webhook events.

Telnyx posts ``{"meta": {"event_type": ...}, "data": {...}}``. Each event
kind we act on gets its own model; ``parse_event`` picks the model from
``meta.event_type`` and validates ``data`` against it.
"""

import math
from datetime import datetime
from typing import Any, ClassVar, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _EventData(BaseModel):
    """Base for event payloads. Unknown vendor fields are kept, not rejected."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    def raw(self) -> dict[str, Any]:
        """Payload as Telnyx sent it (aliases restored, extras included)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class CallInitiated(_EventData):
    event_type: ClassVar[str] = "call.initiated"

    id: str
    call_control_id: str | None = None
    from_: str | None = Field(default=None, alias="from")
    from_display_name: str | None = None
    to: str | None = None
    direction: str | None = None
    created_at: datetime | None = None

    @property
    def is_inbound(self) -> bool:
        return (self.direction or "").lower() != "outbound"


class CallAnswered(_EventData):
    event_type: ClassVar[str] = "call.answered"

    id: str
    answered_at: datetime | None = None


class Sentiment(BaseModel):
    model_config = ConfigDict(extra="allow")

    score: float | None = None


class CallCompleted(_EventData):
    event_type: ClassVar[str] = "call.completed"

    id: str
    duration_seconds: int = Field(default=0, ge=0)
    ended_at: datetime | None = None
    transcript: str | None = None
    sentiment: Sentiment | None = None
    topics: list[str] = Field(default_factory=list)

    @field_validator("duration_seconds", mode="before")
    @classmethod
    def _whole_seconds(cls, value: Any) -> Any:
        # Telnyx may send null or fractional seconds
        if value is None:
            return 0
        if isinstance(value, float) and math.isfinite(value):
            value = math.floor(value)
        if isinstance(value, int) and not isinstance(value, bool):
            return max(value, 0)
        return value

    @field_validator("topics", mode="before")
    @classmethod
    def _no_topics(cls, value: Any) -> Any:
        return [] if value is None else value

    @property
    def sentiment_score(self) -> float | None:
        return self.sentiment.score if self.sentiment else None


class RecordingUrls(BaseModel):
    model_config = ConfigDict(extra="allow")

    mp3: str | None = None
    wav: str | None = None


class RecordingSaved(_EventData):
    event_type: ClassVar[str] = "call.recording.saved"

    call_id: str
    recording_urls: RecordingUrls | None = None

    @property
    def recording_url(self) -> str | None:
        if not self.recording_urls:
            return None
        return self.recording_urls.mp3 or self.recording_urls.wav


class TranscriptReady(_EventData):
    event_type: ClassVar[str] = "call.transcript.ready"

    call_id: str
    transcript_url: str | None = None


TelnyxEvent = Union[CallInitiated, CallAnswered, CallCompleted, RecordingSaved, TranscriptReady]

EVENT_MODELS: dict[str, type[_EventData]] = {
    model.event_type: model
    for model in (CallInitiated, CallAnswered, CallCompleted, RecordingSaved, TranscriptReady)
}


def event_type_of(payload: dict) -> str | None:
    """Read ``meta.event_type`` from a raw webhook body, if present."""
    meta = payload.get("meta") if isinstance(payload, dict) else None
    if not isinstance(meta, dict):
        return None
    event_type = meta.get("event_type")
    return event_type if isinstance(event_type, str) else None


def external_call_id_of(payload: dict) -> str | None:
    """Best-effort Telnyx call id for indexing, before full validation."""
    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(data, dict):
        return None
    value = data.get("call_id") or data.get("id")
    return str(value) if value is not None else None


def parse_event(payload: dict) -> TelnyxEvent | None:
    """Parse a raw webhook body into its typed event.

    Returns ``None`` for event types we do not handle. Raises
    ``pydantic.ValidationError`` when a handled type has malformed data.
    """
    model = EVENT_MODELS.get(event_type_of(payload) or "")
    if model is None:
        return None
    return model.model_validate(payload.get("data") or {})
