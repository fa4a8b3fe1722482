"""Domain enumerations for ProntoPlus call intelligence.

All enums use the (str, Enum) pattern to ensure JSON serialization compatibility.
"""

from enum import Enum


class CallStatus(str, Enum):
    """Lifecycle status of a telephony session."""

    INITIATED = "INITIATED"
    RINGING = "RINGING"
    ANSWERED = "ANSWERED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    BUSY = "BUSY"
    NO_ANSWER = "NO_ANSWER"


class CallDirection(str, Enum):
    """Whether the call was placed to us or by us."""

    INBOUND = "INBOUND"
    OUTBOUND = "OUTBOUND"


class LeadQuality(str, Enum):
    """Tier derived from the numeric lead score."""

    HOT = "HOT"
    WARM = "WARM"
    COLD = "COLD"


class LeadInterest(str, Enum):
    """Interest level of a lead. Staff may override it manually."""

    HOT = "HOT"
    WARM = "WARM"
    COLD = "COLD"
    UNQUALIFIED = "UNQUALIFIED"


class NotificationStatus(str, Enum):
    """Delivery outcome recorded on a NotificationLog row."""

    SENT = "sent"
    FAILED = "failed"


class WebhookEventStatus(str, Enum):
    """Processing state of a webhook inbox row."""

    RECEIVED = "received"
    PROCESSED = "processed"
    IGNORED = "ignored"
    FAILED = "failed"
    DEAD = "dead"
