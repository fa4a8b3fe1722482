"""Deterministic lead scorer.

Pure-function module: NO database access, NO network.

Maps call engagement metrics to a 0-100 score from seven additive rules:
    - Call duration       up to 30  (1 point per 10 seconds)
    - Pricing interest          20  ("cost", "price", "how much" / topic "pricing")
    - Insurance interest        15  ("insurance", "coverage" / topic "insurance")
    - Appointment intent        25  ("appointment", "schedule", "when can" / topic "scheduling")
    - Positive sentiment  up to 20  (round(sentiment * 20))
    - Engagement                10  (3 or more "?" in the transcript)
    - Long call bonus           10  (duration > 180s)

The raw sum can exceed 100 and is clamped. The tier follows the clamped score:
HOT >= 75, WARM >= 50, COLD otherwise.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterable, Optional

from prontoplus.domain.enums import LeadQuality

# ── Rule weights ─────────────────────────────────────────────────────────────

DURATION_SECONDS_PER_POINT = 10
DURATION_MAX_POINTS = 30
PRICING_POINTS = 20
INSURANCE_POINTS = 15
SCHEDULING_POINTS = 25
SENTIMENT_MAX_POINTS = 20
ENGAGEMENT_POINTS = 10
ENGAGEMENT_MIN_QUESTIONS = 3
LONG_CALL_POINTS = 10
LONG_CALL_SECONDS = 180

MIN_SCORE = 0
MAX_SCORE = 100
HOT_THRESHOLD = 75
WARM_THRESHOLD = 50

PRICING_KEYWORDS = ("cost", "price", "how much")
INSURANCE_KEYWORDS = ("insurance", "coverage")
SCHEDULING_KEYWORDS = ("appointment", "schedule", "when can")

# Breakdown keys, also read back when setting the lead's mention flags
RULE_DURATION = "call_duration"
RULE_PRICING = "pricing_interest"
RULE_INSURANCE = "insurance_interest"
RULE_SCHEDULING = "appointment_intent"
RULE_SENTIMENT = "positive_sentiment"
RULE_ENGAGEMENT = "engagement"
RULE_LONG_CALL = "long_call_bonus"


@dataclass(frozen=True)
class LeadScore:
    """Scorer output. ``breakdown`` maps rule name to points awarded."""

    score: int
    quality: LeadQuality
    breakdown: dict[str, int] = field(default_factory=dict)

    @property
    def mentioned_pricing(self) -> bool:
        return self.breakdown.get(RULE_PRICING, 0) > 0

    @property
    def mentioned_insurance(self) -> bool:
        return self.breakdown.get(RULE_INSURANCE, 0) > 0

    @property
    def mentioned_scheduling(self) -> bool:
        return self.breakdown.get(RULE_SCHEDULING, 0) > 0

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "quality": self.quality.value,
            "breakdown": dict(self.breakdown),
        }


# ── Helpers ──────────────────────────────────────────────────────────────────

def _mentions(text: str, topics: set[str], keywords: Iterable[str], topic: str) -> bool:
    return topic in topics or any(keyword in text for keyword in keywords)


def quality_for_score(score: int) -> LeadQuality:
    """Three-tier classification of a clamped score."""
    if score >= HOT_THRESHOLD:
        return LeadQuality.HOT
    if score >= WARM_THRESHOLD:
        return LeadQuality.WARM
    return LeadQuality.COLD


def duration_points(duration_seconds: int) -> int:
    return min(int(duration_seconds) // DURATION_SECONDS_PER_POINT, DURATION_MAX_POINTS)


def sentiment_points(sentiment: float) -> int:
    # Halves round up; round() would round half to even
    return math.floor(sentiment * SENTIMENT_MAX_POINTS + 0.5)


# ── Main scorer ──────────────────────────────────────────────────────────────

def score_lead(
    duration: int,
    transcript: Optional[str] = None,
    sentiment: Optional[float] = None,
    topics: Optional[Iterable[str]] = None,
) -> LeadScore:
    """Score one call.

    Parameters
    ----------
    duration
        Call length in seconds.
    transcript
        Full transcript text. ``None`` disables every text rule.
    sentiment
        0..1 sentiment score. ``None`` awards no sentiment points.
    topics
        Topic labels detected by the assistant. Empty behaves like ``None``.
    """
    text = (transcript or "").lower()
    topic_set = set(topics or ())
    breakdown: dict[str, int] = {}

    breakdown[RULE_DURATION] = duration_points(duration)

    if _mentions(text, topic_set, PRICING_KEYWORDS, "pricing"):
        breakdown[RULE_PRICING] = PRICING_POINTS

    if _mentions(text, topic_set, INSURANCE_KEYWORDS, "insurance"):
        breakdown[RULE_INSURANCE] = INSURANCE_POINTS

    if _mentions(text, topic_set, SCHEDULING_KEYWORDS, "scheduling"):
        breakdown[RULE_SCHEDULING] = SCHEDULING_POINTS

    if sentiment is not None:
        breakdown[RULE_SENTIMENT] = sentiment_points(sentiment)

    if text.count("?") >= ENGAGEMENT_MIN_QUESTIONS:
        breakdown[RULE_ENGAGEMENT] = ENGAGEMENT_POINTS

    if duration > LONG_CALL_SECONDS:
        breakdown[RULE_LONG_CALL] = LONG_CALL_POINTS

    score = max(MIN_SCORE, min(sum(breakdown.values()), MAX_SCORE))
    return LeadScore(score=score, quality=quality_for_score(score), breakdown=breakdown)
