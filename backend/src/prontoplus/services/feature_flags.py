"""Feature flag evaluation.

Flags come from the FEATURE_FLAGS setting ("lead-notifications=off,beta-x").
Services take a ``FlagEvaluator`` so tests can swap in a fixed set.
"""

import logging
from typing import Protocol

from prontoplus.app.config import get_settings

logger = logging.getLogger(__name__)

LEAD_NOTIFICATIONS = "lead-notifications"

DEFAULTS: dict[str, bool] = {
    LEAD_NOTIFICATIONS: True,
}


class FlagEvaluator(Protocol):
    def is_enabled(self, flag_key: str, default: bool = False) -> bool: ...


class SettingsFlagEvaluator:
    """Evaluates flags from settings, falling back to DEFAULTS then ``default``."""

    def __init__(self, overrides: dict[str, bool] | None = None):
        self.overrides = get_settings().feature_flag_overrides if overrides is None else overrides

    def is_enabled(self, flag_key: str, default: bool = False) -> bool:
        if flag_key in self.overrides:
            return self.overrides[flag_key]
        value = DEFAULTS.get(flag_key, default)
        logger.debug("Flag %s not set, using default=%s", flag_key, value)
        return value

    def all_flags(self) -> dict[str, bool]:
        flags = dict(DEFAULTS)
        flags.update(self.overrides)
        return flags

