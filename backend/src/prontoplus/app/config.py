"""Application configuration via Pydantic Settings."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

# Resolve .env from backend/ regardless of CWD
_ENV_FILE = Path(__file__).resolve().parents[3] / ".env"


class Settings(BaseSettings):
    """Central configuration loaded from environment variables / .env file."""

    # Database
    database_url: str = "sqlite+aiosqlite:///./prontoplus.db"

    # Telnyx
    telnyx_api_key: str = ""
    telnyx_api_base_url: str = "https://api.telnyx.com/v2"
    telnyx_webhook_secret: str = ""

    # Slack
    slack_webhook_url: str = ""
    slack_channel: str = "pronto-demo-leads"

    # CORS / Frontend
    cors_origins: str = "http://localhost:3000"
    frontend_url: str = "http://localhost:3000"

    # Notifications
    quiet_hours_timezone: str = ""  # empty = server local time

    # Feature flags, comma-separated "key=on|off" pairs
    feature_flags: str = ""

    # Webhook inbox
    webhook_max_attempts: int = 3
    webhook_retry_interval_seconds: int = 60
    webhook_stale_after_seconds: int = 300

    # General
    environment: str = "development"
    debug: bool = True

    model_config = {"env_file": str(_ENV_FILE), "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list.

        In debug mode, returns ["*"] to allow any origin.
        """
        if self.debug:
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def feature_flag_overrides(self) -> dict[str, bool]:
        """Parse FEATURE_FLAGS ("a=on,b=off,c") into a dict of booleans.

        A bare key counts as enabled.
        """
        flags: dict[str, bool] = {}
        for item in self.feature_flags.split(","):
            item = item.strip()
            if not item:
                continue
            key, _, value = item.partition("=")
            value = value.strip().lower()
            flags[key.strip()] = value in ("", "1", "on", "true", "yes", "enabled")
        return flags


@lru_cache
def get_settings() -> Settings:
    """Return cached Settings instance."""
    return Settings()
