"""
Application Configuration
"""
from pathlib import Path
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings

# Fallback location of the durable queue, next to the host's own config
DEFAULT_QUEUE_DB_PATH = str(
    Path.home() / ".config" / "opencode" / "discord-notify-queue.db"
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    APP_NAME: str = "Discord Notify Bridge"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Discord webhook
    DISCORD_WEBHOOK_URL: Optional[str] = None
    DISCORD_WEBHOOK_USERNAME: Optional[str] = None
    DISCORD_WEBHOOK_AVATAR_URL: Optional[str] = None

    # Mentions: only @everyone / @here actually ping, anything else is sent muted
    DISCORD_WEBHOOK_COMPLETE_MENTION: Optional[str] = None
    DISCORD_WEBHOOK_PERMISSION_MENTION: Optional[str] = None

    # Message filtering
    DISCORD_WEBHOOK_EXCLUDE_INPUT_CONTEXT: bool = True
    DISCORD_WEBHOOK_COMPLETE_INCLUDE_LAST_MESSAGE: bool = True
    # Comma-separated embed field keys (e.g. "sessionID,messageID")
    DISCORD_WEBHOOK_SEND_PARAMS: str = ""

    # Transport
    DISCORD_WEBHOOK_SHOW_ERROR_ALERT: bool = True
    DISCORD_WEBHOOK_WAIT_ON_RATE_LIMIT_MS: int = 10_000
    HTTP_TIMEOUT_SECONDS: float = 30.0

    # Durable queue
    DISCORD_NOTIFY_QUEUE_DB_PATH: str = DEFAULT_QUEUE_DB_PATH
    QUEUE_POLL_INTERVAL_SECONDS: float = 1.0
    QUEUE_MAX_RETRIES: int = 5
    # Drop a thread-creation row whose response carried no thread id
    DELETE_ON_MISSING_THREAD_ID: bool = True

    # Alerts
    ALERT_COOLDOWN_SECONDS: float = 60.0

    # Shared secret expected in X-Bridge-Token on /api/events (empty = disabled)
    BRIDGE_SECRET_TOKEN: str = ""

    @field_validator(
        "DISCORD_WEBHOOK_URL",
        "DISCORD_WEBHOOK_USERNAME",
        "DISCORD_WEBHOOK_AVATAR_URL",
        "DISCORD_WEBHOOK_COMPLETE_MENTION",
        "DISCORD_WEBHOOK_PERMISSION_MENTION",
        mode="before",
    )
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        """Treat unset-but-present env vars ("") the same as missing ones"""
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @field_validator("DISCORD_NOTIFY_QUEUE_DB_PATH", mode="before")
    @classmethod
    def default_db_path(cls, v: Optional[str]) -> str:
        if v is None or not str(v).strip():
            return DEFAULT_QUEUE_DB_PATH
        return str(v).strip()

    @field_validator("HTTP_TIMEOUT_SECONDS", "ALERT_COOLDOWN_SECONDS", mode="after")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeouts and cooldowns must be positive")
        return v

    @field_validator(
        "QUEUE_POLL_INTERVAL_SECONDS",
        "DISCORD_WEBHOOK_WAIT_ON_RATE_LIMIT_MS",
        "QUEUE_MAX_RETRIES",
        mode="after",
    )
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("must not be negative")
        return v

    @property
    def wait_on_rate_limit_seconds(self) -> float:
        return self.DISCORD_WEBHOOK_WAIT_ON_RATE_LIMIT_MS / 1000

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
