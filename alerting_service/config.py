"""Service configuration.

Built once at process start with `Settings.from_env()` and handed to
`create_app`; components read it from `app.state.settings`.
"""

import os
from dataclasses import dataclass, field
from typing import Optional, Tuple

from alerting_service.models.schemas import NotificationChannel

_TRUTHY = ("1", "true", "yes")


@dataclass(frozen=True)
class Settings:
    # Database (PostgreSQL DSN in deployment, SQLite for local runs and tests)
    DATABASE_URL: str

    # Redis (real-time pub/sub + latest-reading cache)
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379

    # Server
    LOG_LEVEL: str = "INFO"
    ROOT_PATH: str = ""

    # Write gates; unset means "do not block"
    DEVICE_API_KEY: Optional[str] = None
    ADMIN_TOKEN: Optional[str] = None

    # Retention
    READING_RETENTION_DAYS: int = 30
    ALERT_RETENTION_DAYS: int = 90

    # Notifications
    NOTIFICATION_CHANNELS: Tuple[NotificationChannel, ...] = field(
        default_factory=lambda: tuple(NotificationChannel)
    )
    WEBHOOK_URL: Optional[str] = None
    TWILIO_ACCOUNT_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[str] = None
    TWILIO_FROM_NUMBER: Optional[str] = None
    TWILIO_TEST_MODE: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        database_url = os.getenv("DATABASE_URL")
        if not database_url:
            raise RuntimeError("DATABASE_URL environment variable is not set")

        return cls(
            DATABASE_URL=database_url,
            REDIS_HOST=os.getenv("REDIS_HOST", "localhost"),
            REDIS_PORT=int(os.getenv("REDIS_PORT", "6379")),
            LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
            ROOT_PATH=os.getenv("ROOT_PATH", ""),
            DEVICE_API_KEY=os.getenv("DEVICE_API_KEY") or None,
            ADMIN_TOKEN=os.getenv("ADMIN_TOKEN") or None,
            READING_RETENTION_DAYS=int(os.getenv("READING_RETENTION_DAYS", "30")),
            ALERT_RETENTION_DAYS=int(os.getenv("ALERT_RETENTION_DAYS", "90")),
            NOTIFICATION_CHANNELS=parse_channels(
                os.getenv("NOTIFICATION_CHANNELS", "email,sms,push,webhook")
            ),
            WEBHOOK_URL=os.getenv("WEBHOOK_URL") or None,
            TWILIO_ACCOUNT_SID=os.getenv("TWILIO_ACCOUNT_SID"),
            TWILIO_AUTH_TOKEN=os.getenv("TWILIO_AUTH_TOKEN"),
            TWILIO_FROM_NUMBER=os.getenv("TWILIO_FROM_NUMBER"),
            TWILIO_TEST_MODE=os.getenv("TWILIO_TEST_MODE", "0").lower() in _TRUTHY,
        )


def parse_channels(raw: str) -> Tuple[NotificationChannel, ...]:
    """Parse "email,sms" into channels; unknown names raise ValueError."""
    names = [part.strip().lower() for part in raw.split(",") if part.strip()]
    return tuple(NotificationChannel(name) for name in names)
