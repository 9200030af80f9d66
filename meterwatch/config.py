"""
Service configuration loaded from environment variables.

Uses Pydantic BaseSettings for automatic env var loading and validation.
All connection strings and tunables come from the environment or a .env
file; nothing is hardcoded.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from datetime import timedelta
from typing import Annotated
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode


class Settings(BaseSettings):
    """Meterwatch service configuration.

    Attributes:
        database_url: Async SQLAlchemy URL (postgresql+asyncpg://...).
        redis_url: Redis URL used for the realtime cache and pub/sub.
        alert_cooldown_s: Minimum seconds between two notifications for the
            same device and fault type.
        silent_plans: Subscription plans that never receive notifications.
        billing_timezone: IANA zone used for shift hours and billing days.
        duration_cap_h: Ceiling for a single reading's integration window.
        default_rate: Unit rate used when shift A is not configured.
        live_billing_auto_open: Open a fresh live billing period on the
            first reading of a new day.
        realtime_cache_ttl_s: TTL of the latest-reading Redis key.
        broadcast_queue_size: Per-subscriber queue bound of the live hub.
        notifier_url: HTTP mail relay endpoint. Notifications are logged
            only when unset.
        notifier_token: Bearer token for the mail relay.
        notifier_timeout_s: HTTP timeout for one notification.
        log_level: Root log level.
    """

    database_url: str
    redis_url: str
    alert_cooldown_s: int = 900
    silent_plans: Annotated[frozenset[str], NoDecode] = frozenset({"free", "essential"})
    billing_timezone: str = "UTC"
    duration_cap_h: float = 1 / 60
    default_rate: float = 7.5
    live_billing_auto_open: bool = True
    realtime_cache_ttl_s: int = 5
    broadcast_queue_size: int = 100
    notifier_url: str | None = None
    notifier_token: str | None = None
    notifier_timeout_s: float = 10.0
    log_level: str = "INFO"

    @field_validator("silent_plans", mode="before")
    @classmethod
    def split_silent_plans(cls, v: object) -> object:
        """Accept a comma-separated string such as ``free,essential``."""
        if isinstance(v, str):
            return frozenset(p.strip().lower() for p in v.split(",") if p.strip())
        return v

    @field_validator("alert_cooldown_s")
    @classmethod
    def cooldown_must_be_non_negative(cls, v: int) -> int:
        """Validate the cooldown window is not negative."""
        if v < 0:
            raise ValueError("ALERT_COOLDOWN_S must be >= 0")
        return v

    @field_validator("duration_cap_h")
    @classmethod
    def duration_cap_must_be_positive(cls, v: float) -> float:
        """Validate the integration ceiling is a positive number of hours."""
        if v <= 0 or v > 1:
            raise ValueError("DURATION_CAP_H must be > 0 and <= 1")
        return v

    @field_validator("broadcast_queue_size")
    @classmethod
    def queue_size_must_be_positive(cls, v: int) -> int:
        """Validate subscriber queues hold at least one record."""
        if v < 1:
            raise ValueError("BROADCAST_QUEUE_SIZE must be >= 1")
        return v

    @field_validator("billing_timezone")
    @classmethod
    def timezone_must_exist(cls, v: str) -> str:
        """Validate the billing timezone is a known IANA zone."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"BILLING_TIMEZONE '{v}' is not a known zone") from None
        return v

    @property
    def cooldown(self) -> timedelta:
        return timedelta(seconds=self.alert_cooldown_s)

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.billing_timezone)

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}
