"""Pydantic models for integrations and their sync health."""
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class Platform(str, Enum):
    """Closed set of platforms with a known adapter."""

    WOOCOMMERCE = "woocommerce"  # order-commerce
    FACEBOOK_ADS = "facebook_ads"  # ad-spend
    MAILERLITE = "mailerlite"  # email-marketing
    WORDPRESS = "wordpress"  # content-site


class IntegrationStatus(str, Enum):
    """Integration health state."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    ERROR = "error"


POLLED_STATUSES = frozenset({IntegrationStatus.ACTIVE, IntegrationStatus.ERROR})


class Integration(BaseModel):
    """Configured connection between a client and one external platform."""

    id: str
    client_id: str
    # Kept as a plain string: rows may carry tags with no adapter.
    platform: str
    credentials: dict[str, Any] = Field(default_factory=dict)
    config: dict[str, Any] = Field(default_factory=dict)
    status: IntegrationStatus = IntegrationStatus.INACTIVE
    last_sync_at: Optional[datetime] = None
    sync_frequency: int = Field(60, ge=1, le=1440, description="Minutes between syncs")
    error_message: Optional[str] = None

    def is_due(self, now: datetime) -> bool:
        """Check whether the sync interval has elapsed.

        Error is not terminal: errored integrations are polled like active ones.
        Naive timestamps are treated as UTC.

        Args:
            now: Current time

        Returns:
            True if the integration should sync this cycle
        """
        if self.status not in POLLED_STATUSES:
            return False
        if self.last_sync_at is None:
            return True
        return _as_utc(now) - _as_utc(self.last_sync_at) >= timedelta(
            minutes=self.sync_frequency
        )

    def secret_values(self) -> list[str]:
        """Credential values to redact from logs and stored error text."""
        return [str(v) for v in self.credentials.values() if isinstance(v, str) and v]


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
