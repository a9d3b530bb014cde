"""Environment-driven settings for the sync engine."""
import logging
import os
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo


logger = logging.getLogger(__name__)


def _resolve_timezone(tz_name: str) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name)
    except Exception:
        logger.warning("Invalid SYNC_TIMEZONE '%s', using UTC", tz_name)
        return ZoneInfo("UTC")


@dataclass(frozen=True)
class SyncSettings:
    """Runtime settings for scheduler, adapters and API."""

    db_path: Path
    redis_url: Optional[str]
    max_concurrency: int = 5
    request_timeout: float = 30.0
    integration_timeout: float = 300.0
    timezone: str = "UTC"

    @classmethod
    def from_env(cls) -> "SyncSettings":
        """Load settings from environment variables."""
        return cls(
            db_path=Path(os.getenv("AGENCY_DB_PATH", "data/agency.db")),
            redis_url=os.getenv("REDIS_URL") or None,
            max_concurrency=int(os.getenv("SYNC_MAX_CONCURRENCY", "5")),
            request_timeout=float(os.getenv("SYNC_REQUEST_TIMEOUT", "30")),
            integration_timeout=float(os.getenv("SYNC_INTEGRATION_TIMEOUT", "300")),
            timezone=os.getenv("SYNC_TIMEZONE", "UTC"),
        )

    @property
    def tzinfo(self) -> ZoneInfo:
        return _resolve_timezone(self.timezone)

    def today(self) -> date:
        """Current calendar day in the configured timezone."""
        return datetime.now(self.tzinfo).date()
