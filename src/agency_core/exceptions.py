"""Exception taxonomy for the sync engine."""
from typing import Optional


class SyncError(Exception):
    """Base exception for all sync engine errors."""


class ConfigError(SyncError):
    """Raised for bad or missing integration configuration."""


class CredentialError(ConfigError):
    """Raised when required credentials are absent (before any network call)."""

    def __init__(self, platform: str, missing: list[str]):
        self.platform = platform
        self.missing = missing
        super().__init__(
            f"Missing {platform} credentials: {', '.join(missing)}"
        )


class UpstreamError(SyncError):
    """Raised for non-success or malformed responses from a platform API."""

    def __init__(
        self,
        platform: str,
        message: str,
        status: Optional[int] = None,
        body: Optional[str] = None,
    ):
        self.platform = platform
        self.status = status
        self.body = body
        if status is not None:
            message = f"{message}: HTTP {status}, body={(body or '')[:500]}"
        super().__init__(f"{platform} API error: {message}")


class StoreError(SyncError):
    """Raised when a persistence operation fails."""


class InvariantViolation(StoreError):
    """Raised when a write collides on the snapshot uniqueness key.

    Upserts resolve conflicts, so seeing this indicates a store-layer bug.
    """


class UnknownPlatformError(SyncError):
    """Raised when an integration names a platform with no adapter."""

    def __init__(self, platform: str):
        self.platform = platform
        super().__init__(f"Unknown platform: {platform}")


class IntegrationNotFoundError(SyncError):
    """Raised when an integration id does not exist."""

    def __init__(self, integration_id: str):
        self.integration_id = integration_id
        super().__init__(f"Integration not found: {integration_id}")
