"""Maps sync failures to retry outcomes and integration state changes."""
import asyncio
from dataclasses import dataclass
from enum import Enum

import aiohttp
from redis.exceptions import RedisError

from ..exceptions import (
    ConfigError,
    IntegrationNotFoundError,
    InvariantViolation,
    StoreError,
    UnknownPlatformError,
    UpstreamError,
)


class FailureKind(str, Enum):
    TERMINAL = "terminal"
    TRANSIENT = "transient"


@dataclass(frozen=True)
class Classification:
    """Outcome for one failure.

    Attributes:
        kind: Terminal (config/caller error) or transient
        category: Short label for logs and API responses
        mutates_state: Whether the integration row is set to error
        http_status: Status code surfaced to synchronous callers
    """

    kind: FailureKind
    category: str
    mutates_state: bool
    http_status: int


class ErrorClassifier:
    """Classify exceptions raised while syncing one integration.

    Terminal and transient failures are retried identically on the next
    cycle; the distinction is reported, not acted on with a faster retry.
    """

    def classify(self, exc: BaseException) -> Classification:
        if isinstance(exc, UnknownPlatformError):
            return Classification(FailureKind.TERMINAL, "unknown_platform", False, 400)
        if isinstance(exc, IntegrationNotFoundError):
            return Classification(FailureKind.TERMINAL, "not_found", False, 404)
        if isinstance(exc, ConfigError):
            return Classification(FailureKind.TERMINAL, "config", True, 400)
        if isinstance(exc, InvariantViolation):
            return Classification(FailureKind.TERMINAL, "invariant", True, 500)
        if isinstance(exc, RedisError):
            return Classification(FailureKind.TRANSIENT, "lock", False, 503)
        if isinstance(exc, StoreError):
            return Classification(FailureKind.TRANSIENT, "store", True, 500)
        if isinstance(exc, (UpstreamError, aiohttp.ClientError, asyncio.TimeoutError)):
            return Classification(FailureKind.TRANSIENT, "upstream", True, 502)
        return Classification(FailureKind.TRANSIENT, "internal", True, 500)
