"""Shared adapter machinery: HTTP access, pagination, numeric helpers."""
import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional, TypeVar

import aiohttp
from pydantic import BaseModel

from ..exceptions import CredentialError, UpstreamError
from ..sync.window import SyncWindow


PAGE_SIZE = 100
TOP_N = 10

T = TypeVar("T")

# Page fetcher: cursor in, (rows, next cursor) out.
PageFetcher = Callable[[Any], Awaitable[tuple[list[dict], Any]]]


def safe_div(numerator: float, denominator: float) -> float:
    """Divide, defining x / 0 as 0."""
    if not denominator:
        return 0.0
    return numerator / denominator


def to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def to_int(value: Any) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def top_n(items: Iterable[T], key: Callable[[T], float], n: int = TOP_N) -> list[T]:
    """Top n items by key, descending.

    sorted() is stable under reverse=True, so ties keep first-seen order.
    """
    return sorted(items, key=key, reverse=True)[:n]


def aggregate_daily(
    records: Iterable[Mapping[str, float]],
    additive: Iterable[str],
    rates: Iterable[str],
) -> dict[str, float]:
    """Combine per-day records into one window record.

    Additive fields are summed. Rate fields are averaged over the days that
    returned a record; days without a record are simply absent from
    ``records`` and affect neither sum nor denominator.

    Args:
        records: One mapping per day that returned data
        additive: Field names to sum
        rates: Field names to average

    Returns:
        Aggregated mapping including ``days_with_data``
    """
    records = list(records)
    additive = list(additive)
    rates = list(rates)

    result: dict[str, float] = {field: 0 for field in additive}
    rate_totals: dict[str, float] = {field: 0.0 for field in rates}

    for record in records:
        for field in additive:
            result[field] += record.get(field, 0)
        for field in rates:
            rate_totals[field] += record.get(field, 0.0)

    days = len(records)
    for field in rates:
        result[field] = safe_div(rate_totals[field], days)

    result["days_with_data"] = days
    return result


@dataclass
class FetchResult:
    """Normalized output of one adapter fetch.

    ``metrics`` is None when the platform legitimately had no rows for the
    window; that is a soft result, not a failure.
    """

    metrics: Optional[BaseModel]
    records_fetched: int = 0
    pages_fetched: int = 0

    @property
    def is_empty(self) -> bool:
        return self.metrics is None


class PlatformAdapter(ABC):
    """Fetches raw data from one platform and normalizes it."""

    platform: str = ""
    base_metric_type: str = ""
    required_credentials: tuple[str, ...] = ()

    MAX_RATE_LIMIT_RETRIES = 3
    RETRY_BASE_DELAY = 1.0  # seconds
    MAX_RETRY_DELAY = 60.0

    def __init__(
        self,
        session: aiohttp.ClientSession,
        request_timeout: float = 30.0,
        page_size: int = PAGE_SIZE,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        """Initialize adapter.

        Args:
            session: Injected aiohttp ClientSession
            request_timeout: Total seconds allowed per upstream request
            page_size: Records requested per page
            logger: Optional logger instance
        """
        self.session = session
        self.request_timeout = request_timeout
        self.page_size = page_size
        self.logger = logger or logging.getLogger(self.__class__.__module__)
        self._secrets: list[str] = []

    async def fetch(
        self,
        credentials: Mapping[str, Any],
        config: Mapping[str, Any],
        window: SyncWindow,
    ) -> FetchResult:
        """Fetch and normalize metrics for a window.

        Raises:
            CredentialError: Required secrets missing (no request is made)
            UpstreamError: Non-success or malformed upstream response
        """
        missing = [name for name in self.required_credentials if not credentials.get(name)]
        if missing:
            raise CredentialError(self.platform, missing)

        self._secrets = [str(v) for v in credentials.values() if isinstance(v, str) and v]
        return await self._fetch(credentials, config, window)

    @abstractmethod
    async def _fetch(
        self,
        credentials: Mapping[str, Any],
        config: Mapping[str, Any],
        window: SyncWindow,
    ) -> FetchResult:
        """Platform-specific fetch + normalize."""

    def _redact(self, text: str) -> str:
        if not text:
            return text
        for secret in self._secrets:
            text = text.replace(secret, "[REDACTED]")
        return text

    def _retry_delay(self, retry_after: Optional[str], attempt: int) -> float:
        """Seconds to wait before retrying a 429.

        Retry-After may be delta-seconds or an HTTP-date; anything
        unparseable falls back to exponential backoff.
        """
        if retry_after:
            try:
                return min(max(float(retry_after), 0.0), self.MAX_RETRY_DELAY)
            except ValueError:
                pass
            try:
                retry_at = parsedate_to_datetime(retry_after)
            except (TypeError, ValueError):
                retry_at = None
            if retry_at is not None:
                if retry_at.tzinfo is None:
                    retry_at = retry_at.replace(tzinfo=timezone.utc)
                wait = (retry_at - datetime.now(timezone.utc)).total_seconds()
                return min(max(wait, 0.0), self.MAX_RETRY_DELAY)
            self.logger.warning(
                "%s sent unparseable Retry-After %r", self.platform, retry_after
            )
        return self.RETRY_BASE_DELAY * (2 ** (attempt - 1))

    async def _request_json(
        self,
        url: str,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
        auth: Optional[aiohttp.BasicAuth] = None,
    ) -> tuple[Any, Mapping[str, str]]:
        """GET a JSON document, retrying only on HTTP 429.

        Returns:
            Tuple of (parsed JSON body, response headers)

        Raises:
            UpstreamError: Non-2xx status, network failure, or invalid JSON
        """
        timeout = aiohttp.ClientTimeout(total=self.request_timeout)
        attempt = 0

        while True:
            attempt += 1
            try:
                async with self.session.get(
                    url, params=params, headers=headers, auth=auth, timeout=timeout
                ) as resp:
                    body = await resp.text()

                    if resp.status == 429 and attempt <= self.MAX_RATE_LIMIT_RETRIES:
                        delay = self._retry_delay(resp.headers.get("Retry-After"), attempt)
                        self.logger.warning(
                            "%s rate limited (429), retrying in %.2fs (attempt %s/%s)",
                            self.platform,
                            delay,
                            attempt,
                            self.MAX_RATE_LIMIT_RETRIES,
                        )
                        await asyncio.sleep(delay)
                        continue

                    if not 200 <= resp.status < 300:
                        redacted = self._redact(body)
                        self.logger.error(
                            "%s API error (%s): %s",
                            self.platform,
                            resp.status,
                            redacted[:500],
                        )
                        raise UpstreamError(
                            self.platform, "request failed", resp.status, redacted
                        )

                    try:
                        return json.loads(body), resp.headers
                    except ValueError as exc:
                        raise UpstreamError(
                            self.platform,
                            f"malformed JSON payload: {self._redact(body)[:200]}",
                        ) from exc

            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                raise UpstreamError(
                    self.platform, f"request failed: {self._redact(repr(exc))}"
                ) from exc

    async def _paginate(self, fetch_page: PageFetcher, first_cursor: Any = 1) -> tuple[list[dict], int]:
        """Collect rows page by page until a short or empty page.

        There is no page cap; the loop ends when upstream runs out of data.

        Args:
            fetch_page: Coroutine returning (rows, next_cursor) for a cursor
            first_cursor: Cursor for the first page

        Returns:
            Tuple of (all rows in upstream order, pages fetched)
        """
        rows: list[dict] = []
        cursor = first_cursor
        pages = 0

        while True:
            page_rows, next_cursor = await fetch_page(cursor)
            pages += 1
            rows.extend(page_rows)

            if len(page_rows) < self.page_size:
                break
            if next_cursor is None:
                self.logger.warning(
                    "%s returned a full page without a continuation cursor", self.platform
                )
                break
            cursor = next_cursor

        self.logger.info("Fetched %s %s rows in %s pages", len(rows), self.platform, pages)
        return rows, pages

    @staticmethod
    def _expect_list(platform: str, payload: Any, what: str) -> list[dict]:
        if not isinstance(payload, list):
            raise UpstreamError(platform, f"malformed {what} payload: expected a list")
        return payload
