"""Integration scheduler: decides what is due, runs adapters, records health.

One cycle enumerates every pollable integration, syncs the due ones concurrently
under a bounded semaphore and converts every failure into integration
state. Nothing raised while syncing one integration escapes ``run_cycle``.
"""
import asyncio
import logging
from datetime import date, datetime, timezone
from typing import Callable, Optional

import aiohttp
from redis.asyncio import Redis
from redis.asyncio.lock import Lock as AsyncRedisLock

from ..adapters import PlatformAdapter, get_adapter_class
from ..config import SyncSettings
from ..exceptions import UpstreamError
from ..schemas.integrations import Integration
from ..schemas.metrics import MetricsSnapshot
from ..schemas.results import CycleSummary, IntegrationResult
from .classifier import ErrorClassifier
from .progress import BackfillProgress, BackfillTracker
from .store import IntegrationStore, SnapshotStore
from .window import Incremental, SyncWindow, WindowResolver, iter_days


AdapterFactory = Callable[[str], PlatformAdapter]


def _redact_text(text: str, secrets: list[str]) -> str:
    if not text:
        return text
    redacted = text
    for secret in secrets:
        if secret:
            redacted = redacted.replace(secret, "[REDACTED]")
    return redacted


class IntegrationScheduler:
    """Runs scheduling cycles, manual syncs and day-by-day backfills.

    At most one sync per integration runs at a time: a per-integration
    asyncio lock guards this process, and a Redis lock guards across
    processes when a Redis client is configured. Cycle and manual syncs skip
    an integration that is already syncing; backfill days wait for it.
    """

    LOCK_KEY_PREFIX = "agency:sync_lock"

    def __init__(
        self,
        integrations: IntegrationStore,
        snapshots: SnapshotStore,
        session: aiohttp.ClientSession,
        settings: SyncSettings,
        redis: Optional[Redis] = None,
        adapter_factory: Optional[AdapterFactory] = None,
        classifier: Optional[ErrorClassifier] = None,
        resolver: Optional[WindowResolver] = None,
        tracker: Optional[BackfillTracker] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        """Initialize scheduler.

        Args:
            integrations: Integration row store
            snapshots: Snapshot store (the only write path for metrics)
            session: Injected aiohttp ClientSession shared by adapters
            settings: Sync settings (concurrency, timeouts, timezone)
            redis: Optional redis.asyncio client for cross-process locks
            adapter_factory: Builds an adapter for a platform tag
            classifier: Failure classifier
            resolver: Window resolver
            tracker: Backfill progress tracker
            logger: Optional logger instance
        """
        self.integrations = integrations
        self.snapshots = snapshots
        self.session = session
        self.settings = settings
        self.redis = redis
        self.classifier = classifier or ErrorClassifier()
        self.resolver = resolver or WindowResolver()
        self.tracker = tracker or BackfillTracker()
        self.logger = logger or logging.getLogger(__name__)
        self._adapter_factory = adapter_factory or self._default_adapter
        self._local_locks: dict[str, asyncio.Lock] = {}

    def _default_adapter(self, platform: str) -> PlatformAdapter:
        adapter_cls = get_adapter_class(platform)
        return adapter_cls(
            session=self.session,
            request_timeout=self.settings.request_timeout,
        )

    def adapter_for(self, platform: str) -> PlatformAdapter:
        """Build the adapter for a platform tag.

        Raises:
            UnknownPlatformError: If no adapter handles the tag
        """
        return self._adapter_factory(platform)

    def _today(self, now: datetime) -> date:
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now.astimezone(self.settings.tzinfo).date()

    async def run_cycle(self, now: Optional[datetime] = None) -> CycleSummary:
        """Run one scheduling cycle over all pollable integrations.

        Args:
            now: Cycle time (defaults to current UTC time)

        Returns:
            CycleSummary with per-integration results
        """
        now = now or datetime.now(timezone.utc)
        integrations = self.integrations.list_pollable()
        semaphore = asyncio.Semaphore(self.settings.max_concurrency)

        self.logger.info("Sync cycle starting: %s integrations", len(integrations))

        async def guarded(integration: Integration) -> IntegrationResult:
            async with semaphore:
                return await self._process(integration, now)

        results = await asyncio.gather(*(guarded(i) for i in integrations))
        summary = CycleSummary.from_results(list(results))

        self.logger.info(
            "Sync cycle complete: checked=%s synced=%s skipped=%s failed=%s",
            summary.integrations_checked,
            summary.synced,
            summary.skipped,
            summary.failed,
        )
        return summary

    async def _process(self, integration: Integration, now: datetime) -> IntegrationResult:
        if not integration.is_due(now):
            return self._skipped(integration, "Not due for sync yet")

        window = self.resolver.incremental(self._today(now))
        return await self._sync_exclusive(integration, window, now)

    async def sync_integration(
        self,
        integration_id: str,
        window: Optional[SyncWindow] = None,
        now: Optional[datetime] = None,
    ) -> IntegrationResult:
        """Sync one integration immediately, ignoring the due-check.

        Args:
            integration_id: Integration to sync
            window: Explicit window (defaults to today's incremental window)
            now: Sync time (defaults to current UTC time)

        Raises:
            IntegrationNotFoundError: If the integration does not exist
        """
        now = now or datetime.now(timezone.utc)
        integration = self.integrations.get(integration_id)
        window = window or self.resolver.incremental(self._today(now))
        return await self._sync_exclusive(integration, window, now)

    async def backfill_daily(
        self,
        integration_id: str,
        start: date,
        end: date,
        now: Optional[datetime] = None,
        reserved: bool = False,
    ) -> BackfillProgress:
        """Sync each day of a range as its own daily snapshot.

        Each day is committed as soon as it succeeds; a failed day is
        counted and the run moves on to the next day. A day waits for any
        sync of the same integration already running in this process.

        Args:
            integration_id: Integration to backfill
            start: First day (inclusive)
            end: Last day (inclusive)
            now: Sync time recorded on success (defaults to current UTC time)
            reserved: The caller already called ``tracker.start`` for this run

        Raises:
            IntegrationNotFoundError: If the integration does not exist
            UnknownPlatformError: If the platform has no adapter
            ValueError: If start is after end
        """
        if start > end:
            raise ValueError("start must not be after end")

        try:
            integration = self.integrations.get(integration_id)
            self.adapter_for(integration.platform)
        except Exception as exc:
            if reserved:
                self.tracker.abort(str(exc))
            raise

        days = list(iter_days(start, end))
        if not reserved:
            self.tracker.start(integration.id, integration.platform, len(days))
        self.logger.info(
            "Backfill starting: integration=%s days=%s (%s..%s)",
            integration.id,
            len(days),
            start.isoformat(),
            end.isoformat(),
        )

        try:
            for day in days:
                result = await self._sync_exclusive(
                    integration, Incremental(day), now or datetime.now(timezone.utc), wait=True
                )
                self.tracker.advance(day.isoformat(), result.status)
        except Exception as exc:
            self.tracker.abort(str(exc))
            self.logger.error("Backfill aborted for %s: %s", integration.id, exc, exc_info=True)
            raise

        self.tracker.finish()
        progress = self.tracker.current()
        self.logger.info(
            "Backfill complete: integration=%s success=%s skipped=%s failed=%s",
            integration.id,
            progress.success,
            progress.skipped,
            progress.failed,
        )
        return progress

    async def _sync_exclusive(
        self,
        integration: Integration,
        window: SyncWindow,
        now: datetime,
        wait: bool = False,
    ) -> IntegrationResult:
        local_lock = self._local_locks.setdefault(integration.id, asyncio.Lock())
        if not wait and local_lock.locked():
            return self._skipped(integration, "Sync already in progress")

        async with local_lock:
            return await self._sync_with_redis_lock(integration, window, now, wait)

    async def _sync_with_redis_lock(
        self,
        integration: Integration,
        window: SyncWindow,
        now: datetime,
        wait: bool,
    ) -> IntegrationResult:
        lock: Optional[AsyncRedisLock] = None
        try:
            if self.redis is not None:
                lock = AsyncRedisLock(
                    self.redis,
                    name=f"{self.LOCK_KEY_PREFIX}:{integration.id}",
                    timeout=self.settings.integration_timeout + 60,
                    blocking=False,
                )
                try:
                    acquired = await lock.acquire(
                        blocking=wait,
                        blocking_timeout=self.settings.integration_timeout if wait else None,
                    )
                except Exception as exc:
                    lock = None
                    return self._failed(integration, exc)
                if not acquired:
                    lock = None
                    return self._skipped(integration, "Sync lock held by another worker")

            return await self._run_sync(integration, window, now)
        finally:
            if lock is not None:
                await self._release_lock_best_effort(lock, integration.id)

    async def _run_sync(
        self,
        integration: Integration,
        window: SyncWindow,
        now: datetime,
    ) -> IntegrationResult:
        try:
            adapter = self.adapter_for(integration.platform)
            metric_type = window.metric_type(adapter.base_metric_type)

            try:
                fetched = await asyncio.wait_for(
                    adapter.fetch(integration.credentials, integration.config, window),
                    timeout=self.settings.integration_timeout,
                )
            except asyncio.TimeoutError as exc:
                raise UpstreamError(
                    integration.platform,
                    f"sync timed out after {self.settings.integration_timeout:g}s",
                ) from exc

            if fetched.is_empty:
                message = "No data for window"
            else:
                self.snapshots.upsert(
                    MetricsSnapshot(
                        client_id=integration.client_id,
                        integration_id=integration.id,
                        platform=integration.platform,
                        metric_type=metric_type,
                        date=window.snapshot_date,
                        metrics=fetched.metrics.model_dump(mode="json"),
                        created_at=now,
                    )
                )
                message = f"Synced {fetched.records_fetched} records"

            self.integrations.mark_success(integration.id, now)

        except Exception as exc:
            return self._failed(integration, exc)

        self.logger.info(
            "Synced integration=%s platform=%s window=%s..%s: %s",
            integration.id,
            integration.platform,
            window.start.isoformat(),
            window.end.isoformat(),
            message,
        )
        return IntegrationResult(
            integration_id=integration.id,
            platform=integration.platform,
            status="success",
            message=message,
            metric_type=metric_type,
            snapshot_date=window.snapshot_date,
            records_fetched=fetched.records_fetched,
        )

    def _failed(self, integration: Integration, exc: Exception) -> IntegrationResult:
        classification = self.classifier.classify(exc)
        message = _redact_text(str(exc), integration.secret_values())

        self.logger.error(
            "Sync failed for integration=%s platform=%s (%s/%s): %s",
            integration.id,
            integration.platform,
            classification.kind.value,
            classification.category,
            message,
            exc_info=True,
        )

        if classification.mutates_state:
            try:
                self.integrations.mark_failure(integration.id, message)
            except Exception as record_exc:
                self.logger.error(
                    "Failed to record sync failure for %s: %s",
                    integration.id,
                    _redact_text(str(record_exc), integration.secret_values()),
                )

        return IntegrationResult(
            integration_id=integration.id,
            platform=integration.platform,
            status="error",
            message=message,
            category=classification.category,
            http_status=classification.http_status,
        )

    def _skipped(self, integration: Integration, message: str) -> IntegrationResult:
        self.logger.debug("Skipping integration=%s: %s", integration.id, message)
        return IntegrationResult(
            integration_id=integration.id,
            platform=integration.platform,
            status="skipped",
            message=message,
        )

    async def _release_lock_best_effort(self, lock: AsyncRedisLock, integration_id: str) -> None:
        try:
            await lock.release()
        except Exception as exc:
            self.logger.error("Failed to release sync lock for %s: %s", integration_id, exc)
