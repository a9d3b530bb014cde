"""Process-scoped backfill progress owned by the scheduler.

Lifecycle: ``start`` at backfill begin, ``advance`` per day processed,
``finish`` or ``abort`` at the end. Readers poll ``current()`` or register
a callback with ``subscribe``.
"""
import logging
import time
from dataclasses import dataclass, field, replace
from typing import Callable, Optional


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BackfillProgress:
    integration_id: str
    platform: str
    total: int
    current: int = 0
    current_date: Optional[str] = None
    success: int = 0
    failed: int = 0
    skipped: int = 0
    is_running: bool = True
    error: Optional[str] = None
    started_at: float = field(default_factory=time.time)


Subscriber = Callable[[Optional[BackfillProgress]], None]


class BackfillTracker:
    """Holds the state of the running (or last finished) backfill."""

    def __init__(self) -> None:
        self._state: Optional[BackfillProgress] = None
        self._subscribers: list[Subscriber] = []

    def current(self) -> Optional[BackfillProgress]:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is not None and self._state.is_running

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback for every state change.

        Returns:
            Function that removes the subscription
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def start(self, integration_id: str, platform: str, total: int) -> None:
        if self.is_running:
            raise RuntimeError(
                f"Backfill already running for integration={self._state.integration_id}"
            )
        self._publish(BackfillProgress(integration_id=integration_id, platform=platform, total=total))

    def advance(self, current_date: str, status: str) -> None:
        """Record one processed day.

        Args:
            current_date: ISO day just processed
            status: Day outcome: "success", "skipped" or "error"
        """
        state = self._require_state()
        self._publish(
            replace(
                state,
                current=state.current + 1,
                current_date=current_date,
                success=state.success + (status == "success"),
                skipped=state.skipped + (status == "skipped"),
                failed=state.failed + (status not in ("success", "skipped")),
            )
        )

    def finish(self) -> None:
        self._publish(replace(self._require_state(), is_running=False))

    def abort(self, error: str) -> None:
        self._publish(replace(self._require_state(), is_running=False, error=error))

    def clear(self) -> None:
        self._publish(None)

    def _require_state(self) -> BackfillProgress:
        if self._state is None:
            raise RuntimeError("No backfill in progress")
        return self._state

    def _publish(self, state: Optional[BackfillProgress]) -> None:
        self._state = state
        for callback in list(self._subscribers):
            try:
                callback(state)
            except Exception as exc:
                logger.error("Backfill progress subscriber failed: %s", exc)
