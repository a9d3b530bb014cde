"""Sync window resolution.

A window is an explicit tagged variant so callers never rely on
``from == to`` to select single-day versus aggregate semantics:

- ``Incremental(day)``: one day, daily metric type, snapshot dated ``day``
- ``Backfill(start, end)``: inclusive range, aggregate metric type,
  one snapshot dated ``start``
"""
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterator, Optional, Union


DEFAULT_BACKFILL_DAYS = 30
AGGREGATE_SUFFIX = "_aggregate"


def iter_days(start: date, end: date) -> Iterator[date]:
    """Yield each calendar day from start to end inclusive."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


@dataclass(frozen=True)
class Incremental:
    """Single-day window used by scheduler polls."""

    day: date

    is_aggregate = False

    @property
    def start(self) -> date:
        return self.day

    @property
    def end(self) -> date:
        return self.day

    @property
    def snapshot_date(self) -> date:
        return self.day

    def metric_type(self, base: str) -> str:
        return base

    def days(self) -> list[date]:
        return [self.day]


@dataclass(frozen=True)
class Backfill:
    """Explicit multi-day window producing one aggregate snapshot."""

    start: date
    end: date

    is_aggregate = True

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError(
                f"Window start {self.start.isoformat()} is after end {self.end.isoformat()}"
            )

    @property
    def snapshot_date(self) -> date:
        return self.start

    def metric_type(self, base: str) -> str:
        return f"{base}{AGGREGATE_SUFFIX}"

    def days(self) -> list[date]:
        return list(iter_days(self.start, self.end))


SyncWindow = Union[Incremental, Backfill]


class WindowResolver:
    """Turns caller input into a concrete window."""

    def __init__(self, default_days: int = DEFAULT_BACKFILL_DAYS) -> None:
        self.default_days = default_days

    def resolve(
        self,
        today: date,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> Backfill:
        """Resolve an explicit range, or the trailing default range.

        Args:
            today: Current day in the sync timezone
            date_from: Optional explicit start (inclusive)
            date_to: Optional explicit end (inclusive)

        Returns:
            Backfill window

        Raises:
            ValueError: If only one bound is given or start > end
        """
        if date_from is not None and date_to is not None:
            return Backfill(date_from, date_to)

        if date_from is not None or date_to is not None:
            raise ValueError("date_from and date_to must be given together")

        return Backfill(today - timedelta(days=self.default_days), today)

    def incremental(self, today: date) -> Incremental:
        """Window for a scheduler poll: today only."""
        return Incremental(today)
