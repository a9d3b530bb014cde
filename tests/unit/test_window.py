"""Unit tests for sync window resolution."""
from datetime import date

import pytest

from agency_core.sync.window import Backfill, Incremental, WindowResolver, iter_days


def test_incremental_is_single_day_with_daily_metric_type():
    window = Incremental(date(2024, 12, 5))

    assert window.start == window.end == date(2024, 12, 5)
    assert window.snapshot_date == date(2024, 12, 5)
    assert window.is_aggregate is False
    assert window.metric_type("ecommerce") == "ecommerce"
    assert window.days() == [date(2024, 12, 5)]


def test_backfill_uses_aggregate_metric_type_dated_at_start():
    window = Backfill(date(2024, 12, 1), date(2024, 12, 3))

    assert window.is_aggregate is True
    assert window.snapshot_date == date(2024, 12, 1)
    assert window.metric_type("facebook_ads") == "facebook_ads_aggregate"
    assert window.days() == [date(2024, 12, 1), date(2024, 12, 2), date(2024, 12, 3)]


def test_single_day_backfill_stays_aggregate():
    """A one-day explicit range is still an aggregate window."""
    window = Backfill(date(2024, 12, 1), date(2024, 12, 1))

    assert window.metric_type("email") == "email_aggregate"


def test_backfill_rejects_inverted_range():
    with pytest.raises(ValueError):
        Backfill(date(2024, 12, 3), date(2024, 12, 1))


def test_resolver_defaults_to_trailing_thirty_days():
    window = WindowResolver().resolve(date(2024, 12, 31))

    assert window == Backfill(date(2024, 12, 1), date(2024, 12, 31))


def test_resolver_uses_explicit_range():
    window = WindowResolver().resolve(
        date(2024, 12, 31), date(2024, 11, 1), date(2024, 11, 7)
    )

    assert window.start == date(2024, 11, 1)
    assert window.end == date(2024, 11, 7)


def test_resolver_requires_both_bounds():
    resolver = WindowResolver()

    with pytest.raises(ValueError) as exc_info:
        resolver.resolve(date(2024, 12, 31), date_from=date(2024, 12, 1))

    assert "together" in str(exc_info.value)


def test_resolver_incremental_is_today():
    assert WindowResolver().incremental(date(2024, 12, 31)) == Incremental(date(2024, 12, 31))


def test_iter_days_crosses_month_boundary():
    days = list(iter_days(date(2024, 2, 28), date(2024, 3, 1)))

    assert days == [date(2024, 2, 28), date(2024, 2, 29), date(2024, 3, 1)]
