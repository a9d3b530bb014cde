"""Unit tests for the SQLite snapshot and integration stores."""
import sqlite3
from datetime import date, datetime, timezone

import pytest

from agency_core.exceptions import IntegrationNotFoundError, InvariantViolation, StoreError
from agency_core.schemas.integrations import Integration, IntegrationStatus
from agency_core.schemas.metrics import MetricsSnapshot
from agency_core.sync.schema import connect, init_database
from agency_core.sync.store import IntegrationStore, SnapshotStore, _transaction


@pytest.fixture
def conn():
    conn = connect(":memory:")
    init_database(conn)
    yield conn
    conn.close()


@pytest.fixture
def integrations(conn):
    store = IntegrationStore(conn)
    store.save(Integration(id="int-woo", client_id="acme", platform="woocommerce", status="active"))
    store.save(Integration(id="int-fb", client_id="acme", platform="facebook_ads", status="active"))
    store.save(Integration(id="int-other", client_id="globex", platform="woocommerce", status="active"))
    return store


@pytest.fixture
def snapshots(conn, integrations):
    return SnapshotStore(conn)


def make_snapshot(day: date, metrics: dict, **overrides) -> MetricsSnapshot:
    fields = dict(
        client_id="acme",
        integration_id="int-woo",
        platform="woocommerce",
        metric_type="ecommerce",
        date=day,
        metrics=metrics,
        created_at=datetime(2024, 12, 10, 12, 0, tzinfo=timezone.utc),
    )
    fields.update(overrides)
    return MetricsSnapshot(**fields)


def test_init_database_is_idempotent(conn):
    init_database(conn)

    versions = conn.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0]
    assert versions == 1


def test_upsert_same_key_replaces_metrics(snapshots):
    """Writing the same key twice leaves one row holding the last write."""
    day = date(2024, 12, 1)
    snapshots.upsert(make_snapshot(day, {"total_revenue": 100.0}))
    snapshots.upsert(
        make_snapshot(
            day,
            {"total_revenue": 250.0},
            created_at=datetime(2024, 12, 11, 8, 0, tzinfo=timezone.utc),
        )
    )

    rows = snapshots.list_snapshots(client_id="acme")
    assert len(rows) == 1
    assert rows[0].metrics == {"total_revenue": 250.0}
    assert rows[0].created_at == datetime(2024, 12, 11, 8, 0, tzinfo=timezone.utc)


def test_upsert_distinct_metric_types_are_separate_rows(snapshots):
    day = date(2024, 12, 1)
    snapshots.upsert(make_snapshot(day, {"total_revenue": 1.0}))
    snapshots.upsert(make_snapshot(day, {"total_revenue": 2.0}, metric_type="ecommerce_aggregate"))

    rows = snapshots.list_snapshots(client_id="acme")
    assert [row.metric_type for row in rows] == ["ecommerce", "ecommerce_aggregate"]


def test_bulk_upsert_writes_all_and_resolves_duplicates(snapshots):
    written = snapshots.bulk_upsert(
        [
            make_snapshot(date(2024, 12, 1), {"v": 1}),
            make_snapshot(date(2024, 12, 2), {"v": 2}),
            make_snapshot(date(2024, 12, 1), {"v": 3}),
        ]
    )

    assert written == 3
    rows = snapshots.list_snapshots(integration_id="int-woo")
    assert [(row.date, row.metrics["v"]) for row in rows] == [
        (date(2024, 12, 1), 3),
        (date(2024, 12, 2), 2),
    ]


def test_bulk_upsert_empty_batch(snapshots):
    assert snapshots.bulk_upsert([]) == 0


def test_bulk_upsert_is_all_or_nothing(snapshots):
    """An unknown integration id fails the foreign key and rolls back the batch."""
    with pytest.raises(StoreError):
        snapshots.bulk_upsert(
            [
                make_snapshot(date(2024, 12, 1), {"v": 1}),
                make_snapshot(date(2024, 12, 2), {"v": 2}, integration_id="missing"),
            ]
        )

    assert snapshots.list_snapshots() == []


def test_delete_range_returns_count_and_respects_filters(snapshots):
    for day in (date(2024, 12, 1), date(2024, 12, 2), date(2024, 12, 3)):
        snapshots.upsert(make_snapshot(day, {"v": 1}))
        snapshots.upsert(
            make_snapshot(
                day,
                {"v": 1},
                integration_id="int-fb",
                platform="facebook_ads",
                metric_type="facebook_ads",
            )
        )
    snapshots.upsert(
        make_snapshot(date(2024, 12, 2), {"v": 1}, client_id="globex", integration_id="int-other")
    )

    deleted = snapshots.delete_range(
        client_id="acme",
        date_from=date(2024, 12, 1),
        date_to=date(2024, 12, 2),
        platform="woocommerce",
    )

    assert deleted == 2
    remaining = snapshots.list_snapshots()
    assert len(remaining) == 5
    assert any(row.client_id == "globex" for row in remaining)


def test_delete_range_requires_client_and_dates(snapshots):
    with pytest.raises(ValueError):
        snapshots.delete_range(client_id="", date_from=date(2024, 12, 1), date_to=date(2024, 12, 2))

    with pytest.raises(ValueError):
        snapshots.delete_range(client_id="acme", date_from=None, date_to=date(2024, 12, 2))


def test_duplicate_snapshot_insert_raises_invariant_violation(conn, integrations):
    insert = """
        INSERT INTO metrics_snapshots (
            client_id, integration_id, platform, metric_type, date, metrics_json, created_at
        ) VALUES ('acme', 'int-woo', 'woocommerce', 'ecommerce', '2024-12-01', '{}', '2024-12-01')
    """
    with _transaction(conn, "test"):
        conn.execute(insert)

    with pytest.raises(InvariantViolation):
        with _transaction(conn, "test"):
            conn.execute(insert)


def test_transaction_translates_sqlite_errors(conn):
    with pytest.raises(StoreError) as exc_info:
        with _transaction(conn, "broken"):
            conn.execute("INSERT INTO no_such_table VALUES (1)")

    assert isinstance(exc_info.value.__cause__, sqlite3.Error)
    assert "broken" in str(exc_info.value)


def test_integration_roundtrip_and_not_found(integrations):
    integration = integrations.get("int-woo")

    assert integration.client_id == "acme"
    assert integration.status == IntegrationStatus.ACTIVE
    assert integration.last_sync_at is None

    with pytest.raises(IntegrationNotFoundError):
        integrations.get("missing")


def test_mark_failure_keeps_last_sync_at(integrations):
    synced_at = datetime(2024, 12, 1, 10, 0, tzinfo=timezone.utc)
    integrations.mark_success("int-woo", synced_at)
    integrations.mark_failure("int-woo", "woocommerce API error: HTTP 500")

    integration = integrations.get("int-woo")
    assert integration.status == IntegrationStatus.ERROR
    assert integration.error_message == "woocommerce API error: HTTP 500"
    assert integration.last_sync_at == synced_at


def test_mark_success_clears_error(integrations):
    integrations.mark_failure("int-woo", "boom")
    synced_at = datetime(2024, 12, 2, 9, 30, tzinfo=timezone.utc)
    integrations.mark_success("int-woo", synced_at)

    integration = integrations.get("int-woo")
    assert integration.status == IntegrationStatus.ACTIVE
    assert integration.error_message is None
    assert integration.last_sync_at == synced_at


def test_list_pollable_excludes_inactive(integrations):
    integrations.save(Integration(id="int-off", client_id="acme", platform="mailerlite", status="inactive"))
    integrations.mark_failure("int-fb", "HTTP 500")

    pollable = {integration.id for integration in integrations.list_pollable()}

    assert pollable == {"int-woo", "int-fb", "int-other"}
