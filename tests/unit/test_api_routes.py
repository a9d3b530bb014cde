"""Unit tests for API routes."""
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from agency_core.main import create_app
from agency_core.schemas.integrations import Integration
from agency_core.schemas.metrics import MetricsSnapshot


HEADERS = {"X-AGENCY-API-KEY": "test-api-key"}


@pytest.fixture
def client(monkeypatch, tmp_path):
    """Create test client with an isolated database."""
    monkeypatch.setenv("AGENCY_API_KEY", "test-api-key")
    monkeypatch.setenv("AGENCY_DB_PATH", str(tmp_path / "agency.db"))
    monkeypatch.delenv("REDIS_URL", raising=False)
    app = create_app()
    with TestClient(app) as client:
        yield client


def seed_snapshots(client):
    state = client.app.state
    state.integration_store.save(
        Integration(id="int-1", client_id="acme", platform="woocommerce", status="active")
    )
    for day in (date(2024, 12, 1), date(2024, 12, 2), date(2024, 12, 3)):
        state.snapshot_store.upsert(
            MetricsSnapshot(
                client_id="acme",
                integration_id="int-1",
                platform="woocommerce",
                metric_type="ecommerce",
                date=day,
                metrics={"total_revenue": 10.0},
                created_at=datetime(2024, 12, 4, tzinfo=timezone.utc),
            )
        )


def test_run_sync_missing_api_key(client):
    """Test endpoint rejects request without API key (401)."""
    response = client.post("/api/v1/sync/run")

    assert response.status_code == 401
    assert "Invalid API key" in response.json()["detail"]


def test_run_sync_invalid_api_key(client):
    response = client.post("/api/v1/sync/run", headers={"X-AGENCY-API-KEY": "wrong-key"})

    assert response.status_code == 401


def test_run_sync_with_no_integrations(client):
    response = client.post("/api/v1/sync/run", headers=HEADERS)

    assert response.status_code == 200
    body = response.json()
    assert body["integrations_checked"] == 0
    assert body["results"] == []


def test_run_sync_does_not_poll_inactive(client):
    client.app.state.integration_store.save(
        Integration(id="int-off", client_id="acme", platform="woocommerce", status="inactive")
    )

    response = client.post("/api/v1/sync/run", headers=HEADERS)

    assert response.status_code == 200
    assert response.json()["integrations_checked"] == 0
    assert response.json()["skipped"] == 0


def test_delete_snapshots_returns_count(client):
    seed_snapshots(client)

    response = client.post(
        "/api/v1/snapshots/delete",
        json={"client_id": "acme", "date_from": "2024-12-01", "date_to": "2024-12-02"},
        headers=HEADERS,
    )

    assert response.status_code == 200
    assert response.json() == {"success": True, "deleted_count": 2}
    assert len(client.app.state.snapshot_store.list_snapshots(client_id="acme")) == 1


def test_delete_snapshots_missing_fields(client):
    response = client.post(
        "/api/v1/snapshots/delete",
        json={"client_id": "acme", "date_from": "2024-12-01"},
        headers=HEADERS,
    )

    assert response.status_code == 422


def test_delete_snapshots_inverted_range(client):
    response = client.post(
        "/api/v1/snapshots/delete",
        json={"client_id": "acme", "date_from": "2024-12-05", "date_to": "2024-12-01"},
        headers=HEADERS,
    )

    assert response.status_code == 400


def test_sync_unknown_integration(client):
    response = client.post("/api/v1/integrations/missing/sync", headers=HEADERS)

    assert response.status_code == 404


def test_sync_requires_both_dates(client):
    client.app.state.integration_store.save(
        Integration(id="int-1", client_id="acme", platform="woocommerce", status="active")
    )

    response = client.post(
        "/api/v1/integrations/int-1/sync",
        json={"date_from": "2024-12-01"},
        headers=HEADERS,
    )

    assert response.status_code == 400


def test_sync_unknown_platform_returns_400(client):
    client.app.state.integration_store.save(
        Integration(id="int-ga", client_id="acme", platform="google_analytics", status="active")
    )

    response = client.post("/api/v1/integrations/int-ga/sync", headers=HEADERS)

    assert response.status_code == 400
    assert "Unknown platform" in response.json()["detail"]


def test_sync_missing_credentials_returns_400(client):
    client.app.state.integration_store.save(
        Integration(id="int-ml", client_id="acme", platform="mailerlite", status="active")
    )

    response = client.post("/api/v1/integrations/int-ml/sync", headers=HEADERS)

    assert response.status_code == 400
    assert client.app.state.integration_store.get("int-ml").status == "error"


def test_backfill_unknown_integration(client):
    response = client.post(
        "/api/v1/integrations/missing/backfill",
        json={"date_from": "2024-12-01", "date_to": "2024-12-03"},
        headers=HEADERS,
    )

    assert response.status_code == 404


def test_backfill_inverted_range(client):
    response = client.post(
        "/api/v1/integrations/int-1/backfill",
        json={"date_from": "2024-12-03", "date_to": "2024-12-01"},
        headers=HEADERS,
    )

    assert response.status_code == 400


def test_backfill_progress_when_idle(client):
    response = client.get("/api/v1/backfill/progress", headers=HEADERS)

    assert response.status_code == 200
    assert response.json()["is_running"] is False
    assert response.json()["integration_id"] is None


def test_backfill_reserves_tracker_before_queuing(client):
    """A second request is refused while the first backfill is still queued."""
    client.app.state.integration_store.save(
        Integration(id="int-1", client_id="acme", platform="woocommerce", status="active")
    )
    scheduler = client.app.state.scheduler
    scheduler.backfill_daily = AsyncMock()
    body = {"date_from": "2024-12-01", "date_to": "2024-12-03"}

    first = client.post("/api/v1/integrations/int-1/backfill", json=body, headers=HEADERS)
    second = client.post("/api/v1/integrations/int-1/backfill", json=body, headers=HEADERS)

    assert first.status_code == 202
    assert first.json()["total_days"] == 3
    assert second.status_code == 409
    scheduler.backfill_daily.assert_awaited_once_with(
        "int-1", date(2024, 12, 1), date(2024, 12, 3), reserved=True
    )

    progress = client.get("/api/v1/backfill/progress", headers=HEADERS).json()
    assert progress["is_running"] is True
    assert progress["integration_id"] == "int-1"
    assert progress["total"] == 3
    assert progress["skipped"] == 0
