"""SQLite-backed stores for metrics snapshots and integration state.

All snapshot writes go through ``SnapshotStore.upsert``/``bulk_upsert``;
adapters never write rows themselves.
"""
import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Iterable, Iterator, Optional

from ..exceptions import IntegrationNotFoundError, InvariantViolation, StoreError
from ..schemas.integrations import Integration
from ..schemas.metrics import MetricsSnapshot


logger = logging.getLogger(__name__)


UPSERT_SNAPSHOT_SQL = """
    INSERT INTO metrics_snapshots (
        client_id, integration_id, platform, metric_type, date,
        metrics_json, created_at
    )
    VALUES (?, ?, ?, ?, ?, ?, ?)
    ON CONFLICT(client_id, integration_id, platform, metric_type, date)
    DO UPDATE SET
        metrics_json=excluded.metrics_json,
        created_at=excluded.created_at
"""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@contextmanager
def _transaction(conn: sqlite3.Connection, operation: str) -> Iterator[None]:
    """Run a block in one transaction, translating sqlite errors."""
    try:
        with conn:
            yield
    except sqlite3.IntegrityError as exc:
        if "UNIQUE constraint failed: metrics_snapshots" in str(exc):
            logger.error("Snapshot uniqueness violated during %s: %s", operation, exc)
            raise InvariantViolation(f"Duplicate snapshot key during {operation}: {exc}") from exc
        logger.error("SQLite integrity error during %s: %s", operation, exc)
        raise StoreError(f"Store {operation} failed: {exc}") from exc
    except sqlite3.Error as exc:
        logger.error("SQLite write failed during %s: %s", operation, exc)
        raise StoreError(f"Store {operation} failed: {exc}") from exc


class SnapshotStore:
    """Idempotent persistence of metrics snapshots.

    Key: (client_id, integration_id, platform, metric_type, date).
    A write for an existing key replaces metrics and created_at in full.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    @staticmethod
    def _row_params(snapshot: MetricsSnapshot) -> tuple:
        created_at = snapshot.created_at or _utcnow()
        return (
            snapshot.client_id,
            snapshot.integration_id,
            snapshot.platform,
            snapshot.metric_type,
            snapshot.date.isoformat(),
            json.dumps(snapshot.metrics, separators=(",", ":")),
            created_at.isoformat(),
        )

    def upsert(self, snapshot: MetricsSnapshot) -> None:
        """Insert or replace one snapshot atomically.

        Args:
            snapshot: Snapshot to persist

        Raises:
            StoreError: On any persistence failure
        """
        with _transaction(self.conn, "upsert"):
            self.conn.execute(UPSERT_SNAPSHOT_SQL, self._row_params(snapshot))

        logger.info(
            "Upserted %s snapshot for integration=%s date=%s",
            snapshot.metric_type,
            snapshot.integration_id,
            snapshot.date.isoformat(),
        )

    def bulk_upsert(self, snapshots: Iterable[MetricsSnapshot]) -> int:
        """Upsert many snapshots in a single transaction.

        Each record uses the same conflict-key replace as ``upsert``; the batch
        is all-or-nothing.

        Args:
            snapshots: Snapshots to persist

        Returns:
            Number of snapshots written
        """
        rows = [self._row_params(snapshot) for snapshot in snapshots]
        if not rows:
            return 0

        with _transaction(self.conn, "bulk_upsert"):
            self.conn.executemany(UPSERT_SNAPSHOT_SQL, rows)

        logger.info("Bulk upserted %s snapshots", len(rows))
        return len(rows)

    def delete_range(
        self,
        client_id: str,
        date_from: date,
        date_to: date,
        platform: Optional[str] = None,
        integration_id: Optional[str] = None,
    ) -> int:
        """Delete snapshots for a client within an inclusive date range.

        Args:
            client_id: Owning client (required)
            date_from: First day to delete (required)
            date_to: Last day to delete (required)
            platform: Optional platform filter
            integration_id: Optional integration filter

        Returns:
            Number of rows removed

        Raises:
            ValueError: If a required filter is missing
        """
        if not client_id or date_from is None or date_to is None:
            raise ValueError("client_id, date_from and date_to are required")

        query = "DELETE FROM metrics_snapshots WHERE client_id=? AND date>=? AND date<=?"
        params: list = [client_id, date_from.isoformat(), date_to.isoformat()]

        if platform:
            query += " AND platform=?"
            params.append(platform)
        if integration_id:
            query += " AND integration_id=?"
            params.append(integration_id)

        with _transaction(self.conn, "delete_range"):
            cursor = self.conn.execute(query, params)
            deleted = cursor.rowcount

        logger.info(
            "Deleted %s snapshots for client=%s platform=%s integration=%s %s..%s",
            deleted,
            client_id,
            platform,
            integration_id,
            date_from.isoformat(),
            date_to.isoformat(),
        )
        return deleted

    def list_snapshots(
        self,
        client_id: Optional[str] = None,
        integration_id: Optional[str] = None,
        platform: Optional[str] = None,
        metric_type: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[MetricsSnapshot]:
        """Read snapshots matching the given filters, ordered by date."""
        clauses: list[str] = []
        params: list = []
        for column, value in (
            ("client_id", client_id),
            ("integration_id", integration_id),
            ("platform", platform),
            ("metric_type", metric_type),
        ):
            if value is not None:
                clauses.append(f"{column}=?")
                params.append(value)
        if date_from is not None:
            clauses.append("date>=?")
            params.append(date_from.isoformat())
        if date_to is not None:
            clauses.append("date<=?")
            params.append(date_to.isoformat())

        query = "SELECT * FROM metrics_snapshots"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY date, id"

        cursor = self.conn.execute(query, params)
        return [
            MetricsSnapshot(
                id=row["id"],
                client_id=row["client_id"],
                integration_id=row["integration_id"],
                platform=row["platform"],
                metric_type=row["metric_type"],
                date=date.fromisoformat(row["date"]),
                metrics=json.loads(row["metrics_json"]),
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in cursor.fetchall()
        ]


class IntegrationStore:
    """Integration rows and their sync health fields."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    @staticmethod
    def _from_row(row: sqlite3.Row) -> Integration:
        last_sync_at = row["last_sync_at"]
        return Integration(
            id=row["id"],
            client_id=row["client_id"],
            platform=row["platform"],
            credentials=json.loads(row["credentials_json"] or "{}"),
            config=json.loads(row["config_json"] or "{}"),
            status=row["status"],
            last_sync_at=datetime.fromisoformat(last_sync_at) if last_sync_at else None,
            sync_frequency=row["sync_frequency"],
            error_message=row["error_message"],
        )

    def save(self, integration: Integration) -> None:
        """Create or fully replace an integration row."""
        with _transaction(self.conn, "save_integration"):
            self.conn.execute(
                """
                INSERT INTO integrations (
                    id, client_id, platform, status,
                    credentials_json, config_json,
                    last_sync_at, sync_frequency, error_message
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id)
                DO UPDATE SET
                    client_id=excluded.client_id,
                    platform=excluded.platform,
                    status=excluded.status,
                    credentials_json=excluded.credentials_json,
                    config_json=excluded.config_json,
                    last_sync_at=excluded.last_sync_at,
                    sync_frequency=excluded.sync_frequency,
                    error_message=excluded.error_message,
                    updated_at=CURRENT_TIMESTAMP
                """,
                (
                    integration.id,
                    integration.client_id,
                    integration.platform,
                    integration.status.value,
                    json.dumps(integration.credentials),
                    json.dumps(integration.config),
                    integration.last_sync_at.isoformat() if integration.last_sync_at else None,
                    integration.sync_frequency,
                    integration.error_message,
                ),
            )

    def get(self, integration_id: str) -> Integration:
        """Fetch one integration.

        Raises:
            IntegrationNotFoundError: If no row exists
        """
        cursor = self.conn.execute(
            "SELECT * FROM integrations WHERE id=?", (integration_id,)
        )
        row = cursor.fetchone()
        if row is None:
            raise IntegrationNotFoundError(integration_id)
        return self._from_row(row)

    def list_pollable(self) -> list[Integration]:
        """Integrations the scheduler considers each cycle (everything not inactive)."""
        cursor = self.conn.execute(
            "SELECT * FROM integrations WHERE status != 'inactive' ORDER BY created_at, id"
        )
        return [self._from_row(row) for row in cursor.fetchall()]

    def mark_success(self, integration_id: str, synced_at: datetime) -> None:
        """Record a successful sync: advance last_sync_at, clear error."""
        with _transaction(self.conn, "mark_success"):
            self.conn.execute(
                """
                UPDATE integrations
                SET status='active',
                    last_sync_at=?,
                    error_message=NULL,
                    updated_at=CURRENT_TIMESTAMP
                WHERE id=?
                """,
                (synced_at.isoformat(), integration_id),
            )

    def mark_failure(self, integration_id: str, error_message: str) -> None:
        """Record a failed sync. last_sync_at is left untouched."""
        with _transaction(self.conn, "mark_failure"):
            self.conn.execute(
                """
                UPDATE integrations
                SET status='error',
                    error_message=?,
                    updated_at=CURRENT_TIMESTAMP
                WHERE id=?
                """,
                (error_message, integration_id),
            )
