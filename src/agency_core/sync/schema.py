"""SQLite schema definitions for the sync engine.

Database: data/agency.db (WAL mode)
Tables: integrations, metrics_snapshots
"""
import logging
import sqlite3
from pathlib import Path


logger = logging.getLogger(__name__)


SCHEMA_VERSION = 1


def connect(db_path: str | Path) -> sqlite3.Connection:
    """Open a connection with the pragmas the store relies on.

    Args:
        db_path: Path to SQLite database file, or ":memory:"

    Returns:
        Connection with Row factory and WAL journaling
    """
    if str(db_path) != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def init_database(conn: sqlite3.Connection) -> None:
    """Create tables if they don't exist.

    Args:
        conn: SQLite connection
    """
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_version (
            version INTEGER PRIMARY KEY,
            applied_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    cursor = conn.execute("SELECT MAX(version) FROM schema_version")
    current_version = cursor.fetchone()[0] or 0

    if current_version < SCHEMA_VERSION:
        _apply_schema(conn)
        conn.execute(
            "INSERT INTO schema_version (version) VALUES (?)",
            (SCHEMA_VERSION,),
        )
        conn.commit()
        logger.info("Database schema initialized (version %s)", SCHEMA_VERSION)
    else:
        logger.debug("Database schema up to date (version %s)", current_version)


def _apply_schema(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS integrations (
            id TEXT PRIMARY KEY,
            client_id TEXT NOT NULL,
            platform TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'inactive'
                CHECK (status IN ('active', 'inactive', 'error')),
            credentials_json TEXT NOT NULL DEFAULT '{}',
            config_json TEXT NOT NULL DEFAULT '{}',
            last_sync_at TEXT,
            sync_frequency INTEGER NOT NULL DEFAULT 60
                CHECK (sync_frequency BETWEEN 1 AND 1440),
            error_message TEXT,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            UNIQUE(client_id, platform)
        )
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS metrics_snapshots (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            client_id TEXT NOT NULL,
            integration_id TEXT NOT NULL
                REFERENCES integrations(id) ON DELETE CASCADE,
            platform TEXT NOT NULL,
            metric_type TEXT NOT NULL,
            date TEXT NOT NULL,
            metrics_json TEXT NOT NULL,
            created_at TEXT NOT NULL,
            UNIQUE(client_id, integration_id, platform, metric_type, date)
        )
        """
    )

    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_snapshots_client_date
        ON metrics_snapshots(client_id, date)
        """
    )

    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_integrations_status
        ON integrations(status)
        """
    )
