#!/usr/bin/env python3
"""Seed integration rows from a JSON file.

The file holds a list of objects with the Integration fields, e.g.:

    [{"id": "int-1", "client_id": "acme", "platform": "woocommerce",
      "status": "active", "sync_frequency": 60,
      "credentials": {"store_url": "...", "consumer_key": "...", "consumer_secret": "..."}}]

Usage:
    python scripts/seed_integrations.py integrations.json
"""
import argparse
import json
import logging

from agency_core.config import SyncSettings
from agency_core.schemas.integrations import Integration
from agency_core.sync.schema import connect, init_database
from agency_core.sync.store import IntegrationStore


logger = logging.getLogger("seed_integrations")


def seed(path: str) -> int:
    settings = SyncSettings.from_env()
    conn = connect(settings.db_path)
    try:
        init_database(conn)
        store = IntegrationStore(conn)

        with open(path, encoding="utf-8") as fh:
            rows = json.load(fh)

        for row in rows:
            integration = Integration.model_validate(row)
            store.save(integration)
            logger.info(
                "Seeded integration %s (%s, client=%s)",
                integration.id,
                integration.platform,
                integration.client_id,
            )
        return len(rows)
    finally:
        conn.close()


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    parser = argparse.ArgumentParser(description="Seed integration rows")
    parser.add_argument("path", help="JSON file with a list of integrations")
    args = parser.parse_args()

    count = seed(args.path)
    logger.info("Seeded %s integrations into %s", count, SyncSettings.from_env().db_path)
