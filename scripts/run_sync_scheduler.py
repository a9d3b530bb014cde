#!/usr/bin/env python3
"""CLI entry point for the sync scheduler.

Usage:
    # Run one cycle over all due integrations
    python scripts/run_sync_scheduler.py

    # Keep running, one cycle every 5 minutes
    python scripts/run_sync_scheduler.py --loop --interval 5

    # Backfill one integration day by day
    python scripts/run_sync_scheduler.py --integration int-1 --start 2024-12-01 --end 2024-12-07

    # Write one aggregate snapshot for a range
    python scripts/run_sync_scheduler.py --integration int-1 --start 2024-12-01 --end 2024-12-07 --aggregate
"""
import argparse
import asyncio
import logging
from datetime import datetime

import aiohttp
from redis.asyncio import Redis

from agency_core.config import SyncSettings
from agency_core.sync.scheduler import IntegrationScheduler
from agency_core.sync.schema import connect, init_database
from agency_core.sync.store import IntegrationStore, SnapshotStore
from agency_core.sync.window import Backfill


logger = logging.getLogger("run_sync_scheduler")


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def parse_date(value: str):
    return datetime.strptime(value, "%Y-%m-%d").date()


async def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Agency metrics sync scheduler")
    parser.add_argument(
        "--integration",
        type=str,
        help="Integration id for a manual sync or backfill",
    )
    parser.add_argument(
        "--start",
        type=parse_date,
        help="Start date for backfill range (YYYY-MM-DD)",
    )
    parser.add_argument(
        "--end",
        type=parse_date,
        help="End date for backfill range (YYYY-MM-DD)",
    )
    parser.add_argument(
        "--aggregate",
        action="store_true",
        help="Write one aggregate snapshot for the range instead of one per day",
    )
    parser.add_argument(
        "--loop",
        action="store_true",
        help="Run cycles forever",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=5.0,
        help="Minutes between cycles with --loop (default: 5)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args()

    setup_logging(args.verbose)

    if (args.start is None) != (args.end is None):
        parser.error("--start and --end must be given together")
    if args.start and not args.integration:
        parser.error("--start/--end require --integration")

    settings = SyncSettings.from_env()
    conn = connect(settings.db_path)
    init_database(conn)

    timeout = aiohttp.ClientTimeout(total=settings.integration_timeout, connect=30)
    redis = Redis.from_url(settings.redis_url, decode_responses=False) if settings.redis_url else None

    try:
        async with aiohttp.ClientSession(timeout=timeout) as session:
            scheduler = IntegrationScheduler(
                integrations=IntegrationStore(conn),
                snapshots=SnapshotStore(conn),
                session=session,
                settings=settings,
                redis=redis,
            )

            if args.integration and args.start and args.aggregate:
                result = await scheduler.sync_integration(
                    args.integration, window=Backfill(args.start, args.end)
                )
                logger.info("Aggregate sync %s: %s", result.status, result.message)

            elif args.integration and args.start:
                progress = await scheduler.backfill_daily(args.integration, args.start, args.end)
                logger.info(
                    "Backfill finished: %s/%s days succeeded, %s failed, %s skipped",
                    progress.success,
                    progress.total,
                    progress.failed,
                    progress.skipped,
                )

            elif args.integration:
                result = await scheduler.sync_integration(args.integration)
                logger.info("Sync %s: %s", result.status, result.message)

            elif args.loop:
                while True:
                    await scheduler.run_cycle()
                    await asyncio.sleep(args.interval * 60)

            else:
                await scheduler.run_cycle()
    finally:
        if redis is not None:
            await redis.aclose()
        conn.close()


if __name__ == "__main__":
    asyncio.run(main())
