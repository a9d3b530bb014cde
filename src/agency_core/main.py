"""Agency sync FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import aiohttp
from fastapi import FastAPI
from redis.asyncio import Redis

from .api.routes import router as api_router
from .config import SyncSettings
from .sync.progress import BackfillTracker
from .sync.scheduler import IntegrationScheduler
from .sync.schema import connect, init_database
from .sync.store import IntegrationStore, SnapshotStore


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the database, HTTP session and optional Redis for the app's lifetime."""
    settings = SyncSettings.from_env()

    conn = connect(settings.db_path)
    init_database(conn)

    timeout = aiohttp.ClientTimeout(total=settings.integration_timeout, connect=30)
    session = aiohttp.ClientSession(timeout=timeout)
    redis: Optional[Redis] = None
    if settings.redis_url:
        redis = Redis.from_url(settings.redis_url, decode_responses=False)

    integration_store = IntegrationStore(conn)
    snapshot_store = SnapshotStore(conn)

    app.state.settings = settings
    app.state.integration_store = integration_store
    app.state.snapshot_store = snapshot_store
    app.state.scheduler = IntegrationScheduler(
        integrations=integration_store,
        snapshots=snapshot_store,
        session=session,
        settings=settings,
        redis=redis,
        tracker=BackfillTracker(),
    )

    logger.info(
        "Sync API started: db=%s redis=%s max_concurrency=%s",
        settings.db_path,
        "enabled" if redis is not None else "disabled",
        settings.max_concurrency,
    )

    try:
        yield
    finally:
        await session.close()
        if redis is not None:
            await redis.aclose()
        conn.close()


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    app = FastAPI(
        title="Agency Sync API",
        version="0.1.0",
        description="Marketing metrics sync engine for agency client integrations",
        lifespan=lifespan,
    )

    app.include_router(api_router)

    return app


app = create_app()
