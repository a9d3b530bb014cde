"""FastAPI routes: sync triggers, backfill control and snapshot admin."""
import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from ..exceptions import IntegrationNotFoundError, UnknownPlatformError
from ..schemas.results import CycleSummary, IntegrationResult
from ..sync.scheduler import IntegrationScheduler
from ..sync.store import SnapshotStore
from .auth import require_api_key


logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1",
    tags=["sync"],
    dependencies=[Depends(require_api_key)],
)


class SyncRequest(BaseModel):
    """Optional explicit window for a manual sync."""

    date_from: Optional[date] = Field(None, description="First day of an aggregate window")
    date_to: Optional[date] = Field(None, description="Last day of an aggregate window")


class BackfillRequest(BaseModel):
    """Inclusive day range for a day-by-day backfill."""

    date_from: date = Field(..., description="First day to sync")
    date_to: date = Field(..., description="Last day to sync")


class BackfillAccepted(BaseModel):
    integration_id: str
    status: str = Field(..., description="Always 'queued' on acceptance")
    total_days: int


class BackfillProgressResponse(BaseModel):
    """Snapshot of the running (or last finished) backfill."""

    is_running: bool = False
    integration_id: Optional[str] = None
    platform: Optional[str] = None
    total: int = 0
    current: int = 0
    current_date: Optional[str] = None
    success: int = 0
    failed: int = 0
    skipped: int = 0
    error: Optional[str] = None


class DeleteSnapshotsRequest(BaseModel):
    """Administrative delete of snapshot history."""

    client_id: str = Field(..., min_length=1, description="Owning client")
    date_from: date = Field(..., description="First day to delete (inclusive)")
    date_to: date = Field(..., description="Last day to delete (inclusive)")
    platform: Optional[str] = Field(None, description="Restrict to one platform")
    integration_id: Optional[str] = Field(None, description="Restrict to one integration")


class DeleteSnapshotsResponse(BaseModel):
    success: bool
    deleted_count: int


def get_scheduler(request: Request) -> IntegrationScheduler:
    return request.app.state.scheduler


def get_snapshot_store(request: Request) -> SnapshotStore:
    return request.app.state.snapshot_store


@router.post(
    "/sync/run",
    response_model=CycleSummary,
    summary="Run one sync cycle",
)
async def run_sync_cycle(
    scheduler: IntegrationScheduler = Depends(get_scheduler),
) -> CycleSummary:
    """Sync every due integration and return the cycle summary.

    Per-integration failures are reported in the summary, never as an HTTP error.
    """
    return await scheduler.run_cycle()


@router.post(
    "/integrations/{integration_id}/sync",
    response_model=IntegrationResult,
    summary="Sync one integration now",
)
async def sync_integration(
    integration_id: str,
    payload: Optional[SyncRequest] = None,
    scheduler: IntegrationScheduler = Depends(get_scheduler),
) -> IntegrationResult:
    """Sync one integration immediately, ignoring its schedule.

    With both ``date_from`` and ``date_to`` the window is an aggregate
    backfill; with neither it is today's incremental window.
    """
    payload = payload or SyncRequest()
    window = None
    if payload.date_from is not None or payload.date_to is not None:
        try:
            window = scheduler.resolver.resolve(
                scheduler.settings.today(), payload.date_from, payload.date_to
            )
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    try:
        result = await scheduler.sync_integration(integration_id, window=window)
    except IntegrationNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))

    if result.status == "error":
        raise HTTPException(
            status_code=result.http_status or status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=result.message,
        )
    if result.status == "skipped":
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=result.message)

    return result


async def _run_backfill_job(
    scheduler: IntegrationScheduler,
    integration_id: str,
    date_from: date,
    date_to: date,
) -> None:
    """Background task: day-by-day backfill.

    This function MUST be exception-safe; all errors are caught and logged.
    """
    try:
        await scheduler.backfill_daily(integration_id, date_from, date_to, reserved=True)
    except Exception as exc:
        logger.error(
            "Backfill job for %s (%s..%s) failed with exception: %s",
            integration_id,
            date_from.isoformat(),
            date_to.isoformat(),
            exc,
            exc_info=True,
        )


@router.post(
    "/integrations/{integration_id}/backfill",
    response_model=BackfillAccepted,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start a day-by-day backfill",
)
async def start_backfill(
    integration_id: str,
    payload: BackfillRequest,
    background_tasks: BackgroundTasks,
    scheduler: IntegrationScheduler = Depends(get_scheduler),
) -> BackfillAccepted:
    """Queue a backfill writing one daily snapshot per day in the range.

    Validates:
    - integration exists (404)
    - platform has an adapter and the range is not inverted (400)
    - no other backfill is running (409)
    """
    if payload.date_from > payload.date_to:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="date_from must not be after date_to",
        )

    try:
        integration = scheduler.integrations.get(integration_id)
        scheduler.adapter_for(integration.platform)
    except IntegrationNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except UnknownPlatformError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    total_days = (payload.date_to - payload.date_from).days + 1

    # The queued job runs with reserved=True
    try:
        scheduler.tracker.start(integration.id, integration.platform, total_days)
    except RuntimeError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A backfill is already running",
        )

    background_tasks.add_task(
        _run_backfill_job, scheduler, integration_id, payload.date_from, payload.date_to
    )

    logger.info(
        "Queued backfill: integration=%s days=%s (%s..%s)",
        integration_id,
        total_days,
        payload.date_from.isoformat(),
        payload.date_to.isoformat(),
    )

    return BackfillAccepted(
        integration_id=integration_id,
        status="queued",
        total_days=total_days,
    )


@router.get(
    "/backfill/progress",
    response_model=BackfillProgressResponse,
    summary="Current backfill progress",
)
async def backfill_progress(
    scheduler: IntegrationScheduler = Depends(get_scheduler),
) -> BackfillProgressResponse:
    progress = scheduler.tracker.current()
    if progress is None:
        return BackfillProgressResponse()

    return BackfillProgressResponse(
        is_running=progress.is_running,
        integration_id=progress.integration_id,
        platform=progress.platform,
        total=progress.total,
        current=progress.current,
        current_date=progress.current_date,
        success=progress.success,
        failed=progress.failed,
        skipped=progress.skipped,
        error=progress.error,
    )


@router.post(
    "/snapshots/delete",
    response_model=DeleteSnapshotsResponse,
    summary="Delete snapshot history for a client",
)
async def delete_snapshots(
    payload: DeleteSnapshotsRequest,
    store: SnapshotStore = Depends(get_snapshot_store),
) -> DeleteSnapshotsResponse:
    """Delete snapshots in an inclusive date range.

    ``client_id``, ``date_from`` and ``date_to`` are required (422 when
    absent); an inverted range is rejected with 400.
    """
    if payload.date_from > payload.date_to:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="date_from must not be after date_to",
        )

    deleted = store.delete_range(
        client_id=payload.client_id,
        date_from=payload.date_from,
        date_to=payload.date_to,
        platform=payload.platform,
        integration_id=payload.integration_id,
    )

    return DeleteSnapshotsResponse(success=True, deleted_count=deleted)
