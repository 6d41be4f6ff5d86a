"""
Sync job control and status endpoints
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from api.dependencies import get_context, get_db, get_scheduler
from core.context import AppContext
from core.repository import Repository
from models.formation import Formation
from models.sync_job import SyncJob
from models.base import SyncJobStatus
from schemas.sync_job import (
    SyncStartRequest,
    SyncStartResponse,
    SyncJobResponse,
    SyncStatusResponse,
    RecentSyncJobsResponse,
    SessionStatusResponse,
    SessionUserResponse,
)
from scraper.scheduler import SyncScheduler
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/sync", tags=["Sync"])


@router.post("", response_model=SyncStartResponse, status_code=status.HTTP_202_ACCEPTED)
async def start_sync(
    request: Request,
    body: SyncStartRequest = SyncStartRequest(),
    scheduler: SyncScheduler = Depends(get_scheduler),
):
    """
    Queue a formation sync and return immediately.

    Poll ``status_url`` for progress.
    """
    request_id = getattr(request.state, "request_id", None)
    sync_job_id = await scheduler.start_sync(body.sync_type, created_by=body.created_by)
    logger.info(f"[{request_id}] Sync {sync_job_id} queued ({body.sync_type.value})")

    return SyncStartResponse(
        sync_job_id=sync_job_id,
        status=SyncJobStatus.PENDING,
        status_url=f"/sync/{sync_job_id}",
        message=f"Formation sync started ({body.sync_type.value})",
    )


@router.get("", response_model=RecentSyncJobsResponse)
async def recent_sync_jobs(
    limit: int = Query(10, ge=1, le=100, description="Number of recent jobs to return"),
    db: AsyncSession = Depends(get_db),
):
    jobs = await Repository(db, SyncJob).find_by(order_by="created_at", descending=True, limit=limit)
    total_formations = await Repository(db, Formation).count()

    return RecentSyncJobsResponse(
        jobs=[SyncJobResponse.from_job(job) for job in jobs],
        total_formations=total_formations,
    )


@router.get("/session", response_model=SessionStatusResponse)
async def session_status(context: AppContext = Depends(get_context)):
    """Third-party session as persisted by the sync worker"""
    session = context.session_manager
    connected = session.is_authenticated or session.load_session()

    user = None
    if connected and session.user:
        user = SessionUserResponse(
            email=session.user.email,
            name=session.user.name,
            user_type=session.user.user_type,
            membership=session.user.membership,
        )

    return SessionStatusResponse(
        connected=connected,
        user=user,
        authenticated_at=session.authenticated_at if connected else None,
        expires_at=session.expires_at if connected else None,
    )


@router.get("/{sync_job_id}", response_model=SyncStatusResponse)
async def sync_status(sync_job_id: str, db: AsyncSession = Depends(get_db)):
    job = await Repository(db, SyncJob).find_by_id(sync_job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Sync job {sync_job_id} not found")

    return SyncStatusResponse(
        job=SyncJobResponse.from_job(job),
        formation_count=await Repository(db, Formation).count(),
    )


@router.post("/{sync_job_id}/cancel", status_code=status.HTTP_202_ACCEPTED)
async def cancel_sync(
    sync_job_id: str,
    db: AsyncSession = Depends(get_db),
    scheduler: SyncScheduler = Depends(get_scheduler),
):
    """Request cooperative cancellation; the job stops between batches"""
    job = await Repository(db, SyncJob).find_by_id(sync_job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Sync job {sync_job_id} not found")
    if job.is_terminal:
        raise HTTPException(status_code=409, detail=f"Sync job {sync_job_id} already {job.status.value}")
    if not scheduler.cancel(sync_job_id):
        raise HTTPException(status_code=409, detail=f"Sync job {sync_job_id} is not running in this process")

    return {"sync_job_id": sync_job_id, "cancel_requested": True}
