"""
Catalog and sync statistics endpoint
"""
from datetime import datetime
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from api.dependencies import get_db
from schemas.api import StatsResponse
from schemas.sync_job import SyncJobResponse
from models.base import SyncJobStatus
from models.formation import Formation
from models.sync_job import SyncJob
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Statistics"])

SUCCESS_STATUSES = (SyncJobStatus.COMPLETED, SyncJobStatus.COMPLETED_WITH_ERRORS)


@router.get("/stats", response_model=StatsResponse)
async def get_stats(
    request: Request,
    limit: int = Query(10, ge=1, le=100, description="Number of recent jobs to return"),
    db: AsyncSession = Depends(get_db)
):
    """
    Get catalog and sync statistics.

    Returns:
    - Formation totals by category and by source
    - Sync job totals by status and average duration
    - Recent sync job history
    """
    request_id = request.state.request_id

    logger.info(f"[{request_id}] GET /stats")

    # ========== Formations ==========

    total_formations = (await db.execute(
        select(func.count()).select_from(Formation)
    )).scalar() or 0

    by_category = await db.execute(
        select(Formation.category, func.count()).group_by(Formation.category)
    )
    formations_by_category = {category or "uncategorized": count for category, count in by_category.all()}

    by_source = await db.execute(
        select(Formation.source, func.count()).group_by(Formation.source)
    )
    formations_by_source = {source: count for source, count in by_source.all()}

    # ========== Sync Jobs ==========

    by_status = await db.execute(
        select(SyncJob.status, func.count()).group_by(SyncJob.status)
    )
    sync_jobs_by_status = {job_status.value: count for job_status, count in by_status.all()}
    total_jobs = sum(sync_jobs_by_status.values())

    finished = (await db.execute(
        select(SyncJob).where(SyncJob.status.in_(SUCCESS_STATUSES), SyncJob.completed_at.isnot(None))
    )).scalars().all()
    durations = [job.duration_seconds for job in finished if job.duration_seconds is not None]
    avg_duration = round(sum(durations) / len(durations), 2) if durations else None

    last_success = (await db.execute(
        select(func.max(SyncJob.completed_at)).where(SyncJob.status.in_(SUCCESS_STATUSES))
    )).scalar()
    last_failure = (await db.execute(
        select(func.max(SyncJob.completed_at)).where(SyncJob.status == SyncJobStatus.FAILED)
    )).scalar()

    # ========== Recent Jobs ==========

    recent = (await db.execute(
        select(SyncJob).order_by(SyncJob.created_at.desc()).limit(limit)
    )).scalars().all()

    logger.info(
        f"[{request_id}] Stats: {total_formations} formations, {total_jobs} sync jobs"
    )

    return StatsResponse(
        timestamp=datetime.utcnow(),
        total_formations=total_formations,
        formations_by_category=formations_by_category,
        formations_by_source=formations_by_source,
        total_sync_jobs=total_jobs,
        sync_jobs_by_status=sync_jobs_by_status,
        avg_sync_duration_seconds=avg_duration,
        last_sync_success=last_success,
        last_sync_failure=last_failure,
        recent_jobs=[SyncJobResponse.from_job(job) for job in recent],
        request_id=request_id
    )
