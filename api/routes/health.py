"""
Health check endpoint with database, sync and session status
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from api.dependencies import get_context, get_db
from core.context import AppContext
from core.repository import Repository
from models.sync_job import SyncJob
from schemas.api import HealthCheckResponse
from datetime import datetime
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(
    db: AsyncSession = Depends(get_db),
    context: AppContext = Depends(get_context),
):
    """
    Health check endpoint.

    Returns:
    - Database connectivity status
    - Status of the most recent sync job
    - Whether a third-party session is available
    """

    # Check database connectivity
    db_connected = False

    try:
        await db.execute(text("SELECT 1"))
        db_connected = True
    except Exception as e:
        logger.error(f"Database connection failed: {str(e)}")

    last_sync_status = None
    last_sync_at = None

    if db_connected:
        try:
            latest = await Repository(db, SyncJob).find_by(order_by="created_at", descending=True, limit=1)
            if latest:
                last_sync_status = latest[0].status.value
                last_sync_at = latest[0].completed_at or latest[0].created_at
        except Exception as e:
            logger.error(f"Failed to fetch latest sync job: {str(e)}")

    session = context.session_manager
    session_connected = session.is_authenticated or session.load_session()

    # Status is derived by the HealthCheckResponse validator
    return HealthCheckResponse(
        timestamp=datetime.utcnow(),
        database_connected=db_connected,
        last_sync_status=last_sync_status,
        last_sync_at=last_sync_at,
        session_connected=session_connected,
    )
