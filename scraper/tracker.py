"""
SyncJob lifecycle and durable progress checkpoints.

Every transition and every per-item outcome is committed before the
caller continues, so a crash leaves an accurate partial record.
"""

from datetime import datetime
from typing import Any, Dict, Optional
from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncSession
from core.repository import Repository
from models.base import SyncType, SyncJobStatus
from models.sync_job import SyncJob, TERMINAL_STATUSES
import logging

logger = logging.getLogger(__name__)

JOB_TYPE = "skystage_formations"


class SyncJobTracker:
    """Owns one SyncJob record and every write made to it"""

    def __init__(self, db_session: AsyncSession):
        self.jobs = Repository(db_session, SyncJob)
        self.job: Optional[SyncJob] = None

    async def create(self, sync_type: SyncType, created_by: Optional[str] = None) -> SyncJob:
        """Persist a new pending job"""
        self.job = await self.jobs.create({
            "type": JOB_TYPE,
            "status": SyncJobStatus.PENDING,
            "created_by": created_by,
            "error_log": [],
            "job_metadata": {
                "sync_type": SyncType(sync_type).value,
                "initiated_by": created_by,
                "last_message": "Queued",
            },
        })
        logger.info(f"Created sync job {self.job.id} (type={sync_type}, by={created_by})")
        return self.job

    async def load(self, sync_job_id: str) -> SyncJob:
        job = await self.jobs.find_by_id(sync_job_id)
        if job is None:
            raise LookupError(f"Sync job {sync_job_id} not found")
        self.job = job
        return job

    async def _fresh(self) -> SyncJob:
        """The tracked job, reloaded if a rollback expired it"""
        if inspect(self.job).expired_attributes:
            await self.jobs.db.refresh(self.job)
        return self.job

    # --------------------------------------------------
    # State transitions
    # --------------------------------------------------
    async def transition(self, status: SyncJobStatus, message: Optional[str] = None) -> SyncJob:
        """
        Move the job forward.

        Raises:
            ValueError: If the transition would move the job backwards or
                out of a terminal state
        """
        job = await self._fresh()
        if not job.can_transition_to(status):
            raise ValueError(f"Illegal sync job transition {job.status.value} -> {status.value}")

        changes: Dict[str, Any] = {"status": status}
        if status == SyncJobStatus.STARTING:
            changes["started_at"] = datetime.utcnow()
        if status in TERMINAL_STATUSES:
            changes["completed_at"] = datetime.utcnow()
        if message:
            changes["job_metadata"] = {**(job.job_metadata or {}), "last_message": message}

        await self.jobs.update_instance(job, changes)
        logger.info(f"Sync job {job.id} -> {status.value}" + (f": {message}" if message else ""))
        return job

    async def update_metadata(self, **values: Any) -> None:
        job = await self._fresh()
        await self.jobs.update_instance(job, {"job_metadata": {**(job.job_metadata or {}), **values}})

    async def set_total(self, total: int) -> None:
        await self.jobs.update_instance(await self._fresh(), {"total_items": total})

    # --------------------------------------------------
    # Per-item checkpoints
    # --------------------------------------------------
    async def record_success(self, identifier: str) -> None:
        job = await self._fresh()
        await self.jobs.update_instance(job, {
            "processed_items": job.processed_items + 1,
            "successful_items": job.successful_items + 1,
        })
        logger.debug(f"Sync job {job.id}: {identifier} synced ({job.processed_items}/{job.total_items})")

    async def record_failure(self, identifier: str, name: Optional[str], error: Exception) -> None:
        job = await self._fresh()
        entry = {
            "identifier": identifier,
            "name": name,
            "error_type": type(error).__name__,
            "message": getattr(error, "message", None) or str(error),
        }
        await self.jobs.update_instance(job, {
            "processed_items": job.processed_items + 1,
            "failed_items": job.failed_items + 1,
            "error_log": [*(job.error_log or []), entry],
        })

    # --------------------------------------------------
    # Finalization
    # --------------------------------------------------
    async def complete(self, **metadata: Any) -> SyncJob:
        job = await self._fresh()
        status = SyncJobStatus.COMPLETED if job.failed_items == 0 else SyncJobStatus.COMPLETED_WITH_ERRORS
        await self.update_metadata(**metadata)
        return await self.transition(
            status,
            message=f"Synced {job.successful_items} of {job.total_items} formations",
        )

    async def cancel(self) -> SyncJob:
        return await self.transition(SyncJobStatus.CANCELLED, message="Cancelled by operator")

    async def fail(self, error: Exception, phase: str) -> SyncJob:
        """Terminate the job with a single job-level log entry"""
        job = await self._fresh()
        if job.is_terminal:
            return job

        message = getattr(error, "message", None) or str(error)
        await self.jobs.update_instance(job, {
            "error_log": [*(job.error_log or []), {
                "identifier": "job",
                "name": phase,
                "error_type": type(error).__name__,
                "message": message,
            }],
        })
        return await self.transition(SyncJobStatus.FAILED, message=message)
