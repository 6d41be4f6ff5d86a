"""
Supervised background worker for sync jobs.

Sync runs are submitted to APScheduler instead of being left as detached
tasks. Each run owns its database session and HTTP client; anything that
escapes the runner is written back onto the SyncJob record.
"""

import asyncio
from typing import Dict, Optional
import httpx
from apscheduler.events import EVENT_JOB_ERROR, JobExecutionEvent
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from core.context import AppContext
from core.exceptions import JobFatalError
from models.base import SyncType
from scraper.runner import FormationSyncRunner
from scraper.tracker import SyncJobTracker
import logging

logger = logging.getLogger(__name__)

PERIODIC_JOB_ID = "periodic_formation_sync"


class SyncScheduler:
    def __init__(self, context: AppContext, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.context = context
        self.transport = transport
        self.scheduler = AsyncIOScheduler()
        self.scheduler.add_listener(self._on_job_error, EVENT_JOB_ERROR)
        self._cancel_events: Dict[str, asyncio.Event] = {}

    async def start_sync(self, sync_type: SyncType = SyncType.ALL, created_by: Optional[str] = None) -> str:
        """
        Persist a pending SyncJob and hand it to the worker.

        Returns:
            The new sync job id; the run itself happens in the background
        """
        sync_type = SyncType(sync_type)
        sync_job_id = await self._create_job(sync_type, created_by)

        self.scheduler.add_job(
            self.run_sync_job,
            kwargs={"sync_job_id": sync_job_id, "sync_type": sync_type, "created_by": created_by},
            id=f"sync-{sync_job_id}",
            name=f"Formation sync {sync_job_id}",
        )
        logger.info(f"Scheduled sync job {sync_job_id} ({sync_type.value})")
        return sync_job_id

    async def _create_job(self, sync_type: SyncType, created_by: Optional[str]) -> str:
        async with self.context.session_factory() as session:
            job = await SyncJobTracker(session).create(sync_type, created_by)
        self._cancel_events[job.id] = asyncio.Event()
        return job.id

    async def run_sync_job(self, sync_job_id: str, sync_type: SyncType, created_by: Optional[str] = None) -> None:
        """Run one sync to a terminal state; failures end up on the job"""
        settings = self.context.settings
        cancel_event = self._cancel_events.setdefault(sync_job_id, asyncio.Event())

        try:
            async with self.context.session_factory() as session:
                async with self.context.create_client(transport=self.transport) as client:
                    runner = FormationSyncRunner(
                        session,
                        client,
                        analytics=self.context.analytics,
                        batch_size=settings.SYNC_BATCH_SIZE,
                        batch_delay=settings.SYNC_BATCH_DELAY,
                        max_retries=settings.MAX_RETRIES,
                        retry_delay=settings.RETRY_DELAY,
                        max_candidates=settings.SYNC_MAX_CANDIDATES,
                    )
                    await runner.run(
                        sync_type,
                        created_by=created_by,
                        sync_job_id=sync_job_id,
                        cancel_event=cancel_event,
                    )

        except JobFatalError as e:
            # Already recorded on the job by the runner
            logger.error(f"Sync job {sync_job_id} failed: {e}")

        except Exception as e:
            logger.exception(f"Sync worker crashed for job {sync_job_id}")
            await self._record_crash(sync_job_id, e)

        finally:
            self._cancel_events.pop(sync_job_id, None)

    async def _record_crash(self, sync_job_id: str, error: Exception) -> None:
        async with self.context.session_factory() as session:
            tracker = SyncJobTracker(session)
            try:
                await tracker.load(sync_job_id)
            except LookupError:
                logger.error(f"Cannot record failure, sync job {sync_job_id} not found")
                return
            await tracker.fail(error, "worker")

    def cancel(self, sync_job_id: str) -> bool:
        """
        Request cooperative cancellation.

        Returns:
            False when no run for this id is queued or active
        """
        event = self._cancel_events.get(sync_job_id)
        if event is None:
            return False
        event.set()
        logger.info(f"Cancellation requested for sync job {sync_job_id}")
        return True

    async def run_periodic_sync(self) -> None:
        """Scheduled 'all' sync"""
        created_by = self.context.settings.SYNC_CREATED_BY
        sync_job_id = await self._create_job(SyncType.ALL, created_by)
        await self.run_sync_job(sync_job_id, SyncType.ALL, created_by)

    def _on_job_error(self, event: JobExecutionEvent) -> None:
        logger.error(f"Scheduler job {event.job_id} raised: {event.exception!r}")

    def start(self):
        """Start the scheduler"""
        interval = self.context.settings.SYNC_INTERVAL_MINUTES
        if interval > 0:
            self.scheduler.add_job(
                self.run_periodic_sync,
                trigger=IntervalTrigger(minutes=interval),
                id=PERIODIC_JOB_ID,
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
            logger.info(f"Periodic formation sync every {interval} minutes")

        self.scheduler.start()
        logger.info("Sync scheduler started")

    def stop(self):
        for event in self._cancel_events.values():
            event.set()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Sync scheduler stopped")
