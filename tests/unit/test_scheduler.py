import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from models.base import SyncType, SyncJobStatus
from models.formation import Formation
from models.sync_job import SyncJob
from core.repository import Repository
from scraper.scheduler import SyncScheduler, PERIODIC_JOB_ID


async def _load_job(session_factory, sync_job_id):
    async with session_factory() as session:
        return await session.get(SyncJob, sync_job_id)


@pytest.fixture
def sync_scheduler(app_context, platform):
    return SyncScheduler(app_context, transport=httpx.MockTransport(platform.handler))


@pytest.mark.asyncio
async def test_start_sync_persists_pending_job_and_schedules_it(sync_scheduler, session_factory):
    with patch.object(sync_scheduler.scheduler, "add_job") as add_job:
        sync_job_id = await sync_scheduler.start_sync(SyncType.NEW, created_by="ops")

    job = await _load_job(session_factory, sync_job_id)
    assert job.status == SyncJobStatus.PENDING
    assert job.created_by == "ops"

    add_job.assert_called_once()
    assert add_job.call_args.kwargs["id"] == f"sync-{sync_job_id}"
    assert add_job.call_args.kwargs["kwargs"]["sync_type"] == SyncType.NEW


@pytest.mark.asyncio
async def test_run_sync_job_completes(sync_scheduler, platform, session_factory):
    platform.add_listing("/new-browse-formations", [("a", "Alpha"), ("b", "Bravo")])
    platform.add_detail("a", "Alpha")
    platform.add_detail("b", "Bravo")

    sync_job_id = await sync_scheduler._create_job(SyncType.ALL, "ops")
    await sync_scheduler.run_sync_job(sync_job_id, SyncType.ALL, "ops")

    job = await _load_job(session_factory, sync_job_id)
    assert job.status == SyncJobStatus.COMPLETED
    assert job.successful_items == 2

    async with session_factory() as session:
        assert await Repository(session, Formation).count() == 2

    assert sync_job_id not in sync_scheduler._cancel_events


@pytest.mark.asyncio
async def test_runner_crash_is_written_to_job(sync_scheduler, session_factory):
    """Anything escaping the runner ends up on the job, never in the void"""
    with patch("scraper.scheduler.FormationSyncRunner") as mock_runner_cls:
        mock_runner = MagicMock()
        mock_runner.run = AsyncMock(side_effect=RuntimeError("worker exploded"))
        mock_runner_cls.return_value = mock_runner

        sync_job_id = await sync_scheduler._create_job(SyncType.ALL, None)
        await sync_scheduler.run_sync_job(sync_job_id, SyncType.ALL)

    job = await _load_job(session_factory, sync_job_id)
    assert job.status == SyncJobStatus.FAILED
    assert job.error_log[-1]["name"] == "worker"
    assert job.error_log[-1]["message"] == "worker exploded"


@pytest.mark.asyncio
async def test_authentication_failure_is_recorded_once(sync_scheduler, platform, session_factory):
    platform.accept_login = False

    sync_job_id = await sync_scheduler._create_job(SyncType.ALL, None)
    await sync_scheduler.run_sync_job(sync_job_id, SyncType.ALL)

    job = await _load_job(session_factory, sync_job_id)
    assert job.status == SyncJobStatus.FAILED
    assert len(job.error_log) == 1
    assert job.error_log[0]["name"] == "authentication"


@pytest.mark.asyncio
async def test_cancel(sync_scheduler, platform, session_factory):
    platform.add_listing("/new-browse-formations", [("a", "Alpha")])
    platform.add_detail("a", "Alpha")

    assert sync_scheduler.cancel("unknown") is False

    sync_job_id = await sync_scheduler._create_job(SyncType.ALL, None)
    assert sync_scheduler.cancel(sync_job_id) is True
    await sync_scheduler.run_sync_job(sync_job_id, SyncType.ALL)

    job = await _load_job(session_factory, sync_job_id)
    assert job.status == SyncJobStatus.CANCELLED
    assert job.processed_items == 0


@pytest.mark.asyncio
async def test_periodic_sync_runs_all_as_configured_user(sync_scheduler):
    sync_scheduler.run_sync_job = AsyncMock()

    await sync_scheduler.run_periodic_sync()

    args = sync_scheduler.run_sync_job.call_args.args
    assert args[1] == SyncType.ALL
    assert args[2] == "scheduler"


@pytest.mark.asyncio
async def test_start_registers_periodic_job(app_context):
    app_context.settings = app_context.settings.model_copy(update={"SYNC_INTERVAL_MINUTES": 15})
    sync_scheduler = SyncScheduler(app_context)

    sync_scheduler.start()
    try:
        assert sync_scheduler.scheduler.get_job(PERIODIC_JOB_ID) is not None
    finally:
        sync_scheduler.stop()


@pytest.mark.asyncio
async def test_start_without_interval(sync_scheduler):
    sync_scheduler.start()
    try:
        assert sync_scheduler.scheduler.get_job(PERIODIC_JOB_ID) is None
    finally:
        sync_scheduler.stop()


@pytest.mark.asyncio
async def test_stop_signals_running_jobs(sync_scheduler):
    sync_job_id = await sync_scheduler._create_job(SyncType.ALL, None)
    event = sync_scheduler._cancel_events[sync_job_id]

    sync_scheduler.stop()

    assert event.is_set()
