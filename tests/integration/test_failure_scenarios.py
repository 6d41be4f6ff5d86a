"""
Tests for failure scenarios and error handling
"""

import pytest
from unittest.mock import AsyncMock, patch
from sqlalchemy import select
from core.exceptions import JobFatalError, StoreError
from models.base import SyncType, SyncJobStatus
from models.formation import Formation
from models.sync_job import SyncJob
from scraper.loaders.formation_store import FormationStore
from scraper.runner import FormationSyncRunner, DETAIL_URL_TEMPLATES

ENDPOINTS = ("/new-browse-formations", "/my-formations")


def _runner(db_session, client, analytics, **kwargs):
    return FormationSyncRunner(
        db_session,
        client,
        analytics=analytics,
        batch_size=kwargs.pop("batch_size", 2),
        batch_delay=0,
        max_retries=kwargs.pop("max_retries", 2),
        retry_delay=0,
        listing_endpoints=kwargs.pop("listing_endpoints", ENDPOINTS),
        **kwargs
    )


async def _only_job(db_session):
    return (await db_session.execute(select(SyncJob))).scalar_one()


@pytest.mark.asyncio
async def test_failing_details_are_counted_not_fatal(db_session, skystage_client, analytics, platform):
    """
    Test: N of M detail downloads fail on every template and attempt.
    The job finishes with errors and records exactly N item failures.
    """
    cards = [(f"f{i}", f"Formation {i}") for i in range(5)]
    platform.add_listing("/new-browse-formations", cards)
    for formation_id, name in cards:
        platform.add_detail(formation_id, name)
    platform.failing_ids = {"f1", "f3"}

    job = await _runner(db_session, skystage_client, analytics).run(SyncType.ALL)

    assert job.status == SyncJobStatus.COMPLETED_WITH_ERRORS
    assert job.total_items == 5
    assert job.successful_items == 3
    assert job.failed_items == 2
    assert job.processed_items == 5
    assert sorted(entry["identifier"] for entry in job.error_log) == ["f1", "f3"]
    assert all(entry["error_type"] == "TransientFetchError" for entry in job.error_log)
    assert "after 2 attempts" in job.error_log[0]["message"]

    stored = (await db_session.execute(select(Formation.source_id))).scalars().all()
    assert sorted(stored) == ["f0", "f2", "f4"]


@pytest.mark.asyncio
async def test_detail_retries_every_template_per_attempt(db_session, skystage_client, analytics, platform):
    platform.add_listing("/new-browse-formations", [("gone", "Gone")])

    job = await _runner(db_session, skystage_client, analytics, max_retries=3).run(SyncType.ALL)

    detail_requests = [p for p in platform.paths() if "gone" in p]
    assert len(detail_requests) == 3 * len(DETAIL_URL_TEMPLATES)
    assert job.failed_items == 1


@pytest.mark.asyncio
async def test_detail_without_formation_data_is_a_parse_failure(db_session, skystage_client, analytics, platform):
    platform.add_listing("/new-browse-formations", [("empty", "Empty")])
    platform.details["empty"] = ("text/html", "<html><body><p>Nothing here</p></body></html>")

    job = await _runner(
        db_session, skystage_client, analytics, max_retries=1, detail_url_templates=("/formations/{id}",)
    ).run(SyncType.ALL)

    assert job.status == SyncJobStatus.COMPLETED_WITH_ERRORS
    assert "No formation data found" in job.error_log[0]["message"]


@pytest.mark.asyncio
async def test_one_listing_endpoint_down_is_not_fatal(db_session, skystage_client, analytics, platform):
    platform.add_listing("/new-browse-formations", [("a", "Alpha")])
    platform.add_detail("a", "Alpha")
    platform.failing_paths = {"/my-formations"}

    job = await _runner(db_session, skystage_client, analytics).run(SyncType.ALL)

    assert job.status == SyncJobStatus.COMPLETED
    assert job.job_metadata["source_stats"]["/my-formations"]["status"] == "failed"
    assert "skystage_source_failed" in analytics.types()


@pytest.mark.asyncio
async def test_all_listing_endpoints_down_fails_job(db_session, skystage_client, analytics, platform):
    platform.failing_paths = set(ENDPOINTS)

    with pytest.raises(JobFatalError):
        await _runner(db_session, skystage_client, analytics).run(SyncType.ALL)

    job = await _only_job(db_session)
    assert job.status == SyncJobStatus.FAILED
    assert job.completed_at is not None
    assert job.error_log[-1]["name"] == "discovery"
    assert analytics.types()[-1] == "skystage_sync_failed"


@pytest.mark.asyncio
async def test_authentication_failure_fails_job(db_session, skystage_client, analytics, platform):
    platform.accept_login = False

    with pytest.raises(JobFatalError):
        await _runner(db_session, skystage_client, analytics).run(SyncType.ALL, created_by="ops")

    job = await _only_job(db_session)
    assert job.status == SyncJobStatus.FAILED
    assert job.error_log == [{
        "identifier": "job",
        "name": "authentication",
        "error_type": "JobFatalError",
        "message": "Authentication with the formation platform failed",
    }]
    assert job.processed_items == 0
    assert not any(p.startswith("/new-browse") for p in platform.paths())


@pytest.mark.asyncio
async def test_session_expiry_mid_run_recovers(db_session, skystage_client, analytics, platform):
    """A 401 triggers one re-login; the retry of that candidate succeeds"""
    platform.add_listing("/new-browse-formations", [("a", "Alpha"), ("b", "Bravo")])
    platform.add_detail("a", "Alpha")
    platform.add_detail("b", "Bravo")

    runner = _runner(db_session, skystage_client, analytics, batch_size=1)
    discover = runner.discover

    async def expire_after_discovery(sync_job_id=None):
        result = await discover(sync_job_id)
        platform.reject_next = 1
        return result

    runner.discover = expire_after_discovery

    job = await runner.run(SyncType.ALL)

    assert job.status == SyncJobStatus.COMPLETED
    assert job.successful_items == 2
    assert platform.login_count == 2


@pytest.mark.asyncio
async def test_store_failure_is_an_item_failure(db_session, skystage_client, analytics, platform):
    platform.add_listing("/new-browse-formations", [("a", "Alpha"), ("b", "Bravo")])
    platform.add_detail("a", "Alpha")
    platform.add_detail("b", "Bravo")

    original_upsert = FormationStore.upsert

    async def flaky_upsert(self, record, mode=SyncType.ALL):
        if record.id == "a":
            raise StoreError("Failed to create formations record", context={"source_id": "a"})
        return await original_upsert(self, record, mode)

    with patch.object(FormationStore, "upsert", flaky_upsert):
        job = await _runner(db_session, skystage_client, analytics).run(SyncType.ALL)

    assert job.status == SyncJobStatus.COMPLETED_WITH_ERRORS
    assert job.failed_items == 1
    assert job.error_log[0]["error_type"] == "StoreError"


@pytest.mark.asyncio
async def test_unexpected_error_marks_job_failed(db_session, skystage_client, analytics, platform):
    platform.add_listing("/new-browse-formations", [("a", "Alpha")])
    platform.add_detail("a", "Alpha")

    runner = _runner(db_session, skystage_client, analytics)
    runner.tracker.set_total = AsyncMock(side_effect=RuntimeError("disk full"))

    with pytest.raises(JobFatalError) as exc_info:
        await runner.run(SyncType.ALL)

    assert isinstance(exc_info.value.original_exception, RuntimeError)
    job = await _only_job(db_session)
    assert job.status == SyncJobStatus.FAILED
    assert job.error_log[-1]["name"] == "discovery"
