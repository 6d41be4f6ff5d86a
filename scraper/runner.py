# ============================================================================
# File: scraper/runner.py
# Description: Formation sync orchestrator with batched, retrying downloads
# ============================================================================
"""
Formation Sync Runner - authenticates, discovers, downloads and stores.

This module provides sync orchestration with:
- Listing discovery across several endpoints, each allowed to fail alone
- Deduplication and sync-mode filtering of candidates
- Fixed-size concurrent batches with an inter-batch delay
- Per-candidate retries across several detail URL templates
- A durable SyncJob checkpoint after every processed candidate
- Cooperative cancellation between batches
"""

import asyncio
import time
from collections import Counter
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from urllib.parse import quote
from sqlalchemy.ext.asyncio import AsyncSession
from core.exceptions import (
    SyncException,
    AuthenticationError,
    TransientFetchError,
    ParseError,
    StoreError,
    JobFatalError,
)
from models.base import SyncType, SyncJobStatus
from models.sync_job import SyncJob
from schemas.formation import FormationRecord
from scraper.analytics import AnalyticsSink, LoggingAnalyticsSink
from scraper.client import SkystageClient
from scraper.extractors.formation_parser import FormationParser
from scraper.loaders.formation_store import FormationStore
from scraper.tracker import SyncJobTracker
import logging

logger = logging.getLogger(__name__)

LISTING_ENDPOINTS = (
    "/new-browse-formations",
    "/my-formations",
    "/formation-library",
    "/dashboard/formations",
)

DETAIL_URL_TEMPLATES = (
    "/formations/{id}",
    "/formation/{id}",
    "/api/formations/{id}",
    "/formations/{id}/download",
    "/shows/{id}",
    "/dashboard/formations/{id}",
)


def deduplicate(records: Iterable[FormationRecord]) -> List[FormationRecord]:
    """Keep the first record seen for each id, preserving order"""
    seen = set()
    unique = []
    for record in records:
        if record.id in seen:
            continue
        seen.add(record.id)
        unique.append(record)
    return unique


class FormationSyncRunner:
    """
    Formation sync orchestrator

    Responsibilities:
    - Drive the SyncJob state machine (pending → starting → syncing → terminal)
    - Treat authentication and total discovery failure as fatal
    - Treat every per-candidate failure as data on the job, never as a crash
    - Bound request rate against the third-party platform
    """

    def __init__(
        self,
        db_session: AsyncSession,
        client: SkystageClient,
        parser: Optional[FormationParser] = None,
        analytics: Optional[AnalyticsSink] = None,
        batch_size: int = 5,
        batch_delay: float = 0.5,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        max_candidates: Optional[int] = None,
        listing_endpoints: Sequence[str] = LISTING_ENDPOINTS,
        detail_url_templates: Sequence[str] = DETAIL_URL_TEMPLATES,
    ):
        self.db = db_session
        self.client = client
        self.parser = parser or FormationParser(base_url=client.base_url)
        self.normalizer = self.parser.normalizer
        self.analytics = analytics or LoggingAnalyticsSink()
        self.batch_size = max(1, batch_size)
        self.batch_delay = batch_delay
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.max_candidates = max_candidates
        self.listing_endpoints = tuple(listing_endpoints)
        self.detail_url_templates = tuple(detail_url_templates)

        self.tracker = SyncJobTracker(db_session)
        # Serializes job checkpoints and upserts issued from one batch
        self._write_lock = asyncio.Lock()

    async def run(
        self,
        sync_type: SyncType = SyncType.ALL,
        created_by: Optional[str] = None,
        sync_job_id: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> SyncJob:
        """
        Run one sync.

        Args:
            sync_type: new, all or force
            created_by: Initiator recorded on the job and on new formations
            sync_job_id: Existing pending job to drive; a new one is created
                when omitted
            cancel_event: Checked between batches; when set the job ends
                as cancelled

        Returns:
            The finalized SyncJob

        Raises:
            JobFatalError: If authentication or discovery fails, or on any
                unexpected error. The job is marked failed first.
        """
        sync_type = SyncType(sync_type)
        if sync_job_id:
            job = await self.tracker.load(sync_job_id)
        else:
            job = await self.tracker.create(sync_type, created_by)

        created_by = created_by or job.created_by
        store = FormationStore(self.db, created_by=created_by)
        started = time.monotonic()
        phase = "authentication"

        try:
            # --------------------------------------------------
            # PHASE 1: AUTHENTICATION
            # --------------------------------------------------
            await self.tracker.transition(SyncJobStatus.STARTING, message="Authenticating")

            try:
                user = await self.client.ensure_authenticated()
            except AuthenticationError as e:
                raise JobFatalError(
                    "Authentication with the formation platform failed",
                    context={"sync_job_id": job.id, "phase": phase},
                    original_exception=e
                )

            await self.tracker.update_metadata(skystage_user=user.email)

            # --------------------------------------------------
            # PHASE 2: DISCOVERY
            # --------------------------------------------------
            phase = "discovery"
            await self.tracker.transition(SyncJobStatus.SYNCING, message="Discovering formations")

            discovered, source_stats = await self.discover(job.id)
            candidates = await self._filter_by_mode(discovered, sync_type, store)
            if self.max_candidates:
                candidates = candidates[:self.max_candidates]

            await self.tracker.set_total(len(candidates))
            await self.tracker.update_metadata(
                discovered=len(discovered),
                source_stats=source_stats,
                last_message=f"Found {len(candidates)} formations to sync",
            )
            logger.info(
                f"Sync job {job.id}: discovered {len(discovered)} formations, "
                f"{len(candidates)} selected for '{sync_type.value}' sync"
            )

            # --------------------------------------------------
            # PHASE 3: BATCHED DOWNLOAD + UPSERT
            # --------------------------------------------------
            phase = "processing"
            category_counts: Counter = Counter()

            for start in range(0, len(candidates), self.batch_size):
                if cancel_event is not None and cancel_event.is_set():
                    logger.warning(f"Sync job {job.id} cancelled after {job.processed_items} items")
                    return await self.tracker.cancel()

                batch = candidates[start:start + self.batch_size]
                results = await asyncio.gather(
                    *(self._process_candidate(candidate, sync_type, store, category_counts)
                      for candidate in batch),
                    return_exceptions=True
                )

                # Item-level errors never reach here; anything that does is a
                # checkpoint write failing
                for result in results:
                    if isinstance(result, BaseException):
                        raise result

                await self.tracker.update_metadata(
                    last_message=f"Processed {job.processed_items} of {job.total_items} formations"
                )

                if start + self.batch_size < len(candidates):
                    await asyncio.sleep(self.batch_delay)

            # --------------------------------------------------
            # PHASE 4: FINALIZE
            # --------------------------------------------------
            phase = "finalize"
            if cancel_event is not None and cancel_event.is_set():
                logger.warning(f"Sync job {job.id} cancelled after {job.processed_items} items")
                return await self.tracker.cancel()

            duration = round(time.monotonic() - started, 2)
            await self.tracker.complete(
                duration_seconds=duration,
                categories=dict(category_counts),
            )

            await self.analytics.record_event(
                "skystage_sync_completed",
                "sync_job",
                entity_id=job.id,
                user_id=created_by,
                metadata={
                    "sync_type": sync_type.value,
                    "total": job.total_items,
                    "successful": job.successful_items,
                    "failed": job.failed_items,
                    "duration_seconds": duration,
                },
            )

            logger.info(
                f"Sync job {job.id} finished: {job.status.value} - "
                f"Total: {job.total_items}, Synced: {job.successful_items}, Failed: {job.failed_items}"
            )
            return job

        except JobFatalError as e:
            logger.error(
                f"Sync job {job.id} failed during {phase}: {e.message}",
                extra={"error_context": e.to_dict()}
            )
            await self._fail(e, phase, created_by)
            raise

        except Exception as e:
            logger.exception(f"Unexpected error in sync job {job.id}")
            fatal = JobFatalError(
                "Unexpected error in sync pipeline",
                context={"sync_job_id": job.id, "phase": phase},
                original_exception=e
            )
            await self._fail(fatal, phase, created_by)
            raise fatal

    async def _fail(self, error: JobFatalError, phase: str, created_by: Optional[str]) -> None:
        await self.db.rollback()
        job = await self.tracker.fail(error, phase)
        await self.analytics.record_event(
            "skystage_sync_failed",
            "sync_job",
            entity_id=job.id,
            user_id=created_by,
            metadata={"phase": phase, "error": error.message},
        )

    # --------------------------------------------------
    # Discovery
    # --------------------------------------------------
    async def discover(self, sync_job_id: Optional[str] = None) -> Tuple[List[FormationRecord], Dict[str, Any]]:
        """
        Fetch every listing endpoint and merge the cards.

        Returns:
            Deduplicated candidates and per-endpoint statistics

        Raises:
            JobFatalError: If every endpoint failed
        """
        found: List[FormationRecord] = []
        stats: Dict[str, Any] = {}

        for endpoint in self.listing_endpoints:
            try:
                response = await self.client.fetch(endpoint)
                records = self.parser.parse_listing_page(response.text, endpoint=endpoint)
            except SyncException as e:
                stats[endpoint] = {"status": "failed", "error": e.message}
                logger.warning(f"Listing endpoint {endpoint} failed: {e.message}")
                await self.analytics.record_event(
                    "skystage_source_failed", "listing", entity_id=endpoint,
                    metadata={"sync_job_id": sync_job_id, "error": e.message},
                )
                continue

            stats[endpoint] = {"status": "ok", "found": len(records)}
            found.extend(records)
            logger.info(f"Listing endpoint {endpoint}: {len(records)} formations")
            await self.analytics.record_event(
                "skystage_source_accessed", "listing", entity_id=endpoint,
                metadata={"sync_job_id": sync_job_id, "found": len(records)},
            )

        if self.listing_endpoints and all(s["status"] == "failed" for s in stats.values()):
            raise JobFatalError(
                "Formation discovery failed on every listing endpoint",
                context={"sync_job_id": sync_job_id, "phase": "discovery", "endpoints": list(stats)}
            )

        return deduplicate(found), stats

    async def _filter_by_mode(
        self,
        candidates: List[FormationRecord],
        sync_type: SyncType,
        store: FormationStore,
    ) -> List[FormationRecord]:
        if sync_type != SyncType.NEW:
            return candidates
        return [c for c in candidates if not await store.exists(c.id)]

    # --------------------------------------------------
    # Per-candidate processing
    # --------------------------------------------------
    async def _process_candidate(
        self,
        candidate: FormationRecord,
        sync_type: SyncType,
        store: FormationStore,
        category_counts: Counter,
    ) -> None:
        try:
            record = await self.download_formation(candidate)
        except Exception as e:
            await self._record_item_failure(candidate, e)
            return

        async with self._write_lock:
            try:
                formation = await store.upsert(record, sync_type)
            except StoreError as e:
                logger.error(
                    f"Store failed for formation {candidate.id}: {e.message}",
                    extra={"error_context": e.to_dict()}
                )
                await self.tracker.record_failure(candidate.id, candidate.name, e)
                return

            category_counts[formation.category or "uncategorized"] += 1
            await self.tracker.record_success(candidate.id)

    async def _record_item_failure(self, candidate: FormationRecord, error: Exception) -> None:
        error_detail = {
            "formation_id": candidate.id,
            "formation_name": candidate.name,
            "error_type": type(error).__name__,
            "error_message": getattr(error, "message", None) or str(error),
        }
        logger.error(
            f"Formation {candidate.id} ({candidate.name}) failed: {error_detail['error_message']}",
            extra={"error_context": error_detail}
        )
        async with self._write_lock:
            await self.tracker.record_failure(candidate.id, candidate.name, error)

    async def download_formation(self, candidate: FormationRecord) -> FormationRecord:
        """
        Download full details for one listing candidate.

        Every detail URL template is tried in order on each attempt; attempts
        are separated by ``retry_delay * attempt`` seconds.

        Raises:
            TransientFetchError: When every attempt and template failed
            AuthenticationError: If a re-login after 401 failed
        """
        last_error: Optional[SyncException] = None
        formation_id = quote(candidate.id, safe="")

        for attempt in range(1, self.max_retries + 1):
            for template in self.detail_url_templates:
                path = template.format(id=formation_id)
                try:
                    detail = await self._fetch_detail(path, candidate.id)
                except (TransientFetchError, ParseError) as e:
                    last_error = e
                    logger.debug(f"Attempt {attempt} {path}: {e.message}")
                    continue

                record = self.normalizer.merge(candidate, detail)
                await self.analytics.record_event(
                    "skystage_formation_downloaded", "formation", entity_id=candidate.id,
                    metadata={"url": path, "attempt": attempt},
                )
                return record

            if attempt < self.max_retries:
                await asyncio.sleep(self.retry_delay * attempt)

        reason = last_error.message if last_error else "no detail URL templates configured"
        raise TransientFetchError(
            f"Detail download failed after {self.max_retries} attempts: {reason}",
            context={"formation_id": candidate.id, "attempts": self.max_retries},
            original_exception=last_error
        )

    async def _fetch_detail(self, path: str, formation_id: str) -> FormationRecord:
        response = await self.client.fetch(path)
        content_type = response.headers.get("content-type", "").lower()

        record = None
        if "json" in content_type:
            try:
                payload = response.json()
            except ValueError as e:
                raise ParseError(
                    "Invalid JSON in formation response",
                    context={"url": path, "content_type": content_type},
                    original_exception=e
                )
            record = self.normalizer.normalize(payload, fallback_id=formation_id)
        elif "html" in content_type or not content_type:
            record = self.parser.parse_detail_page(response.text, fallback_id=formation_id)

        if record is None:
            raise ParseError(
                "No formation data found in response",
                context={"url": path, "content_type": content_type}
            )
        return record
