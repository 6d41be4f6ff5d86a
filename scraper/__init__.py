"""
Formation synchronization pipeline.

Modules:
    session: Third-party session state with file persistence
    client: Authenticated HTTP client with cookie propagation
    analytics: Fire-and-forget event sink
    tracker: SyncJob state machine and progress checkpoints
    runner: Sync orchestrator (authenticate, discover, download, store)
    scheduler: Supervised APScheduler worker for sync jobs
    bulk_import: Standalone catalog import job

Subpackages:
    extractors: HTML extraction helpers and the formation parser
    transformers: Normalization of embedded formation data
    loaders: Idempotent formation upsert

Architecture:
    1. Authenticate - reuse the persisted session or log in
    2. Discover - parse listing pages from several endpoints
    3. Download - fetch detail pages in rate-limited batches with retries
    4. Store - upsert by source id and checkpoint the SyncJob per item

Usage:
    from scraper.runner import FormationSyncRunner
    from scraper.scheduler import SyncScheduler
"""
