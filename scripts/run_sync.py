"""
Run one formation sync in the foreground
"""

import argparse
import asyncio
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.context import build_context
from core.exceptions import JobFatalError
from core.logging import setup_logging
from models.base import SyncType
from scraper.runner import FormationSyncRunner

logger = logging.getLogger(__name__)


async def run_sync(sync_type: SyncType, created_by: str) -> int:
    """Returns the process exit code"""
    context = build_context(settings)

    try:
        async with context.session_factory() as session:
            async with context.create_client() as client:
                runner = FormationSyncRunner(
                    session,
                    client,
                    analytics=context.analytics,
                    batch_size=settings.SYNC_BATCH_SIZE,
                    batch_delay=settings.SYNC_BATCH_DELAY,
                    max_retries=settings.MAX_RETRIES,
                    retry_delay=settings.RETRY_DELAY,
                    max_candidates=settings.SYNC_MAX_CANDIDATES,
                )
                job = await runner.run(sync_type, created_by=created_by)

        logger.info(
            f"Sync {job.id} {job.status.value}: "
            f"Total={job.total_items}, Synced={job.successful_items}, Failed={job.failed_items}"
        )
        for entry in job.error_log or []:
            logger.warning(f"  {entry.get('identifier')} ({entry.get('name')}): {entry.get('message')}")
        return 0

    except JobFatalError as e:
        logger.error(f"Sync failed: {e}")
        return 1

    finally:
        await context.dispose()


def main():
    parser = argparse.ArgumentParser(description="Sync formations from the third-party platform")
    parser.add_argument(
        "--type",
        dest="sync_type",
        choices=[t.value for t in SyncType],
        default=SyncType.ALL.value,
        help="new: only unseen formations, all: add and update, force: overwrite",
    )
    parser.add_argument("--created-by", default="cli")
    args = parser.parse_args()

    setup_logging()
    sys.exit(asyncio.run(run_sync(SyncType(args.sync_type), args.created_by)))


if __name__ == "__main__":
    main()
