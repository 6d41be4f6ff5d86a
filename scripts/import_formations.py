"""
Import a formation catalog CSV into the library
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
from core.logging import setup_logging
from scraper.bulk_import import FormationCatalogImporter

logger = logging.getLogger(__name__)


async def import_catalog(file_path: str, created_by: str) -> int:
    context = build_context(settings)

    try:
        async with context.session_factory() as session:
            importer = FormationCatalogImporter(session, analytics=context.analytics, created_by=created_by)
            summary = await importer.import_file(file_path)
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Catalog import failed: {e}")
        return 1
    finally:
        await context.dispose()

    for error in summary["errors"]:
        logger.warning(f"  {error['slug'] or error['name']}: {error['message']}")
    return 1 if summary["failed"] and not summary["imported"] else 0


def main():
    parser = argparse.ArgumentParser(description="Import a formation catalog")
    parser.add_argument("file", help="CSV with name, category, slug, drones, duration columns")
    parser.add_argument("--created-by", default="import")
    args = parser.parse_args()

    setup_logging()
    sys.exit(asyncio.run(import_catalog(args.file, args.created_by)))


if __name__ == "__main__":
    main()
