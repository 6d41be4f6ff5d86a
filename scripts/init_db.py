"""
Create the formation sync tables without running migrations.

Meant for local SQLite databases and throwaway environments; production
PostgreSQL schemas are managed with ``alembic upgrade head``.
"""

import asyncio
import logging
import sys
import os

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from sqlalchemy import text
from core.config import settings
from core.database import build_engine, create_tables
from core.logging import setup_logging
from models import Base

logger = logging.getLogger(__name__)


async def init_database():
    engine = build_engine(settings)
    logger.info(f"Initializing {settings.DATABASE_PROVIDER.value} database")

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

        await create_tables(engine)
        logger.info(f"Tables ready: {', '.join(sorted(Base.metadata.tables))}")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    setup_logging()
    asyncio.run(init_database())
