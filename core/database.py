"""
Database engine and session management with SQLAlchemy async.

The backend is picked once at startup from ``Settings.DATABASE_PROVIDER``.
Each provider maps to a fixed set of engine options; anything outside the
``DatabaseProvider`` enum is rejected.
"""

from typing import Dict, Any
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
)
from sqlalchemy.pool import NullPool, StaticPool
from core.config import Settings, DatabaseProvider
from models.base import Base
import logging

logger = logging.getLogger(__name__)


def _is_memory_url(url: str) -> bool:
    return url.split("?")[0].endswith(("://", ":///")) or ":memory:" in url or "mode=memory" in url


def _engine_options(settings: Settings) -> Dict[str, Any]:
    """Engine keyword arguments for the configured provider"""
    provider = DatabaseProvider(settings.DATABASE_PROVIDER)

    if provider == DatabaseProvider.POSTGRESQL:
        return {
            "echo": settings.ENVIRONMENT == "development",
            "poolclass": NullPool,
        }
    if provider == DatabaseProvider.SQLITE:
        options = {
            "echo": False,
            "connect_args": {"check_same_thread": False},
        }
        # An in-memory database only exists on its one connection
        if _is_memory_url(settings.DATABASE_URL):
            options["poolclass"] = StaticPool
        return options

    raise ValueError(f"Unsupported database provider: {provider}")


def build_engine(settings: Settings) -> AsyncEngine:
    """Create the async engine for the configured provider"""
    engine = create_async_engine(settings.DATABASE_URL, **_engine_options(settings))
    logger.info(f"Database engine created for provider={settings.DATABASE_PROVIDER.value}")
    return engine


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Create session factory bound to an engine"""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def create_tables(engine: AsyncEngine) -> None:
    """Create all tables registered on the declarative base"""
    # Import models so they register with Base.metadata
    import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

