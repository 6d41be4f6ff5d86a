"""
Explicit application context.

Everything that would otherwise live in module-level registries (engine,
session factory, third-party session state, analytics sink) is owned by one
``AppContext`` built at startup and handed to whoever needs it.
"""

from dataclasses import dataclass
from typing import Optional
import httpx
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker
from core.config import Settings, settings as default_settings
from core.database import build_engine, build_session_factory
from scraper.analytics import AnalyticsSink, DatabaseAnalyticsSink
from scraper.client import SkystageClient
from scraper.session import SessionManager
import logging

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker
    session_manager: SessionManager
    analytics: AnalyticsSink

    def create_client(self, transport: Optional[httpx.AsyncBaseTransport] = None) -> SkystageClient:
        """New HTTP client sharing this context's third-party session"""
        return SkystageClient(
            session=self.session_manager,
            base_url=self.settings.SKYSTAGE_BASE_URL,
            email=self.settings.SKYSTAGE_LOGIN_EMAIL,
            password=self.settings.SKYSTAGE_LOGIN_PASSWORD,
            timeout=self.settings.HTTP_TIMEOUT,
            probe_timeout=self.settings.PROBE_TIMEOUT,
            analytics=self.analytics,
            transport=transport,
        )

    async def dispose(self) -> None:
        await self.engine.dispose()
        logger.info("Application context disposed")


def build_context(settings: Optional[Settings] = None) -> AppContext:
    """Wire engine, sessions and shared state from configuration"""
    settings = settings or default_settings

    engine = build_engine(settings)
    session_factory = build_session_factory(engine)
    session_manager = SessionManager(
        settings.SKYSTAGE_SESSION_FILE,
        ttl_seconds=settings.SKYSTAGE_SESSION_TTL_SECONDS,
    )

    return AppContext(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        session_manager=session_manager,
        analytics=DatabaseAnalyticsSink(session_factory),
    )
