"""
Fire-and-forget analytics sink.

Recording an event never fails the calling operation: write errors are
logged and dropped.
"""

from typing import Any, Dict, Optional
from sqlalchemy.ext.asyncio import async_sessionmaker
from models.analytics_event import AnalyticsEvent
import logging

logger = logging.getLogger(__name__)


class AnalyticsSink:
    """Base sink; subclasses implement ``_write``"""

    async def record_event(
        self,
        event_type: str,
        entity_type: str,
        entity_id: Optional[str] = None,
        user_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        try:
            await self._write(event_type, entity_type, entity_id, user_id, metadata or {})
        except Exception as e:
            logger.warning(f"Failed to record analytics event {event_type}: {e}")

    async def _write(
        self,
        event_type: str,
        entity_type: str,
        entity_id: Optional[str],
        user_id: Optional[str],
        metadata: Dict[str, Any],
    ) -> None:
        raise NotImplementedError


class LoggingAnalyticsSink(AnalyticsSink):
    """Writes events to the log only"""

    async def _write(self, event_type, entity_type, entity_id, user_id, metadata):
        logger.info(f"event={event_type} entity={entity_type}:{entity_id} user={user_id} metadata={metadata}")


class DatabaseAnalyticsSink(AnalyticsSink):
    """Persists events as AnalyticsEvent rows, one short-lived session per event"""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def _write(self, event_type, entity_type, entity_id, user_id, metadata):
        async with self.session_factory() as session:
            session.add(AnalyticsEvent(
                event_type=event_type,
                entity_type=entity_type,
                entity_id=entity_id,
                user_id=user_id,
                event_metadata=metadata,
            ))
            await session.commit()
