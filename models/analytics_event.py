from sqlalchemy import Column, Integer, String, DateTime, Index
from datetime import datetime
from models.base import Base, JSONType


class AnalyticsEvent(Base):
    """Append-only record of pipeline events (logins, source access, syncs, exports)"""
    __tablename__ = "analytics_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_type = Column(String(100), nullable=False, index=True)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(255), nullable=True)
    user_id = Column(String(255), nullable=True)
    event_metadata = Column("metadata", JSONType, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    __table_args__ = (
        Index("idx_analytics_entity", "entity_type", "entity_id"),
    )
