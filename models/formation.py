from sqlalchemy import (
    Column, String, Integer, DateTime, Text, Boolean, Float, Enum, Index
)
from datetime import datetime
from typing import List
from models.base import Base, JSONType, SyncStatus


class Formation(Base):
    """
    Canonical imported formation.

    ``(source, source_id)`` is the natural key used for idempotent upserts;
    ``id`` is assigned once and kept across re-syncs.
    """
    __tablename__ = "formations"

    id = Column(String(64), primary_key=True)

    # Source identification
    source = Column(String(50), nullable=False, default="manual", index=True)
    source_id = Column(String(255), nullable=True, index=True)

    # Descriptive
    name = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(200), nullable=True, index=True)
    tags = Column(Text, nullable=True)  # comma-joined

    # Physical
    drone_count = Column(Integer, nullable=False, default=0)
    duration = Column(Float, nullable=False, default=0.0)

    # Media
    thumbnail_url = Column(String(2048), nullable=True)
    file_url = Column(String(2048), nullable=True)

    # Commercial / provenance
    price = Column(Float, nullable=True)
    creator = Column(String(200), nullable=True)
    rating = Column(Float, nullable=True)
    download_count = Column(Integer, nullable=False, default=0)
    is_public = Column(Boolean, nullable=False, default=True)

    # Choreography payload, stored as-is
    formation_data = Column(JSONType, nullable=True)
    extra_metadata = Column("metadata", JSONType, nullable=True)

    # Sync tracking
    sync_status = Column(Enum(SyncStatus), nullable=False, default=SyncStatus.PENDING, index=True)
    last_synced = Column(DateTime, nullable=True)
    created_by = Column(String(100), nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("uq_formation_source", "source", "source_id", unique=True),
        Index("idx_formation_category_created", "category", "created_at"),
    )

    @property
    def tag_list(self) -> List[str]:
        if not self.tags:
            return []
        return [t.strip() for t in self.tags.split(",") if t.strip()]

    def __repr__(self):
        return f"<Formation {self.id} source={self.source}:{self.source_id} name={self.name!r}>"
