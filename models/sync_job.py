from sqlalchemy import Column, String, Integer, DateTime, Enum, Index
from datetime import datetime
from typing import Optional
import uuid
from models.base import Base, JSONType, SyncJobStatus


TERMINAL_STATUSES = frozenset({
    SyncJobStatus.COMPLETED,
    SyncJobStatus.COMPLETED_WITH_ERRORS,
    SyncJobStatus.FAILED,
    SyncJobStatus.CANCELLED,
})

# Allowed forward transitions; anything else is rejected
ALLOWED_TRANSITIONS = {
    SyncJobStatus.PENDING: {
        SyncJobStatus.STARTING,
        SyncJobStatus.FAILED,
        SyncJobStatus.CANCELLED,
    },
    SyncJobStatus.STARTING: {
        SyncJobStatus.SYNCING,
        SyncJobStatus.FAILED,
        SyncJobStatus.CANCELLED,
    },
    SyncJobStatus.SYNCING: {
        SyncJobStatus.COMPLETED,
        SyncJobStatus.COMPLETED_WITH_ERRORS,
        SyncJobStatus.FAILED,
        SyncJobStatus.CANCELLED,
    },
}


def _new_job_id() -> str:
    return str(uuid.uuid4())


class SyncJob(Base):
    """
    Tracks one run of the formation ingestion pipeline.

    Purpose:
    - Durable progress checkpoint, updated after every processed candidate
    - Per-item error log for operator diagnosis
    - Audit trail of who started which sync and when
    """
    __tablename__ = "sync_jobs"

    id = Column(String(36), primary_key=True, default=_new_job_id)
    type = Column(String(50), nullable=False, default="skystage_formations")
    status = Column(Enum(SyncJobStatus), nullable=False, default=SyncJobStatus.PENDING, index=True)

    # Progress counters
    total_items = Column(Integer, nullable=False, default=0)
    processed_items = Column(Integer, nullable=False, default=0)
    successful_items = Column(Integer, nullable=False, default=0)
    failed_items = Column(Integer, nullable=False, default=0)

    # Ordered list of {identifier, name, error_type, message}
    error_log = Column(JSONType, nullable=False, default=list)
    job_metadata = Column("metadata", JSONType, nullable=False, default=dict)

    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_by = Column(String(100), nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_sync_job_type_created", "type", "created_at"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def progress(self) -> float:
        """Percentage of discovered candidates processed so far"""
        if not self.total_items:
            return 100.0 if self.is_terminal else 0.0
        return round(self.processed_items / self.total_items * 100, 1)

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def can_transition_to(self, status: SyncJobStatus) -> bool:
        return status in ALLOWED_TRANSITIONS.get(self.status, set())

    def __repr__(self):
        return f"<SyncJob {self.id} status={self.status} {self.processed_items}/{self.total_items}>"
