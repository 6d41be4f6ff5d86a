"""
Pydantic schemas for sync job control and status
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime
from models.base import SyncType, SyncJobStatus
from models.sync_job import SyncJob


class SyncStartRequest(BaseModel):
    """Request body for starting a sync"""
    sync_type: SyncType = SyncType.ALL
    created_by: Optional[str] = Field(None, max_length=100)


class SyncStartResponse(BaseModel):
    """Returned immediately after a sync is queued"""
    sync_job_id: str
    status: SyncJobStatus
    status_url: str
    message: str = "Sync started"


class ErrorLogEntry(BaseModel):
    """One per-item or job-level failure"""
    identifier: str
    name: Optional[str] = None
    error_type: Optional[str] = None
    message: str


class SyncJobResponse(BaseModel):
    """Snapshot of a sync job"""
    id: str
    type: str
    status: SyncJobStatus
    progress: float
    total_items: int
    processed_items: int
    successful_items: int
    failed_items: int
    error_log: List[ErrorLogEntry] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    created_by: Optional[str] = None
    created_at: datetime

    class Config:
        use_enum_values = True

    @classmethod
    def from_job(cls, job: SyncJob) -> "SyncJobResponse":
        return cls(
            id=job.id,
            type=job.type,
            status=job.status,
            progress=job.progress,
            total_items=job.total_items or 0,
            processed_items=job.processed_items or 0,
            successful_items=job.successful_items or 0,
            failed_items=job.failed_items or 0,
            error_log=job.error_log or [],
            metadata=job.job_metadata or {},
            started_at=job.started_at,
            completed_at=job.completed_at,
            duration_seconds=job.duration_seconds,
            created_by=job.created_by,
            created_at=job.created_at,
        )


class SyncStatusResponse(BaseModel):
    """Status of one job plus the current catalog size"""
    job: SyncJobResponse
    formation_count: int


class RecentSyncJobsResponse(BaseModel):
    """Most recent jobs plus the current catalog size"""
    jobs: List[SyncJobResponse]
    total_formations: int


class SessionUserResponse(BaseModel):
    email: Optional[str] = None
    name: Optional[str] = None
    user_type: Optional[str] = None
    membership: Optional[str] = None


class SessionStatusResponse(BaseModel):
    """Third-party session state as seen by the sync worker"""
    connected: bool
    user: Optional[SessionUserResponse] = None
    authenticated_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
