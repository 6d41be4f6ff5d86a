"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, List, Dict
from datetime import datetime
from schemas.formation import FormationResponse
from schemas.sync_job import SyncJobResponse


# ============================================================================
# Health Check Schemas
# ============================================================================

class HealthCheckResponse(BaseModel):
    """Health check response model"""
    database_connected: bool
    last_sync_status: Optional[str] = None
    last_sync_at: Optional[datetime] = None
    session_connected: bool = False
    status: str = Field("healthy", description="Overall system status: healthy, degraded, unhealthy")
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    @validator("status", pre=True, always=True)
    def determine_status(cls, v, values):
        """Determine overall health status"""
        if not values.get("database_connected", False):
            return "unhealthy"

        if values.get("last_sync_status") == "failed":
            return "degraded"

        return "healthy"

    class Config:
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "timestamp": "2024-01-15T10:30:00Z",
                "database_connected": True,
                "last_sync_status": "completed",
                "last_sync_at": "2024-01-15T10:00:00Z",
                "session_connected": True,
            }
        }


# ============================================================================
# Formation Query Schemas
# ============================================================================

class PaginationMetadata(BaseModel):
    """Pagination metadata"""
    current_page: int
    page_size: int
    total_items: int
    total_pages: int
    has_next: bool
    has_previous: bool


class FormationListResponse(BaseModel):
    """Paginated list of stored formations"""
    items: List[FormationResponse]
    pagination: PaginationMetadata
    filters_applied: Dict[str, object] = Field(default_factory=dict)


# ============================================================================
# Statistics Schemas
# ============================================================================

class StatsResponse(BaseModel):
    """Catalog and sync statistics"""
    timestamp: datetime
    total_formations: int
    formations_by_category: Dict[str, int] = Field(default_factory=dict)
    formations_by_source: Dict[str, int] = Field(default_factory=dict)
    total_sync_jobs: int
    sync_jobs_by_status: Dict[str, int] = Field(default_factory=dict)
    avg_sync_duration_seconds: Optional[float] = None
    last_sync_success: Optional[datetime] = None
    last_sync_failure: Optional[datetime] = None
    recent_jobs: List[SyncJobResponse] = Field(default_factory=list)
    request_id: str


class ErrorResponse(BaseModel):
    """Error payload"""
    error: str
    detail: Optional[str] = None
    request_id: Optional[str] = None
