"""
Pydantic schemas for normalized formation records with validation
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, List, Dict, Any
from datetime import datetime
from models.base import SyncStatus

UNTITLED_FORMATION = "Untitled Formation"
UNCATEGORIZED = "uncategorized"
UNKNOWN_CREATOR = "Unknown"


class FormationRecord(BaseModel):
    """
    A formation as scraped from the third-party platform.

    Produced by the parser for both listing cards and detail pages.
    ``id`` is the platform's native identifier and becomes ``source_id``
    once stored.

    Ensures:
    - Name is present and not the placeholder
    - Tags are a clean list
    - Counts and prices are non-negative, rating is within 0-5

    A ``drone_count`` or ``duration`` of 0 means the page did not state it;
    merges treat 0 as unknown and let the other record's value win.
    """

    id: str = Field(..., min_length=1, max_length=255)
    name: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = None
    category: str = Field(UNCATEGORIZED, max_length=200)

    thumbnail_url: Optional[str] = Field(None, max_length=2048)
    file_url: Optional[str] = Field(None, max_length=2048)

    drone_count: int = Field(0, ge=0)
    duration: float = Field(0.0, ge=0)
    price: Optional[float] = Field(None, ge=0)
    rating: Optional[float] = None
    download_count: int = Field(0, ge=0)

    tags: List[str] = Field(default_factory=list)
    creator: str = Field(UNKNOWN_CREATOR, max_length=200)
    is_public: bool = True

    formation_data: Optional[Any] = None
    source_created_at: Optional[str] = None
    listing_endpoint: Optional[str] = None

    @validator("id", pre=True)
    def coerce_id(cls, v):
        if v is None:
            return v
        return str(v).strip()

    @validator("name")
    def clean_name(cls, v):
        v = v.strip()
        if not v or v == UNTITLED_FORMATION:
            raise ValueError("Formation name is empty or a placeholder")
        return v

    @validator("category", pre=True)
    def default_category(cls, v):
        if v is None or not str(v).strip():
            return UNCATEGORIZED
        return str(v).strip()

    @validator("creator", pre=True)
    def default_creator(cls, v):
        if v is None or not str(v).strip():
            return UNKNOWN_CREATOR
        return str(v).strip()

    @validator("tags", pre=True)
    def clean_tags(cls, v):
        """Ensure tags is a list"""
        if v is None:
            return []
        if isinstance(v, str):
            return [t.strip() for t in v.split(",") if t.strip()]
        if isinstance(v, (list, tuple)):
            return [str(t).strip() for t in v if str(t).strip()]
        return []

    @validator("rating")
    def clamp_rating(cls, v):
        if v is None:
            return v
        return min(max(v, 0.0), 5.0)


class FormationResponse(BaseModel):
    """Response model for a stored formation"""
    id: str
    source: str
    source_id: Optional[str]
    name: str
    description: Optional[str]
    category: Optional[str]
    tags: List[str] = Field(default_factory=list)

    drone_count: int
    duration: float
    thumbnail_url: Optional[str]
    file_url: Optional[str]
    price: Optional[float]
    creator: Optional[str]
    rating: Optional[float]
    download_count: int
    is_public: bool

    sync_status: SyncStatus
    last_synced: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    @validator("tags", pre=True)
    def split_tags(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [t.strip() for t in v.split(",") if t.strip()]
        return v

    class Config:
        from_attributes = True
        use_enum_values = True


class FormationDetailResponse(FormationResponse):
    """Stored formation including its choreography payload"""
    formation_data: Optional[Any] = None
    extra_metadata: Optional[Dict[str, Any]] = None
