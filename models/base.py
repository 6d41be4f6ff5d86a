from sqlalchemy import JSON
from sqlalchemy.orm import declarative_base
from sqlalchemy.dialects.postgresql import JSONB
import enum

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")


# ============================================================================
# ENUMS
# ============================================================================

class SyncType(str, enum.Enum):
    """Sync modes"""
    NEW = "new"
    ALL = "all"
    FORCE = "force"


class SyncJobStatus(str, enum.Enum):
    """Sync job lifecycle states"""
    PENDING = "pending"
    STARTING = "starting"
    SYNCING = "syncing"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    FAILED = "failed"
    CANCELLED = "cancelled"


class SyncStatus(str, enum.Enum):
    """Per-formation sync status"""
    PENDING = "pending"
    SYNCED = "synced"
    FAILED = "failed"
