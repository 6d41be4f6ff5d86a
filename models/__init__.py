"""
SQLAlchemy ORM models for database tables.

Models:
    base: Declarative base, portable JSON type and shared enums
          (SyncType, SyncJobStatus, SyncStatus)
    formation: Canonical imported formations
    sync_job: Ingestion run tracking and progress checkpoints
    analytics_event: Pipeline event log

Database Schema:
    JSON columns use JSONB on PostgreSQL and plain JSON on SQLite, so the
    same models serve both database providers.

Usage:
    from models import Formation, SyncJob
    from models.base import SyncType, SyncJobStatus

Relationships:
    None enforced at the database level. Formations reference the job
    initiator through ``created_by`` only.
"""

from models.base import Base, SyncType, SyncJobStatus, SyncStatus
from models.formation import Formation
from models.sync_job import SyncJob
from models.analytics_event import AnalyticsEvent

__all__ = [
    "Base",
    "SyncType",
    "SyncJobStatus",
    "SyncStatus",
    "Formation",
    "SyncJob",
    "AnalyticsEvent",
]
