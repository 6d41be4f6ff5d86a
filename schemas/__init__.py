"""
Pydantic schemas for data validation and serialization.

Schemas:
    formation: Scraped formation records and stored formation responses
    sync_job: Sync job control and status payloads
    export: Export options, frames and results
    api: Health, pagination and statistics responses

Usage:
    from schemas.formation import FormationRecord
    from schemas.sync_job import SyncJobResponse

Example:
    record = FormationRecord(id="a1", name="Heart", drone_count=100)
    assert record.category == "uncategorized"

Validation:
    Scraped values are loosely typed. Validators clean tags, fill
    placeholder defaults and reject records without a usable name.
"""

__all__ = [
    "FormationRecord",
    "FormationResponse",
    "FormationDetailResponse",
    "SyncJobResponse",
    "SyncStartRequest",
    "ExportOptions",
    "ExportResult",
    "HealthCheckResponse",
    "StatsResponse",
]
