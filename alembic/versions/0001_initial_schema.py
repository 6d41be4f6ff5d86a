"""initial schema: formations, sync_jobs, analytics_events

Revision ID: 0001
Revises:
Create Date: 2026-10-16 00:00:00
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")

SYNC_STATUS = ("PENDING", "SYNCED", "FAILED")
SYNC_JOB_STATUS = (
    "PENDING", "STARTING", "SYNCING", "COMPLETED",
    "COMPLETED_WITH_ERRORS", "FAILED", "CANCELLED",
)


def upgrade():
    op.create_table(
        "formations",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("source", sa.String(50), nullable=False),
        sa.Column("source_id", sa.String(255), nullable=True),
        sa.Column("name", sa.String(500), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(200), nullable=True),
        sa.Column("tags", sa.Text(), nullable=True),
        sa.Column("drone_count", sa.Integer(), nullable=False),
        sa.Column("duration", sa.Float(), nullable=False),
        sa.Column("thumbnail_url", sa.String(2048), nullable=True),
        sa.Column("file_url", sa.String(2048), nullable=True),
        sa.Column("price", sa.Float(), nullable=True),
        sa.Column("creator", sa.String(200), nullable=True),
        sa.Column("rating", sa.Float(), nullable=True),
        sa.Column("download_count", sa.Integer(), nullable=False),
        sa.Column("is_public", sa.Boolean(), nullable=False),
        sa.Column("formation_data", JSONType, nullable=True),
        sa.Column("metadata", JSONType, nullable=True),
        sa.Column("sync_status", sa.Enum(*SYNC_STATUS, name="syncstatus"), nullable=False),
        sa.Column("last_synced", sa.DateTime(), nullable=True),
        sa.Column("created_by", sa.String(100), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_formations_source", "formations", ["source"])
    op.create_index("ix_formations_source_id", "formations", ["source_id"])
    op.create_index("ix_formations_category", "formations", ["category"])
    op.create_index("ix_formations_sync_status", "formations", ["sync_status"])
    op.create_index("uq_formation_source", "formations", ["source", "source_id"], unique=True)
    op.create_index("idx_formation_category_created", "formations", ["category", "created_at"])

    op.create_table(
        "sync_jobs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("status", sa.Enum(*SYNC_JOB_STATUS, name="syncjobstatus"), nullable=False),
        sa.Column("total_items", sa.Integer(), nullable=False),
        sa.Column("processed_items", sa.Integer(), nullable=False),
        sa.Column("successful_items", sa.Integer(), nullable=False),
        sa.Column("failed_items", sa.Integer(), nullable=False),
        sa.Column("error_log", JSONType, nullable=False),
        sa.Column("metadata", JSONType, nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("created_by", sa.String(100), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_sync_jobs_status", "sync_jobs", ["status"])
    op.create_index("ix_sync_jobs_created_at", "sync_jobs", ["created_at"])
    op.create_index("idx_sync_job_type_created", "sync_jobs", ["type", "created_at"])

    op.create_table(
        "analytics_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.String(255), nullable=True),
        sa.Column("user_id", sa.String(255), nullable=True),
        sa.Column("metadata", JSONType, nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_analytics_events_event_type", "analytics_events", ["event_type"])
    op.create_index("ix_analytics_events_created_at", "analytics_events", ["created_at"])
    op.create_index("idx_analytics_entity", "analytics_events", ["entity_type", "entity_id"])


def downgrade():
    op.drop_table("analytics_events")
    op.drop_table("sync_jobs")
    op.drop_table("formations")
    sa.Enum(name="syncjobstatus").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="syncstatus").drop(op.get_bind(), checkfirst=True)
