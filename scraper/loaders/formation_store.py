"""
Idempotent create-or-update of formations keyed by source identifier
"""

import re
import uuid
from datetime import datetime
from typing import Any, Dict, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from core.exceptions import StoreError
from core.repository import Repository
from models.base import SyncType, SyncStatus
from models.formation import Formation
from schemas.formation import FormationRecord
import logging

logger = logging.getLogger(__name__)

# Source ids matching this are reused verbatim as the local primary key
SAFE_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")

# Kept from the stored record when an additive sync brings no value
PRESERVED_MEDIA_FIELDS = ("thumbnail_url", "file_url", "formation_data")


class FormationStore:
    """
    Load formations with upsert semantics.

    Ensures:
    - One row per ``(source, source_id)`` across repeated runs
    - Local ``id`` never changes once assigned
    - ``force`` replaces every field, ``all`` keeps known media URLs and
      choreography when the incoming record has none, ``new`` never touches existing rows
    """

    def __init__(self, db_session: AsyncSession, source: str = "skystage", created_by: Optional[str] = None):
        self.db = db_session
        self.source = source
        self.created_by = created_by
        self.formations = Repository(db_session, Formation)

    async def get_by_source_id(self, source_id: str) -> Optional[Formation]:
        return await self.formations.find_one_by({"source": self.source, "source_id": source_id})

    async def exists(self, source_id: str) -> bool:
        return await self.formations.count({"source": self.source, "source_id": source_id}) > 0

    async def upsert(self, record: FormationRecord, mode: SyncType = SyncType.ALL) -> Formation:
        """
        Insert or update one formation.

        Args:
            record: Normalized formation; ``record.id`` is the source id
            mode: Sync mode controlling how existing rows are treated

        Returns:
            The stored Formation

        Raises:
            StoreError: If the write fails
        """
        mode = SyncType(mode)
        values = self._to_values(record)

        try:
            existing = await self.get_by_source_id(record.id)

            if existing is None:
                values["id"] = await self._assign_id(record.id)
                values["created_by"] = self.created_by
                formation = await self.formations.create(values)
                logger.debug(f"Inserted formation {formation.id} (source_id={record.id})")
                return formation

            if mode == SyncType.NEW:
                logger.debug(f"Formation source_id={record.id} exists, skipped in 'new' mode")
                return existing

            if mode == SyncType.ALL:
                for field in PRESERVED_MEDIA_FIELDS:
                    if not values.get(field) and getattr(existing, field):
                        values[field] = getattr(existing, field)

            formation = await self.formations.update_instance(existing, values)
            logger.debug(f"Updated formation {formation.id} (source_id={record.id}, mode={mode.value})")
            return formation

        except StoreError as e:
            e.context.update({"source_id": record.id, "name": record.name})
            raise

        except Exception as e:
            await self.db.rollback()
            raise StoreError(
                "Unexpected error while storing formation",
                context={"source_id": record.id, "name": record.name},
                original_exception=e
            )

    async def _assign_id(self, source_id: str) -> str:
        """Reuse the source id as primary key when it is safe and free"""
        if SAFE_ID_RE.match(source_id) and await self.formations.find_by_id(source_id) is None:
            return source_id
        return str(uuid.uuid4())

    def _to_values(self, record: FormationRecord) -> Dict[str, Any]:
        now = datetime.utcnow()
        return {
            "source": self.source,
            "source_id": record.id,
            "name": record.name,
            "description": record.description,
            "category": record.category,
            "tags": ",".join(record.tags),
            "drone_count": record.drone_count,
            "duration": record.duration,
            "thumbnail_url": record.thumbnail_url,
            "file_url": record.file_url,
            "price": record.price,
            "creator": record.creator,
            "rating": record.rating,
            "download_count": record.download_count,
            "is_public": record.is_public,
            "formation_data": record.formation_data,
            "extra_metadata": {
                "creator": record.creator,
                "original_created_at": record.source_created_at,
                "listing_endpoint": record.listing_endpoint,
            },
            "sync_status": SyncStatus.SYNCED,
            "last_synced": now,
        }
