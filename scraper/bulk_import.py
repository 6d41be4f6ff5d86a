"""
Standalone catalog import job.

Reads a formation catalog exported as CSV and stores each row through the
same FormationStore the sync pipeline uses, under ``source="library"``.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Union
import pandas as pd
from sqlalchemy.ext.asyncio import AsyncSession
from core.exceptions import StoreError
from models.base import SyncType
from schemas.formation import FormationRecord
from scraper.analytics import AnalyticsSink, LoggingAnalyticsSink
from scraper.loaders.formation_store import FormationStore
import logging

logger = logging.getLogger(__name__)

LIBRARY_SOURCE = "library"
REQUIRED_COLUMNS = ("name", "category", "slug", "drones", "duration")
OPTIONAL_COLUMNS = ("description", "thumbnail_url", "file_url", "price", "rating")


class FormationCatalogImporter:
    """
    Import a formation catalog file.

    Rows whose slug is already stored, or whose name matches an existing
    library formation, are skipped. A row that fails validation or storage
    is counted as failed and the import carries on.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        analytics: Optional[AnalyticsSink] = None,
        created_by: Optional[str] = None,
    ):
        self.db = db_session
        self.store = FormationStore(db_session, source=LIBRARY_SOURCE, created_by=created_by)
        self.analytics = analytics or LoggingAnalyticsSink()
        self.created_by = created_by

    def read_catalog(self, file_path: Union[str, Path]) -> List[Dict[str, Any]]:
        """
        Read catalog rows with normalized headers.

        Raises:
            FileNotFoundError: If the catalog does not exist
            ValueError: If a required column is missing
        """
        file_path = Path(file_path)
        if not file_path.exists():
            raise FileNotFoundError(f"Catalog file not found: {file_path}")

        logger.info(f"Reading formation catalog from {file_path}")
        df = pd.read_csv(file_path)

        # Normalize column names (strip whitespace, lowercase)
        df.columns = df.columns.str.strip().str.lower().str.replace(' ', '_')

        missing = [column for column in REQUIRED_COLUMNS if column not in df.columns]
        if missing:
            raise ValueError(f"Catalog is missing columns: {', '.join(missing)}")

        df = df.astype(object).where(pd.notna(df), None)
        return df.to_dict(orient="records")

    async def import_file(self, file_path: Union[str, Path]) -> Dict[str, Any]:
        return await self.import_rows(self.read_catalog(file_path))

    async def import_rows(self, rows: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Store catalog rows.

        Returns:
            ``{imported, skipped, failed, errors}``
        """
        summary: Dict[str, Any] = {"imported": 0, "skipped": 0, "failed": 0, "errors": []}

        for row in rows:
            slug = str(row.get("slug") or "").strip()
            name = str(row.get("name") or "").strip()

            try:
                record = self._to_record(row)
            except (ValueError, TypeError) as e:
                summary["failed"] += 1
                summary["errors"].append({"slug": slug, "name": name, "message": str(e)})
                logger.warning(f"Invalid catalog row {slug or name!r}: {e}")
                continue

            if await self._already_stored(record):
                summary["skipped"] += 1
                continue

            try:
                await self.store.upsert(record, SyncType.NEW)
            except StoreError as e:
                summary["failed"] += 1
                summary["errors"].append({"slug": slug, "name": name, "message": e.message})
                logger.error(f"Failed to import {slug}: {e.message}", extra={"error_context": e.to_dict()})
                continue

            summary["imported"] += 1

        logger.info(
            f"Catalog import finished - Imported: {summary['imported']}, "
            f"Skipped: {summary['skipped']}, Failed: {summary['failed']}"
        )
        await self.analytics.record_event(
            "formation_import_completed",
            "formation",
            user_id=self.created_by,
            metadata={key: summary[key] for key in ("imported", "skipped", "failed")},
        )
        return summary

    async def _already_stored(self, record: FormationRecord) -> bool:
        if await self.store.exists(record.id):
            return True
        return await self.store.formations.count({"source": LIBRARY_SOURCE, "name": record.name}) > 0

    @staticmethod
    def _to_record(row: Dict[str, Any]) -> FormationRecord:
        slug = str(row.get("slug") or "").strip()
        category = str(row.get("category") or "").strip()

        tags = [category.lower()] if category else []
        tags.extend(part for part in slug.split("-") if part)

        values = {
            "id": slug,
            "name": row.get("name"),
            "category": category or None,
            "drone_count": int(float(row.get("drones") or 0)),
            "duration": float(row.get("duration") or 0),
            "tags": tags,
            "is_public": True,
        }
        for column in OPTIONAL_COLUMNS:
            if row.get(column) is not None:
                values[column] = row[column]

        return FormationRecord(**values)
