"""
Narrow persistence contract used by the sync pipeline.

Only create / update / find / count are exposed. Callers never build
queries themselves, which keeps the pipeline independent of the database
provider behind the session.
"""

from typing import Any, Dict, Generic, List, Optional, Type, TypeVar
from datetime import datetime
import uuid
from sqlalchemy import select, func, String
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from core.exceptions import StoreError
import logging

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")


class Repository(Generic[ModelT]):
    """
    Data access helpers for one ORM model.

    ``create`` fills in a string primary key when the model uses one and the
    caller did not supply it; ``created_at``/``updated_at`` come from column
    defaults, and ``update`` always refreshes ``updated_at``.
    """

    def __init__(self, db_session: AsyncSession, model: Type[ModelT]):
        self.db = db_session
        self.model = model

    @property
    def table_name(self) -> str:
        return self.model.__tablename__

    def _criteria(self, criteria: Optional[Dict[str, Any]]):
        return [getattr(self.model, key) == value for key, value in (criteria or {}).items()]

    async def create(self, data: Dict[str, Any]) -> ModelT:
        """Insert a record and return the mapped instance"""
        values = dict(data)
        pk = self.model.__table__.c.get("id")
        if pk is not None and isinstance(pk.type, String) and not values.get("id"):
            values["id"] = str(uuid.uuid4())

        record = self.model(**values)
        self.db.add(record)

        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StoreError(
                f"Failed to create {self.table_name} record",
                context={"table_name": self.table_name, "operation": "INSERT"},
                original_exception=e
            )

        return record

    async def update(self, record_id: Any, partial: Dict[str, Any]) -> Optional[ModelT]:
        """Apply a partial update; returns None when the record does not exist"""
        record = await self.find_by_id(record_id)
        if record is None:
            return None
        return await self.update_instance(record, partial)

    async def update_instance(self, record: ModelT, partial: Dict[str, Any]) -> ModelT:
        """Apply a partial update to an already loaded instance"""
        for key, value in partial.items():
            setattr(record, key, value)
        if hasattr(record, "updated_at"):
            record.updated_at = datetime.utcnow()

        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StoreError(
                f"Failed to update {self.table_name} record",
                context={
                    "table_name": self.table_name,
                    "operation": "UPDATE",
                    "record_id": getattr(record, "id", None),
                },
                original_exception=e
            )

        return record

    async def find_by_id(self, record_id: Any) -> Optional[ModelT]:
        return await self.db.get(self.model, record_id)

    async def find_by(
        self,
        criteria: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[ModelT]:
        """Equality filtering with optional ordering and pagination"""
        query = select(self.model).where(*self._criteria(criteria))

        if order_by:
            column = getattr(self.model, order_by)
            query = query.order_by(column.desc() if descending else column.asc())
        if offset:
            query = query.offset(offset)
        if limit:
            query = query.limit(limit)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def find_one_by(self, criteria: Dict[str, Any]) -> Optional[ModelT]:
        records = await self.find_by(criteria, limit=1)
        return records[0] if records else None

    async def count(self, criteria: Optional[Dict[str, Any]] = None) -> int:
        query = select(func.count()).select_from(self.model).where(*self._criteria(criteria))
        result = await self.db.execute(query)
        return result.scalar() or 0
