"""
Base repository implementation.
"""
from typing import Any, Dict, Generic, Optional, Type, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.infrastructure.database.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Base repository with common operations.

    Repositories flush but never commit; the service owning the request
    decides where the transaction ends.
    """

    def __init__(
        self,
        model: Type[ModelType],
        db: AsyncSession,
    ):
        self.model = model
        self.db = db

    async def create(
        self,
        data: Dict[str, Any],
    ) -> ModelType:
        """
        Create a new record.

        Args:
            data: Record data

        Returns:
            Created record
        """
        db_obj = self.model(**data)
        self.db.add(db_obj)
        await self.db.flush()
        await self.db.refresh(db_obj)
        return db_obj

    async def get(
        self,
        id: UUID,
    ) -> Optional[ModelType]:
        """
        Get record by ID.

        Always re-reads the row so statement-level updates are visible.

        Args:
            id: Record ID

        Returns:
            Record if found
        """
        stmt = (
            select(self.model)
            .where(self.model.id == id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def reload(self, db_obj: ModelType) -> ModelType:
        """Re-read a record after a statement-level update."""
        await self.db.refresh(db_obj)
        return db_obj
