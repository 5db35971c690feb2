"""
API key repository.
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.enums import APIKeyStatus
from app.infrastructure.database.models import APIKey
from app.repositories.base import BaseRepository


class APIKeyRepository(BaseRepository[APIKey]):
    """API key repository."""

    def __init__(self, db: AsyncSession):
        super().__init__(APIKey, db)

    async def get_by_hash(self, key_hash: str) -> Optional[APIKey]:
        stmt = (
            select(APIKey)
            .where(APIKey.key_hash == key_hash)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_identity(self, identity_id: UUID) -> List[APIKey]:
        stmt = (
            select(APIKey)
            .where(APIKey.identity_id == identity_id)
            .order_by(APIKey.created_at.desc())
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def count_active_for_identity(self, identity_id: UUID) -> int:
        stmt = select(func.count(APIKey.id)).where(
            APIKey.identity_id == identity_id,
            APIKey.status == APIKeyStatus.ACTIVE.value,
        )
        result = await self.db.execute(stmt)
        return result.scalar_one()

    async def touch(self, key_id: UUID, at: datetime) -> bool:
        """Record a successful use; only an active key is touched."""
        stmt = (
            update(APIKey)
            .where(APIKey.id == key_id, APIKey.status == APIKeyStatus.ACTIVE.value)
            .values(last_used_at=at, usage_count=APIKey.usage_count + 1)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount == 1

    async def transition_status(
        self,
        key_id: UUID,
        to_status: APIKeyStatus,
        at: Optional[datetime] = None,
        replaced_by_id: Optional[UUID] = None,
    ) -> bool:
        """Move an active key to ``to_status``; False if it was no longer active."""
        values = {"status": to_status.value}
        if to_status == APIKeyStatus.REVOKED:
            values["revoked_at"] = at
        if replaced_by_id is not None:
            values["replaced_by_id"] = replaced_by_id
        stmt = (
            update(APIKey)
            .where(APIKey.id == key_id, APIKey.status == APIKeyStatus.ACTIVE.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount == 1

    async def revoke_all_for_identity(self, identity_id: UUID, at: datetime) -> int:
        stmt = (
            update(APIKey)
            .where(APIKey.identity_id == identity_id, APIKey.status == APIKeyStatus.ACTIVE.value)
            .values(status=APIKeyStatus.REVOKED.value, revoked_at=at)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount
