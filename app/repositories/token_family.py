"""
Token family repository.

Rotation and revocation are single conditional statements so concurrent
refreshes of the same family serialize in the database.
"""
from datetime import datetime
from typing import List
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.infrastructure.database.models import TokenFamily
from app.repositories.base import BaseRepository


class TokenFamilyRepository(BaseRepository[TokenFamily]):
    """Token family repository."""

    def __init__(self, db: AsyncSession):
        super().__init__(TokenFamily, db)

    async def rotate(
        self,
        family_id: UUID,
        presented_jti: str,
        new_jti: str,
        expires_at: datetime,
        rotated_at: datetime,
    ) -> bool:
        """
        Advance the chain one step if ``presented_jti`` is still the unused id.

        Returns:
            True if this caller won the swap
        """
        stmt = (
            update(TokenFamily)
            .where(
                TokenFamily.id == family_id,
                TokenFamily.current_jti == presented_jti,
                TokenFamily.revoked.is_(False),
            )
            .values(
                current_jti=new_jti,
                rotation_count=TokenFamily.rotation_count + 1,
                last_rotated_at=rotated_at,
                expires_at=expires_at,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount == 1

    async def revoke(self, family_id: UUID, reason: str, at: datetime) -> bool:
        """Mark a family revoked; returns False if it already was."""
        stmt = (
            update(TokenFamily)
            .where(TokenFamily.id == family_id, TokenFamily.revoked.is_(False))
            .values(revoked=True, revoked_reason=reason, revoked_at=at)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount == 1

    async def revoke_all_for_identity(self, identity_id: UUID, reason: str, at: datetime) -> int:
        stmt = (
            update(TokenFamily)
            .where(TokenFamily.identity_id == identity_id, TokenFamily.revoked.is_(False))
            .values(revoked=True, revoked_reason=reason, revoked_at=at)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount

    async def list_active_for_identity(self, identity_id: UUID, now: datetime) -> List[TokenFamily]:
        stmt = (
            select(TokenFamily)
            .where(
                TokenFamily.identity_id == identity_id,
                TokenFamily.revoked.is_(False),
                TokenFamily.expires_at > now,
            )
            .order_by(TokenFamily.created_at.desc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
