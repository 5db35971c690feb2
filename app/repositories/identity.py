"""
Identity repository.
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.infrastructure.database.models import Identity
from app.repositories.base import BaseRepository


class IdentityRepository(BaseRepository[Identity]):
    """Identity repository."""

    def __init__(self, db: AsyncSession):
        super().__init__(Identity, db)

    async def get_by_email(
        self,
        email: str,
    ) -> Optional[Identity]:
        """
        Get identity by email.

        Args:
            email: Identity email

        Returns:
            Identity if found
        """
        stmt = select(Identity).where(Identity.email == email.lower())
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_provider_subject(
        self,
        provider: str,
        subject: str,
    ) -> Optional[Identity]:
        """Get identity by the external provider's stable user id."""
        stmt = select(Identity).where(
            Identity.provider == provider,
            Identity.provider_subject == subject,
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_by_status(
        self,
        status: Optional[str] = None,
        *,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Identity]:
        stmt = select(Identity).order_by(Identity.created_at.desc()).offset(skip).limit(limit)
        if status:
            stmt = stmt.where(Identity.status == status)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def record_login(self, identity: Identity, at: datetime) -> None:
        """Bump login counters with a single statement."""
        stmt = (
            update(Identity)
            .where(Identity.id == identity.id)
            .values(login_count=Identity.login_count + 1, last_login_at=at)
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(stmt)
        await self.db.refresh(identity)
