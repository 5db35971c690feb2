"""
Capability request repository.
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.enums import RequestStatus
from app.infrastructure.database.models import CapabilityRequest
from app.repositories.base import BaseRepository


class CapabilityRequestRepository(BaseRepository[CapabilityRequest]):
    """Capability request repository."""

    def __init__(self, db: AsyncSession):
        super().__init__(CapabilityRequest, db)

    async def list_pending(self, *, skip: int = 0, limit: int = 100) -> List[CapabilityRequest]:
        stmt = (
            select(CapabilityRequest)
            .where(CapabilityRequest.status == RequestStatus.PENDING.value)
            .order_by(CapabilityRequest.created_at.asc())
            .offset(skip)
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_for_identity(self, identity_id: UUID) -> List[CapabilityRequest]:
        stmt = (
            select(CapabilityRequest)
            .where(CapabilityRequest.identity_id == identity_id)
            .order_by(CapabilityRequest.created_at.desc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_pending_of_kind(self, identity_id: UUID, kind: str) -> Optional[CapabilityRequest]:
        stmt = select(CapabilityRequest).where(
            CapabilityRequest.identity_id == identity_id,
            CapabilityRequest.kind == kind,
            CapabilityRequest.status == RequestStatus.PENDING.value,
        )
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def decide(
        self,
        request_id: UUID,
        expected_version: int,
        status: RequestStatus,
        reviewer_id: UUID,
        decided_at: datetime,
        notes: Optional[str],
        granted_role: Optional[str] = None,
        granted_capabilities: Optional[List[str]] = None,
    ) -> bool:
        """
        Compare-and-swap ``pending`` to a terminal status.

        Returns:
            True if this decision won
        """
        stmt = (
            update(CapabilityRequest)
            .where(
                CapabilityRequest.id == request_id,
                CapabilityRequest.status == RequestStatus.PENDING.value,
                CapabilityRequest.version == expected_version,
            )
            .values(
                status=status.value,
                reviewer_id=reviewer_id,
                decided_at=decided_at,
                decision_notes=notes,
                granted_role=granted_role,
                granted_capabilities=granted_capabilities or [],
                version=CapabilityRequest.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount == 1
