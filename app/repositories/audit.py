"""
Audit entry repository.

Insert and read only: entries are never updated or deleted.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.infrastructure.database.models import AuditEntry


class AuditEntryRepository:
    """Append-only audit entry repository."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def append(self, data: Dict[str, Any]) -> AuditEntry:
        entry = AuditEntry(**data)
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def search(
        self,
        *,
        actor_id: Optional[UUID] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        component: Optional[str] = None,
        action: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> Tuple[List[AuditEntry], int]:
        """
        Filter entries, newest first.

        Returns:
            Page of entries and the total number of matches
        """
        conditions = []
        if actor_id is not None:
            conditions.append(AuditEntry.actor_id == actor_id)
        if resource_type:
            conditions.append(AuditEntry.resource_type == resource_type)
        if resource_id:
            conditions.append(AuditEntry.resource_id == resource_id)
        if component:
            conditions.append(AuditEntry.component == component)
        if action:
            conditions.append(AuditEntry.action == action)
        if since is not None:
            conditions.append(AuditEntry.timestamp >= since)
        if until is not None:
            conditions.append(AuditEntry.timestamp <= until)

        count_stmt = select(func.count(AuditEntry.id)).where(*conditions)
        total = (await self.db.execute(count_stmt)).scalar_one()

        stmt = (
            select(AuditEntry)
            .where(*conditions)
            .order_by(AuditEntry.timestamp.desc(), AuditEntry.id.desc())
            .offset(offset)
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all()), total
