"""
Audit trail endpoint.
"""
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from app.core.config import settings
from app.core.dependencies import get_audit_logger, rate_limited, require
from app.domain.schemas.audit import AuditPage, AuditQuery
from app.domain.schemas.auth import Principal
from app.services.auth.authorization import Permission
from app.services.security.audit import AuditLogger

router = APIRouter(dependencies=[Depends(rate_limited)])


@router.get("", response_model=AuditPage)
async def query_audit(
    actor_id: Optional[UUID] = None,
    resource_type: Optional[str] = None,
    resource_id: Optional[str] = None,
    component: Optional[str] = None,
    action: Optional[str] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.AUDIT_DEFAULT_PAGE_SIZE, ge=1, le=settings.AUDIT_MAX_PAGE_SIZE),
    _: Principal = Depends(require(Permission.AUDIT_READ)),
    audit: AuditLogger = Depends(get_audit_logger),
) -> Any:
    """Filter the audit trail, newest first."""
    return await audit.query(AuditQuery(
        actor_id=actor_id,
        resource_type=resource_type,
        resource_id=resource_id,
        component=component,
        action=action,
        since=since,
        until=until,
        page=page,
        page_size=page_size,
    ))
