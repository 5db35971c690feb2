"""
Administrator identity management endpoints.
"""
from typing import Any, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from app.core.dependencies import get_identity_service, rate_limited, require
from app.domain.enums import Capability, IdentityStatus
from app.domain.schemas.auth import Principal
from app.domain.schemas.identity import IdentityActivate, IdentityRead
from app.services.auth.authorization import Permission
from app.services.identity import IdentityService

router = APIRouter(dependencies=[Depends(rate_limited)])

manage_identities = require(Permission.IDENTITIES_MANAGE)


@router.get("", response_model=List[IdentityRead])
async def list_identities(
    status: Optional[IdentityStatus] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    principal: Principal = Depends(manage_identities),
    service: IdentityService = Depends(get_identity_service),
) -> Any:
    """Identities, newest first; filter by status to find pending approvals."""
    return await service.list(principal, status, skip=skip, limit=limit)


@router.post("/{identity_id}/activate", response_model=IdentityRead)
async def activate_identity(
    identity_id: UUID,
    payload: IdentityActivate,
    principal: Principal = Depends(manage_identities),
    service: IdentityService = Depends(get_identity_service),
) -> Any:
    return await service.activate(principal, identity_id, payload.base_role)


@router.post("/{identity_id}/suspend", response_model=IdentityRead)
async def suspend_identity(
    identity_id: UUID,
    principal: Principal = Depends(manage_identities),
    service: IdentityService = Depends(get_identity_service),
) -> Any:
    """Suspend an identity; all of its sessions and API keys stop working."""
    return await service.suspend(principal, identity_id)


@router.delete("/{identity_id}/capabilities/{capability}", response_model=IdentityRead)
async def revoke_capability(
    identity_id: UUID,
    capability: Capability,
    principal: Principal = Depends(manage_identities),
    service: IdentityService = Depends(get_identity_service),
) -> Any:
    return await service.revoke_capability(principal, identity_id, capability)
