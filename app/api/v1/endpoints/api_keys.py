"""
API key management endpoints.
"""
from typing import Any, List
from uuid import UUID

from fastapi import APIRouter, Depends, status

from app.core.dependencies import (
    get_api_key_service,
    get_audit_logger,
    get_client_meta,
    rate_limited,
    require,
)
from app.core.exceptions import AuthenticationFailed, AuthFailureReason
from app.domain.schemas.api_key import APIKeyCreate, APIKeyIssued, APIKeyRead
from app.domain.schemas.auth import ClientMeta, Principal
from app.services.auth.authorization import APIKeyService, Permission
from app.services.security.audit import AuditAction, AuditComponent, AuditLogger

router = APIRouter(dependencies=[Depends(rate_limited)])

manage_keys = require(Permission.API_KEYS_MANAGE)


@router.get("", response_model=List[APIKeyRead])
async def list_api_keys(
    principal: Principal = Depends(manage_keys),
    service: APIKeyService = Depends(get_api_key_service),
) -> Any:
    """The caller's API keys, newest first."""
    return await service.list_for_identity(principal.id)


@router.post("", response_model=APIKeyIssued, status_code=status.HTTP_201_CREATED)
async def create_api_key(
    payload: APIKeyCreate,
    principal: Principal = Depends(manage_keys),
    service: APIKeyService = Depends(get_api_key_service),
    audit: AuditLogger = Depends(get_audit_logger),
    client: ClientMeta = Depends(get_client_meta),
) -> Any:
    """
    Issue a new key.

    The plaintext key is only ever returned by this call.
    """
    identity = await service.identities.get(principal.id)
    if identity is None:
        raise AuthenticationFailed(AuthFailureReason.NOT_FOUND, "Identity no longer exists")

    api_key, plaintext = await service.issue(identity, payload.name)
    audit.record_nowait(
        AuditAction.API_KEY_CREATED,
        actor_id=principal.id,
        component=AuditComponent.API_KEYS,
        resource_type="api_key",
        resource_id=api_key.id,
        details={"name": api_key.name, "scopes": api_key.scopes},
        client=client,
        auth_method=principal.auth_method,
    )
    return APIKeyIssued(key=plaintext, api_key=APIKeyRead.model_validate(api_key))


@router.delete("/{key_id}", response_model=APIKeyRead)
async def revoke_api_key(
    key_id: UUID,
    principal: Principal = Depends(manage_keys),
    service: APIKeyService = Depends(get_api_key_service),
    audit: AuditLogger = Depends(get_audit_logger),
    client: ClientMeta = Depends(get_client_meta),
) -> Any:
    """Revoke a key (owner or administrator)."""
    api_key = await service.revoke(key_id, principal)
    audit.record_nowait(
        AuditAction.API_KEY_REVOKED,
        actor_id=principal.id,
        component=AuditComponent.API_KEYS,
        resource_type="api_key",
        resource_id=api_key.id,
        details={"owner_id": str(api_key.identity_id)},
        client=client,
        auth_method=principal.auth_method,
    )
    return api_key


@router.post("/{key_id}/regenerate", response_model=APIKeyIssued)
async def regenerate_api_key(
    key_id: UUID,
    principal: Principal = Depends(manage_keys),
    service: APIKeyService = Depends(get_api_key_service),
    audit: AuditLogger = Depends(get_audit_logger),
    client: ClientMeta = Depends(get_client_meta),
) -> Any:
    """Replace a key's secret, keeping its name, scopes and ceilings."""
    api_key, plaintext = await service.regenerate(key_id, principal)
    audit.record_nowait(
        AuditAction.API_KEY_REGENERATED,
        actor_id=principal.id,
        component=AuditComponent.API_KEYS,
        resource_type="api_key",
        resource_id=api_key.id,
        details={"replaces": str(key_id)},
        client=client,
        auth_method=principal.auth_method,
    )
    return APIKeyIssued(key=plaintext, api_key=APIKeyRead.model_validate(api_key))
