"""
Authorization guards for FastAPI endpoints.

``authenticate`` resolves the bearer credential (a signed access token or an
API key) to a ``Principal``; the ``require*`` factories build dependencies
that collaborators wrap their endpoints with.
"""

from typing import Any, Awaitable, Callable, Optional, Union
from uuid import UUID

import structlog
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AuthenticationFailed, AuthFailureReason, AuthorizationDenied
from app.domain.enums import AuthMethod, BaseRole, Capability, IdentityStatus
from app.domain.schemas.auth import Principal
from app.infrastructure.database.base import get_db
from app.repositories.identity import IdentityRepository
from app.services.auth.token_service import TokenService

from .api_keys import APIKeyService, looks_like_api_key
from .permissions import ALL_PERMISSIONS, Permission, permissions_for
from .rbac import permission_resolver

logger = structlog.get_logger(__name__)

# Security scheme; both credential kinds travel as "Authorization: Bearer ..."
bearer_scheme = HTTPBearer(auto_error=False, description="Access token or API key")


async def authenticate(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> Principal:
    """
    Resolve the caller.

    Access tokens are verified statelessly and carry the role snapshot they
    were minted with. API keys are looked up and carry their scope snapshot.

    Raises:
        AuthenticationFailed: missing, malformed, expired, revoked or unknown credential
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationFailed(AuthFailureReason.MISSING, "Missing bearer credential")

    credential = credentials.credentials
    if looks_like_api_key(credential):
        api_key, identity = await APIKeyService(db).validate(credential)
        principal = Principal(
            id=identity.id,
            email=identity.email,
            base_role=identity.role,
            capabilities=identity.capability_set,
            status=IdentityStatus(identity.status),
            auth_method=AuthMethod.API_KEY,
            permissions=frozenset(api_key.scopes),
            api_key_id=api_key.id,
            rate_limit_per_minute=api_key.rate_limit_per_minute,
            rate_limit_per_day=api_key.rate_limit_per_day,
        )
    else:
        claims = TokenService(db).verify_access(credential)
        capabilities = frozenset(claims.capabilities)
        granted = ALL_PERMISSIONS if claims.role == BaseRole.ADMINISTRATOR else permissions_for(claims.role, capabilities)
        principal = Principal(
            id=claims.sub,
            email=claims.email,
            base_role=claims.role,
            capabilities=capabilities,
            auth_method=AuthMethod.ACCESS_TOKEN,
            permissions=frozenset(p.value for p in granted),
            family_id=claims.fid,
            token_id=claims.jti,
        )

    structlog.contextvars.bind_contextvars(identity_id=str(principal.id))
    request.state.principal = principal
    return principal


async def authenticate_enrollment(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> Principal:
    """
    Resolve the caller, also accepting a pending identity's enrollment token.

    Enrollment principals carry the pending status and no permissions, so
    every permission check refuses them. Only endpoints that let a pending
    identity ask for access should depend on this.
    """
    credential = credentials.credentials if credentials is not None else None
    if not credential or looks_like_api_key(credential):
        return await authenticate(request, credentials, db)

    tokens = TokenService(db)
    try:
        claims = tokens.verify_enrollment(credential)
    except AuthenticationFailed as e:
        if e.reason != AuthFailureReason.MALFORMED:
            raise
        return await authenticate(request, credentials, db)

    identity = await IdentityRepository(db).get(UUID(claims.sub))
    if identity is None or identity.status != IdentityStatus.PENDING_APPROVAL.value:
        raise AuthenticationFailed(AuthFailureReason.INACTIVE, "Enrollment token no longer applies")

    principal = Principal(
        id=identity.id,
        email=identity.email,
        status=IdentityStatus.PENDING_APPROVAL,
        auth_method=AuthMethod.ENROLLMENT_TOKEN,
        token_id=claims.jti,
    )
    structlog.contextvars.bind_contextvars(identity_id=str(principal.id))
    request.state.principal = principal
    return principal


def require(permission: Union[Permission, str]) -> Callable[..., Awaitable[Principal]]:
    """
    Require a permission.

    Usage:
        @router.get("/analytics")
        async def analytics(principal: Principal = Depends(require(Permission.ANALYTICS_READ))):
            ...
    """
    permission = Permission(permission)

    async def guard(principal: Principal = Depends(authenticate)) -> Principal:
        permission_resolver.ensure_permission(principal, permission)
        return principal

    return guard


def require_role(role: Union[BaseRole, str]) -> Callable[..., Awaitable[Principal]]:
    """Require an exact base role."""
    role = BaseRole(role)

    async def guard(principal: Principal = Depends(authenticate)) -> Principal:
        if not permission_resolver.has_role(principal, role):
            raise AuthorizationDenied(f"Requires the {role.value} role")
        return principal

    return guard


def require_capability(capability: Union[Capability, str]) -> Callable[..., Awaitable[Principal]]:
    """Require a capability (administrators hold all of them)."""
    capability = Capability(capability)

    async def guard(principal: Principal = Depends(authenticate)) -> Principal:
        if not permission_resolver.has_capability(principal, capability):
            raise AuthorizationDenied(f"Requires the {capability.value} capability")
        return principal

    return guard


def require_ownership_or_permission(
    permission: Union[Permission, str],
    get_owner_id: Callable[..., Any],
) -> Callable[..., Awaitable[Principal]]:
    """
    Allow the resource owner, or anyone holding ``permission``.

    ``get_owner_id`` is itself a FastAPI dependency (it may take path
    parameters and a session) returning the owner's identity id.

    Usage:
        async def key_owner(key_id: UUID, db=Depends(get_db)) -> UUID: ...

        @router.delete("/api-keys/{key_id}")
        async def revoke(principal=Depends(require_ownership_or_permission(Permission.IDENTITIES_MANAGE, key_owner))):
            ...
    """
    permission = Permission(permission)

    async def guard(
        principal: Principal = Depends(authenticate),
        owner_id: Any = Depends(get_owner_id),
    ) -> Principal:
        if permission_resolver.is_owner(principal, owner_id) and permission_resolver.effective_permissions(principal):
            return principal
        permission_resolver.ensure_permission(principal, permission)
        return principal

    return guard
