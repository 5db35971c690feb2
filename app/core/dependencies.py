"""
Dependency injection for FastAPI.

These are the contracts collaborators build on: ``authenticate`` and the
``require*`` guards, the ``rate_limited`` check, the shared audit logger and
request-scoped service factories.
"""
from typing import Optional, Type

from fastapi import Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.schemas.auth import ClientMeta, Principal
from app.infrastructure.database.base import get_db
from app.services.auth.auth_service import AuthService
from app.services.auth.authorization import (
    APIKeyService,
    authenticate,
    authenticate_enrollment,
    require,
    require_capability,
    require_ownership_or_permission,
    require_role,
)
from app.services.auth.token_service import TokenService
from app.services.identity import IdentityService
from app.services.security.audit import AuditComponent, AuditLogger, audit_logger
from app.services.security.rate_limiter import RateLimiter, RateLimitResult, RateLimitSubject
from app.services.workflows.requests import RequestWorkflowEngine
from app.services.workflows.review import ReviewWorkflowEngine

__all__ = [
    "get_db",
    "authenticate",
    "authenticate_enrollment",
    "require",
    "require_role",
    "require_capability",
    "require_ownership_or_permission",
    "rate_limited",
    "enrollment_rate_limited",
    "get_audit_logger",
    "get_rate_limiter",
    "get_client_meta",
    "get_token_service",
    "get_api_key_service",
    "get_auth_service",
    "get_identity_service",
    "get_request_workflow",
    "review_workflow",
]

_rate_limiter: Optional[RateLimiter] = None


def get_audit_logger() -> AuditLogger:
    """The audit hook collaborators call after state-changing operations."""
    return audit_logger


def get_rate_limiter() -> RateLimiter:
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = RateLimiter()
    return _rate_limiter


def get_client_meta(request: Request) -> ClientMeta:
    """Network metadata attached to sessions and audit entries."""
    forwarded = request.headers.get("X-Forwarded-For")
    ip_address = forwarded.split(",")[0].strip() if forwarded else (
        request.client.host if request.client else None
    )
    return ClientMeta(
        ip_address=ip_address,
        user_agent=request.headers.get("User-Agent"),
        request_id=getattr(request.state, "request_id", None),
    )


async def rate_limited(
    response: Response,
    principal: Principal = Depends(authenticate),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> Principal:
    """
    Count the request against the caller's ceilings.

    Raises:
        RateLimited: rendered as 429 with a ``Retry-After`` header
    """
    await _enforce(limiter, principal, response)
    return principal


async def enrollment_rate_limited(
    response: Response,
    principal: Principal = Depends(authenticate_enrollment),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> Principal:
    """``rate_limited`` for endpoints that also take an enrollment token."""
    await _enforce(limiter, principal, response)
    return principal


async def _enforce(limiter: RateLimiter, principal: Principal, response: Response) -> None:
    result: RateLimitResult = await limiter.enforce(RateLimitSubject.for_principal(principal))
    for name, value in result.headers().items():
        response.headers[name] = value


def get_token_service(db: AsyncSession = Depends(get_db)) -> TokenService:
    return TokenService(db)


def get_api_key_service(db: AsyncSession = Depends(get_db)) -> APIKeyService:
    return APIKeyService(db)


def get_auth_service(
    db: AsyncSession = Depends(get_db),
    audit: AuditLogger = Depends(get_audit_logger),
) -> AuthService:
    return AuthService(db, audit=audit)


def get_identity_service(
    db: AsyncSession = Depends(get_db),
    audit: AuditLogger = Depends(get_audit_logger),
) -> IdentityService:
    return IdentityService(db, audit=audit)


def get_request_workflow(
    db: AsyncSession = Depends(get_db),
    audit: AuditLogger = Depends(get_audit_logger),
) -> RequestWorkflowEngine:
    return RequestWorkflowEngine(db, audit=audit)


def review_workflow(model: Type, component: str = AuditComponent.REVIEW.value):
    """
    Dependency factory for a collaborator's review engine.

    Usage:
        documents = review_workflow(KnowledgeDocument, component="knowledge")

        @router.post("/documents/{doc_id}/submit")
        async def submit(doc_id: UUID, engine=Depends(documents), principal=Depends(rate_limited)):
            return await engine.submit(principal, doc_id)
    """

    def provider(
        db: AsyncSession = Depends(get_db),
        audit: AuditLogger = Depends(get_audit_logger),
    ) -> ReviewWorkflowEngine:
        return ReviewWorkflowEngine(db, model, component=component, audit=audit)

    return provider
