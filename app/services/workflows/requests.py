"""
Capability request workflow.

``pending --approve--> approved`` applies the granted base role or adds the
granted capabilities; ``pending --reject--> rejected`` only records the
decision. Decided requests are terminal: asking again creates a new record.
"""
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AuthorizationDenied, NotFoundError, ValidationError, WorkflowConflict
from app.domain.enums import BaseRole, Capability, IdentityStatus, RequestKind, RequestStatus
from app.domain.schemas.workflow import CapabilityRequestCreate
from app.infrastructure.database.models import CapabilityRequest, Identity
from app.repositories.capability_request import CapabilityRequestRepository
from app.repositories.identity import IdentityRepository
from app.services.auth.authorization.permissions import Permission
from app.services.auth.authorization.rbac import permission_resolver
from app.services.security.audit import AuditAction, AuditComponent, AuditLogger

logger = structlog.get_logger(__name__)


class RequestWorkflowEngine:
    """Administrator-decided role and capability requests."""

    def __init__(self, db: AsyncSession, audit: Optional[AuditLogger] = None):
        self.db = db
        self.requests = CapabilityRequestRepository(db)
        self.identities = IdentityRepository(db)
        self.audit = audit

    async def submit(self, actor: Any, payload: CapabilityRequestCreate) -> CapabilityRequest:
        """
        File a request on behalf of ``actor``.

        Capability requests are accepted from curators only; base-role
        requests from any identity that is not suspended. One pending request
        per kind is allowed.
        """
        identity = await self._load_identity(actor.id)
        if identity.status == IdentityStatus.SUSPENDED.value:
            raise AuthorizationDenied("Suspended identities cannot file requests")

        if payload.kind == RequestKind.CAPABILITY:
            if not identity.is_active or identity.role != BaseRole.CURATOR:
                raise AuthorizationDenied("Capabilities can only be requested by curators")
            requested_role = None
            requested_capabilities = sorted({c.value for c in payload.requested_capabilities})
        else:
            requested_role = payload.requested_role.value
            requested_capabilities = []

        if await self.requests.get_pending_of_kind(identity.id, payload.kind.value):
            raise WorkflowConflict(
                f"A pending {payload.kind.value} request already exists",
                current_status=RequestStatus.PENDING.value,
            )

        request = await self.requests.create({
            "identity_id": identity.id,
            "kind": payload.kind.value,
            "requested_role": requested_role,
            "requested_capabilities": requested_capabilities,
            "justification": payload.justification,
            "status": RequestStatus.PENDING.value,
            "created_at": datetime.now(timezone.utc),
        })
        await self.db.commit()

        logger.info(
            "capability_request_submitted",
            request_id=str(request.id),
            identity_id=str(identity.id),
            kind=payload.kind.value,
        )
        self._audit(
            AuditAction.REQUEST_SUBMITTED,
            actor,
            request,
            {"kind": request.kind, "requested_role": requested_role, "requested_capabilities": requested_capabilities},
        )
        return request

    async def approve(
        self,
        admin: Any,
        request_id: UUID,
        granted_capabilities: Optional[Iterable[Capability]] = None,
        granted_role: Optional[BaseRole] = None,
        notes: Optional[str] = None,
    ) -> CapabilityRequest:
        """
        Approve a pending request and apply the grant.

        ``granted_capabilities`` narrows a capability request to a non-empty
        subset of what was asked for; the subset is recorded on the request.
        """
        permission_resolver.ensure_permission(admin, Permission.REQUESTS_DECIDE)
        request = await self._get_pending(request_id)
        identity = await self._load_identity(request.identity_id)

        if request.kind == RequestKind.CAPABILITY.value:
            requested = {Capability(c) for c in request.requested_capabilities}
            granted = {Capability(c) for c in granted_capabilities} if granted_capabilities is not None else requested
            if not granted or not granted <= requested:
                raise ValidationError(
                    "Granted capabilities must be a non-empty subset of the requested ones",
                    field="granted_capabilities",
                )
            if identity.role != BaseRole.CURATOR:
                raise WorkflowConflict(
                    "Capabilities can only be granted to curators",
                    current_status=request.status,
                )
            decided_role = None
            decided_capabilities = sorted(c.value for c in granted)
        else:
            decided_role = BaseRole(granted_role or request.requested_role).value
            decided_capabilities = []

        now = datetime.now(timezone.utc)
        won = await self.requests.decide(
            request_id=request.id,
            expected_version=request.version,
            status=RequestStatus.APPROVED,
            reviewer_id=admin.id,
            decided_at=now,
            notes=notes,
            granted_role=decided_role,
            granted_capabilities=decided_capabilities,
        )
        if not won:
            await self.db.rollback()
            raise await self._conflict(request_id)

        if decided_role is not None:
            identity.base_role = decided_role
            if identity.status == IdentityStatus.PENDING_APPROVAL.value:
                identity.status = IdentityStatus.ACTIVE.value
        else:
            identity.capabilities = sorted(set(identity.capabilities or []) | set(decided_capabilities))
        identity.normalize_capabilities()
        await self.db.flush()
        await self.db.commit()

        logger.info(
            "capability_request_approved",
            request_id=str(request.id),
            identity_id=str(identity.id),
            reviewer_id=str(admin.id),
            granted_role=decided_role,
            granted_capabilities=decided_capabilities,
        )
        request = await self.requests.get(request.id)
        self._audit(
            AuditAction.REQUEST_APPROVED,
            admin,
            request,
            {
                "identity_id": str(identity.id),
                "granted_role": decided_role,
                "granted_capabilities": decided_capabilities,
                "partial": request.kind == RequestKind.CAPABILITY.value
                and set(decided_capabilities) != set(request.requested_capabilities),
            },
        )
        return request

    async def reject(self, admin: Any, request_id: UUID, notes: Optional[str] = None) -> CapabilityRequest:
        permission_resolver.ensure_permission(admin, Permission.REQUESTS_DECIDE)
        request = await self._get_pending(request_id)

        won = await self.requests.decide(
            request_id=request.id,
            expected_version=request.version,
            status=RequestStatus.REJECTED,
            reviewer_id=admin.id,
            decided_at=datetime.now(timezone.utc),
            notes=notes,
        )
        if not won:
            await self.db.rollback()
            raise await self._conflict(request_id)
        await self.db.commit()

        logger.info("capability_request_rejected", request_id=str(request.id), reviewer_id=str(admin.id))
        request = await self.requests.get(request.id)
        self._audit(AuditAction.REQUEST_REJECTED, admin, request, {"identity_id": str(request.identity_id)})
        return request

    async def list_pending(self, *, skip: int = 0, limit: int = 100) -> List[CapabilityRequest]:
        return await self.requests.list_pending(skip=skip, limit=limit)

    async def list_for_identity(self, identity_id: UUID) -> List[CapabilityRequest]:
        return await self.requests.list_for_identity(identity_id)

    async def get(self, request_id: UUID) -> CapabilityRequest:
        request = await self.requests.get(request_id)
        if request is None:
            raise NotFoundError("CapabilityRequest", str(request_id))
        return request

    async def _get_pending(self, request_id: UUID) -> CapabilityRequest:
        request = await self.get(request_id)
        if request.is_decided:
            raise WorkflowConflict(
                f"Request is already {request.status}",
                current_status=request.status,
            )
        return request

    async def _conflict(self, request_id: UUID) -> WorkflowConflict:
        current = await self.requests.get(request_id)
        logger.info(
            "capability_request_conflict",
            request_id=str(request_id),
            current_status=current.status if current else None,
        )
        return WorkflowConflict(
            "Request was decided concurrently",
            current_status=current.status if current else None,
        )

    async def _load_identity(self, identity_id: UUID) -> Identity:
        identity = await self.identities.get(identity_id)
        if identity is None:
            raise NotFoundError("Identity", str(identity_id))
        return identity

    def _audit(self, action: AuditAction, actor: Any, request: CapabilityRequest, details: dict) -> None:
        if self.audit is None:
            return
        self.audit.record_nowait(
            action,
            actor_id=actor.id,
            component=AuditComponent.REQUESTS,
            resource_type="capability_request",
            resource_id=request.id,
            details=details,
            auth_method=getattr(actor, "auth_method", None),
        )
