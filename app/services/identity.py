"""
Identity administration.

Identities are never deleted; administrators activate, suspend and adjust
them. Suspension cuts off every credential the identity holds.
"""
from datetime import datetime, timezone
from typing import Any, List, Optional
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AuthorizationDenied, NotFoundError, ValidationError, WorkflowConflict
from app.domain.enums import BaseRole, Capability, IdentityStatus, TokenFamilyRevocation
from app.infrastructure.database.models import Identity
from app.repositories.api_key import APIKeyRepository
from app.repositories.identity import IdentityRepository
from app.repositories.token_family import TokenFamilyRepository
from app.services.auth.authorization.permissions import Permission
from app.services.auth.authorization.rbac import permission_resolver
from app.services.security.audit import AuditAction, AuditComponent, AuditLogger

logger = structlog.get_logger(__name__)


class IdentityService:
    """Administrator operations on identities."""

    def __init__(self, db: AsyncSession, audit: Optional[AuditLogger] = None):
        self.db = db
        self.identities = IdentityRepository(db)
        self.families = TokenFamilyRepository(db)
        self.api_keys = APIKeyRepository(db)
        self.audit = audit

    async def list(
        self,
        admin: Any,
        status: Optional[IdentityStatus] = None,
        *,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Identity]:
        permission_resolver.ensure_permission(admin, Permission.IDENTITIES_MANAGE)
        return await self.identities.list_by_status(status.value if status else None, skip=skip, limit=limit)

    async def get(self, identity_id: UUID) -> Identity:
        identity = await self.identities.get(identity_id)
        if identity is None:
            raise NotFoundError("Identity", str(identity_id))
        return identity

    async def activate(self, admin: Any, identity_id: UUID, base_role: BaseRole) -> Identity:
        """
        Activate an identity with ``base_role``.

        Also used to change the base role of an active identity or to lift a
        suspension. Capabilities are dropped when the role is not curator.
        """
        permission_resolver.ensure_permission(admin, Permission.IDENTITIES_MANAGE)
        identity = await self.get(identity_id)

        previous = {"status": identity.status, "base_role": identity.base_role}
        identity.base_role = BaseRole(base_role).value
        identity.status = IdentityStatus.ACTIVE.value
        identity.normalize_capabilities()
        await self.db.flush()
        await self.db.commit()

        logger.info(
            "identity_activated",
            identity_id=str(identity.id),
            base_role=identity.base_role,
            admin_id=str(admin.id),
        )
        self._audit(AuditAction.IDENTITY_ACTIVATED, admin, identity, {
            "previous": previous,
            "base_role": identity.base_role,
        })
        return identity

    async def suspend(self, admin: Any, identity_id: UUID, reason: Optional[str] = None) -> Identity:
        """Suspend an identity and revoke all its sessions and API keys."""
        permission_resolver.ensure_permission(admin, Permission.IDENTITIES_MANAGE)
        if permission_resolver.is_owner(admin, identity_id):
            raise AuthorizationDenied("Administrators cannot suspend themselves")

        identity = await self.get(identity_id)
        if identity.status == IdentityStatus.SUSPENDED.value:
            raise WorkflowConflict("Identity is already suspended", current_status=identity.status)

        now = datetime.now(timezone.utc)
        identity.status = IdentityStatus.SUSPENDED.value
        await self.db.flush()
        families = await self.families.revoke_all_for_identity(
            identity.id, TokenFamilyRevocation.IDENTITY_SUSPENDED.value, now
        )
        keys = await self.api_keys.revoke_all_for_identity(identity.id, now)
        await self.db.commit()

        logger.warning(
            "identity_suspended",
            identity_id=str(identity.id),
            admin_id=str(admin.id),
            revoked_families=families,
            revoked_api_keys=keys,
        )
        self._audit(AuditAction.IDENTITY_SUSPENDED, admin, identity, {
            "reason": reason,
            "revoked_families": families,
            "revoked_api_keys": keys,
        })
        return await self.identities.reload(identity)

    async def revoke_capability(self, admin: Any, identity_id: UUID, capability: Capability) -> Identity:
        """Take one capability away; takes effect at the holder's next refresh."""
        permission_resolver.ensure_permission(admin, Permission.IDENTITIES_MANAGE)
        identity = await self.get(identity_id)

        capability = Capability(capability)
        if capability not in identity.capability_set:
            raise ValidationError(f"Identity does not hold {capability.value}", field="capability")

        identity.capabilities = sorted(c.value for c in identity.capability_set - {capability})
        identity.normalize_capabilities()
        await self.db.flush()
        await self.db.commit()

        logger.info(
            "capability_revoked",
            identity_id=str(identity.id),
            capability=capability.value,
            admin_id=str(admin.id),
        )
        self._audit(AuditAction.CAPABILITY_REVOKED, admin, identity, {"capability": capability.value})
        return identity

    def _audit(self, action: AuditAction, admin: Any, identity: Identity, details: dict) -> None:
        if self.audit is None:
            return
        self.audit.record_nowait(
            action,
            actor_id=admin.id,
            component=AuditComponent.IDENTITIES,
            resource_type="identity",
            resource_id=identity.id,
            details=details,
            auth_method=getattr(admin, "auth_method", None),
        )
