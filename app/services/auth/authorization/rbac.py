"""
Role and capability resolution.

A single base role per identity plus additive, curator-only capabilities.
Every authorization question collaborators ask goes through
``PermissionResolver``; it performs no I/O and reads only the
already-authenticated identity (an ORM ``Identity`` or a ``Principal``) and
the review fragment of a resource.
"""

from __future__ import annotations

from typing import Any, FrozenSet, Optional, Union

import structlog

from app.core.exceptions import AuthorizationDenied, SelfReviewDenied
from app.domain.enums import AuthMethod, BaseRole, Capability, IdentityStatus, ResourceStatus

from .permissions import ALL_PERMISSIONS, Permission, permissions_for

logger = structlog.get_logger(__name__)

_CREATOR_EDITABLE = frozenset({
    ResourceStatus.DRAFT,
    ResourceStatus.PENDING_REVIEW,
    ResourceStatus.CHANGES_REQUESTED,
})

_REVIEW_VISIBLE = frozenset({
    ResourceStatus.PENDING_REVIEW,
    ResourceStatus.CHANGES_REQUESTED,
})


def _status(value: Any) -> IdentityStatus:
    return IdentityStatus(value) if value is not None else IdentityStatus.PENDING_APPROVAL


def _resource_status(resource: Any) -> ResourceStatus:
    return ResourceStatus(resource.status)


class PermissionResolver:
    """Answers role, capability, ownership and visibility questions."""

    def has_role(self, identity: Any, role: Union[BaseRole, str]) -> bool:
        """Check the identity's base role (inactive identities hold none)."""
        if not self._is_active(identity):
            return False
        return identity.role == BaseRole(role)

    def is_administrator(self, identity: Any) -> bool:
        return self.has_role(identity, BaseRole.ADMINISTRATOR)

    def has_capability(self, identity: Any, capability: Union[Capability, str]) -> bool:
        """
        Check a capability grant.

        Administrators hold every capability implicitly; only curators can
        hold explicit capabilities.
        """
        if not self._is_active(identity):
            return False
        if identity.role == BaseRole.ADMINISTRATOR:
            return True
        if identity.role != BaseRole.CURATOR:
            return False
        return Capability(capability) in identity.capability_set

    def effective_permissions(self, identity: Any) -> FrozenSet[Permission]:
        """
        Resolve the full permission set from the static tables.

        API-key principals carry the scope snapshot taken when the key was
        issued; it is returned as-is.
        """
        if not self._is_active(identity):
            return frozenset()
        if getattr(identity, "auth_method", None) == AuthMethod.API_KEY:
            return frozenset(
                Permission(scope) for scope in identity.permissions
                if scope in Permission._value2member_map_
            )
        if identity.role == BaseRole.ADMINISTRATOR:
            return ALL_PERMISSIONS
        return permissions_for(identity.role, identity.capability_set)

    def has_permission(self, identity: Any, permission: Union[Permission, str]) -> bool:
        return Permission(permission) in self.effective_permissions(identity)

    def ensure_permission(self, identity: Any, permission: Union[Permission, str]) -> None:
        """Raise ``AuthorizationDenied`` naming the missing permission."""
        permission = Permission(permission)
        if not self.has_permission(identity, permission):
            logger.warning(
                "permission_denied",
                identity_id=str(identity.id),
                permission=permission.value,
            )
            raise AuthorizationDenied(
                f"Missing permission: {permission.value}",
                permission=permission.value,
            )

    def is_owner(self, identity: Any, owner_id: Any) -> bool:
        return owner_id is not None and str(identity.id) == str(owner_id)

    def can_view(self, identity: Any, resource: Any) -> bool:
        if not self._is_active(identity):
            return False
        status = _resource_status(resource)
        if status == ResourceStatus.PUBLISHED:
            return True
        if self._overrides(identity) or self.is_owner(identity, resource.creator_id):
            return True
        if status in _REVIEW_VISIBLE:
            return self._reviews(identity)
        # draft and rejected stay with creator and administrators
        return False

    def can_edit(self, identity: Any, resource: Any) -> bool:
        if not self._is_active(identity):
            return False
        if self._overrides(identity):
            return True
        if getattr(resource, "is_day_zero", False):
            return False
        status = _resource_status(resource)
        if self.is_owner(identity, resource.creator_id):
            return status in _CREATOR_EDITABLE
        if status == ResourceStatus.PENDING_REVIEW:
            return self._reviews(identity)
        return False

    def ensure_can_review(self, identity: Any, resource: Any) -> None:
        """
        Gate approve/reject/request_changes.

        Raises:
            AuthorizationDenied: no reviewer_status and not an administrator
            SelfReviewDenied: the reviewer created the resource
        """
        if not (self._overrides(identity) or self._reviews(identity)):
            raise AuthorizationDenied(
                f"Missing permission: {Permission.CONTENT_REVIEW.value}",
                permission=Permission.CONTENT_REVIEW.value,
            )
        if self.is_owner(identity, resource.creator_id):
            logger.warning(
                "self_review_denied",
                identity_id=str(identity.id),
                resource_id=str(getattr(resource, "id", "")),
            )
            raise SelfReviewDenied()

    def _reviews(self, identity: Any) -> bool:
        if getattr(identity, "auth_method", None) == AuthMethod.API_KEY:
            return self.has_permission(identity, Permission.CONTENT_REVIEW)
        return self.has_capability(identity, Capability.REVIEWER_STATUS)

    def _overrides(self, identity: Any) -> bool:
        # API keys act on their scope snapshot, not on the owner's current role
        if getattr(identity, "auth_method", None) == AuthMethod.API_KEY:
            return self.has_permission(identity, Permission.CONTENT_EDIT_ANY)
        return self.is_administrator(identity)

    def _is_active(self, identity: Optional[Any]) -> bool:
        return identity is not None and _status(identity.status) == IdentityStatus.ACTIVE


# Global resolver instance
permission_resolver = PermissionResolver()
