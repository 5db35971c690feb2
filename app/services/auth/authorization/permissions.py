"""
Permission catalog for the platform.

Defines every permission and the static tables mapping base roles and
capabilities onto permission sets. Effective permissions are always a union
of these tables; endpoints never compute grants ad hoc.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet

from app.domain.enums import BaseRole, Capability


class Permission(str, Enum):
    """Platform permissions, named ``<resource>:<action>``."""
    # Knowledge-curation surface
    KNOWLEDGE_READ = "knowledge:read"
    KNOWLEDGE_CREATE = "knowledge:create"
    KNOWLEDGE_EDIT_OWN = "knowledge:edit_own"
    KNOWLEDGE_SEED = "knowledge:seed"

    # Modeling surface
    MODELS_READ = "models:read"
    MODELS_CREATE = "models:create"
    MODELS_EDIT_OWN = "models:edit_own"

    # Review workflow
    CONTENT_REVIEW = "content:review"

    # Capability-gated features
    AGENT_USE = "agent:use"
    ANALYTICS_READ = "analytics:read"

    # Self-service
    PROFILE_READ = "profile:read"
    API_KEYS_MANAGE = "api_keys:manage"
    REQUESTS_CREATE = "requests:create"

    # Administration
    REQUESTS_DECIDE = "requests:decide"
    IDENTITIES_MANAGE = "identities:manage"
    AUDIT_READ = "audit:read"
    CONTENT_EDIT_ANY = "content:edit_any"


ALL_PERMISSIONS: FrozenSet[Permission] = frozenset(Permission)

_EXPLORATOR_PERMISSIONS: FrozenSet[Permission] = frozenset({
    Permission.KNOWLEDGE_READ,
    Permission.MODELS_READ,
    Permission.PROFILE_READ,
    Permission.API_KEYS_MANAGE,
    Permission.REQUESTS_CREATE,
})

_CURATOR_PERMISSIONS: FrozenSet[Permission] = _EXPLORATOR_PERMISSIONS | frozenset({
    Permission.KNOWLEDGE_CREATE,
    Permission.KNOWLEDGE_EDIT_OWN,
    Permission.MODELS_CREATE,
    Permission.MODELS_EDIT_OWN,
})

BASE_ROLE_PERMISSIONS: Dict[BaseRole, FrozenSet[Permission]] = {
    BaseRole.ADMINISTRATOR: ALL_PERMISSIONS,
    BaseRole.CURATOR: _CURATOR_PERMISSIONS,
    BaseRole.EXPLORATOR: _EXPLORATOR_PERMISSIONS,
}

# Additive grants, applied only under the curator base role
CAPABILITY_PERMISSIONS: Dict[Capability, FrozenSet[Permission]] = {
    Capability.AGENT_ACCESS: frozenset({Permission.AGENT_USE}),
    Capability.ANALYTICS_ACCESS: frozenset({Permission.ANALYTICS_READ}),
    Capability.REVIEWER_STATUS: frozenset({Permission.CONTENT_REVIEW}),
}


def permissions_for(role: BaseRole | None, capabilities: frozenset | set = frozenset()) -> FrozenSet[Permission]:
    """Union of the static tables for a role and capability set."""
    if role is None:
        return frozenset()
    granted = BASE_ROLE_PERMISSIONS[role]
    if role != BaseRole.CURATOR:
        return granted
    for capability in capabilities:
        granted = granted | CAPABILITY_PERMISSIONS[Capability(capability)]
    return granted


class UsageTier(str, Enum):
    """Quota tier used for API-key policy and rate-limit ceilings."""
    EXPLORATOR = "explorator"
    CURATOR = "curator"
    ANALYTICS = "analytics"
    ADMINISTRATOR = "administrator"


def usage_tier(role: BaseRole | None, capabilities: frozenset | set = frozenset()) -> UsageTier:
    """Lowest tier for explorators, raised for analytics curators, highest for administrators."""
    if role == BaseRole.ADMINISTRATOR:
        return UsageTier.ADMINISTRATOR
    if role == BaseRole.CURATOR:
        if Capability.ANALYTICS_ACCESS in {Capability(c) for c in capabilities}:
            return UsageTier.ANALYTICS
        return UsageTier.CURATOR
    return UsageTier.EXPLORATOR
