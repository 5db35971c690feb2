"""
API key management.

Handles API key generation, validation, revocation and regeneration for
programmatic access. Only the SHA-256 hash of a key is stored; the plaintext
is returned exactly once, at issuance.
"""

import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Tuple
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.exceptions import (
    AuthenticationFailed,
    AuthFailureReason,
    AuthorizationDenied,
    NotFoundError,
    ValidationError,
)
from app.domain.enums import APIKeyStatus
from app.infrastructure.database.models import APIKey, Identity
from app.repositories.api_key import APIKeyRepository
from app.repositories.identity import IdentityRepository

from .permissions import Permission, UsageTier, usage_tier
from .rbac import permission_resolver

logger = structlog.get_logger(__name__)
settings = get_settings()

KEY_RANDOM_BYTES = 30  # 40 url-safe characters
KEY_PREFIX_LENGTH = 12

TIER_EXPIRY_DAYS: Dict[UsageTier, int] = {
    UsageTier.EXPLORATOR: 30,
    UsageTier.CURATOR: 90,
    UsageTier.ANALYTICS: 180,
    UsageTier.ADMINISTRATOR: 365,
}


def hash_key(key: str) -> str:
    """Hash API key for storage and lookup."""
    return hashlib.sha256(key.encode()).hexdigest()


def generate_api_key() -> str:
    """Generate a secure API key."""
    return f"{settings.API_KEY_PREFIX}{secrets.token_urlsafe(KEY_RANDOM_BYTES)}"


def looks_like_api_key(credential: str) -> bool:
    return credential.startswith(settings.API_KEY_PREFIX)


def tier_policy(identity: Any) -> Dict[str, Any]:
    """Expiry and ceilings for a key issued to ``identity`` now."""
    tier = usage_tier(identity.role, identity.capability_set)
    ceilings = settings.get_rate_limit_tiers()[tier.value]
    return {
        "tier": tier,
        "expiry": timedelta(days=TIER_EXPIRY_DAYS[tier]),
        "per_minute": ceilings["per_minute"],
        "per_day": ceilings["per_day"],
    }


class APIKeyService:
    """Issue, validate and retire API keys."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.keys = APIKeyRepository(db)
        self.identities = IdentityRepository(db)

    async def issue(self, identity: Identity, name: str) -> Tuple[APIKey, str]:
        """
        Issue a new key for ``identity``.

        The key's scopes are a snapshot of the identity's effective
        permissions; later grants or revocations do not change them.

        Returns:
            The stored key and its plaintext (never retrievable again)
        """
        permission_resolver.ensure_permission(identity, Permission.API_KEYS_MANAGE)

        name = name.strip()
        if not name:
            raise ValidationError("API key name must not be empty", field="name")

        active = await self.keys.count_active_for_identity(identity.id)
        if active >= settings.API_KEY_MAX_PER_IDENTITY:
            raise ValidationError(
                f"At most {settings.API_KEY_MAX_PER_IDENTITY} active API keys are allowed",
                field="name",
            )

        policy = tier_policy(identity)
        scopes = sorted(p.value for p in permission_resolver.effective_permissions(identity))
        now = datetime.now(timezone.utc)

        api_key, plaintext = await self._store(
            identity_id=identity.id,
            name=name,
            scopes=scopes,
            expires_at=now + policy["expiry"],
            per_minute=policy["per_minute"],
            per_day=policy["per_day"],
            created_at=now,
        )
        await self.db.commit()

        logger.info(
            "api_key_created",
            identity_id=str(identity.id),
            key_id=str(api_key.id),
            tier=policy["tier"].value,
        )
        return api_key, plaintext

    async def validate(self, plaintext: str) -> Tuple[APIKey, Identity]:
        """
        Resolve a presented key to its record and owner.

        An expired key is flipped to ``expired`` the first time it is seen
        and that same call fails.

        Raises:
            AuthenticationFailed: not_found, revoked, expired or inactive
        """
        if not looks_like_api_key(plaintext):
            raise AuthenticationFailed(AuthFailureReason.MALFORMED, "Not an API key")

        api_key = await self.keys.get_by_hash(hash_key(plaintext))
        if api_key is None:
            raise AuthenticationFailed(AuthFailureReason.NOT_FOUND, "Unknown API key")

        if api_key.status == APIKeyStatus.REVOKED.value:
            raise AuthenticationFailed(AuthFailureReason.REVOKED, "API key revoked")
        if api_key.status == APIKeyStatus.EXPIRED.value:
            raise AuthenticationFailed(AuthFailureReason.EXPIRED, "API key expired")

        now = datetime.now(timezone.utc)
        if api_key.expires_at <= now:
            flipped = await self.keys.transition_status(api_key.id, APIKeyStatus.EXPIRED, now)
            await self.db.commit()
            if flipped:
                logger.info("api_key_expired", key_id=str(api_key.id))
            raise AuthenticationFailed(AuthFailureReason.EXPIRED, "API key expired")

        identity = await self.identities.get(api_key.identity_id)
        if identity is None or not identity.is_active:
            raise AuthenticationFailed(AuthFailureReason.INACTIVE, "Key owner is not active")

        if not await self.keys.touch(api_key.id, now):
            # Revoked between the read and the update
            await self.db.rollback()
            raise AuthenticationFailed(AuthFailureReason.REVOKED, "API key revoked")
        await self.db.commit()
        return api_key, identity

    async def revoke(self, key_id: UUID, actor: Any) -> APIKey:
        api_key = await self._get_managed(key_id, actor)
        now = datetime.now(timezone.utc)
        if not await self.keys.transition_status(api_key.id, APIKeyStatus.REVOKED, now):
            raise ValidationError(f"API key is already {api_key.status}", field="status")
        await self.db.commit()

        logger.info("api_key_revoked", key_id=str(api_key.id), actor_id=str(actor.id))
        return await self.keys.reload(api_key)

    async def regenerate(self, key_id: UUID, actor: Any) -> Tuple[APIKey, str]:
        """
        Replace an active key with a new secret.

        The replacement keeps the name, scopes and ceilings of the old key;
        its expiry is recomputed from the owner's current tier.
        """
        old = await self._get_managed(key_id, actor)
        if old.status != APIKeyStatus.ACTIVE.value:
            raise ValidationError(f"Cannot regenerate a {old.status} API key", field="status")

        owner = await self.identities.get(old.identity_id)
        if owner is None or not owner.is_active:
            raise AuthorizationDenied("Key owner is not active")

        now = datetime.now(timezone.utc)
        new_key, plaintext = await self._store(
            identity_id=old.identity_id,
            name=old.name,
            scopes=list(old.scopes),
            expires_at=now + tier_policy(owner)["expiry"],
            per_minute=old.rate_limit_per_minute,
            per_day=old.rate_limit_per_day,
            created_at=now,
        )
        if not await self.keys.transition_status(old.id, APIKeyStatus.REVOKED, now, replaced_by_id=new_key.id):
            await self.db.rollback()
            raise ValidationError("API key changed state during regeneration", field="status")
        await self.db.commit()

        logger.info(
            "api_key_regenerated",
            old_key_id=str(old.id),
            key_id=str(new_key.id),
            actor_id=str(actor.id),
        )
        return new_key, plaintext

    async def list_for_identity(self, identity_id: UUID) -> List[APIKey]:
        return await self.keys.list_for_identity(identity_id)

    async def get(self, key_id: UUID, actor: Any) -> APIKey:
        return await self._get_managed(key_id, actor)

    async def _get_managed(self, key_id: UUID, actor: Any) -> APIKey:
        api_key = await self.keys.get(key_id)
        if api_key is None:
            raise NotFoundError("APIKey", str(key_id))
        if not (
            permission_resolver.is_owner(actor, api_key.identity_id)
            or permission_resolver.is_administrator(actor)
        ):
            raise AuthorizationDenied("Only the key owner or an administrator may manage this key")
        return api_key

    async def _store(
        self,
        *,
        identity_id: UUID,
        name: str,
        scopes: List[str],
        expires_at: datetime,
        per_minute: int,
        per_day: int,
        created_at: datetime,
    ) -> Tuple[APIKey, str]:
        plaintext = generate_api_key()
        api_key = await self.keys.create({
            "identity_id": identity_id,
            "name": name,
            "key_prefix": plaintext[:KEY_PREFIX_LENGTH],
            "key_hash": hash_key(plaintext),
            "scopes": scopes,
            "status": APIKeyStatus.ACTIVE.value,
            "expires_at": expires_at,
            "rate_limit_per_minute": per_minute,
            "rate_limit_per_day": per_day,
            "created_at": created_at,
        })
        return api_key, plaintext
