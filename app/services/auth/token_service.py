"""
JWT Token Management Service

Issues and verifies access tokens, and rotates refresh tokens within a
token family stored in the database.

Access tokens are verified statelessly: signature plus clock, no store
lookup. Revocation acts on token families, so a revoked session keeps working
for at most one access-token lifetime.
"""
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

import structlog
from jose import ExpiredSignatureError, JWTError, jwt
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.exceptions import AuthenticationFailed, AuthFailureReason
from app.domain.enums import TokenFamilyRevocation
from app.domain.schemas.auth import AccessClaims, ClientMeta, EnrollmentClaims, RefreshClaims, TokenPair
from app.infrastructure.database.models import Identity, TokenFamily
from app.repositories.identity import IdentityRepository
from app.repositories.token_family import TokenFamilyRepository

logger = structlog.get_logger(__name__)
settings = get_settings()

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"
ENROLLMENT_TOKEN_TYPE = "enrollment"


class TokenService:
    """Service for JWT token operations."""

    def __init__(
        self,
        db: AsyncSession,
        access_token_ttl: Optional[timedelta] = None,
        refresh_token_ttl: Optional[timedelta] = None,
    ):
        self.db = db
        self.families = TokenFamilyRepository(db)
        self.identities = IdentityRepository(db)
        self.algorithm = settings.JWT_ALGORITHM
        self.secret_key = settings.SECRET_KEY
        self.issuer = settings.JWT_ISSUER
        self.access_token_ttl = access_token_ttl or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        self.refresh_token_ttl = refresh_token_ttl or timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)

    async def issue(
        self,
        identity: Identity,
        client: Optional[ClientMeta] = None,
    ) -> TokenPair:
        """
        Start a new token family for ``identity``.

        The access token embeds the role/capability snapshot as of now.
        The caller owns the transaction.
        """
        now = datetime.now(timezone.utc)
        refresh_jti = self._generate_jti()

        family = await self.families.create({
            "identity_id": identity.id,
            "current_jti": refresh_jti,
            "expires_at": now + self.refresh_token_ttl,
            "created_at": now,
            "ip_address": client.ip_address if client else None,
            "user_agent": client.user_agent if client else None,
        })

        logger.info(
            "token_family_created",
            identity_id=str(identity.id),
            family_id=str(family.id),
        )
        return self._mint_pair(identity, family.id, refresh_jti, now)

    def verify_access(self, token: str) -> AccessClaims:
        """
        Verify an access token.

        Raises:
            AuthenticationFailed: expired, malformed or bad_signature
        """
        payload = self._decode(token)
        if payload.get("type") != ACCESS_TOKEN_TYPE:
            raise AuthenticationFailed(AuthFailureReason.MALFORMED, "Not an access token")
        try:
            return AccessClaims(**payload)
        except PydanticValidationError:
            raise AuthenticationFailed(AuthFailureReason.MALFORMED)

    def issue_enrollment(self, identity: Identity) -> str:
        """
        Mint an enrollment token for a pending identity.

        It is stateless and grants no permissions; only the capability
        request endpoints accept it.
        """
        return self._create_token(
            {
                "sub": str(identity.id),
                "type": ENROLLMENT_TOKEN_TYPE,
                "jti": self._generate_jti(),
            },
            issued_at=datetime.now(timezone.utc),
            expires_delta=timedelta(minutes=settings.ENROLLMENT_TOKEN_EXPIRE_MINUTES),
        )

    def verify_enrollment(self, token: str) -> EnrollmentClaims:
        payload = self._decode(token)
        if payload.get("type") != ENROLLMENT_TOKEN_TYPE:
            raise AuthenticationFailed(AuthFailureReason.MALFORMED, "Not an enrollment token")
        try:
            return EnrollmentClaims(**payload)
        except PydanticValidationError:
            raise AuthenticationFailed(AuthFailureReason.MALFORMED)

    async def refresh(self, refresh_token: str) -> TokenPair:
        """
        Rotate the family's refresh token and mint a fresh access token.

        Presenting any id other than the family's current unused one revokes
        the whole family.

        Raises:
            AuthenticationFailed: reused, revoked, expired, malformed or bad_signature
        """
        claims = self._verify_refresh(refresh_token)
        family_id = UUID(claims.fid)

        family = await self.families.get(family_id)
        if family is None or str(family.identity_id) != claims.sub:
            raise AuthenticationFailed(AuthFailureReason.REVOKED, "Unknown session")
        if family.revoked:
            logger.warning("revoked_family_refresh_attempt", family_id=claims.fid)
            raise AuthenticationFailed(AuthFailureReason.REVOKED)

        if family.current_jti != claims.jti:
            await self._revoke_on_reuse(family)
            raise AuthenticationFailed(AuthFailureReason.REUSED)

        identity = await self.identities.get(family.identity_id)
        if identity is None or not identity.is_active:
            await self.families.revoke(
                family.id, TokenFamilyRevocation.IDENTITY_INACTIVE.value, datetime.now(timezone.utc)
            )
            await self.db.commit()
            raise AuthenticationFailed(AuthFailureReason.REVOKED, "Identity is not active")

        now = datetime.now(timezone.utc)
        new_jti = self._generate_jti()
        won = await self.families.rotate(
            family_id=family.id,
            presented_jti=claims.jti,
            new_jti=new_jti,
            expires_at=now + self.refresh_token_ttl,
            rotated_at=now,
        )
        if not won:
            # A concurrent refresh consumed the same id first
            await self._revoke_on_reuse(family)
            raise AuthenticationFailed(AuthFailureReason.REUSED)

        await self.db.commit()
        logger.info(
            "refresh_token_rotated",
            identity_id=str(identity.id),
            family_id=str(family.id),
        )
        return self._mint_pair(identity, family.id, new_jti, now)

    async def revoke(
        self,
        refresh_token: str,
        reason: TokenFamilyRevocation = TokenFamilyRevocation.LOGOUT,
    ) -> Optional[UUID]:
        """
        Revoke the family a refresh token belongs to (logout).

        Expired tokens are still accepted so a stale client can log out.

        Returns:
            The revoked family id, or None if it was already revoked
        """
        try:
            payload = jwt.decode(
                refresh_token,
                self.secret_key,
                algorithms=[self.algorithm],
                issuer=self.issuer,
                options={"verify_exp": False},
            )
        except JWTError:
            raise AuthenticationFailed(AuthFailureReason.MALFORMED)
        if payload.get("type") != REFRESH_TOKEN_TYPE or "fid" not in payload:
            raise AuthenticationFailed(AuthFailureReason.MALFORMED, "Not a refresh token")

        family_id = UUID(payload["fid"])
        revoked = await self.families.revoke(family_id, reason.value, datetime.now(timezone.utc))
        await self.db.commit()
        if revoked:
            logger.info("token_family_revoked", family_id=str(family_id), reason=reason.value)
            return family_id
        return None

    async def revoke_identity(
        self,
        identity_id: UUID,
        reason: TokenFamilyRevocation = TokenFamilyRevocation.ADMINISTRATIVE,
    ) -> int:
        """Revoke every session of an identity. The caller owns the transaction."""
        count = await self.families.revoke_all_for_identity(
            identity_id, reason.value, datetime.now(timezone.utc)
        )
        logger.info(
            "identity_token_families_revoked",
            identity_id=str(identity_id),
            count=count,
            reason=reason.value,
        )
        return count

    async def list_sessions(self, identity_id: UUID) -> List[TokenFamily]:
        return await self.families.list_active_for_identity(identity_id, datetime.now(timezone.utc))

    async def _revoke_on_reuse(self, family: TokenFamily) -> None:
        await self.families.revoke(
            family.id, TokenFamilyRevocation.REUSE_DETECTED.value, datetime.now(timezone.utc)
        )
        await self.db.commit()
        logger.warning(
            "refresh_token_reuse_detected",
            identity_id=str(family.identity_id),
            family_id=str(family.id),
        )

    def _verify_refresh(self, token: str) -> RefreshClaims:
        payload = self._decode(token)
        if payload.get("type") != REFRESH_TOKEN_TYPE:
            raise AuthenticationFailed(AuthFailureReason.MALFORMED, "Not a refresh token")
        try:
            return RefreshClaims(**payload)
        except PydanticValidationError:
            raise AuthenticationFailed(AuthFailureReason.MALFORMED)

    def _decode(self, token: str) -> Dict[str, Any]:
        """Decode a token, classifying failures."""
        try:
            jwt.get_unverified_claims(token)
        except JWTError:
            raise AuthenticationFailed(AuthFailureReason.MALFORMED)

        try:
            return jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                issuer=self.issuer,
            )
        except ExpiredSignatureError:
            raise AuthenticationFailed(AuthFailureReason.EXPIRED)
        except JWTError as e:
            logger.warning("token_verification_failed", error=str(e))
            raise AuthenticationFailed(AuthFailureReason.BAD_SIGNATURE)

    def _mint_pair(
        self,
        identity: Identity,
        family_id: UUID,
        refresh_jti: str,
        now: datetime,
    ) -> TokenPair:
        access_token = self._create_token(
            {
                "sub": str(identity.id),
                "email": identity.email,
                "role": identity.base_role,
                "capabilities": sorted(c.value for c in identity.capability_set),
                "type": ACCESS_TOKEN_TYPE,
                "fid": str(family_id),
                "jti": self._generate_jti(),
            },
            issued_at=now,
            expires_delta=self.access_token_ttl,
        )
        refresh_token = self._create_token(
            {
                "sub": str(identity.id),
                "type": REFRESH_TOKEN_TYPE,
                "fid": str(family_id),
                "jti": refresh_jti,
            },
            issued_at=now,
            expires_delta=self.refresh_token_ttl,
        )
        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=int(self.access_token_ttl.total_seconds()),
            refresh_expires_in=int(self.refresh_token_ttl.total_seconds()),
        )

    def _create_token(self, data: Dict[str, Any], issued_at: datetime, expires_delta: timedelta) -> str:
        """Create a JWT token with given data and expiration."""
        to_encode = data.copy()
        to_encode.update({
            "iat": int(issued_at.timestamp()),
            "nbf": int(issued_at.timestamp()),
            "exp": int((issued_at + expires_delta).timestamp()),
            "iss": self.issuer,
        })
        return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)

    def _generate_jti(self) -> str:
        """Generate unique token ID."""
        return secrets.token_urlsafe(24)
