"""
Authentication Service.

Handles identity-provider login, token refresh and logout on top of the JWT
token service. The platform stores no passwords: every identity is created
from a verified provider login.
"""
from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.exceptions import (
    AuthenticationFailed,
    AuthFailureReason,
    AuthorizationDenied,
    ExternalServiceError,
    ValidationError,
)
from app.domain.enums import AuthMethod, BaseRole, IdentityStatus
from app.domain.schemas.auth import ClientMeta, LoginResponse, TokenPair
from app.infrastructure.database.models import Identity
from app.repositories.identity import IdentityRepository
from app.services.auth.oauth import OAuthError, OAuthProviderInterface, OAuthUserInfo
from app.services.auth.token_service import TokenService
from app.services.security.audit import AuditAction, AuditComponent, AuditLogger

logger = structlog.get_logger(__name__)
settings = get_settings()


class AuthService:
    """Login, refresh and logout."""

    def __init__(
        self,
        db: AsyncSession,
        token_service: Optional[TokenService] = None,
        audit: Optional[AuditLogger] = None,
    ):
        self.db = db
        self.identity_repo = IdentityRepository(db)
        self.token_service = token_service or TokenService(db)
        self.audit = audit

    async def login_with_provider(
        self,
        provider: OAuthProviderInterface,
        code: str,
        client: Optional[ClientMeta] = None,
    ) -> LoginResponse:
        """
        Complete a provider login.

        Loading or creating the identity, bumping its login counters and
        issuing the token pair happen in one transaction. A first login
        leaves a ``pending_approval`` identity behind (unless the email is a
        bootstrap administrator). Pending identities get no token pair, only
        an enrollment token for asking an administrator for a base role.

        Raises:
            ExternalServiceError: provider exchange failed or timed out
            AuthenticationFailed: identity is suspended
        """
        try:
            user_info = await provider.authenticate(code)
        except OAuthError as e:
            if e.error == "email_unverified":
                raise AuthorizationDenied("The identity provider has not verified this email address")
            logger.error("oauth_login_failed", provider=provider.name, error=e.error)
            raise ExternalServiceError(provider.name, e.description or e.error)

        try:
            identity, created = await self._load_or_create(user_info)

            if not identity.is_active:
                await self.db.commit()
                pending = identity.status == IdentityStatus.PENDING_APPROVAL.value
                logger.warning(
                    "login_refused_inactive_identity",
                    identity_id=str(identity.id),
                    status=identity.status,
                    created=created,
                )
                self._audit(
                    AuditAction.LOGIN_DENIED,
                    identity,
                    client,
                    {"status": identity.status, "provider": provider.name, "created": created},
                )
                if not pending:
                    raise AuthenticationFailed(AuthFailureReason.INACTIVE, "Identity is suspended")
                return LoginResponse(
                    identity_id=identity.id,
                    status=IdentityStatus.PENDING_APPROVAL,
                    enrollment_token=self.token_service.issue_enrollment(identity),
                )

            await self.identity_repo.record_login(identity, datetime.now(timezone.utc))
            tokens = await self.token_service.issue(identity, client)
            await self.db.commit()
        except AuthenticationFailed:
            raise
        except Exception:
            await self.db.rollback()
            logger.error("login_transaction_rolled_back", provider=provider.name, exc_info=True)
            raise

        logger.info(
            "login_success",
            identity_id=str(identity.id),
            provider=provider.name,
            login_count=identity.login_count,
        )
        self._audit(AuditAction.LOGIN_SUCCESS, identity, client, {"provider": provider.name})
        return LoginResponse(
            identity_id=identity.id,
            status=IdentityStatus(identity.status),
            tokens=tokens,
        )

    async def refresh(self, refresh_token: str, client: Optional[ClientMeta] = None) -> TokenPair:
        try:
            return await self.token_service.refresh(refresh_token)
        except AuthenticationFailed as e:
            if e.reason == AuthFailureReason.REUSED and self.audit is not None:
                self.audit.record_nowait(
                    AuditAction.TOKEN_REUSE_DETECTED,
                    component=AuditComponent.TOKENS,
                    client=client,
                    auth_method=AuthMethod.REFRESH_TOKEN,
                    details={"reason": e.reason.value},
                )
            raise

    async def logout(self, refresh_token: str, actor_id=None, client: Optional[ClientMeta] = None) -> bool:
        family_id = await self.token_service.revoke(refresh_token)
        if family_id is not None and self.audit is not None:
            self.audit.record_nowait(
                AuditAction.LOGOUT,
                actor_id=actor_id,
                component=AuditComponent.AUTH,
                resource_type="token_family",
                resource_id=family_id,
                client=client,
                auth_method=AuthMethod.REFRESH_TOKEN,
            )
        return family_id is not None

    async def _load_or_create(self, user_info: OAuthUserInfo):
        identity = await self.identity_repo.get_by_provider_subject(user_info.provider, user_info.subject)
        if identity is not None:
            return identity, False

        if await self.identity_repo.get_by_email(user_info.email):
            raise ValidationError(
                "This email is already linked to a different identity provider account",
                field="email",
            )

        bootstrap = user_info.email.lower() in {e.lower() for e in settings.BOOTSTRAP_ADMIN_EMAILS}
        identity = await self.identity_repo.create({
            "provider": user_info.provider,
            "provider_subject": user_info.subject,
            "email": user_info.email.lower(),
            "display_name": user_info.name,
            "base_role": BaseRole.ADMINISTRATOR.value if bootstrap else None,
            "capabilities": [],
            "status": IdentityStatus.ACTIVE.value if bootstrap else IdentityStatus.PENDING_APPROVAL.value,
        })
        logger.info(
            "identity_created",
            identity_id=str(identity.id),
            provider=user_info.provider,
            bootstrap_admin=bootstrap,
        )
        return identity, True

    def _audit(self, action: AuditAction, identity: Identity, client: Optional[ClientMeta], details: dict) -> None:
        if self.audit is None:
            return
        self.audit.record_nowait(
            action,
            actor_id=identity.id,
            component=AuditComponent.AUTH,
            resource_type="identity",
            resource_id=identity.id,
            details=details,
            client=client,
            auth_method=AuthMethod.OAUTH,
        )
