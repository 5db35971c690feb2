"""
Tests for provider login, refresh and logout.
"""
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select

from app.core.exceptions import (
    AuthenticationFailed,
    AuthFailureReason,
    AuthorizationDenied,
    ExternalServiceError,
    ValidationError,
)
from app.domain.enums import BaseRole, IdentityStatus
from app.domain.schemas.audit import AuditQuery
from app.domain.schemas.auth import ClientMeta
from app.infrastructure.database.models import Identity
from app.repositories.identity import IdentityRepository
from app.services.auth.auth_service import AuthService
from app.services.auth.oauth import OAuthError
from app.services.auth.token_service import TokenService
from tests.fixtures.auth import create_identity
from tests.mocks.oauth_providers import MockOAuthProvider, user_info


async def identity_count(session_factory) -> int:
    async with session_factory() as db:
        return (await db.execute(select(func.count(Identity.id)))).scalar_one()


class TestProviderLogin:
    """First and repeat logins."""

    @pytest.mark.asyncio
    async def test_first_login_leaves_pending_identity(self, db_session, audit):
        provider = MockOAuthProvider(user_info=user_info("new.person@platform.test", "sub-new"))

        response = await AuthService(db_session, audit=audit).login_with_provider(provider, "code-1")

        assert response.status == IdentityStatus.PENDING_APPROVAL
        assert response.tokens is None
        identity = await IdentityRepository(db_session).get_by_email("new.person@platform.test")
        assert identity.status == IdentityStatus.PENDING_APPROVAL.value
        assert identity.base_role is None
        assert await TokenService(db_session).list_sessions(identity.id) == []

        claims = TokenService(db_session).verify_enrollment(response.enrollment_token)
        assert claims.sub == str(identity.id)
        with pytest.raises(AuthenticationFailed):
            TokenService(db_session).verify_access(response.enrollment_token)

        denied = await audit.query(AuditQuery(action="login_denied"))
        assert denied.total == 1

    @pytest.mark.asyncio
    async def test_suspended_identity_is_refused(self, db_session):
        identity = await create_identity(db_session, status=IdentityStatus.SUSPENDED, email="gone@platform.test")
        identity.provider_subject = "mock-gone"
        await db_session.commit()
        provider = MockOAuthProvider(user_info=user_info("gone@platform.test", "mock-gone"))

        with pytest.raises(AuthenticationFailed) as exc_info:
            await AuthService(db_session).login_with_provider(provider, "code-1")
        assert exc_info.value.reason == AuthFailureReason.INACTIVE

    @pytest.mark.asyncio
    async def test_bootstrap_admin_is_active_on_first_login(self, db_session):
        provider = MockOAuthProvider(user_info=user_info("root@platform.test", "sub-root"))

        response = await AuthService(db_session).login_with_provider(provider, "code-1")

        assert response.status == IdentityStatus.ACTIVE
        claims = TokenService(db_session).verify_access(response.tokens.access_token)
        assert claims.role == BaseRole.ADMINISTRATOR

    @pytest.mark.asyncio
    async def test_active_identity_gets_tokens(self, db_session, audit):
        identity = await create_identity(db_session, email="ada@platform.test")
        identity.provider_subject = "mock-1001"
        await db_session.commit()
        provider = MockOAuthProvider(user_info=user_info("ada@platform.test", "mock-1001"))

        response = await AuthService(db_session, audit=audit).login_with_provider(
            provider, "code-1", ClientMeta(ip_address="198.51.100.7")
        )

        assert response.identity_id == identity.id
        reloaded = await IdentityRepository(db_session).get(identity.id)
        assert reloaded.login_count == 1
        assert reloaded.last_login_at is not None
        sessions = await TokenService(db_session).list_sessions(identity.id)
        assert sessions[0].ip_address == "198.51.100.7"
        assert (await audit.query(AuditQuery(action="login_success"))).total == 1

    @pytest.mark.asyncio
    async def test_email_linked_to_other_account_is_rejected(self, db_session):
        await create_identity(db_session, email="taken@platform.test")
        provider = MockOAuthProvider(user_info=user_info("taken@platform.test", "someone-else"))

        with pytest.raises(ValidationError):
            await AuthService(db_session).login_with_provider(provider, "code-1")

    @pytest.mark.asyncio
    async def test_unverified_email_is_denied(self, db_session):
        provider = MockOAuthProvider(user_info=user_info(verified=False))

        with pytest.raises(AuthorizationDenied):
            await AuthService(db_session).login_with_provider(provider, "code-1")

    @pytest.mark.asyncio
    async def test_provider_timeout_creates_nothing(self, db_session, session_factory):
        provider = MockOAuthProvider(error=OAuthError("timeout", "token exchange timed out"))

        with pytest.raises(ExternalServiceError) as exc_info:
            await AuthService(db_session).login_with_provider(provider, "code-1")

        assert exc_info.value.status_code == 503
        assert await identity_count(session_factory) == 0

    @pytest.mark.asyncio
    async def test_failure_after_identity_creation_rolls_back(self, db_session, session_factory):
        token_service = TokenService(db_session)
        token_service.issue = AsyncMock(side_effect=RuntimeError("signing key unavailable"))
        provider = MockOAuthProvider(user_info=user_info("root@platform.test", "sub-root"))

        with pytest.raises(RuntimeError):
            await AuthService(db_session, token_service=token_service).login_with_provider(provider, "code-1")

        assert await identity_count(session_factory) == 0


class TestRefreshAndLogout:
    """Session maintenance through the auth service."""

    @pytest.mark.asyncio
    async def test_reuse_is_audited(self, db_session, curator, audit):
        service = AuthService(db_session, audit=audit)
        pair = await service.token_service.issue(curator)
        await db_session.commit()
        await service.refresh(pair.refresh_token)

        with pytest.raises(AuthenticationFailed):
            await service.refresh(pair.refresh_token)

        assert (await audit.query(AuditQuery(action="token_reuse_detected"))).total == 1

    @pytest.mark.asyncio
    async def test_logout(self, db_session, curator, audit):
        service = AuthService(db_session, audit=audit)
        pair = await service.token_service.issue(curator)
        await db_session.commit()

        assert await service.logout(pair.refresh_token, actor_id=curator.id) is True
        assert await service.logout(pair.refresh_token) is False
        assert (await audit.query(AuditQuery(action="logout"))).total == 1
