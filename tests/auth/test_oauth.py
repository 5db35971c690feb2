"""
Tests for identity provider integration.
"""
import asyncio
from unittest.mock import patch
from urllib.parse import parse_qs, urlparse

import aiohttp
import pytest

from app.core.config import get_settings
from app.core.exceptions import NotFoundError
from app.services.auth.oauth import GoogleOAuthProvider, OAuthError, OAuthStateManager, get_oauth_provider
from tests.mocks.oauth_providers import MockOAuthProvider, user_info

settings = get_settings()


class TestOAuthStateManager:
    """One-time CSRF state."""

    @pytest.mark.asyncio
    async def test_state_is_single_use(self, state_manager):
        created = await state_manager.create_state("google", "http://test/callback", ip_address="203.0.113.9")

        consumed = await state_manager.consume_state(created.state, "google")
        assert consumed.ip_address == "203.0.113.9"
        assert await state_manager.consume_state(created.state, "google") is None

    @pytest.mark.asyncio
    async def test_provider_mismatch(self, state_manager):
        created = await state_manager.create_state("google", "http://test/callback")
        assert await state_manager.consume_state(created.state, "mock") is None

    @pytest.mark.asyncio
    async def test_state_expires_with_ttl(self, fake_redis):
        manager = OAuthStateManager(state_ttl_seconds=60, client=fake_redis)
        created = await manager.create_state("google", "http://test/callback")

        assert 0 < await fake_redis.ttl(f"oauth:state:{created.state}") <= 60


class TestProviders:
    """Provider construction and the login exchange."""

    def test_unconfigured_provider_is_not_found(self, monkeypatch):
        monkeypatch.setattr(settings, "GOOGLE_CLIENT_ID", None)
        with pytest.raises(NotFoundError):
            get_oauth_provider("google")
        with pytest.raises(NotFoundError):
            get_oauth_provider("myspace")

    def test_google_authorization_url(self, monkeypatch):
        monkeypatch.setattr(settings, "GOOGLE_CLIENT_ID", "client-id")
        monkeypatch.setattr(settings, "GOOGLE_CLIENT_SECRET", "client-secret")
        provider = get_oauth_provider("google")

        url = urlparse(provider.generate_authorization_url("state-123"))
        params = parse_qs(url.query)
        assert url.netloc == "accounts.google.com"
        assert params["state"] == ["state-123"]
        assert params["client_id"] == ["client-id"]
        assert params["redirect_uri"][0].endswith("/auth/google/callback")

    @pytest.mark.asyncio
    async def test_google_timeout_becomes_oauth_error(self):
        provider = GoogleOAuthProvider("client-id", "client-secret", "http://test/callback", timeout_seconds=0.1)

        with patch.object(aiohttp.ClientSession, "post", side_effect=asyncio.TimeoutError()):
            with pytest.raises(OAuthError) as exc_info:
                await provider.exchange_code_for_tokens("code")
        assert exc_info.value.error == "timeout"

    @pytest.mark.asyncio
    async def test_unverified_email_refused(self):
        provider = MockOAuthProvider(user_info=user_info(verified=False))
        with pytest.raises(OAuthError) as exc_info:
            await provider.authenticate("code")
        assert exc_info.value.error == "email_unverified"
        assert provider.exchanged_codes == ["code"]
