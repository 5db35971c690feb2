"""
OAuth Provider Base Interface

Defines the abstract interface that all identity providers must implement.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import aiohttp
import structlog
from pydantic import BaseModel

from app.core.config import get_settings

logger = structlog.get_logger(__name__)
settings = get_settings()


class OAuthUserInfo(BaseModel):
    """Standard user information returned by identity providers."""
    subject: str  # Provider-specific stable user ID
    email: str
    name: str
    email_verified: bool = False
    picture: Optional[str] = None
    locale: Optional[str] = None

    # Provider metadata
    provider: str
    raw_data: Dict[str, Any] = {}


class OAuthTokens(BaseModel):
    """OAuth token information."""
    access_token: str
    token_type: str = "Bearer"
    expires_in: Optional[int] = None
    refresh_token: Optional[str] = None
    scope: Optional[str] = None
    id_token: Optional[str] = None  # For OpenID Connect


class OAuthError(Exception):
    """OAuth-specific error."""
    def __init__(self, error: str, description: Optional[str] = None):
        self.error = error
        self.description = description
        super().__init__(f"{error}: {description}" if description else error)


class OAuthProviderInterface(ABC):
    """Abstract base class for identity providers."""

    name: str = "oauth"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        timeout_seconds: Optional[float] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds or settings.OAUTH_TIMEOUT_SECONDS)

    @property
    @abstractmethod
    def authorization_base_url(self) -> str:
        """Base URL for OAuth authorization."""

    @property
    @abstractmethod
    def token_url(self) -> str:
        """URL for token exchange."""

    @property
    @abstractmethod
    def user_info_url(self) -> str:
        """URL for fetching user information."""

    @property
    @abstractmethod
    def scope(self) -> str:
        """Required OAuth scopes."""

    def generate_authorization_url(self, state: str, **kwargs) -> str:
        """
        Generate OAuth authorization URL.

        Args:
            state: CSRF protection state parameter
            **kwargs: Additional provider-specific parameters

        Returns:
            Authorization URL
        """
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": self.scope,
            "response_type": "code",
            "state": state,
            **kwargs
        }
        params.update(self._get_additional_auth_params())

        url = f"{self.authorization_base_url}?{urlencode(params)}"
        logger.info(
            "oauth_authorization_url_generated",
            provider=self.name,
            state=state[:8],  # Only log first 8 chars
        )
        return url

    @abstractmethod
    async def exchange_code_for_tokens(self, code: str) -> OAuthTokens:
        """
        Exchange authorization code for access tokens.

        Raises:
            OAuthError: If token exchange fails or times out
        """

    @abstractmethod
    async def get_user_info(self, access_token: str) -> OAuthUserInfo:
        """
        Fetch user information using access token.

        Raises:
            OAuthError: If user info fetch fails or times out
        """

    async def authenticate(self, code: str) -> OAuthUserInfo:
        """Code exchange followed by the user info lookup."""
        tokens = await self.exchange_code_for_tokens(code)
        user_info = await self.get_user_info(tokens.access_token)
        if not user_info.email_verified:
            logger.warning("oauth_email_unverified", provider=self.name, email=user_info.email)
            raise OAuthError("email_unverified", "The provider has not verified this email address")
        return user_info

    def _get_additional_auth_params(self) -> Dict[str, str]:
        """
        Get provider-specific authorization parameters.
        Override in subclasses if needed.
        """
        return {}
