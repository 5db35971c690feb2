"""
Google OAuth Provider Implementation

OpenID Connect login against Google accounts.
"""
import asyncio
from typing import Dict

import aiohttp
import structlog
from pydantic import ValidationError

from .base import OAuthError, OAuthProviderInterface, OAuthTokens, OAuthUserInfo

logger = structlog.get_logger(__name__)


class GoogleOAuthProvider(OAuthProviderInterface):
    """Google OAuth provider."""

    name = "google"

    @property
    def authorization_base_url(self) -> str:
        """Google OAuth authorization endpoint."""
        return "https://accounts.google.com/o/oauth2/v2/auth"

    @property
    def token_url(self) -> str:
        """Google OAuth token endpoint."""
        return "https://oauth2.googleapis.com/token"

    @property
    def user_info_url(self) -> str:
        """Google OpenID Connect userinfo endpoint."""
        return "https://openidconnect.googleapis.com/v1/userinfo"

    @property
    def scope(self) -> str:
        """Required Google OAuth scopes."""
        return "openid profile email"

    def _get_additional_auth_params(self) -> Dict[str, str]:
        """Get Google-specific authorization parameters."""
        return {
            "access_type": "online",
            "prompt": "select_account",
            "include_granted_scopes": "true",
        }

    async def exchange_code_for_tokens(self, code: str) -> OAuthTokens:
        """Exchange authorization code for Google OAuth tokens."""
        token_data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": self.redirect_uri,
        }

        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(
                    self.token_url,
                    data=token_data,
                    headers={"Content-Type": "application/x-www-form-urlencoded"}
                ) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        logger.error(
                            "google_token_exchange_failed",
                            status=response.status,
                            error=error_text
                        )
                        raise OAuthError("token_exchange_failed", error_text)

                    token_response = await response.json()

        except asyncio.TimeoutError:
            logger.error("google_token_exchange_timeout", timeout=self.timeout.total)
            raise OAuthError("timeout", "Google token exchange timed out")
        except aiohttp.ClientError as e:
            logger.error("google_token_request_failed", error=str(e))
            raise OAuthError("network_error", f"Failed to connect to Google: {str(e)}")

        if "error" in token_response:
            error = token_response["error"]
            description = token_response.get("error_description")
            logger.error(
                "google_token_exchange_error",
                error=error,
                description=description
            )
            raise OAuthError(error, description)

        try:
            tokens = OAuthTokens(
                access_token=token_response["access_token"],
                token_type=token_response.get("token_type", "Bearer"),
                expires_in=token_response.get("expires_in"),
                refresh_token=token_response.get("refresh_token"),
                scope=token_response.get("scope"),
                id_token=token_response.get("id_token"),
            )
        except KeyError as e:
            raise OAuthError("invalid_response", f"Missing required field: {str(e)}")

        logger.info(
            "google_tokens_obtained",
            expires_in=tokens.expires_in,
            scope=tokens.scope
        )
        return tokens

    async def get_user_info(self, access_token: str) -> OAuthUserInfo:
        """Fetch user information from Google."""
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }

        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.get(self.user_info_url, headers=headers) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        logger.error(
                            "google_userinfo_failed",
                            status=response.status,
                            error=error_text
                        )
                        raise OAuthError("userinfo_failed", error_text)

                    user_data = await response.json()

        except asyncio.TimeoutError:
            logger.error("google_userinfo_timeout", timeout=self.timeout.total)
            raise OAuthError("timeout", "Google userinfo request timed out")
        except aiohttp.ClientError as e:
            logger.error("google_userinfo_request_failed", error=str(e))
            raise OAuthError("network_error", f"Failed to connect to Google: {str(e)}")

        try:
            email = user_data["email"]
            user_info = OAuthUserInfo(
                subject=user_data["sub"],
                email=email.lower(),
                name=user_data.get("name") or email,
                email_verified=bool(user_data.get("email_verified", False)),
                picture=user_data.get("picture"),
                locale=user_data.get("locale"),
                provider=self.name,
                raw_data=user_data,
            )
        except KeyError as e:
            logger.error("google_userinfo_invalid_response", missing_field=str(e))
            raise OAuthError("invalid_response", f"Missing required field: {str(e)}")
        except ValidationError as e:
            logger.error("google_userinfo_validation_failed", error=str(e))
            raise OAuthError("validation_error", str(e))

        logger.info(
            "google_userinfo_obtained",
            subject=user_info.subject,
            verified=user_info.email_verified
        )
        return user_info
