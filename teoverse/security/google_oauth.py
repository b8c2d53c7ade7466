"""
Google Sign-In

Verifies Google ID tokens and maps them onto TeoVerse users.
"""

import secrets
from datetime import UTC, datetime
from typing import Any

import httpx
import structlog
from pydantic import BaseModel, EmailStr, Field, ValidationError

from teoverse.config import get_settings
from teoverse.models.user import UserInDB
from teoverse.security.password import hash_password

logger = structlog.get_logger(__name__)


class GoogleUserInfo(BaseModel):
    """User info from a verified Google ID token."""

    sub: str = Field(description="Google user ID")
    email: EmailStr = Field(description="Email address")
    email_verified: bool = Field(default=False, description="Email verification status")
    name: str | None = Field(default=None, description="Full name")
    picture: str | None = Field(default=None, description="Profile picture URL")


class GoogleOAuthError(Exception):
    """Google Sign-In error."""


class GoogleOAuthService:
    """Service for Google Sign-In operations."""

    GOOGLE_TOKEN_INFO_URL = "https://oauth2.googleapis.com/tokeninfo"

    def __init__(self, client_id: str | None = None, http_client: httpx.AsyncClient | None = None):
        self.client_id = client_id if client_id is not None else get_settings().google_client_id
        self._http_client = http_client

        if not self.client_id:
            logger.warning("google_oauth_not_configured")

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id)

    async def _fetch_token_info(self, id_token: str) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.get(
                self.GOOGLE_TOKEN_INFO_URL, params={"id_token": id_token}, timeout=10.0
            )
        async with httpx.AsyncClient() as client:
            return await client.get(
                self.GOOGLE_TOKEN_INFO_URL, params={"id_token": id_token}, timeout=10.0
            )

    async def verify_id_token(self, id_token: str) -> GoogleUserInfo:
        """
        Verify a Google ID token and return user info.

        Raises:
            GoogleOAuthError: If token verification fails
        """
        if not self.is_configured:
            raise GoogleOAuthError("Google Sign-In is not configured")

        try:
            response = await self._fetch_token_info(id_token)
        except httpx.HTTPError as e:
            logger.warning("google_tokeninfo_unreachable", error=str(e))
            raise GoogleOAuthError("Could not verify Google token") from e

        if response.status_code != 200:
            logger.warning(
                "google_token_verification_failed",
                status_code=response.status_code,
            )
            raise GoogleOAuthError("Invalid or expired Google token")

        token_data = response.json()

        if token_data.get("aud") != self.client_id:
            logger.warning("google_token_audience_mismatch", actual=token_data.get("aud"))
            raise GoogleOAuthError("Token was not issued for this application")

        exp = token_data.get("exp")
        if exp and int(exp) < datetime.now(UTC).timestamp():
            raise GoogleOAuthError("Token has expired")

        try:
            return GoogleUserInfo(
                sub=token_data["sub"],
                email=token_data["email"],
                email_verified=str(token_data.get("email_verified", "false")).lower() == "true",
                name=token_data.get("name"),
                picture=token_data.get("picture"),
            )
        except (KeyError, ValidationError) as e:
            raise GoogleOAuthError("Google token is missing required claims") from e

    async def get_or_create_user(
        self,
        google_user: GoogleUserInfo,
        user_repo: Any,  # UserRepository
    ) -> tuple[UserInDB, bool]:
        """
        Find the user for a Google account, linking or creating as needed.

        Returns:
            Tuple of (user, is_new_user)
        """
        existing_by_google = await user_repo.get_by_google_id(google_user.sub)
        if existing_by_google:
            return existing_by_google, False

        existing_by_email = await user_repo.get_by_email(google_user.email)
        if existing_by_email:
            if not google_user.email_verified:
                raise GoogleOAuthError(
                    "An account with this email already exists. "
                    "Please sign in with your password."
                )
            await user_repo.link_google_account(
                user_id=existing_by_email.id,
                google_id=google_user.sub,
            )
            linked = await user_repo.get_by_email(google_user.email)
            return linked or existing_by_email, False

        new_user = await user_repo.create_google_user(
            email=google_user.email,
            display_name=google_user.name,
            avatar_url=google_user.picture,
            google_id=google_user.sub,
            # Unusable for password login
            password_hash=hash_password(secrets.token_urlsafe(32), validate=False),
        )
        logger.info("google_user_registered", user_id=new_user.id)
        return new_user, True


_google_oauth_service: GoogleOAuthService | None = None


def get_google_oauth_service() -> GoogleOAuthService:
    global _google_oauth_service
    if _google_oauth_service is None:
        _google_oauth_service = GoogleOAuthService()
    return _google_oauth_service
