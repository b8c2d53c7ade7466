"""
Authentication Service

Registration, password and Google login, token rotation and logout.
"""

import structlog
from neo4j.exceptions import ConstraintError

from teoverse.models.user import Token, User, UserCreate
from teoverse.repositories.user_repository import UserRepository
from teoverse.security.google_oauth import GoogleOAuthService, get_google_oauth_service
from teoverse.security.password import hash_password, verify_password
from teoverse.security.tokens import (
    TokenBlacklist,
    TokenError,
    TokenInvalidError,
    create_token_pair,
    get_token_claims,
    verify_refresh_token,
)

logger = structlog.get_logger(__name__)


class AuthenticationError(Exception):
    """Base authentication error."""


class InvalidCredentialsError(AuthenticationError):
    """Invalid email or password."""


class AccountDeactivatedError(AuthenticationError):
    """Account has been deactivated."""


class RegistrationError(AuthenticationError):
    """Registration failed."""


class AuthService:
    """Authentication service providing login, registration, and token management."""

    def __init__(
        self,
        user_repo: UserRepository,
        google_oauth: GoogleOAuthService | None = None,
    ):
        self.user_repo = user_repo
        self._google_oauth = google_oauth

    @property
    def google_oauth(self) -> GoogleOAuthService:
        if self._google_oauth is None:
            self._google_oauth = get_google_oauth_service()
        return self._google_oauth

    # =========================================================================
    # Registration
    # =========================================================================

    async def register(
        self,
        email: str,
        password: str,
        display_name: str | None = None,
    ) -> tuple[User, Token]:
        """
        Register a local user and issue their first token pair.

        Raises:
            RegistrationError: If the email is already registered
            PasswordValidationError: If the password is too weak
        """
        if await self.user_repo.email_exists(email):
            raise RegistrationError("Email is already registered")

        password_hash = hash_password(password, email=email)
        user_create = UserCreate(email=email, password=password, display_name=display_name)

        # The unique constraint on email settles concurrent registrations
        try:
            user = await self.user_repo.create(user_create, password_hash)
        except ConstraintError as e:
            raise RegistrationError("Email is already registered") from e

        logger.info("user_registered", user_id=user.id)
        return user, create_token_pair(user.id, user.email)

    # =========================================================================
    # Login
    # =========================================================================

    async def login(self, email: str, password: str) -> tuple[User, Token]:
        """
        Raises:
            InvalidCredentialsError: Unknown email or wrong password
            AccountDeactivatedError: The account is disabled
        """
        user = await self.user_repo.get_by_email(email)

        if user is None:
            # Same cost as a real check
            verify_password(password, None)
            logger.info("login_failed", reason="unknown_email")
            raise InvalidCredentialsError("Invalid email or password")

        if not verify_password(password, user.password_hash):
            logger.info("login_failed", reason="invalid_password", user_id=user.id)
            raise InvalidCredentialsError("Invalid email or password")

        if not user.is_active:
            raise AccountDeactivatedError("Account has been deactivated")

        await self.user_repo.record_login(user.id)
        logger.info("login_succeeded", user_id=user.id, method="password")
        return user, create_token_pair(user.id, user.email)

    async def login_with_google(self, id_token: str) -> tuple[User, Token, bool]:
        """
        Sign in with a Google ID token, creating the account on first use.

        Returns:
            Tuple of (user, tokens, is_new_user)
        """
        google_user = await self.google_oauth.verify_id_token(id_token)
        user, is_new = await self.google_oauth.get_or_create_user(google_user, self.user_repo)

        if not user.is_active:
            raise AccountDeactivatedError("Account has been deactivated")

        if not is_new:
            await self.user_repo.record_login(user.id)

        logger.info("login_succeeded", user_id=user.id, method="google", new_user=is_new)
        return user, create_token_pair(user.id, user.email), is_new

    # =========================================================================
    # Token Operations
    # =========================================================================

    async def refresh_tokens(self, refresh_token: str) -> Token:
        """
        Exchange a refresh token for a new pair; the old refresh token is revoked.

        Raises:
            TokenError: If the refresh token is invalid, expired or revoked
        """
        payload = await verify_refresh_token(refresh_token)

        user = await self.user_repo.get_by_id(payload.sub)
        if user is None:
            raise TokenInvalidError("User not found")
        if not user.is_active:
            raise AccountDeactivatedError("Account has been deactivated")

        await TokenBlacklist.add(
            payload.jti,
            payload.exp.timestamp() if payload.exp else None,
        )
        return create_token_pair(user.id, user.email)

    async def logout(self, *tokens: str | None) -> None:
        """Revoke every given token until its own expiry."""
        for token in tokens:
            if not token:
                continue
            try:
                claims = get_token_claims(token)
            except TokenError:
                logger.debug("logout_token_undecodable")
                continue
            await TokenBlacklist.add(claims.get("jti"), claims.get("exp"))


def get_auth_service(user_repo: UserRepository) -> AuthService:
    return AuthService(user_repo)
