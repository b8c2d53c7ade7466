"""
TeoVerse - Authentication Routes

Provides:
- Local registration and login
- Google Sign-In
- Token refresh and logout
- Current user profile

Tokens are returned in the body and also set as httpOnly cookies.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Cookie, HTTPException, Request, Response, status
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import BaseModel, EmailStr, Field

from teoverse.api.dependencies import (
    ACCESS_TOKEN_COOKIE,
    REFRESH_TOKEN_COOKIE,
    AuthServiceDep,
    CurrentUserDep,
    SettingsDep,
    get_request_token,
)
from teoverse.config import get_settings
from teoverse.models.user import Token, User
from teoverse.security.auth_service import (
    AccountDeactivatedError,
    InvalidCredentialsError,
    RegistrationError,
)
from teoverse.security.google_oauth import GoogleOAuthError
from teoverse.security.password import PasswordValidationError
from teoverse.security.tokens import TokenError

logger = structlog.get_logger(__name__)

router = APIRouter()


# =============================================================================
# Cookie Configuration
# =============================================================================

def get_cookie_settings() -> dict[str, Any]:
    """
    Cookie flags for the current environment.

    Outside production ``secure`` is off so cookies work over plain HTTP.
    """
    is_production = get_settings().app_env == "production"
    return {
        "httponly": True,
        "secure": is_production,
        "samesite": "lax",
        "path": "/",
    }


def set_auth_cookies(response: Response, tokens: Token, refresh_expires_days: int) -> None:
    cookie_settings = get_cookie_settings()
    response.set_cookie(
        key=ACCESS_TOKEN_COOKIE,
        value=tokens.access_token,
        max_age=tokens.expires_in,
        **cookie_settings,
    )
    response.set_cookie(
        key=REFRESH_TOKEN_COOKIE,
        value=tokens.refresh_token,
        max_age=refresh_expires_days * 24 * 60 * 60,
        **cookie_settings,
    )


def clear_auth_cookies(response: Response) -> None:
    cookie_settings = get_cookie_settings()
    for cookie_name in (ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE):
        response.delete_cookie(
            key=cookie_name,
            path="/",
            secure=cookie_settings["secure"],
            samesite="lax",
        )


# =============================================================================
# Request/Response Models
# =============================================================================

class RegisterRequest(BaseModel):
    email: EmailStr
    # bcrypt only looks at the first 72 bytes
    password: str = Field(..., min_length=8, max_length=72)
    display_name: str | None = Field(default=None, max_length=100)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class GoogleAuthRequest(BaseModel):
    credential: str = Field(..., min_length=1, max_length=4096, description="Google ID token from Sign-In")


class RefreshRequest(BaseModel):
    refresh_token: str | None = Field(default=None, max_length=2048)


class UserResponse(BaseModel):
    id: str
    email: str
    display_name: str | None
    avatar_url: str | None
    auth_provider: str
    created_at: str

    @classmethod
    def from_user(cls, user: User) -> UserResponse:
        return cls(
            id=user.id,
            email=user.email,
            display_name=user.display_name,
            avatar_url=user.avatar_url,
            auth_provider=str(user.auth_provider),
            created_at=user.created_at.isoformat(),
        )


class AuthResponse(BaseModel):
    user: UserResponse
    tokens: Token
    is_new_user: bool = False


def _auth_response(
    response: Response,
    user: User,
    tokens: Token,
    refresh_expires_days: int,
    is_new_user: bool = False,
) -> AuthResponse:
    set_auth_cookies(response, tokens, refresh_expires_days)
    return AuthResponse(user=UserResponse.from_user(user), tokens=tokens, is_new_user=is_new_user)


# =============================================================================
# Endpoints
# =============================================================================

@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(
    request: RegisterRequest,
    response: Response,
    auth_service: AuthServiceDep,
    settings: SettingsDep,
) -> AuthResponse:
    """Create a local account and sign it in."""
    try:
        user, tokens = await auth_service.register(
            email=request.email,
            password=request.password,
            display_name=request.display_name,
        )
    except PasswordValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except RegistrationError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    return _auth_response(response, user, tokens, settings.jwt_refresh_token_expire_days, is_new_user=True)


@router.post("/login", response_model=AuthResponse)
async def login(
    request: LoginRequest,
    response: Response,
    auth_service: AuthServiceDep,
    settings: SettingsDep,
) -> AuthResponse:
    try:
        user, tokens = await auth_service.login(request.email, request.password)
    except InvalidCredentialsError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )
    except AccountDeactivatedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))

    return _auth_response(response, user, tokens, settings.jwt_refresh_token_expire_days)


@router.post("/google", response_model=AuthResponse)
async def google_auth(
    request: GoogleAuthRequest,
    response: Response,
    auth_service: AuthServiceDep,
    settings: SettingsDep,
) -> AuthResponse:
    """
    Sign in with a Google ID token.

    The account is found by Google id, then by verified email, and created
    on first sign-in.
    """
    if not auth_service.google_oauth.is_configured:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Google Sign-In is not configured",
        )

    try:
        user, tokens, is_new_user = await auth_service.login_with_google(request.credential)
    except GoogleOAuthError as e:
        logger.warning("google_auth_failed", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Google authentication failed",
        )
    except AccountDeactivatedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))

    return _auth_response(response, user, tokens, settings.jwt_refresh_token_expire_days, is_new_user)


@router.post("/refresh", response_model=Token)
async def refresh_token(
    response: Response,
    auth_service: AuthServiceDep,
    settings: SettingsDep,
    request: RefreshRequest | None = None,
    refresh_token_cookie: str | None = Cookie(default=None, alias=REFRESH_TOKEN_COOKIE),
) -> Token:
    """Exchange a refresh token (cookie first, then body) for a new pair."""
    token_to_use = refresh_token_cookie or (request.refresh_token if request else None)
    if not token_to_use:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No refresh token provided",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        tokens = await auth_service.refresh_tokens(token_to_use)
    except (TokenError, AccountDeactivatedError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid refresh token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    set_auth_cookies(response, tokens, settings.jwt_refresh_token_expire_days)
    return tokens


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    http_request: Request,
    auth_service: AuthServiceDep,
    refresh_token_cookie: str | None = Cookie(default=None, alias=REFRESH_TOKEN_COOKIE),
) -> Response:
    """Revoke the caller's tokens and clear the cookies."""
    credentials = None
    auth_header = http_request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        credentials = HTTPAuthorizationCredentials(scheme="Bearer", credentials=auth_header[7:])

    await auth_service.logout(get_request_token(http_request, credentials), refresh_token_cookie)

    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    clear_auth_cookies(response)
    return response


@router.get("/me", response_model=UserResponse)
async def get_current_user_profile(user: CurrentUserDep) -> UserResponse:
    return UserResponse.from_user(user)
