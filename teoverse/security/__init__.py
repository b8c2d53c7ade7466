"""
TeoVerse Security Module

Password hashing, JWT tokens, Google Sign-In and prompt sanitization.
"""

from .auth_service import (
    AccountDeactivatedError,
    AuthenticationError,
    AuthService,
    InvalidCredentialsError,
    RegistrationError,
    get_auth_service,
)
from .google_oauth import (
    GoogleOAuthError,
    GoogleOAuthService,
    GoogleUserInfo,
    get_google_oauth_service,
)
from .password import (
    PasswordValidationError,
    hash_password,
    validate_password_strength,
    verify_password,
)
from .prompt_sanitization import sanitize_dict_for_prompt, sanitize_for_prompt
from .tokens import (
    TokenBlacklist,
    TokenError,
    TokenExpiredError,
    TokenInvalidError,
    create_access_token,
    create_refresh_token,
    create_token_pair,
    decode_token,
    get_token_claims,
    verify_access_token,
    verify_refresh_token,
)

__all__ = [
    # Auth service
    "AuthService",
    "AuthenticationError",
    "InvalidCredentialsError",
    "AccountDeactivatedError",
    "RegistrationError",
    "get_auth_service",
    # Google
    "GoogleOAuthService",
    "GoogleOAuthError",
    "GoogleUserInfo",
    "get_google_oauth_service",
    # Passwords
    "PasswordValidationError",
    "hash_password",
    "validate_password_strength",
    "verify_password",
    # Prompts
    "sanitize_for_prompt",
    "sanitize_dict_for_prompt",
    # Tokens
    "TokenBlacklist",
    "TokenError",
    "TokenExpiredError",
    "TokenInvalidError",
    "create_access_token",
    "create_refresh_token",
    "create_token_pair",
    "decode_token",
    "get_token_claims",
    "verify_access_token",
    "verify_refresh_token",
]
