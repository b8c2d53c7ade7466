"""
Password Hashing

bcrypt hashing with configurable rounds, timing-safe verification and the
strength rules enforced at registration.
"""

import hmac
import unicodedata

import bcrypt
import structlog

from teoverse.config import get_settings

logger = structlog.get_logger(__name__)

PASSWORD_MIN_LENGTH = 8
# bcrypt only looks at the first 72 bytes
PASSWORD_MAX_LENGTH = 72

COMMON_WEAK_PASSWORDS = frozenset({
    "password", "password1", "password123", "password!",
    "12345678", "123456789", "1234567890",
    "qwerty123", "qwertyuiop", "qwerty1234",
    "letmein1", "welcome1", "admin123", "admin1234",
    "iloveyou1", "sunshine1", "princess1",
    "football1", "baseball1", "dragon123",
    "master123", "monkey123", "shadow123",
    "abc12345", "abcd1234", "abcdefgh",
    "passw0rd", "p@ssw0rd", "p@ssword",
    "changeme", "changeme1", "temp1234",
    "1qaz2wsx", "1q2w3e4r", "1q2w3e4r5t", "zaq12wsx",
    "trustno1", "iloveyou", "asdf1234", "1234qwer",
    "password2024", "password2025", "password2026",
    "teoverse1", "teoverse123", "federation1",
})


class PasswordValidationError(Exception):
    """Password does not meet requirements."""


def validate_password_strength(password: str, email: str | None = None) -> None:
    """
    Validate password meets minimum security requirements.

    Raises:
        PasswordValidationError: If password doesn't meet requirements
    """
    if len(password) < PASSWORD_MIN_LENGTH:
        raise PasswordValidationError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")

    if len(password.encode("utf-8")) > PASSWORD_MAX_LENGTH:
        raise PasswordValidationError(f"Password cannot exceed {PASSWORD_MAX_LENGTH} bytes")

    if not any(c.isupper() for c in password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not any(c.islower() for c in password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not any(c.isdigit() for c in password):
        raise PasswordValidationError("Password must contain at least one digit")

    password_lower = password.lower()
    if password_lower in COMMON_WEAK_PASSWORDS:
        raise PasswordValidationError("Password is too common and easily guessable")

    if email:
        local_part = email.lower().split("@")[0]
        if len(local_part) >= 4 and local_part in password_lower:
            raise PasswordValidationError("Password cannot contain your email address")


def _normalize(password: str) -> bytes:
    return unicodedata.normalize("NFKC", password).encode("utf-8")


def hash_password(password: str, validate: bool = True, email: str | None = None) -> str:
    """
    Hash a password using bcrypt.

    The password is NFKC-normalized first so that equivalent Unicode
    spellings hash identically.

    Raises:
        PasswordValidationError: If ``validate`` is set and the password is weak
    """
    if validate:
        validate_password_strength(password, email=email)

    salt = bcrypt.gensalt(rounds=get_settings().password_bcrypt_rounds)
    return bcrypt.hashpw(_normalize(password), salt).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str | None) -> bool:
    """Timing-safe check of a password against its bcrypt hash."""
    if not plain_password or not hashed_password:
        hmac.compare_digest("dummy", "dummy")
        return False

    try:
        return bcrypt.checkpw(_normalize(plain_password), hashed_password.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        logger.warning("password_hash_malformed")
        return False
