"""
User Models

Accounts signed in with email/password or Google, and the JWT models
issued to them. A user's id doubles as the id of their passport.
"""

from datetime import datetime
from enum import Enum

from pydantic import EmailStr, Field, field_validator

from teoverse.models.base import TeoModel, TimestampMixin


class AuthProvider(str, Enum):
    LOCAL = "local"
    GOOGLE = "google"


class UserBase(TeoModel):
    email: EmailStr
    display_name: str | None = Field(default=None, max_length=100)
    avatar_url: str | None = Field(default=None, max_length=500)

    @field_validator("avatar_url")
    @classmethod
    def validate_avatar_url(cls, v: str | None) -> str | None:
        """Blank becomes None; anything else must be an http(s) URL."""
        if v is None or not v.strip():
            return None
        v = v.strip()
        if not v.lower().startswith(("http://", "https://")):
            raise ValueError("Avatar URL must use http or https scheme")
        return v


class UserCreate(UserBase):
    # bcrypt only looks at the first 72 bytes
    password: str = Field(min_length=8, max_length=72)


class User(UserBase, TimestampMixin):
    """A user as the API sees it: no credential fields."""

    id: str
    is_active: bool = True
    auth_provider: AuthProvider = Field(default=AuthProvider.LOCAL, validate_default=True)
    last_login: datetime | None = None


class UserInDB(User):
    password_hash: str
    google_id: str | None = Field(default=None, description="Google ``sub`` claim")
    google_linked_at: datetime | None = None


# ═══════════════════════════════════════════════════════════════
# TOKENS
# ═══════════════════════════════════════════════════════════════


class Token(TeoModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(description="Access token lifetime in seconds")


class TokenPayload(TeoModel):
    """Verified JWT claims."""

    sub: str = Field(description="User id")
    email: str | None = None
    exp: datetime | None = None
    iat: datetime | None = None
    jti: str | None = Field(default=None, description="Token id, the blacklist key")
    type: str = Field(default="access", description="access or refresh")
