"""
JWT Token Management

Creation and validation of the access/refresh token pair issued after
login, plus a revocation list consulted on every authenticated request.

Tokens are PyJWT HS256 with ``sub``, ``email``, ``type``, ``jti``, ``iat``,
``nbf``, ``exp``, ``iss`` and ``aud`` claims. Only HMAC algorithms are
accepted when decoding.
"""

import asyncio
import time
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import uuid4

import jwt as pyjwt
import redis.asyncio as aioredis
import structlog
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError
from pydantic import ValidationError
from redis.exceptions import RedisError

from teoverse.config import get_settings
from teoverse.models.user import Token, TokenPayload

logger = structlog.get_logger(__name__)

ALLOWED_JWT_ALGORITHMS = ["HS256", "HS384", "HS512"]

MAX_TOKEN_SIZE_BYTES = 16 * 1024

# Leeway applied to exp/nbf checks
CLOCK_SKEW_SECONDS = 30


class TokenError(Exception):
    """Base exception for token-related errors."""


class TokenExpiredError(TokenError):
    """Token has expired."""


class TokenInvalidError(TokenError):
    """Token is invalid, malformed, of the wrong type or revoked."""


class TokenBlacklist:
    """
    Revoked token ids (``jti``), kept until the token would have expired.

    Uses Redis when ``REDIS_URL`` is configured so every worker sees the same
    revocations; otherwise entries live in this process.
    """

    _entries: dict[str, float] = {}  # jti -> expiry timestamp
    _lock: asyncio.Lock | None = None
    _last_cleanup: float = 0
    _cleanup_interval: float = 60

    _redis_client: Any | None = None
    _redis_prefix: str = "teoverse:token:blacklist:"

    @classmethod
    def _get_lock(cls) -> asyncio.Lock:
        if cls._lock is None:
            cls._lock = asyncio.Lock()
        return cls._lock

    @classmethod
    async def initialize(cls, redis_url: str | None = None) -> bool:
        """Connect to Redis if a URL is configured. Returns True when Redis is in use."""
        url = redis_url or get_settings().redis_url
        if not url:
            logger.info("token_blacklist_memory_mode")
            return False

        client = aioredis.from_url(
            url,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=5.0,
            socket_connect_timeout=5.0,
        )
        try:
            await client.ping()
        except (RedisError, OSError) as e:
            logger.warning("token_blacklist_redis_failed", error=str(e))
            await client.aclose()
            return False

        cls._redis_client = client
        logger.info("token_blacklist_redis_connected")
        return True

    @classmethod
    async def add(cls, jti: str | None, expires_at: float | None = None) -> None:
        if not jti:
            return

        expires_at = expires_at or time.time() + 86400
        ttl = int(expires_at - time.time())
        if ttl <= 0:
            return

        if cls._redis_client is not None:
            try:
                await cls._redis_client.setex(f"{cls._redis_prefix}{jti}", ttl, "1")
                return
            except (RedisError, OSError) as e:
                logger.warning("token_blacklist_redis_error", error=str(e), operation="add")

        async with cls._get_lock():
            cls._cleanup_unlocked()
            cls._entries[jti] = expires_at
        logger.debug("token_blacklisted", jti=jti[:16] + "...")

    @classmethod
    async def is_blacklisted(cls, jti: str | None) -> bool:
        if not jti:
            return False

        if cls._redis_client is not None:
            try:
                return bool(await cls._redis_client.exists(f"{cls._redis_prefix}{jti}"))
            except (RedisError, OSError) as e:
                logger.warning("token_blacklist_redis_error", error=str(e), operation="check")

        async with cls._get_lock():
            cls._cleanup_unlocked()
            return jti in cls._entries

    @classmethod
    def _cleanup_unlocked(cls) -> None:
        now = time.time()
        if now - cls._last_cleanup < cls._cleanup_interval:
            return
        cls._last_cleanup = now
        expired = [jti for jti, exp in cls._entries.items() if exp < now]
        for jti in expired:
            cls._entries.pop(jti, None)
        if expired:
            logger.debug("token_blacklist_cleanup", expired_count=len(expired))

    @classmethod
    def clear(cls) -> None:
        """Forget every in-memory entry (for testing)."""
        cls._entries.clear()
        cls._last_cleanup = 0

    @classmethod
    async def close(cls) -> None:
        if cls._redis_client is not None:
            await cls._redis_client.aclose()
            cls._redis_client = None


# =============================================================================
# Token creation
# =============================================================================


def _encode(payload: dict[str, Any]) -> str:
    settings = get_settings()
    encoded: str = pyjwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
    return encoded


def _base_claims(user_id: str, email: str | None, token_type: str, lifetime: timedelta) -> dict[str, Any]:
    settings = get_settings()
    now = datetime.now(UTC)
    return {
        "sub": user_id,
        "email": email,
        "exp": now + lifetime,
        "iat": now,
        "nbf": now - timedelta(seconds=CLOCK_SKEW_SECONDS),
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "jti": str(uuid4()),
        "type": token_type,
    }


def create_access_token(user_id: str, email: str | None = None) -> str:
    settings = get_settings()
    lifetime = timedelta(minutes=settings.jwt_access_token_expire_minutes)
    return _encode(_base_claims(user_id, email, "access", lifetime))


def create_refresh_token(user_id: str, email: str | None = None) -> str:
    settings = get_settings()
    lifetime = timedelta(days=settings.jwt_refresh_token_expire_days)
    return _encode(_base_claims(user_id, email, "refresh", lifetime))


def create_token_pair(user_id: str, email: str | None = None) -> Token:
    settings = get_settings()
    return Token(
        access_token=create_access_token(user_id, email),
        refresh_token=create_refresh_token(user_id, email),
        token_type="bearer",
        expires_in=settings.jwt_access_token_expire_minutes * 60,
    )


# =============================================================================
# Token validation
# =============================================================================


def decode_token(token: str, verify_exp: bool = True) -> TokenPayload:
    """
    Decode and validate a JWT token.

    Raises:
        TokenExpiredError: If token has expired
        TokenInvalidError: If token is invalid
    """
    settings = get_settings()

    if len(token.encode("utf-8")) > MAX_TOKEN_SIZE_BYTES:
        raise TokenInvalidError("Token exceeds maximum allowed size")
    if settings.jwt_algorithm not in ALLOWED_JWT_ALGORITHMS:
        raise TokenInvalidError(f"Disallowed algorithm: {settings.jwt_algorithm}")

    try:
        payload = pyjwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=ALLOWED_JWT_ALGORITHMS,
            options={"verify_exp": verify_exp, "require": ["sub", "exp", "iat", "jti"]},
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            leeway=CLOCK_SKEW_SECONDS,
        )
        return TokenPayload(
            sub=payload["sub"],
            email=payload.get("email"),
            exp=payload.get("exp"),
            iat=payload.get("iat"),
            jti=payload.get("jti"),
            type=payload.get("type", "access"),
        )
    except ExpiredSignatureError:
        raise TokenExpiredError("Token has expired")
    except InvalidTokenError as e:
        raise TokenInvalidError(f"Invalid token: {e}")
    except ValidationError as e:
        raise TokenInvalidError(f"Token payload validation failed: {e}")


async def _verify_typed(token: str, expected_type: str) -> TokenPayload:
    payload = decode_token(token)
    if payload.type != expected_type:
        raise TokenInvalidError(f"Expected a {expected_type} token")
    if await TokenBlacklist.is_blacklisted(payload.jti):
        logger.warning("blacklisted_token_rejected", kind=expected_type)
        raise TokenInvalidError("Token has been revoked")
    return payload


async def verify_access_token(token: str) -> TokenPayload:
    """Validate an access token, including the revocation list."""
    return await _verify_typed(token, "access")


async def verify_refresh_token(token: str) -> TokenPayload:
    """Validate a refresh token, including the revocation list."""
    return await _verify_typed(token, "refresh")


def get_token_claims(token: str) -> dict[str, Any]:
    """
    Signature-checked claims of a possibly expired token.

    Used at logout, where the ``jti`` and ``exp`` of an expired token are
    still needed to revoke it.
    """
    settings = get_settings()
    try:
        payload: dict[str, Any] = pyjwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=ALLOWED_JWT_ALGORITHMS,
            options={"verify_exp": False, "verify_aud": False, "verify_iss": False},
        )
    except InvalidTokenError as e:
        raise TokenInvalidError(f"Cannot decode token: {e}")
    return payload
