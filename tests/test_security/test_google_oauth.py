"""
Google Sign-In Tests for TeoVerse
"""

import time
from datetime import UTC, datetime
from unittest.mock import AsyncMock

import httpx
import pytest

from teoverse.models.user import UserInDB
from teoverse.security.google_oauth import GoogleOAuthError, GoogleOAuthService, GoogleUserInfo

CLIENT_ID = "client-123.apps.googleusercontent.com"


def _service_with_response(status_code: int = 200, payload: dict | None = None) -> GoogleOAuthService:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["id_token"] == "id-token"
        return httpx.Response(status_code, json=payload or {})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GoogleOAuthService(client_id=CLIENT_ID, http_client=client)


def _claims(**overrides):
    claims = {
        "aud": CLIENT_ID,
        "sub": "google-sub-1",
        "email": "capital@example.com",
        "email_verified": "true",
        "name": "Capital",
        "picture": "https://example.com/a.png",
        "exp": str(int(time.time()) + 600),
    }
    claims.update(overrides)
    return claims


def _user(**overrides) -> UserInDB:
    data = {
        "id": "user-1",
        "email": "capital@example.com",
        "password_hash": "$2b$04$hash",
        "created_at": datetime.now(UTC),
        "updated_at": datetime.now(UTC),
    }
    data.update(overrides)
    return UserInDB(**data)


class TestVerifyIdToken:
    """Tests for ID token verification."""

    @pytest.mark.asyncio
    async def test_valid_token(self):
        info = await _service_with_response(payload=_claims()).verify_id_token("id-token")

        assert info.sub == "google-sub-1"
        assert info.email == "capital@example.com"
        assert info.email_verified is True

    @pytest.mark.asyncio
    async def test_not_configured(self):
        service = GoogleOAuthService(client_id="")
        assert service.is_configured is False

        with pytest.raises(GoogleOAuthError, match="not configured"):
            await service.verify_id_token("id-token")

    @pytest.mark.asyncio
    async def test_rejected_by_google(self):
        with pytest.raises(GoogleOAuthError, match="Invalid or expired"):
            await _service_with_response(status_code=400).verify_id_token("id-token")

    @pytest.mark.asyncio
    async def test_audience_mismatch(self):
        service = _service_with_response(payload=_claims(aud="other-app"))
        with pytest.raises(GoogleOAuthError, match="not issued for this application"):
            await service.verify_id_token("id-token")

    @pytest.mark.asyncio
    async def test_expired(self):
        service = _service_with_response(payload=_claims(exp=str(int(time.time()) - 60)))
        with pytest.raises(GoogleOAuthError, match="expired"):
            await service.verify_id_token("id-token")

    @pytest.mark.asyncio
    async def test_missing_email(self):
        claims = _claims()
        del claims["email"]
        with pytest.raises(GoogleOAuthError, match="missing required claims"):
            await _service_with_response(payload=claims).verify_id_token("id-token")


class TestGetOrCreateUser:
    """Tests for mapping Google accounts onto users."""

    @pytest.fixture
    def google_user(self):
        return GoogleUserInfo(
            sub="google-sub-1",
            email="capital@example.com",
            email_verified=True,
            name="Capital",
        )

    @pytest.mark.asyncio
    async def test_known_google_id(self, google_user):
        repo = AsyncMock()
        repo.get_by_google_id = AsyncMock(return_value=_user())

        user, is_new = await GoogleOAuthService(client_id=CLIENT_ID).get_or_create_user(google_user, repo)

        assert user.id == "user-1"
        assert is_new is False
        repo.create_google_user.assert_not_called()

    @pytest.mark.asyncio
    async def test_links_verified_email(self, google_user):
        repo = AsyncMock()
        repo.get_by_google_id = AsyncMock(return_value=None)
        repo.get_by_email = AsyncMock(return_value=_user())

        _, is_new = await GoogleOAuthService(client_id=CLIENT_ID).get_or_create_user(google_user, repo)

        assert is_new is False
        repo.link_google_account.assert_awaited_once_with(user_id="user-1", google_id="google-sub-1")

    @pytest.mark.asyncio
    async def test_unverified_email_not_linked(self, google_user):
        google_user.email_verified = False
        repo = AsyncMock()
        repo.get_by_google_id = AsyncMock(return_value=None)
        repo.get_by_email = AsyncMock(return_value=_user())

        with pytest.raises(GoogleOAuthError, match="sign in with your password"):
            await GoogleOAuthService(client_id=CLIENT_ID).get_or_create_user(google_user, repo)
        repo.link_google_account.assert_not_called()

    @pytest.mark.asyncio
    async def test_creates_new_user(self, google_user):
        repo = AsyncMock()
        repo.get_by_google_id = AsyncMock(return_value=None)
        repo.get_by_email = AsyncMock(return_value=None)
        repo.create_google_user = AsyncMock(return_value=_user(id="user-new", auth_provider="google"))

        user, is_new = await GoogleOAuthService(client_id=CLIENT_ID).get_or_create_user(google_user, repo)

        assert is_new is True
        assert user.id == "user-new"
        kwargs = repo.create_google_user.call_args.kwargs
        assert kwargs["google_id"] == "google-sub-1"
        assert kwargs["password_hash"].startswith("$2b$")
