"""
User Repository Tests for TeoVerse
"""

import pytest

from teoverse.models.user import UserCreate
from teoverse.repositories.user_repository import UserRepository

USER_RECORD = {
    "id": "user-1",
    "email": "capital@example.com",
    "display_name": "Capital",
    "avatar_url": None,
    "is_active": True,
    "auth_provider": "local",
    "created_at": "2025-01-01T00:00:00+00:00",
    "updated_at": "2025-01-01T00:00:00+00:00",
}


@pytest.fixture
def repo(mock_db_client):
    return UserRepository(mock_db_client)


class TestUserRepository:
    """Tests for user lookups and creation."""

    @pytest.mark.asyncio
    async def test_create(self, repo, mock_db_client):
        mock_db_client.execute_single.return_value = {"user": {**USER_RECORD, "password_hash": "$2b$04$x"}}

        user = await repo.create(
            UserCreate(email="capital@example.com", password="Sovereign2077"), "$2b$04$x"
        )

        assert user.id == "user-1"
        params = mock_db_client.execute_single.call_args.args[1]["props"]
        assert params["password_hash"] == "$2b$04$x"
        assert "password" not in params

    @pytest.mark.asyncio
    async def test_create_without_record(self, repo):
        with pytest.raises(RuntimeError):
            await repo.create(UserCreate(email="capital@example.com", password="Sovereign2077"), "h")

    @pytest.mark.asyncio
    async def test_get_by_id_excludes_credentials(self, repo, mock_db_client):
        mock_db_client.execute_single.return_value = {"user": USER_RECORD}

        user = await repo.get_by_id("user-1")

        assert user.email == "capital@example.com"
        assert not hasattr(user, "password_hash")
        assert ".password_hash" not in mock_db_client.execute_single.call_args.args[0]

    @pytest.mark.asyncio
    async def test_get_by_email(self, repo, mock_db_client):
        mock_db_client.execute_single.return_value = {"user": {**USER_RECORD, "password_hash": "$2b$04$x"}}

        user = await repo.get_by_email("CAPITAL@example.com")

        assert user.password_hash == "$2b$04$x"

    @pytest.mark.asyncio
    async def test_email_exists(self, repo, mock_db_client):
        mock_db_client.execute_single.return_value = {"exists": True}
        assert await repo.email_exists("capital@example.com") is True

    @pytest.mark.asyncio
    async def test_email_missing(self, repo):
        assert await repo.email_exists("capital@example.com") is False

    @pytest.mark.asyncio
    async def test_link_google_account(self, repo, mock_db_client):
        mock_db_client.execute_single.return_value = {"id": "user-1"}
        assert await repo.link_google_account("user-1", "google-sub") is True

    @pytest.mark.asyncio
    async def test_create_google_user(self, repo, mock_db_client):
        mock_db_client.execute_single.return_value = {
            "user": {**USER_RECORD, "auth_provider": "google", "google_id": "g-1", "password_hash": "h"}
        }

        user = await repo.create_google_user("capital@example.com", "Capital", None, "g-1", "h")

        assert user.google_id == "g-1"
        assert user.auth_provider == "google"
        props = mock_db_client.execute_single.call_args.args[1]["props"]
        assert props["last_login"] == props["created_at"]
        assert "logged_in" not in props

    @pytest.mark.asyncio
    async def test_count(self, repo, mock_db_client):
        mock_db_client.execute_single.return_value = {"count": 7}
        assert await repo.count() == 7
