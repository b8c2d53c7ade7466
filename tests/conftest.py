"""
TeoVerse - Test Fixtures

Shared pytest fixtures for all test modules.
"""

from __future__ import annotations

import os
import tempfile
from collections.abc import Generator
from datetime import UTC, datetime
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.testclient import TestClient

# =============================================================================
# TEST ENVIRONMENT SETUP
# =============================================================================
# TEST-ONLY credentials. APP_ENV="testing" keeps them out of production.

if os.environ.get("APP_ENV", "") == "production":
    raise RuntimeError(
        "SECURITY ERROR: Test fixtures cannot be loaded in production environment. "
        "Do not import conftest.py in production code."
    )

REPO_ROOT = Path(__file__).resolve().parent.parent

os.environ["APP_ENV"] = "testing"
os.environ.setdefault("NEO4J_URI", "bolt://localhost:7687")
os.environ.setdefault("NEO4J_USER", "neo4j")
os.environ.setdefault("NEO4J_PASSWORD", "testpassword")  # TEST ONLY
os.environ.setdefault(
    "JWT_SECRET_KEY", "test-secret-key-at-least-32-characters-long-for-testing"
)  # TEST ONLY
os.environ.setdefault("PASSWORD_BCRYPT_ROUNDS", "4")
os.environ.setdefault("LLM_PROVIDER", "mock")
os.environ.setdefault("IMAGE_PROVIDER", "mock")
os.environ.setdefault("STORAGE_BACKEND", "local")
os.environ.setdefault("STORAGE_LOCAL_ROOT", tempfile.mkdtemp(prefix="teoverse-media-"))
os.environ.setdefault("FEDERATION_CONFIG_PATH", str(REPO_ROOT / "app.config.json"))
os.environ.setdefault("FEDERATION_ALLOW_PRIVATE_PEERS", "true")


# =============================================================================
# Mock Database Client
# =============================================================================


@pytest.fixture
def mock_db_client():
    """Create a mock Neo4j client."""
    client = AsyncMock()
    client.execute = AsyncMock(return_value=[])
    client.execute_single = AsyncMock(return_value=None)
    client.execute_write = AsyncMock(return_value={})
    client.verify_connection = AsyncMock(return_value=True)
    client.connect = AsyncMock()
    client.close = AsyncMock()
    client._driver = MagicMock()
    return client


# =============================================================================
# Mock Services
# =============================================================================


@pytest.fixture
def mock_llm_service():
    """A real LLMService backed by the mock provider."""
    from teoverse.services.llm import LLMConfig, LLMProvider, LLMService

    return LLMService(LLMConfig(provider=LLMProvider.MOCK, max_retries=1))


@pytest.fixture
def mock_image_service():
    """A real ImageGenerationService backed by the mock provider."""
    from teoverse.services.image_generation import (
        ImageGenerationConfig,
        ImageGenerationService,
        ImageProvider,
    )

    return ImageGenerationService(ImageGenerationConfig(provider=ImageProvider.MOCK))


@pytest.fixture
def identity():
    """The federation identity from the repository's app.config.json."""
    from teoverse.config import get_federation_identity

    return get_federation_identity()


# =============================================================================
# Test Data Generators
# =============================================================================


@pytest.fixture
def user_factory():
    """Factory for creating test users."""
    from teoverse.models.user import User

    def _create_user(
        user_id: str | None = None,
        email: str | None = None,
        is_active: bool = True,
    ) -> User:
        return User(
            id=user_id or str(uuid4()),
            email=email or f"test_{uuid4().hex[:8]}@example.com",
            display_name="Test User",
            is_active=is_active,
        )

    return _create_user


@pytest.fixture
def passport_factory():
    """Factory for creating test passports."""
    from teoverse.models.passport import IpToken, Passport, PhysicalAsset

    def _create_passport(
        user_id: str | None = None,
        teo_balance: float = 0,
        physical_assets: list[PhysicalAsset] | None = None,
        ip_tokens: list[IpToken] | None = None,
    ) -> Passport:
        return Passport(
            id=user_id or str(uuid4()),
            federation_url="https://teoverse.example.com",
            email="owner@example.com",
            created_at=datetime.now(UTC),
            teo_balance=teo_balance,
            physical_assets=physical_assets or [],
            ip_tokens=ip_tokens or [],
        )

    return _create_passport


# =============================================================================
# JWT Token Fixtures
# =============================================================================


@pytest.fixture
def test_user_id() -> str:
    return "user-123"


@pytest.fixture
def auth_headers(test_user_id):
    """Authentication headers carrying a valid access token."""
    from teoverse.security.tokens import create_access_token

    token = create_access_token(user_id=test_user_id, email="owner@example.com")
    return {"Authorization": f"Bearer {token}"}


# =============================================================================
# FastAPI Test Client
# =============================================================================


@pytest.fixture
def app(mock_db_client) -> FastAPI:
    """Create a test FastAPI application.

    Creates the app WITHOUT the production lifespan (which requires Neo4j).
    Auth dependencies are overridden so a valid JWT is enough: the user is
    synthesized from its claims instead of being loaded from the database.
    """
    from contextlib import asynccontextmanager

    from teoverse.api.app import create_app, teoverse_app
    from teoverse.api.dependencies import (
        get_current_user,
        get_current_user_optional,
        get_db_client,
    )
    from teoverse.models.user import User
    from teoverse.security.tokens import TokenError, decode_token

    @asynccontextmanager
    async def _test_lifespan(application: FastAPI):
        teoverse_app.is_ready = True
        yield
        teoverse_app.is_ready = False

    application = create_app(
        title="TeoVerse Test",
        version="test",
        docs_url=None,
        redoc_url=None,
    )
    application.router.lifespan_context = _test_lifespan

    async def _test_get_db_client() -> object:
        return mock_db_client

    application.dependency_overrides[get_db_client] = _test_get_db_client

    def _user_from_request(request: Request) -> User | None:
        token_str = request.cookies.get("access_token")
        if not token_str:
            auth_header = request.headers.get("Authorization", "")
            if auth_header.startswith("Bearer "):
                token_str = auth_header[7:]
        if not token_str:
            return None

        try:
            payload = decode_token(token_str)
        except TokenError:
            return None
        if payload.type != "access":
            return None

        return User(
            id=payload.sub,
            email=payload.email or "tester@example.com",
            display_name="Test User",
            is_active=True,
        )

    async def _test_get_current_user_optional(request: Request) -> User | None:
        return _user_from_request(request)

    async def _test_get_current_user(request: Request) -> User:
        user = _user_from_request(request)
        if not user:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Not authenticated",
                headers={"WWW-Authenticate": "Bearer"},
            )
        return user

    application.dependency_overrides[get_current_user_optional] = _test_get_current_user_optional
    application.dependency_overrides[get_current_user] = _test_get_current_user

    return application


@pytest.fixture
def client(app: FastAPI) -> Generator[TestClient, None, None]:
    """Create a synchronous test client."""
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c


# =============================================================================
# Repository Fixtures
# =============================================================================


@pytest.fixture
def passport_repository(mock_db_client):
    from teoverse.repositories.passport_repository import PassportRepository

    return PassportRepository(mock_db_client)


@pytest.fixture
def user_repository(mock_db_client):
    from teoverse.repositories.user_repository import UserRepository

    return UserRepository(mock_db_client)


# =============================================================================
# Cleanup
# =============================================================================


@pytest.fixture(autouse=True)
def reset_singletons():
    """Reset singleton instances between tests."""
    yield

    from teoverse.federation import protocol
    from teoverse.security import google_oauth
    from teoverse.services import image_generation, llm, storage

    llm._llm_service = None
    image_generation._image_service = None
    storage._object_store = None
    protocol._federation_protocol = None
    google_oauth._google_oauth_service = None

    # The lock binds to the loop of the test that created it
    from teoverse.security.tokens import TokenBlacklist

    TokenBlacklist.clear()
    TokenBlacklist._lock = None
    TokenBlacklist._redis_client = None
