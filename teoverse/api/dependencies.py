"""
TeoVerse - FastAPI Dependencies
Dependency injection for API routes.

Provides:
- Database client injection
- Current user extraction from JWT
- Repository instances
- Domain services wired to the process-wide providers
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from teoverse.config import FederationIdentity, Settings, get_federation_identity, get_settings
from teoverse.database.client import Neo4jClient
from teoverse.federation.protocol import FederationProtocol, get_federation_protocol
from teoverse.models.user import TokenPayload, User
from teoverse.repositories.activity_repository import ActivityLogRepository
from teoverse.repositories.federation_repository import LinkedFederationRepository
from teoverse.repositories.media_repository import (
    DocumentationRepository,
    FederationSettingRepository,
    GeneratedImageRepository,
)
from teoverse.repositories.passport_repository import PassportRepository
from teoverse.repositories.user_repository import UserRepository
from teoverse.security.auth_service import AuthService
from teoverse.security.tokens import TokenError, verify_access_token
from teoverse.services.activity_log import ActivityLogService
from teoverse.services.ambassador import AmbassadorService
from teoverse.services.dashboard import DashboardService
from teoverse.services.dex import DexService
from teoverse.services.documentation import DocumentationService
from teoverse.services.federation_links import FederationLinkService
from teoverse.services.flag import FlagService
from teoverse.services.geny import GenyService
from teoverse.services.image_generation import ImageGenerationService, get_image_service
from teoverse.services.llm import LLMConfigurationError, LLMService, get_llm_service
from teoverse.services.passport import PassportService
from teoverse.services.storage import ObjectStore, StorageError, get_object_store

if TYPE_CHECKING:
    from teoverse.api.app import TeoVerseApp

security = HTTPBearer(auto_error=False)

ACCESS_TOKEN_COOKIE = "access_token"
REFRESH_TOKEN_COOKIE = "refresh_token"


# =============================================================================
# Settings
# =============================================================================

def get_app_settings() -> Settings:
    """Get application settings."""
    return get_settings()


def get_identity() -> FederationIdentity:
    """Get this federation's public identity."""
    return get_federation_identity()


SettingsDep = Annotated[Settings, Depends(get_app_settings)]
IdentityDep = Annotated[FederationIdentity, Depends(get_identity)]


# =============================================================================
# App Access
# =============================================================================

def get_teoverse_app(request: Request) -> TeoVerseApp:
    """Get the TeoVerseApp container from app state."""
    if not hasattr(request.app.state, "teoverse"):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Application not initialized",
        )
    return request.app.state.teoverse


# =============================================================================
# Database
# =============================================================================

async def get_db_client(request: Request) -> Neo4jClient:
    """Get database client."""
    container = get_teoverse_app(request)
    if not container.db_client:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not connected",
        )
    return container.db_client


DbClientDep = Annotated[Neo4jClient, Depends(get_db_client)]


# =============================================================================
# Repositories
# =============================================================================

async def get_user_repository(db: DbClientDep) -> UserRepository:
    return UserRepository(db)


async def get_passport_repository(db: DbClientDep) -> PassportRepository:
    return PassportRepository(db)


async def get_activity_repository(db: DbClientDep) -> ActivityLogRepository:
    return ActivityLogRepository(db)


async def get_federation_repository(db: DbClientDep) -> LinkedFederationRepository:
    return LinkedFederationRepository(db)


async def get_image_repository(db: DbClientDep) -> GeneratedImageRepository:
    return GeneratedImageRepository(db)


async def get_documentation_repository(db: DbClientDep) -> DocumentationRepository:
    return DocumentationRepository(db)


async def get_setting_repository(db: DbClientDep) -> FederationSettingRepository:
    return FederationSettingRepository(db)


UserRepoDep = Annotated[UserRepository, Depends(get_user_repository)]
PassportRepoDep = Annotated[PassportRepository, Depends(get_passport_repository)]
ActivityRepoDep = Annotated[ActivityLogRepository, Depends(get_activity_repository)]
FederationRepoDep = Annotated[LinkedFederationRepository, Depends(get_federation_repository)]
ImageRepoDep = Annotated[GeneratedImageRepository, Depends(get_image_repository)]
DocumentationRepoDep = Annotated[DocumentationRepository, Depends(get_documentation_repository)]
SettingRepoDep = Annotated[FederationSettingRepository, Depends(get_setting_repository)]


# =============================================================================
# Providers
# =============================================================================

def _service_unavailable(name: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=f"{name} not initialized",
    )


def get_llm() -> LLMService:
    try:
        return get_llm_service()
    except (RuntimeError, LLMConfigurationError) as e:
        raise _service_unavailable("Text model service") from e


def get_images() -> ImageGenerationService:
    try:
        return get_image_service()
    except (RuntimeError, LLMConfigurationError) as e:
        raise _service_unavailable("Image service") from e


def get_store() -> ObjectStore:
    try:
        return get_object_store()
    except (RuntimeError, StorageError) as e:
        raise _service_unavailable("Object store") from e


def get_protocol() -> FederationProtocol:
    try:
        return get_federation_protocol()
    except RuntimeError as e:
        raise _service_unavailable("Federation protocol") from e


LLMDep = Annotated[LLMService, Depends(get_llm)]
ImageServiceDep = Annotated[ImageGenerationService, Depends(get_images)]
ObjectStoreDep = Annotated[ObjectStore, Depends(get_store)]
ProtocolDep = Annotated[FederationProtocol, Depends(get_protocol)]


# =============================================================================
# Authentication
# =============================================================================

def get_request_token(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None,
) -> str | None:
    """The access token from the httpOnly cookie, else the Bearer header."""
    token = request.cookies.get(ACCESS_TOKEN_COOKIE)
    if not token and credentials:
        token = credentials.credentials
    return token or None


async def get_token_payload(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> TokenPayload | None:
    """Verified access token payload, or None when absent or invalid."""
    token = get_request_token(request, credentials)
    if not token:
        return None
    try:
        return await verify_access_token(token)
    except TokenError:
        return None


async def get_current_user_optional(
    token: Annotated[TokenPayload | None, Depends(get_token_payload)],
    user_repo: UserRepoDep,
) -> User | None:
    """Get current user if authenticated, None otherwise."""
    if not token:
        return None
    return await user_repo.get_by_id(token.sub)


async def get_current_user(
    user: Annotated[User | None, Depends(get_current_user_optional)],
) -> User:
    """Require an authenticated, active user."""
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is disabled",
        )
    return user


OptionalUserDep = Annotated[User | None, Depends(get_current_user_optional)]
CurrentUserDep = Annotated[User, Depends(get_current_user)]


# =============================================================================
# Services
# =============================================================================

async def get_auth_service(user_repo: UserRepoDep) -> AuthService:
    return AuthService(user_repo)


async def get_activity_service(repo: ActivityRepoDep) -> ActivityLogService:
    return ActivityLogService(repo)


AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]
ActivityServiceDep = Annotated[ActivityLogService, Depends(get_activity_service)]


async def get_passport_service(
    repo: PassportRepoDep,
    activity: ActivityServiceDep,
    identity: IdentityDep,
) -> PassportService:
    return PassportService(repo, activity, identity)


PassportServiceDep = Annotated[PassportService, Depends(get_passport_service)]


async def get_dex_service(passports: PassportServiceDep, identity: IdentityDep) -> DexService:
    return DexService(passports, identity)


async def get_federation_link_service(
    repo: FederationRepoDep,
    protocol: ProtocolDep,
    identity: IdentityDep,
) -> FederationLinkService:
    return FederationLinkService(repo, protocol, identity)


async def get_geny_service(
    repo: ImageRepoDep,
    images: ImageServiceDep,
    store: ObjectStoreDep,
) -> GenyService:
    return GenyService(repo, images, store)


GenyServiceDep = Annotated[GenyService, Depends(get_geny_service)]


async def get_flag_service(
    geny: GenyServiceDep,
    images: ImageServiceDep,
    settings_repo: SettingRepoDep,
    identity: IdentityDep,
) -> FlagService:
    return FlagService(geny, images, settings_repo, identity)


FlagServiceDep = Annotated[FlagService, Depends(get_flag_service)]


async def get_dashboard_service(
    passports: PassportServiceDep,
    activity: ActivityServiceDep,
    flags: FlagServiceDep,
    identity: IdentityDep,
) -> DashboardService:
    return DashboardService(passports, activity, flags, identity)


async def get_ambassador_service(
    repo: PassportRepoDep,
    llm: LLMDep,
    identity: IdentityDep,
) -> AmbassadorService:
    return AmbassadorService(repo, llm, identity)


async def get_documentation_service(
    repo: DocumentationRepoDep,
    llm: LLMDep,
    geny: GenyServiceDep,
    identity: IdentityDep,
) -> DocumentationService:
    return DocumentationService(repo, llm, geny, identity)


DexServiceDep = Annotated[DexService, Depends(get_dex_service)]
FederationLinkServiceDep = Annotated[FederationLinkService, Depends(get_federation_link_service)]
DashboardServiceDep = Annotated[DashboardService, Depends(get_dashboard_service)]
AmbassadorServiceDep = Annotated[AmbassadorService, Depends(get_ambassador_service)]
DocumentationServiceDep = Annotated[DocumentationService, Depends(get_documentation_service)]


# =============================================================================
# Request Context
# =============================================================================

async def get_correlation_id(request: Request) -> str:
    return getattr(request.state, "correlation_id", "unknown")


CorrelationIdDep = Annotated[str, Depends(get_correlation_id)]


__all__ = [
    "SettingsDep",
    "IdentityDep",
    "DbClientDep",
    "UserRepoDep",
    "PassportRepoDep",
    "ActivityRepoDep",
    "FederationRepoDep",
    "ImageRepoDep",
    "DocumentationRepoDep",
    "SettingRepoDep",
    "LLMDep",
    "ImageServiceDep",
    "ObjectStoreDep",
    "ProtocolDep",
    "OptionalUserDep",
    "CurrentUserDep",
    "AuthServiceDep",
    "ActivityServiceDep",
    "PassportServiceDep",
    "DexServiceDep",
    "FederationLinkServiceDep",
    "GenyServiceDep",
    "FlagServiceDep",
    "DashboardServiceDep",
    "AmbassadorServiceDep",
    "DocumentationServiceDep",
    "CorrelationIdDep",
    "get_request_token",
    "ACCESS_TOKEN_COOKIE",
    "REFRESH_TOKEN_COOKIE",
]
