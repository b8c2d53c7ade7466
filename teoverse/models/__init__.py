"""
TeoVerse Data Models

Pydantic models for every entity and request/response body.
"""

from teoverse.models.activity import ActivityLog, ActivityType
from teoverse.models.ambassador import AmbassadorRequest, AmbassadorResponse, ChatPart, ChatTurn
from teoverse.models.base import HealthCheck, HealthStatus, TeoModel, TimestampMixin
from teoverse.models.dashboard import Dashboard, DashboardStats, FederationFlag
from teoverse.models.dex import QuoteSide, SwapDirection, SwapQuote, SwapReceipt, SwapRequest, WalletConnection
from teoverse.models.federation import (
    LinkedFederation,
    LinkFederationRequest,
    PeerFederationConfig,
    PublicFederationData,
)
from teoverse.models.media import DocumentationOutput, GenyInput, GenyOutput, ImageSize
from teoverse.models.passport import (
    AssetKind,
    IpToken,
    IpTokenCreate,
    MintTeoRequest,
    Passport,
    PassportCreate,
    PassportUpdate,
    PhysicalAsset,
    PhysicalAssetCreate,
)
from teoverse.models.user import AuthProvider, Token, TokenPayload, User, UserCreate, UserInDB

__all__ = [
    "TeoModel",
    "TimestampMixin",
    "HealthCheck",
    "HealthStatus",
    # Users
    "AuthProvider",
    "User",
    "UserCreate",
    "UserInDB",
    "Token",
    "TokenPayload",
    # Passports
    "AssetKind",
    "Passport",
    "PassportCreate",
    "PassportUpdate",
    "PhysicalAsset",
    "PhysicalAssetCreate",
    "IpToken",
    "IpTokenCreate",
    "MintTeoRequest",
    # Activity
    "ActivityLog",
    "ActivityType",
    # Federations
    "LinkedFederation",
    "LinkFederationRequest",
    "PeerFederationConfig",
    "PublicFederationData",
    # Media
    "ImageSize",
    "GenyInput",
    "GenyOutput",
    "DocumentationOutput",
    # DEX
    "SwapDirection",
    "QuoteSide",
    "SwapQuote",
    "SwapRequest",
    "SwapReceipt",
    "WalletConnection",
    # Ambassador
    "ChatPart",
    "ChatTurn",
    "AmbassadorRequest",
    "AmbassadorResponse",
    # Dashboard
    "Dashboard",
    "DashboardStats",
    "FederationFlag",
]
