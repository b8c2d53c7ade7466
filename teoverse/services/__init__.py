"""
TeoVerse Services Module

Contains the domain services and external integrations:
- PassportService, ActivityLogService: passports, assets, TEO, history
- FederationLinkService: linking to peer federations
- DexService: the mock exchange
- GenyService, FlagService, DashboardService: generated images and overview
- AmbassadorService, DocumentationService: text-model features
- LLMService, ImageGenerationService, ObjectStore: provider integrations
"""

from .activity_log import ActivityLogService
from .ambassador import AmbassadorResponseError, AmbassadorService, FederationNotFoundError
from .dashboard import DashboardService
from .dex import MOCK_BTC_BALANCE, MOCK_RATE, DexService, InsufficientBalanceError, ListingNotImplementedError
from .documentation import (
    DOCUMENTATION_TOPICS,
    DocumentationGenerationError,
    DocumentationService,
    UnknownTopicError,
)
from .federation_links import FederationLinkError, FederationLinkService, FederationNotLinkedError
from .flag import FlagService, passport_digest
from .geny import GenyService, payload_hash
from .image_generation import ImageGenerationError, ImageGenerationService, get_image_service
from .llm import LLMConfig, LLMConfigurationError, LLMMessage, LLMResponse, LLMService, get_llm_service
from .passport import (
    AssetNotFoundError,
    BalanceConflictError,
    PassportExistsError,
    PassportNotFoundError,
    PassportService,
)
from .storage import ObjectStore, StorageError, get_object_store

__all__ = [
    "ActivityLogService",
    "AmbassadorService",
    "AmbassadorResponseError",
    "FederationNotFoundError",
    "DashboardService",
    "DexService",
    "InsufficientBalanceError",
    "ListingNotImplementedError",
    "MOCK_RATE",
    "MOCK_BTC_BALANCE",
    "DocumentationService",
    "DocumentationGenerationError",
    "UnknownTopicError",
    "DOCUMENTATION_TOPICS",
    "FederationLinkService",
    "FederationLinkError",
    "FederationNotLinkedError",
    "FlagService",
    "passport_digest",
    "GenyService",
    "payload_hash",
    "ImageGenerationService",
    "ImageGenerationError",
    "get_image_service",
    "LLMService",
    "LLMConfig",
    "LLMConfigurationError",
    "LLMMessage",
    "LLMResponse",
    "get_llm_service",
    "PassportService",
    "PassportNotFoundError",
    "PassportExistsError",
    "AssetNotFoundError",
    "BalanceConflictError",
    "ObjectStore",
    "StorageError",
    "get_object_store",
]
