"""
TeoVerse Repositories

Data access for every node type in the TeoVerse graph.
"""

from teoverse.repositories.activity_repository import ActivityLogRepository
from teoverse.repositories.base import BaseRepository
from teoverse.repositories.federation_repository import LinkedFederationRepository
from teoverse.repositories.media_repository import (
    FEDERATION_FLAG_KEY,
    DocumentationRepository,
    FederationSettingRepository,
    GeneratedImageRepository,
)
from teoverse.repositories.passport_repository import PassportRepository
from teoverse.repositories.user_repository import UserRepository

__all__ = [
    "BaseRepository",
    "UserRepository",
    "PassportRepository",
    "ActivityLogRepository",
    "LinkedFederationRepository",
    "GeneratedImageRepository",
    "DocumentationRepository",
    "FederationSettingRepository",
    "FEDERATION_FLAG_KEY",
]
