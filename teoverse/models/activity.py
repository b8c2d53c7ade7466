"""
Activity Log Models
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import Field, field_validator

from teoverse.models.base import TeoModel, convert_neo4j_datetime, utc_now


class ActivityType(str, Enum):
    """Actions recorded in a user's activity feed."""

    MINT_PASSPORT = "MINT_PASSPORT"
    MINT_TEO = "MINT_TEO"
    ADD_PHYSICAL_ASSET = "ADD_PHYSICAL_ASSET"
    REMOVE_PHYSICAL_ASSET = "REMOVE_PHYSICAL_ASSET"
    MINT_IP_TOKEN = "MINT_IP_TOKEN"
    BURN_IP_TOKEN = "BURN_IP_TOKEN"
    DELETE_PASSPORT = "DELETE_PASSPORT"


class ActivityLog(TeoModel):
    id: str
    user_id: str
    type: ActivityType
    description: str
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("created_at", mode="before")
    @classmethod
    def convert_created_at(cls, v: Any) -> datetime:
        return convert_neo4j_datetime(v)
