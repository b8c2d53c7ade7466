"""
Base Models and Common Types

Foundation classes for all TeoVerse models: shared configuration,
timestamp handling for values coming back from Neo4j, and the small
response envelopes used across the API.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    return datetime.now(UTC)


def convert_neo4j_datetime(value: Any) -> datetime:
    """
    Convert a stored timestamp to a timezone-aware ``datetime``.

    Accepts Neo4j ``DateTime`` objects, naive or aware ``datetime`` values and
    ISO 8601 strings (timestamps are written as ``isoformat()`` strings).
    A missing value becomes "now", matching a server timestamp that has not
    been resolved yet.
    """
    if value is None:
        return utc_now()
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value
    if hasattr(value, "to_native"):
        native: datetime = value.to_native()
        return native if native.tzinfo else native.replace(tzinfo=UTC)
    if isinstance(value, str):
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return value


class TeoModel(BaseModel):
    """Base model for all TeoVerse entities with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        str_strip_whitespace=True,
        validate_assignment=True,
        use_enum_values=True,
    )


class TimestampMixin(BaseModel):
    """Mixin providing created_at and updated_at fields."""

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def convert_datetime(cls, v: Any) -> datetime:
        return convert_neo4j_datetime(v)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class HealthCheck(TeoModel):
    """Health check response."""

    status: HealthStatus
    service: str
    version: str
    timestamp: datetime = Field(default_factory=utc_now)
    details: dict[str, Any] = Field(default_factory=dict)
