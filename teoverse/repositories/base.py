"""
Base Repository

What every node repository shares: the client, a logger named after the
repository, id and timestamp generation, record validation, and the two
label-wide queries (``exists`` and ``count``).
"""

import re
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any, Generic, TypeVar
from uuid import uuid4

import structlog
from pydantic import BaseModel, ValidationError

from teoverse.database.client import Neo4jClient

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,63}$")


def validate_identifier(name: str, param_name: str = "identifier") -> str:
    """
    Check a name before it is interpolated into Cypher.

    Labels and property keys cannot be query parameters.

    Raises:
        ValueError: Empty, too long, or not ``[A-Za-z_][A-Za-z0-9_]*``
    """
    if not name:
        raise ValueError(f"{param_name} cannot be empty")
    if len(name) > 64:
        raise ValueError(f"{param_name} too long (max 64 characters)")
    if not IDENTIFIER_PATTERN.match(name):
        raise ValueError(f"Invalid {param_name}: use letters, digits and underscores, not starting with a digit")
    return name


T = TypeVar("T", bound=BaseModel)


class BaseRepository(ABC, Generic[T]):

    def __init__(self, client: Neo4jClient):
        self.client = client
        self.logger = structlog.get_logger(self.__class__.__name__)

    @property
    @abstractmethod
    def node_label(self) -> str:
        """Neo4j label of the nodes this repository owns."""

    @property
    @abstractmethod
    def model_class(self) -> type[T]:
        """Model each record is validated into."""

    def _generate_id(self) -> str:
        return str(uuid4())

    def _now(self) -> datetime:
        return datetime.now(UTC)

    def _to_model(self, record: dict[str, Any] | None) -> T | None:
        """Validate a record; a malformed one is logged and dropped rather than failing the read."""
        if not record:
            return None
        try:
            return self.model_class.model_validate(record)
        except ValidationError as e:
            self.logger.error(
                "record_conversion_failed",
                entity_type=self.node_label,
                error=str(e),
                record_keys=sorted(record),
            )
            return None

    def _to_models(self, records: list[dict[str, Any]]) -> list[T]:
        return [m for m in map(self._to_model, records) if m is not None]

    async def exists(self, entity_id: str) -> bool:
        result = await self.client.execute_single(
            f"MATCH (n:{self.node_label} {{id: $id}}) RETURN count(n) > 0 AS exists",
            {"id": entity_id},
        )
        return bool(result and result.get("exists"))

    async def count(self) -> int:
        result = await self.client.execute_single(f"MATCH (n:{self.node_label}) RETURN count(n) AS count")
        return int(result.get("count", 0)) if result else 0
