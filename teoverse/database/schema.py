"""
Neo4j Schema Manager

Uniqueness constraints and lookup indexes for the TeoVerse graph.

Node labels:
    User, Passport, Asset, ActivityLog, LinkedFederation,
    GeneratedImage, DocumentationArticle, FederationSetting

Schema DDL cannot share a transaction with data writes, so each statement
runs on its own with ``IF NOT EXISTS``; running ``setup_all`` again is safe.
"""

from typing import Any

import structlog
from neo4j.exceptions import (
    ClientError,
    ConstraintError,
    DatabaseError,
    ServiceUnavailable,
)

from teoverse.database.client import Neo4jClient

logger = structlog.get_logger(__name__)


CONSTRAINTS: list[tuple[str, str]] = [
    (
        "user_id_unique",
        "CREATE CONSTRAINT user_id_unique IF NOT EXISTS "
        "FOR (u:User) REQUIRE u.id IS UNIQUE",
    ),
    (
        "user_email_unique",
        "CREATE CONSTRAINT user_email_unique IF NOT EXISTS "
        "FOR (u:User) REQUIRE u.email IS UNIQUE",
    ),
    (
        "passport_id_unique",
        "CREATE CONSTRAINT passport_id_unique IF NOT EXISTS "
        "FOR (p:Passport) REQUIRE p.id IS UNIQUE",
    ),
    (
        "asset_id_unique",
        "CREATE CONSTRAINT asset_id_unique IF NOT EXISTS "
        "FOR (a:Asset) REQUIRE a.id IS UNIQUE",
    ),
    (
        "activitylog_id_unique",
        "CREATE CONSTRAINT activitylog_id_unique IF NOT EXISTS "
        "FOR (l:ActivityLog) REQUIRE l.id IS UNIQUE",
    ),
    (
        "linkedfederation_id_unique",
        "CREATE CONSTRAINT linkedfederation_id_unique IF NOT EXISTS "
        "FOR (f:LinkedFederation) REQUIRE f.id IS UNIQUE",
    ),
    (
        "linkedfederation_user_url_unique",
        "CREATE CONSTRAINT linkedfederation_user_url_unique IF NOT EXISTS "
        "FOR (f:LinkedFederation) REQUIRE (f.user_id, f.url) IS UNIQUE",
    ),
    (
        "generatedimage_hash_unique",
        "CREATE CONSTRAINT generatedimage_hash_unique IF NOT EXISTS "
        "FOR (g:GeneratedImage) REQUIRE g.hash IS UNIQUE",
    ),
    (
        "documentation_hash_unique",
        "CREATE CONSTRAINT documentation_hash_unique IF NOT EXISTS "
        "FOR (d:DocumentationArticle) REQUIRE d.hash IS UNIQUE",
    ),
    (
        "federationsetting_key_unique",
        "CREATE CONSTRAINT federationsetting_key_unique IF NOT EXISTS "
        "FOR (s:FederationSetting) REQUIRE s.key IS UNIQUE",
    ),
]

INDEXES: list[tuple[str, str]] = [
    (
        "user_google_id_idx",
        "CREATE INDEX user_google_id_idx IF NOT EXISTS FOR (u:User) ON (u.google_id)",
    ),
    (
        "activitylog_user_created_idx",
        "CREATE INDEX activitylog_user_created_idx IF NOT EXISTS "
        "FOR (l:ActivityLog) ON (l.user_id, l.created_at)",
    ),
    (
        "documentation_version_idx",
        "CREATE INDEX documentation_version_idx IF NOT EXISTS "
        "FOR (d:DocumentationArticle) ON (d.version)",
    ),
]


class SchemaManager:
    """Creates and verifies the constraints and indexes TeoVerse relies on."""

    def __init__(self, client: Neo4jClient):
        self.client = client

    async def setup_all(self) -> dict[str, bool]:
        """
        Set up all schema elements.

        Returns:
            Dict of schema element names to success status
        """
        results = await self.create_constraints()
        results.update(await self.create_indexes())

        logger.info(
            "schema_setup_complete",
            total=len(results),
            successful=sum(1 for v in results.values() if v),
            failed=sum(1 for v in results.values() if not v),
        )
        return results

    async def create_constraints(self) -> dict[str, bool]:
        return await self._apply("constraint", CONSTRAINTS)

    async def create_indexes(self) -> dict[str, bool]:
        return await self._apply("index", INDEXES)

    async def _apply(self, kind: str, statements: list[tuple[str, str]]) -> dict[str, bool]:
        results: dict[str, bool] = {}
        for name, query in statements:
            try:
                await self.client.execute(query)
                results[name] = True
                logger.debug("schema_element_created", kind=kind, name=name)
            except ConstraintError as e:
                results[name] = False
                logger.warning("schema_element_conflict", kind=kind, name=name, error=str(e))
            except ClientError as e:
                results[name] = False
                logger.error("schema_element_client_error", kind=kind, name=name, error=str(e))
            except DatabaseError as e:
                results[name] = False
                logger.error("schema_element_database_error", kind=kind, name=name, error=str(e))
            except ServiceUnavailable as e:
                logger.critical("schema_database_unavailable", kind=kind, name=name, error=str(e))
                raise
        return results

    async def verify_schema(self) -> dict[str, Any]:
        """
        Verify that all required schema elements exist.

        Returns:
            ``{"valid": bool, "missing_constraints": [...], "missing_indexes": [...]}``
        """
        constraint_rows = await self.client.execute("SHOW CONSTRAINTS YIELD name RETURN name")
        index_rows = await self.client.execute("SHOW INDEXES YIELD name RETURN name")
        existing_constraints = {row["name"] for row in constraint_rows}
        existing_indexes = {row["name"] for row in index_rows}

        missing_constraints = sorted({n for n, _ in CONSTRAINTS} - existing_constraints)
        missing_indexes = sorted({n for n, _ in INDEXES} - existing_indexes)

        return {
            "valid": not missing_constraints and not missing_indexes,
            "missing_constraints": missing_constraints,
            "missing_indexes": missing_indexes,
        }
