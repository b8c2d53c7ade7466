"""
Database Tests for TeoVerse

Tests for the schema manager and the client health check.
"""

from unittest.mock import AsyncMock, patch

import pytest
from neo4j.exceptions import ClientError, ConstraintError, ServiceUnavailable

from teoverse.database.client import Neo4jClient
from teoverse.database.schema import CONSTRAINTS, INDEXES, SchemaManager


class TestSchemaManager:
    """Tests for SchemaManager."""

    @pytest.mark.asyncio
    async def test_setup_all(self, mock_db_client):
        results = await SchemaManager(mock_db_client).setup_all()

        assert len(results) == len(CONSTRAINTS) + len(INDEXES)
        assert all(results.values())
        queries = [call.args[0] for call in mock_db_client.execute.await_args_list]
        assert all("IF NOT EXISTS" in q for q in queries)

    def test_federation_link_unique_per_user_and_url(self):
        constraints = dict(CONSTRAINTS)

        assert "REQUIRE (f.user_id, f.url) IS UNIQUE" in constraints["linkedfederation_user_url_unique"]
        # An index on the same properties would clash with the constraint's own index
        assert not any("(f.user_id, f.url)" in query for _, query in INDEXES)

    @pytest.mark.asyncio
    async def test_failed_elements_reported(self, mock_db_client):
        mock_db_client.execute.side_effect = [ConstraintError("conflict"), ClientError("bad")] + [
            [] for _ in range(len(CONSTRAINTS) - 2)
        ]

        results = await SchemaManager(mock_db_client).create_constraints()

        assert results[CONSTRAINTS[0][0]] is False
        assert results[CONSTRAINTS[1][0]] is False
        assert results[CONSTRAINTS[2][0]] is True

    @pytest.mark.asyncio
    async def test_unavailable_database_propagates(self, mock_db_client):
        mock_db_client.execute.side_effect = ServiceUnavailable("down")
        with pytest.raises(ServiceUnavailable):
            await SchemaManager(mock_db_client).create_indexes()

    @pytest.mark.asyncio
    async def test_verify_schema(self, mock_db_client):
        mock_db_client.execute.side_effect = [
            [{"name": name} for name, _ in CONSTRAINTS],
            [{"name": name} for name, _ in INDEXES[1:]],
        ]

        report = await SchemaManager(mock_db_client).verify_schema()

        assert report == {
            "valid": False,
            "missing_constraints": [],
            "missing_indexes": [INDEXES[0][0]],
        }


class TestNeo4jClient:

    def test_not_connected(self):
        client = Neo4jClient(uri="bolt://localhost:7687", user="neo4j", password="pw")

        assert client.is_connected is False
        with pytest.raises(RuntimeError):
            client._get_driver()

    @pytest.mark.asyncio
    async def test_health_check_healthy(self):
        client = Neo4jClient(uri="bolt://localhost:7687", user="neo4j", password="pw")
        with patch.object(client, "execute_single", new=AsyncMock(return_value={"name": "Neo4j Kernel"})):
            assert await client.verify_connection() is True

    @pytest.mark.asyncio
    async def test_health_check_unhealthy(self):
        client = Neo4jClient(uri="bolt://localhost:7687", user="neo4j", password="pw")
        with patch.object(client, "execute_single", new=AsyncMock(side_effect=RuntimeError("not connected"))):
            health = await client.health_check()

        assert health["status"] == "unhealthy"
        assert "not connected" in health["error"]
