"""
Neo4j Async Client

The single gateway between the repositories and Neo4j. Reads and writes go
through ``execute*``, which retry on transient cluster errors; multi-statement
work (deleting a passport with its holdings) uses ``transaction()``.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from neo4j import AsyncDriver, AsyncGraphDatabase, AsyncResult, AsyncSession, AsyncTransaction
from neo4j.exceptions import ServiceUnavailable, SessionExpired, TransientError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from teoverse.config import get_settings

logger = structlog.get_logger(__name__)

RETRYABLE_EXCEPTIONS = (ServiceUnavailable, SessionExpired, TransientError)

_retry_transient = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type(RETRYABLE_EXCEPTIONS),
    reraise=True,
)

COMPONENTS_QUERY = "CALL dbms.components() YIELD name, versions, edition RETURN name, versions, edition LIMIT 1"


class Neo4jClient:
    """Owns the driver (and its connection pool) shared by every repository."""

    def __init__(
        self,
        uri: str | None = None,
        user: str | None = None,
        password: str | None = None,
        database: str | None = None,
    ):
        settings = get_settings()
        self._uri = uri or settings.neo4j_uri
        self._auth = (user or settings.neo4j_user, password or settings.neo4j_password)
        self._database = database or settings.neo4j_database
        self._driver: AsyncDriver | None = None

    @property
    def is_connected(self) -> bool:
        return self._driver is not None

    async def connect(self) -> None:
        """Create the driver and fail fast if the server cannot be reached."""
        if self._driver is not None:
            return

        settings = get_settings()
        logger.info("neo4j_connecting", uri=self._uri, database=self._database)
        driver = AsyncGraphDatabase.driver(
            self._uri,
            auth=self._auth,
            max_connection_lifetime=settings.neo4j_max_connection_lifetime,
            max_connection_pool_size=settings.neo4j_max_connection_pool_size,
            connection_timeout=settings.neo4j_connection_timeout,
        )
        try:
            await driver.verify_connectivity()
        except (ServiceUnavailable, SessionExpired, OSError) as e:
            logger.error("neo4j_connection_failed", error=str(e))
            await driver.close()
            raise

        self._driver = driver
        logger.info("neo4j_connected")

    async def close(self) -> None:
        if self._driver is None:
            return
        await self._driver.close()
        self._driver = None
        logger.info("neo4j_closed")

    def _get_driver(self) -> AsyncDriver:
        if self._driver is None:
            raise RuntimeError("Neo4j client not connected. Call connect() first.")
        return self._driver

    @asynccontextmanager
    async def _session(self) -> AsyncGenerator[AsyncSession, None]:
        async with self._get_driver().session(database=self._database) as session:
            yield session

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[AsyncTransaction, None]:
        """Explicit transaction: committed on normal exit, rolled back when the block raises."""
        async with self._session() as session:
            tx = await session.begin_transaction()
            try:
                yield tx
                await tx.commit()
            except BaseException:
                if not tx.closed():
                    await tx.rollback()
                raise

    # =========================================================================
    # Queries
    # =========================================================================

    @asynccontextmanager
    async def _run(self, query: str, parameters: dict[str, Any] | None) -> AsyncGenerator[AsyncResult, None]:
        async with self._session() as session:
            yield await session.run(query, parameters or {})

    @_retry_transient
    async def execute(self, query: str, parameters: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        """All records as dicts."""
        async with self._run(query, parameters) as result:
            return [dict(record) async for record in result]

    @_retry_transient
    async def execute_single(self, query: str, parameters: dict[str, Any] | None = None) -> dict[str, Any] | None:
        """The only record as a dict, or None when the query matched nothing."""
        async with self._run(query, parameters) as result:
            record = await result.single()
            return dict(record) if record else None

    @_retry_transient
    async def execute_write(self, query: str, parameters: dict[str, Any] | None = None) -> dict[str, int]:
        """Run a write and report what it changed."""
        async with self._run(query, parameters) as result:
            counters = (await result.consume()).counters
            return {
                "nodes_created": counters.nodes_created,
                "nodes_deleted": counters.nodes_deleted,
                "properties_set": counters.properties_set,
            }

    # =========================================================================
    # Health
    # =========================================================================

    async def health_check(self) -> dict[str, Any]:
        try:
            components = await self.execute_single(COMPONENTS_QUERY)
        except (RuntimeError, ServiceUnavailable, SessionExpired, TransientError, OSError) as e:
            logger.error("neo4j_health_check_failed", error=str(e))
            return {"status": "unhealthy", "database": self._database, "error": str(e)}
        return {"status": "healthy", "database": self._database, "details": components or {}}

    async def verify_connection(self) -> bool:
        return (await self.health_check())["status"] == "healthy"
