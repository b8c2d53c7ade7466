"""
TeoVerse System API Routes

Provides endpoints for:
- Component health
- Liveness and readiness probes
- Schema verification
"""

from typing import Any

from fastapi import APIRouter, HTTPException, status
from neo4j.exceptions import DriverError, Neo4jError

from teoverse.api.dependencies import CurrentUserDep, DbClientDep, IdentityDep
from teoverse.database.schema import SchemaManager
from teoverse.federation.protocol import get_federation_protocol
from teoverse.models.base import HealthCheck, HealthStatus
from teoverse.monitoring.logging import get_logger
from teoverse.services.image_generation import get_image_service
from teoverse.services.llm import LLMConfigurationError, get_llm_service
from teoverse.services.storage import StorageError, get_object_store

logger = get_logger(__name__)

router = APIRouter()

SERVICE_GETTERS = {
    "llm": get_llm_service,
    "image_generation": get_image_service,
    "object_store": get_object_store,
    "federation_protocol": get_federation_protocol,
}


def _service_status() -> dict[str, str]:
    statuses = {}
    for name, getter in SERVICE_GETTERS.items():
        try:
            getter()
        except (RuntimeError, LLMConfigurationError, StorageError):
            statuses[name] = "not_initialized"
        else:
            statuses[name] = "ready"
    return statuses


@router.get("/health", response_model=HealthCheck)
async def get_health(db_client: DbClientDep, identity: IdentityDep) -> HealthCheck:
    """Health of the database and every provider service."""
    db_healthy = await db_client.verify_connection()
    services = _service_status()

    if not db_healthy:
        overall = HealthStatus.UNHEALTHY
    elif any(s != "ready" for s in services.values()):
        overall = HealthStatus.DEGRADED
    else:
        overall = HealthStatus.HEALTHY

    return HealthCheck(
        status=overall,
        service=identity.federation_name,
        version=identity.version,
        details={
            "database": "healthy" if db_healthy else "unhealthy",
            "services": services,
        },
    )


@router.get("/health/live")
async def liveness_probe() -> dict[str, str]:
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_probe(db_client: DbClientDep) -> dict[str, Any]:
    if not await db_client.verify_connection():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"status": "not_ready", "database": "not_ready"},
        )
    return {"status": "ready", "database": "ready"}


@router.get("/schema")
async def verify_schema(user: CurrentUserDep, db_client: DbClientDep) -> dict[str, Any]:
    """Report constraints and indexes missing from the database."""
    try:
        return await SchemaManager(db_client).verify_schema()
    except (Neo4jError, DriverError) as e:
        logger.error("schema_verification_failed", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Schema verification failed",
        )
