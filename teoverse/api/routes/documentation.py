"""
TeoVerse - Documentation Routes

Generated feature articles. Reading cached articles is public; generating
one calls both generative models and requires a signed-in user.
"""

from __future__ import annotations

import httpx
import structlog
from fastapi import APIRouter, HTTPException, Query, status
from neo4j.exceptions import DriverError, Neo4jError

from teoverse.api.dependencies import CurrentUserDep, DocumentationServiceDep
from teoverse.models.media import DocumentationOutput, DocumentationRequest
from teoverse.services.documentation import (
    DocumentationGenerationError,
    DocumentationService,
    UnknownTopicError,
)
from teoverse.services.image_generation import ImageGenerationError
from teoverse.services.storage import StorageError

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/topics", response_model=list[str])
async def list_topics() -> list[str]:
    return DocumentationService.list_topics()


@router.get("", response_model=dict[str, DocumentationOutput])
async def get_available_documentation(
    docs: DocumentationServiceDep,
    version: str | None = Query(default=None, max_length=50),
) -> dict[str, DocumentationOutput]:
    """Cached articles for ``version`` (default: the running version), keyed by topic."""
    try:
        return await docs.get_available_documentation(version)
    except (Neo4jError, DriverError) as e:
        logger.error("documentation_listing_failed", error=str(e))
        return {}


@router.post("", response_model=DocumentationOutput)
async def generate_documentation(
    request: DocumentationRequest,
    user: CurrentUserDep,
    docs: DocumentationServiceDep,
) -> DocumentationOutput:
    try:
        return await docs.get_or_generate(request.topic, regenerate=request.regenerate)
    except UnknownTopicError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except (DocumentationGenerationError, ImageGenerationError, StorageError) as e:
        logger.warning("documentation_generation_failed", topic=request.topic, error=str(e))
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    except httpx.HTTPError as e:
        logger.warning("documentation_model_unavailable", topic=request.topic, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="The AI model is currently unavailable.",
        )
