"""
TeoVerse - Public Routes

Unauthenticated pages for visitors: a federation's public listing and its
AI ambassador.
"""

from __future__ import annotations

import httpx
import structlog
from fastapi import APIRouter, HTTPException, status

from teoverse.api.dependencies import AmbassadorServiceDep
from teoverse.models.ambassador import AmbassadorRequest, AmbassadorResponse
from teoverse.models.federation import PublicFederationData
from teoverse.services.ambassador import AmbassadorResponseError, FederationNotFoundError

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/federations/{user_id}", response_model=PublicFederationData)
async def get_public_federation(user_id: str, ambassador: AmbassadorServiceDep) -> PublicFederationData:
    try:
        return await ambassador.get_public_federation_data(user_id)
    except FederationNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.post("/federations/{user_id}/ambassador", response_model=AmbassadorResponse)
async def ask_ambassador(
    user_id: str,
    request: AmbassadorRequest,
    ambassador: AmbassadorServiceDep,
) -> AmbassadorResponse:
    """Answer a visitor's question about the federation's public listing."""
    try:
        return await ambassador.ask(user_id, request)
    except FederationNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except AmbassadorResponseError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    except httpx.HTTPError as e:
        logger.warning("ambassador_model_unavailable", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="The AI model is currently unavailable.",
        )
