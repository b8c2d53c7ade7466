"""
TeoVerse - Dashboard Routes

The capital state's overview and the federation flag.
"""

from __future__ import annotations

import httpx
import structlog
from fastapi import APIRouter, HTTPException, status

from teoverse.api.dependencies import CurrentUserDep, DashboardServiceDep, FlagServiceDep
from teoverse.models.dashboard import Dashboard, FederationFlag
from teoverse.models.media import FlagImageOutput, FlagImageRequest
from teoverse.services.image_generation import ImageGenerationError
from teoverse.services.passport import PassportNotFoundError
from teoverse.services.storage import StorageError

logger = structlog.get_logger(__name__)

router = APIRouter()

# Mounted under /api/v1/federation
federation_router = APIRouter()


def _image_failure(e: Exception) -> HTTPException:
    logger.warning("flag_generation_failed", error=str(e))
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))


@router.get("", response_model=Dashboard)
async def get_dashboard(user: CurrentUserDep, dashboard: DashboardServiceDep) -> Dashboard:
    return await dashboard.get_dashboard(user)


@router.post("/flag", response_model=FederationFlag)
async def regenerate_flag(user: CurrentUserDep, dashboard: DashboardServiceDep) -> FederationFlag:
    """Generate the flag from the caller's passport and publish it."""
    try:
        flag_url = await dashboard.regenerate_flag(user)
    except PassportNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except (ImageGenerationError, StorageError, httpx.HTTPError) as e:
        raise _image_failure(e)
    return FederationFlag(flag_url=flag_url)


@router.post("/flag-image", response_model=FlagImageOutput)
async def generate_flag_image(
    request: FlagImageRequest,
    user: CurrentUserDep,
    flags: FlagServiceDep,
) -> FlagImageOutput:
    """Generate a one-off flag image from a free prompt; nothing is cached."""
    try:
        return await flags.generate_flag_image(request.prompt, request.salt)
    except ImageGenerationError as e:
        raise _image_failure(e)


@federation_router.get("/flag", response_model=FederationFlag)
async def get_federation_flag(flags: FlagServiceDep) -> FederationFlag:
    return FederationFlag(flag_url=await flags.get_federation_flag_url())
