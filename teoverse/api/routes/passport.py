"""
TeoVerse - Passport Routes

The caller's passport: minting, profile updates, TEO minting, physical
assets, IP tokens and the activity feed. Every endpoint acts on the
authenticated user's own passport.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel

from teoverse.api.dependencies import ActivityServiceDep, CurrentUserDep, PassportServiceDep
from teoverse.models.activity import ActivityLog
from teoverse.models.passport import (
    IpToken,
    IpTokenCreate,
    MintTeoRequest,
    Passport,
    PassportCreate,
    PassportUpdate,
    PhysicalAsset,
    PhysicalAssetCreate,
)
from teoverse.repositories.activity_repository import MAX_ACTIVITY_LIMIT
from teoverse.services.passport import (
    AssetNotFoundError,
    BalanceConflictError,
    PassportExistsError,
    PassportNotFoundError,
)

router = APIRouter()


class MintTeoResponse(BaseModel):
    amount: float
    teo_balance: float


def _not_found(e: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.get("", response_model=Passport)
async def get_passport(user: CurrentUserDep, passports: PassportServiceDep) -> Passport:
    passport = await passports.get_passport(user.id)
    if passport is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Passport not found.")
    return passport


@router.post("", response_model=Passport, status_code=status.HTTP_201_CREATED)
async def mint_passport(
    user: CurrentUserDep,
    passports: PassportServiceDep,
    request: PassportCreate | None = None,
) -> Passport:
    """Mint the caller's passport, by default on this federation's URL."""
    try:
        return await passports.create_passport(user, request.federation_url if request else None)
    except PassportExistsError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@router.patch("", response_model=Passport)
async def update_passport(
    request: PassportUpdate,
    user: CurrentUserDep,
    passports: PassportServiceDep,
) -> Passport:
    fields = request.model_dump(exclude_none=True)
    if not fields:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update.")
    try:
        return await passports.update_passport(user.id, {k: str(v) for k, v in fields.items()})
    except PassportNotFoundError as e:
        raise _not_found(e)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def delete_passport(user: CurrentUserDep, passports: PassportServiceDep) -> None:
    """Delete the passport, its assets and its federation links."""
    try:
        await passports.delete_passport(user.id)
    except PassportNotFoundError as e:
        raise _not_found(e)


@router.post("/teo", response_model=MintTeoResponse)
async def mint_teo(
    request: MintTeoRequest,
    user: CurrentUserDep,
    passports: PassportServiceDep,
) -> MintTeoResponse:
    try:
        balance = await passports.mint_teos(user.id, request.amount)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except PassportNotFoundError as e:
        raise _not_found(e)
    except BalanceConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return MintTeoResponse(amount=request.amount, teo_balance=balance)


# =============================================================================
# Assets
# =============================================================================

@router.post("/physical-assets", response_model=PhysicalAsset, status_code=status.HTTP_201_CREATED)
async def add_physical_asset(
    request: PhysicalAssetCreate,
    user: CurrentUserDep,
    passports: PassportServiceDep,
) -> PhysicalAsset:
    try:
        return await passports.add_physical_asset(user.id, request.name, request.type, request.value)
    except PassportNotFoundError as e:
        raise _not_found(e)


@router.delete("/physical-assets/{asset_id}", response_model=PhysicalAsset)
async def remove_physical_asset(
    asset_id: str,
    user: CurrentUserDep,
    passports: PassportServiceDep,
) -> PhysicalAsset:
    try:
        return await passports.remove_physical_asset(user.id, asset_id)
    except AssetNotFoundError as e:
        raise _not_found(e)


@router.post("/ip-tokens", response_model=IpToken, status_code=status.HTTP_201_CREATED)
async def mint_ip_token(
    request: IpTokenCreate,
    user: CurrentUserDep,
    passports: PassportServiceDep,
) -> IpToken:
    try:
        return await passports.mint_ip_token(user.id, request.name, request.value)
    except PassportNotFoundError as e:
        raise _not_found(e)


@router.delete("/ip-tokens/{token_id}", response_model=IpToken)
async def burn_ip_token(
    token_id: str,
    user: CurrentUserDep,
    passports: PassportServiceDep,
) -> IpToken:
    try:
        return await passports.burn_ip_token(user.id, token_id)
    except AssetNotFoundError as e:
        raise _not_found(e)


@router.get("/activity", response_model=list[ActivityLog])
async def get_activity(
    user: CurrentUserDep,
    activity: ActivityServiceDep,
    limit: int = Query(default=5, ge=1, le=MAX_ACTIVITY_LIMIT),
) -> list[ActivityLog]:
    """The caller's most recent activity, newest first."""
    return await activity.get_recent_activity(user.id, limit)
