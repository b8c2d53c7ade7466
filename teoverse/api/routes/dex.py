"""
TeoVerse - DEX Routes

Mock BTC/TEO exchange against an emulated UniSat wallet, plus the caller's
IP tokens for trading.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, status

from teoverse.api.dependencies import CurrentUserDep, DexServiceDep
from teoverse.models.dex import QuoteSide, SwapDirection, SwapQuote, SwapReceipt, SwapRequest, WalletConnection
from teoverse.models.passport import IpToken
from teoverse.services.dex import InsufficientBalanceError, ListingNotImplementedError
from teoverse.services.passport import AssetNotFoundError

router = APIRouter()


@router.get("/quote", response_model=SwapQuote)
async def get_quote(
    dex: DexServiceDep,
    amount: float = Query(..., gt=0),
    direction: SwapDirection = Query(default=SwapDirection.BTC_TO_TEO),
    side: QuoteSide = Query(default=QuoteSide.FROM),
) -> SwapQuote:
    """Price a swap from either side at the fixed mock rate."""
    return dex.quote(amount, direction, side)


@router.post("/swap", response_model=SwapReceipt)
async def swap(request: SwapRequest, user: CurrentUserDep, dex: DexServiceDep) -> SwapReceipt:
    """Submit a mock swap. Stored balances are not changed."""
    try:
        return dex.swap(user.id, request.from_amount, SwapDirection(request.direction))
    except InsufficientBalanceError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.post("/wallet/connect", response_model=WalletConnection)
async def connect_wallet(user: CurrentUserDep, dex: DexServiceDep) -> WalletConnection:
    return dex.connect_wallet()


@router.get("/ip-tokens", response_model=list[IpToken])
async def list_tradable_ip_tokens(user: CurrentUserDep, dex: DexServiceDep) -> list[IpToken]:
    return await dex.list_ip_tokens(user.id)


@router.post("/ip-tokens/{token_id}/list", status_code=status.HTTP_501_NOT_IMPLEMENTED)
async def list_ip_for_sale(token_id: str, user: CurrentUserDep, dex: DexServiceDep) -> None:
    try:
        await dex.list_ip_for_sale(user.id, token_id)
    except AssetNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ListingNotImplementedError as e:
        raise HTTPException(status_code=status.HTTP_501_NOT_IMPLEMENTED, detail=str(e))
