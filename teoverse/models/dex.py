"""
DEX Models

The exchange is a simulation: a fixed rate, a fixed wallet balance and
receipts that never settle.
"""

from enum import Enum

from pydantic import Field

from teoverse.models.base import TeoModel


class SwapDirection(str, Enum):
    BTC_TO_TEO = "btc_to_teo"
    TEO_TO_BTC = "teo_to_btc"


class QuoteSide(str, Enum):
    """Whether the quoted amount is what the user pays or what they receive."""

    FROM = "from"
    TO = "to"


class SwapQuote(TeoModel):
    direction: SwapDirection
    from_currency: str
    to_currency: str
    from_amount: float
    to_amount: float
    rate: float = Field(description="TEO per BTC")
    mock: bool = True


class SwapRequest(TeoModel):
    from_amount: float = Field(gt=0)
    direction: SwapDirection = SwapDirection.BTC_TO_TEO


class SwapReceipt(TeoModel):
    tx_id: str
    direction: SwapDirection
    from_currency: str
    to_currency: str
    from_amount: float
    to_amount: float
    status: str = "submitted"
    message: str
    mock: bool = True


class WalletConnection(TeoModel):
    provider: str = "unisat"
    connected: bool = True
    btc_balance: float
    message: str
    mock: bool = True
