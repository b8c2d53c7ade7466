"""
TeoVerse - Mock Exchange

BTC/TEO swaps at a fixed rate against an emulated wallet. Nothing here
touches a chain or changes a stored balance.
"""

from decimal import Decimal
from uuid import uuid4

import structlog

from teoverse.config import FederationIdentity, get_federation_identity
from teoverse.models.dex import QuoteSide, SwapDirection, SwapQuote, SwapReceipt, WalletConnection
from teoverse.models.passport import IpToken
from teoverse.services.passport import AssetNotFoundError, PassportService

logger = structlog.get_logger(__name__)

MOCK_RATE = 10000  # TEO per BTC
MOCK_BTC_BALANCE = 100


class InsufficientBalanceError(Exception):
    """The mock wallet cannot cover the swap."""


class ListingNotImplementedError(Exception):
    """Selling IP tokens is not available yet."""


def plain_number(value: float) -> str:
    """``0.01`` -> ``"0.01"``, ``100.0`` -> ``"100"``, never scientific notation."""
    text = format(Decimal(str(value)).normalize(), "f")
    return text


class DexService:

    def __init__(self, passports: PassportService, identity: FederationIdentity | None = None):
        self.passports = passports
        self.identity = identity or get_federation_identity()

    def _currencies(self, direction: SwapDirection) -> tuple[str, str]:
        if direction == SwapDirection.BTC_TO_TEO:
            return "BTC", self.identity.token_symbol
        return self.identity.token_symbol, "BTC"

    def quote(
        self,
        amount: float,
        direction: SwapDirection = SwapDirection.BTC_TO_TEO,
        side: QuoteSide = QuoteSide.FROM,
    ) -> SwapQuote:
        """
        Price a swap. ``side`` says whether ``amount`` is what is paid
        (``from``) or what is received (``to``).
        """
        from_btc = direction == SwapDirection.BTC_TO_TEO
        if side == QuoteSide.FROM:
            from_amount = amount
            to_amount = amount * MOCK_RATE if from_btc else amount / MOCK_RATE
        else:
            to_amount = amount
            from_amount = amount / MOCK_RATE if from_btc else amount * MOCK_RATE

        from_currency, to_currency = self._currencies(direction)
        return SwapQuote(
            direction=direction,
            from_currency=from_currency,
            to_currency=to_currency,
            from_amount=from_amount,
            to_amount=to_amount,
            rate=MOCK_RATE,
        )

    def swap(self, user_id: str, from_amount: float, direction: SwapDirection) -> SwapReceipt:
        """
        Raises:
            InsufficientBalanceError: Paying more BTC than the mock wallet holds
        """
        if direction == SwapDirection.BTC_TO_TEO and from_amount > MOCK_BTC_BALANCE:
            raise InsufficientBalanceError(f"Your mock BTC balance is only {MOCK_BTC_BALANCE} BTC.")

        quote = self.quote(from_amount, direction, QuoteSide.FROM)
        receipt = SwapReceipt(
            tx_id=f"mock-{uuid4().hex}",
            direction=direction,
            from_currency=quote.from_currency,
            to_currency=quote.to_currency,
            from_amount=quote.from_amount,
            to_amount=quote.to_amount,
            message=(
                f"Swapping {plain_number(quote.from_amount)} {quote.from_currency} for "
                f"{plain_number(quote.to_amount)} {quote.to_currency}. This is a mock transaction."
            ),
        )
        logger.info(
            "mock_swap_submitted",
            user_id=user_id,
            tx_id=receipt.tx_id,
            direction=direction.value,
            from_amount=from_amount,
        )
        return receipt

    def connect_wallet(self) -> WalletConnection:
        return WalletConnection(
            btc_balance=MOCK_BTC_BALANCE,
            message=f"UniSat wallet (emulated) connected with a mock balance of {MOCK_BTC_BALANCE} BTC.",
        )

    async def list_ip_tokens(self, user_id: str) -> list[IpToken]:
        return await self.passports.list_ip_tokens(user_id)

    async def list_ip_for_sale(self, user_id: str, token_id: str) -> None:
        """
        Raises:
            AssetNotFoundError: The caller holds no such token
            ListingNotImplementedError: Always, for a token the caller holds
        """
        tokens = await self.passports.list_ip_tokens(user_id)
        token = next((t for t in tokens if t.id == token_id), None)
        if token is None:
            raise AssetNotFoundError(f"IP token {token_id} not found.")
        raise ListingNotImplementedError(f'Listing "{token.name}" for sale is not yet implemented.')
