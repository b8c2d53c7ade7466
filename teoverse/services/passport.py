"""
TeoVerse - Passport Service

Minting and managing passports, their assets and their TEO balance.
Every state change is recorded in the owner's activity log.
"""

from uuid import uuid4

import structlog

from teoverse.config import FederationIdentity, get_federation_identity
from teoverse.models.activity import ActivityType
from teoverse.models.passport import (
    AssetKind,
    IpToken,
    Passport,
    PhysicalAsset,
    format_amount,
)
from teoverse.models.user import User
from teoverse.monitoring.metrics import passports_minted_total, teo_minted_total
from teoverse.repositories.passport_repository import PassportRepository
from teoverse.services.activity_log import ActivityLogService

logger = structlog.get_logger(__name__)

# Attempts at the read-compare-write balance update before giving up
MAX_BALANCE_ATTEMPTS = 5


class PassportNotFoundError(Exception):
    """The user has no passport."""


class PassportExistsError(Exception):
    """The user already holds a passport."""


class AssetNotFoundError(Exception):
    """No such asset on the passport."""


class BalanceConflictError(Exception):
    """The balance kept changing underneath a mint."""


class PassportService:

    def __init__(
        self,
        passport_repo: PassportRepository,
        activity: ActivityLogService,
        identity: FederationIdentity | None = None,
    ):
        self.passport_repo = passport_repo
        self.activity = activity
        self.identity = identity or get_federation_identity()

    async def get_passport(self, user_id: str) -> Passport | None:
        return await self.passport_repo.get_by_id(user_id)

    async def require_passport(self, user_id: str) -> Passport:
        passport = await self.get_passport(user_id)
        if passport is None:
            raise PassportNotFoundError("Passport not found.")
        return passport

    async def create_passport(self, user: User, federation_url: str | None = None) -> Passport:
        """
        Mint a passport for ``user``.

        Raises:
            PassportExistsError: The user already has one
            RuntimeError: The new passport could not be read back
        """
        created = await self.passport_repo.create(
            user_id=user.id,
            email=str(user.email),
            federation_url=federation_url or self.identity.federation_url,
        )
        if not created:
            raise PassportExistsError("A passport has already been minted for this account.")

        passports_minted_total.inc()
        await self.activity.add_activity_log(user.id, ActivityType.MINT_PASSPORT, "Passport minted.")

        passport = await self.get_passport(user.id)
        if passport is None:
            raise RuntimeError("Failed to retrieve newly created passport.")
        logger.info("passport_minted", user_id=user.id)
        return passport

    async def update_passport(self, user_id: str, fields: dict[str, str]) -> Passport:
        if not await self.passport_repo.update(user_id, fields):
            raise PassportNotFoundError("Passport not found.")
        logger.info("passport_updated", user_id=user_id, fields=sorted(fields))
        return await self.require_passport(user_id)

    async def mint_teos(self, user_id: str, amount: float) -> float:
        """
        Add ``amount`` TEO to the balance and return the new balance.

        The write only lands if no other write happened since the balance was
        read; on a conflict the read is repeated. All attempts share one mint
        id, so the amount is credited at most once.

        Raises:
            ValueError: ``amount`` is not positive
            PassportNotFoundError: No passport
            BalanceConflictError: Still conflicting after the last attempt
        """
        if not amount > 0:
            raise ValueError("Amount must be a positive number.")

        mint_id = str(uuid4())
        for attempt in range(MAX_BALANCE_ATTEMPTS):
            current = await self.passport_repo.get_balance(user_id)
            if current is None:
                raise PassportNotFoundError("Passport does not exist!")
            balance, version = current

            stored = await self.passport_repo.compare_and_set_balance(user_id, version, balance + amount, mint_id)
            if stored is not None:
                new_balance = stored
                break
            logger.debug("teo_mint_conflict", user_id=user_id, attempt=attempt + 1)
        else:
            raise BalanceConflictError("The balance was modified concurrently. Please try again.")

        teo_minted_total.inc(amount)
        await self.activity.add_activity_log(
            user_id,
            ActivityType.MINT_TEO,
            f"Minted {format_amount(amount)} {self.identity.token_symbol}",
        )
        logger.info("teo_minted", user_id=user_id, amount=amount, balance=new_balance)
        return new_balance

    # =========================================================================
    # Assets
    # =========================================================================

    async def add_physical_asset(self, user_id: str, name: str, type: str, value: str) -> PhysicalAsset:
        asset = await self.passport_repo.add_asset(
            user_id, AssetKind.PHYSICAL, name=name, type=type, value=value
        )
        if asset is None:
            raise PassportNotFoundError("Passport not found.")
        await self.activity.add_activity_log(
            user_id, ActivityType.ADD_PHYSICAL_ASSET, f"Added physical asset: {name}"
        )
        return PhysicalAsset.model_validate(asset)

    async def remove_physical_asset(self, user_id: str, asset_id: str) -> PhysicalAsset:
        asset = await self.passport_repo.remove_asset(user_id, AssetKind.PHYSICAL, asset_id)
        if asset is None:
            raise AssetNotFoundError(f"Physical asset {asset_id} not found.")
        removed = PhysicalAsset.model_validate(asset)
        await self.activity.add_activity_log(
            user_id, ActivityType.REMOVE_PHYSICAL_ASSET, f"Removed physical asset: {removed.name}"
        )
        return removed

    async def mint_ip_token(self, user_id: str, name: str, value: str) -> IpToken:
        token = await self.passport_repo.add_asset(user_id, AssetKind.IP, name=name, value=value)
        if token is None:
            raise PassportNotFoundError("Passport not found.")
        await self.activity.add_activity_log(
            user_id, ActivityType.MINT_IP_TOKEN, f"Minted IP token: {name}"
        )
        return IpToken.model_validate(token)

    async def burn_ip_token(self, user_id: str, token_id: str) -> IpToken:
        token = await self.passport_repo.remove_asset(user_id, AssetKind.IP, token_id)
        if token is None:
            raise AssetNotFoundError(f"IP token {token_id} not found.")
        burned = IpToken.model_validate(token)
        await self.activity.add_activity_log(
            user_id, ActivityType.BURN_IP_TOKEN, f"Burned IP token: {burned.name}"
        )
        return burned

    async def list_ip_tokens(self, user_id: str) -> list[IpToken]:
        return await self.passport_repo.list_ip_tokens(user_id)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def delete_passport(self, user_id: str) -> None:
        """Delete the passport with its assets and links; the activity log stays."""
        if not await self.passport_repo.exists(user_id):
            raise PassportNotFoundError("Passport not found.")
        await self.activity.add_activity_log(user_id, ActivityType.DELETE_PASSPORT, "Passport deleted.")
        await self.passport_repo.delete_with_holdings(user_id)

    async def get_federation_member_count(self) -> int:
        return await self.passport_repo.count()
