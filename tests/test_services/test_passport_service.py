"""
Passport Service Tests for TeoVerse

Tests for minting passports, TEO and assets, and for activity logging.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from neo4j.exceptions import ServiceUnavailable
from tenacity import wait_none

from teoverse.database.client import _retry_transient
from teoverse.models.activity import ActivityType
from teoverse.monitoring.metrics import passports_minted_total, teo_minted_total
from teoverse.services.activity_log import ActivityLogService
from teoverse.services.passport import (
    MAX_BALANCE_ATTEMPTS,
    AssetNotFoundError,
    BalanceConflictError,
    PassportExistsError,
    PassportNotFoundError,
    PassportService,
)


@pytest.fixture
def passport_repo():
    repo = MagicMock()
    repo.create = AsyncMock(return_value=True)
    repo.get_by_id = AsyncMock(return_value=None)
    repo.update = AsyncMock(return_value=True)
    repo.get_balance = AsyncMock(return_value=(100.0, 1))
    repo.compare_and_set_balance = AsyncMock(side_effect=lambda user_id, version, balance, mint_id: balance)
    repo.add_asset = AsyncMock(return_value=None)
    repo.remove_asset = AsyncMock(return_value=None)
    repo.list_ip_tokens = AsyncMock(return_value=[])
    repo.exists = AsyncMock(return_value=True)
    repo.delete_with_holdings = AsyncMock(return_value=True)
    repo.count = AsyncMock(return_value=3)
    return repo


@pytest.fixture
def activity():
    service = MagicMock()
    service.add_activity_log = AsyncMock(return_value=None)
    return service


@pytest.fixture
def service(passport_repo, activity, identity):
    return PassportService(passport_repo, activity, identity)


def logged(activity) -> list[tuple[ActivityType, str]]:
    return [(call.args[1], call.args[2]) for call in activity.add_activity_log.await_args_list]


class StoredBalance:
    """
    One passport's balance behind the same version and mint-id guard as the
    balance query, replayed by the client's transient-error retry.

    With ``drop_next_reply`` set, the next write commits and then fails the
    way a connection lost before the reply does.
    """

    def __init__(self, balance: float, version: int = 0):
        self.balance = balance
        self.version = version
        self.recent_mint_ids: list[str] = []
        self.writes = 0
        self.drop_next_reply = False
        self.compare_and_set_balance = _retry_transient(self._write).retry_with(wait=wait_none())

    async def get_balance(self, user_id: str) -> tuple[float, int]:
        return self.balance, self.version

    async def _write(self, user_id: str, expected_version: int, new_balance: float, mint_id: str) -> float | None:
        replayed = mint_id in self.recent_mint_ids
        if not replayed and self.version != expected_version:
            return None
        if not replayed:
            self.balance = new_balance
            self.version = expected_version + 1
            self.recent_mint_ids.insert(0, mint_id)
        self.writes += 1
        if self.drop_next_reply:
            self.drop_next_reply = False
            raise ServiceUnavailable("connection lost after commit")
        return self.balance


# =============================================================================
# Passport Lifecycle
# =============================================================================


class TestCreatePassport:

    @pytest.mark.asyncio
    async def test_mints_and_logs(self, service, passport_repo, activity, user_factory, passport_factory):
        user = user_factory(user_id="user-1", email="owner@example.com")
        passport_repo.get_by_id.return_value = passport_factory(user_id="user-1")
        before = passports_minted_total.value()

        passport = await service.create_passport(user)

        assert passport.id == "user-1"
        assert passport_repo.create.await_args.kwargs == {
            "user_id": "user-1",
            "email": "owner@example.com",
            "federation_url": "https://teoverse.example.com",
        }
        assert logged(activity) == [(ActivityType.MINT_PASSPORT, "Passport minted.")]
        assert passports_minted_total.value() == before + 1

    @pytest.mark.asyncio
    async def test_second_passport_rejected(self, service, passport_repo, activity, user_factory):
        passport_repo.create.return_value = False

        with pytest.raises(PassportExistsError):
            await service.create_passport(user_factory())

        activity.add_activity_log.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unreadable_passport(self, service, user_factory):
        with pytest.raises(RuntimeError):
            await service.create_passport(user_factory())

    @pytest.mark.asyncio
    async def test_require_passport(self, service):
        with pytest.raises(PassportNotFoundError):
            await service.require_passport("user-1")

    @pytest.mark.asyncio
    async def test_update_missing_passport(self, service, passport_repo):
        passport_repo.update.return_value = False
        with pytest.raises(PassportNotFoundError):
            await service.update_passport("user-1", {"email": "new@example.com"})

    @pytest.mark.asyncio
    async def test_delete_logs_before_deleting(self, service, passport_repo, activity):
        await service.delete_passport("user-1")

        assert logged(activity) == [(ActivityType.DELETE_PASSPORT, "Passport deleted.")]
        passport_repo.delete_with_holdings.assert_awaited_once_with("user-1")

    @pytest.mark.asyncio
    async def test_delete_missing(self, service, passport_repo):
        passport_repo.exists.return_value = False
        with pytest.raises(PassportNotFoundError):
            await service.delete_passport("user-1")
        passport_repo.delete_with_holdings.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_member_count(self, service):
        assert await service.get_federation_member_count() == 3


# =============================================================================
# TEO Minting
# =============================================================================


class TestMintTeos:

    @pytest.mark.asyncio
    async def test_adds_to_balance(self, service, passport_repo, activity):
        before = teo_minted_total.value()

        balance = await service.mint_teos("user-1", 1500)

        assert balance == 1600.0
        passport_repo.compare_and_set_balance.assert_awaited_once()
        user_id, version, new_balance, mint_id = passport_repo.compare_and_set_balance.await_args.args
        assert (user_id, version, new_balance) == ("user-1", 1, 1600.0)
        assert mint_id
        assert logged(activity) == [(ActivityType.MINT_TEO, "Minted 1,500 TEO")]
        assert teo_minted_total.value() == before + 1500

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -1, float("nan")])
    async def test_rejects_non_positive(self, service, passport_repo, amount):
        with pytest.raises(ValueError):
            await service.mint_teos("user-1", amount)
        passport_repo.get_balance.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_passport(self, service, passport_repo):
        passport_repo.get_balance.return_value = None

        with pytest.raises(PassportNotFoundError, match="Passport does not exist!"):
            await service.mint_teos("user-1", 5)

    @pytest.mark.asyncio
    async def test_retries_on_conflict(self, service, passport_repo):
        passport_repo.get_balance.side_effect = [(100.0, 1), (110.0, 2)]
        passport_repo.compare_and_set_balance.side_effect = [None, 115.0]

        balance = await service.mint_teos("user-1", 5)

        assert balance == 115.0
        first, second = passport_repo.compare_and_set_balance.await_args_list
        assert second.args[:3] == ("user-1", 2, 115.0)
        assert first.args[3] == second.args[3]

    @pytest.mark.asyncio
    async def test_returns_stored_balance(self, service, passport_repo):
        # A replayed write reports the balance that is actually stored
        passport_repo.compare_and_set_balance.side_effect = None
        passport_repo.compare_and_set_balance.return_value = 250.0

        assert await service.mint_teos("user-1", 5) == 250.0

    @pytest.mark.asyncio
    async def test_each_mint_has_its_own_id(self, service, passport_repo):
        await service.mint_teos("user-1", 5)
        await service.mint_teos("user-1", 5)

        first, second = passport_repo.compare_and_set_balance.await_args_list
        assert first.args[3] != second.args[3]

    @pytest.mark.asyncio
    async def test_lost_reply_after_commit_credits_once(self, activity, identity):
        stored = StoredBalance(balance=0.0)
        stored.drop_next_reply = True

        balance = await PassportService(stored, activity, identity).mint_teos("user-1", 100)

        assert balance == 100
        assert stored.balance == 100
        assert stored.version == 1
        assert stored.writes == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_repeated_conflicts(self, service, passport_repo, activity):
        passport_repo.compare_and_set_balance.side_effect = None
        passport_repo.compare_and_set_balance.return_value = None

        with pytest.raises(BalanceConflictError):
            await service.mint_teos("user-1", 5)

        assert passport_repo.compare_and_set_balance.await_count == MAX_BALANCE_ATTEMPTS
        activity.add_activity_log.assert_not_awaited()


# =============================================================================
# Assets
# =============================================================================


class TestAssets:

    @pytest.mark.asyncio
    async def test_add_physical_asset(self, service, passport_repo, activity):
        passport_repo.add_asset.return_value = {
            "id": "a1", "name": "House", "type": "Real Estate", "value": "250,000 USD"
        }

        asset = await service.add_physical_asset("user-1", "House", "Real Estate", "250,000 USD")

        assert asset.id == "a1"
        assert logged(activity) == [(ActivityType.ADD_PHYSICAL_ASSET, "Added physical asset: House")]

    @pytest.mark.asyncio
    async def test_add_physical_asset_without_passport(self, service):
        with pytest.raises(PassportNotFoundError):
            await service.add_physical_asset("user-1", "House", "", "1 USD")

    @pytest.mark.asyncio
    async def test_remove_physical_asset_uses_stored_name(self, service, passport_repo, activity):
        passport_repo.remove_asset.return_value = {"id": "a1", "name": "House", "type": "", "value": "1 USD"}

        await service.remove_physical_asset("user-1", "a1")

        assert logged(activity) == [(ActivityType.REMOVE_PHYSICAL_ASSET, "Removed physical asset: House")]

    @pytest.mark.asyncio
    async def test_remove_unknown_asset(self, service, activity):
        with pytest.raises(AssetNotFoundError):
            await service.remove_physical_asset("user-1", "missing")
        activity.add_activity_log.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_mint_and_burn_ip_token(self, service, passport_repo, activity):
        record = {"id": "t1", "name": "Patent", "value": "10 TEO"}
        passport_repo.add_asset.return_value = record
        passport_repo.remove_asset.return_value = record

        minted = await service.mint_ip_token("user-1", "Patent", "10 TEO")
        burned = await service.burn_ip_token("user-1", "t1")

        assert minted.id == burned.id == "t1"
        assert logged(activity) == [
            (ActivityType.MINT_IP_TOKEN, "Minted IP token: Patent"),
            (ActivityType.BURN_IP_TOKEN, "Burned IP token: Patent"),
        ]

    @pytest.mark.asyncio
    async def test_burn_unknown_token(self, service):
        with pytest.raises(AssetNotFoundError):
            await service.burn_ip_token("user-1", "missing")


# =============================================================================
# Activity Log
# =============================================================================


class TestActivityLogService:

    @pytest.mark.asyncio
    async def test_write_failure_is_dropped(self):
        repo = MagicMock()
        repo.create = AsyncMock(side_effect=ServiceUnavailable("down"))

        result = await ActivityLogService(repo).add_activity_log("user-1", ActivityType.MINT_TEO, "x")

        assert result is None

    @pytest.mark.asyncio
    async def test_write_success(self):
        repo = MagicMock()
        repo.create = AsyncMock(return_value="entry")

        assert await ActivityLogService(repo).add_activity_log("user-1", ActivityType.MINT_TEO, "x") == "entry"

    @pytest.mark.asyncio
    async def test_recent(self):
        repo = MagicMock()
        repo.get_recent = AsyncMock(return_value=[])

        await ActivityLogService(repo).get_recent_activity("user-1", 5)

        repo.get_recent.assert_awaited_once_with("user-1", 5)
