"""
Passport Repository Tests for TeoVerse

Tests run against a mock Neo4j client.
"""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

import pytest
from neo4j.exceptions import ConstraintError

from teoverse.models.passport import AssetKind
from teoverse.repositories.passport_repository import PassportRepository


@pytest.fixture
def repo(mock_db_client):
    return PassportRepository(mock_db_client)


class TestGetPassport:
    """Tests for reading passports with their assets."""

    @pytest.mark.asyncio
    async def test_splits_assets_by_kind(self, repo, mock_db_client):
        mock_db_client.execute_single.return_value = {
            "passport": {
                "id": "user-1",
                "email": "a@example.com",
                "federation_url": "https://teoverse.example.com",
                "teo_balance": 250,
                "version": 3,
                "created_at": "2025-01-01T00:00:00+00:00",
                "assets": [
                    {"id": "a1", "kind": "physical", "name": "House", "type": "Real Estate", "value": "1 USD"},
                    {"id": "t1", "kind": "ip", "name": "Patent", "type": "", "value": "2 USD"},
                ],
            }
        }

        passport = await repo.get_by_id("user-1")

        assert passport.teo_balance == 250
        assert passport.version == 3
        assert [a.name for a in passport.physical_assets] == ["House"]
        assert passport.physical_assets[0].type == "Real Estate"
        assert [t.name for t in passport.ip_tokens] == ["Patent"]

    @pytest.mark.asyncio
    async def test_missing_passport(self, repo):
        assert await repo.get_by_id("nobody") is None

    @pytest.mark.asyncio
    async def test_list_ip_tokens(self, repo, mock_db_client):
        mock_db_client.execute_single.return_value = {
            "passport": {
                "id": "user-1",
                "email": "a@example.com",
                "federation_url": "https://teoverse.example.com",
                "assets": [{"id": "t1", "kind": "ip", "name": "Patent", "value": "2 USD"}],
            }
        }
        tokens = await repo.list_ip_tokens("user-1")
        assert [t.id for t in tokens] == ["t1"]


class TestCreateAndUpdate:
    """Tests for creating and updating passports."""

    @pytest.mark.asyncio
    async def test_create(self, repo, mock_db_client):
        mock_db_client.execute_single.return_value = {"created": True}

        assert await repo.create("user-1", "a@example.com", "https://teoverse.example.com") is True
        query, params = mock_db_client.execute_single.call_args.args
        assert params["email"] == "a@example.com"
        assert params["create_id"]
        assert "MERGE (p:Passport {id: $id})" in query

    @pytest.mark.asyncio
    async def test_create_held_by_another_call(self, repo, mock_db_client):
        mock_db_client.execute_single.return_value = {"created": False}
        assert await repo.create("user-1", "a@example.com", "https://teoverse.example.com") is False

    @pytest.mark.asyncio
    async def test_create_existing(self, repo):
        assert await repo.create("user-1", "a@example.com", "https://teoverse.example.com") is False

    @pytest.mark.asyncio
    async def test_create_constraint_race(self, repo, mock_db_client):
        mock_db_client.execute_single.side_effect = ConstraintError("duplicate")
        assert await repo.create("user-1", "a@example.com", "https://teoverse.example.com") is False

    @pytest.mark.asyncio
    async def test_update_allowed_fields(self, repo, mock_db_client):
        mock_db_client.execute_single.return_value = {"id": "user-1"}

        assert await repo.update("user-1", {"email": "b@example.com"}) is True
        assert mock_db_client.execute_single.call_args.args[1]["props"] == {"email": "b@example.com"}

    @pytest.mark.asyncio
    async def test_update_rejects_balance(self, repo, mock_db_client):
        with pytest.raises(ValueError):
            await repo.update("user-1", {"teo_balance": 1_000_000})
        mock_db_client.execute_single.assert_not_called()

    @pytest.mark.asyncio
    async def test_update_rejects_unsafe_identifier(self, repo):
        with pytest.raises(ValueError):
            await repo.update("user-1", {"email} DETACH DELETE p //": "x"})


class TestBalance:
    """Tests for the version-guarded balance."""

    @pytest.mark.asyncio
    async def test_get_balance(self, repo, mock_db_client):
        mock_db_client.execute_single.return_value = {"balance": 10.5, "version": 4}
        assert await repo.get_balance("user-1") == (10.5, 4)

    @pytest.mark.asyncio
    async def test_get_balance_without_passport(self, repo):
        assert await repo.get_balance("user-1") is None

    @pytest.mark.asyncio
    async def test_compare_and_set(self, repo, mock_db_client):
        mock_db_client.execute_single.return_value = {"balance": 20.0, "replayed": False}

        assert await repo.compare_and_set_balance("user-1", 4, 20.0, "mint-1") == 20.0
        params = mock_db_client.execute_single.call_args.args[1]
        assert params["expected_version"] == 4
        assert params["balance"] == 20.0
        assert params["mint_id"] == "mint-1"
        assert params["keep"] > 1

    @pytest.mark.asyncio
    async def test_compare_and_set_stale_version(self, repo):
        assert await repo.compare_and_set_balance("user-1", 4, 20.0, "mint-1") is None

    @pytest.mark.asyncio
    async def test_replayed_mint_reports_stored_balance(self, repo, mock_db_client):
        # The first attempt committed; the stored balance already includes it
        mock_db_client.execute_single.return_value = {"balance": 20.0, "replayed": True}

        assert await repo.compare_and_set_balance("user-1", 4, 20.0, "mint-1") == 20.0
        query = mock_db_client.execute_single.call_args.args[0]
        assert "$mint_id IN coalesce(p.recent_mint_ids, [])" in query

    @pytest.mark.asyncio
    async def test_replayed_create_reuses_id(self, repo, mock_db_client):
        mock_db_client.execute_single.return_value = {"asset": {"id": "a1", "name": "House", "value": "1 USD"}}

        await repo.add_asset("user-1", AssetKind.PHYSICAL, name="House", value="1 USD")

        query = mock_db_client.execute_single.call_args.args[0]
        assert "MERGE (a:Asset {id: $id})" in query


class TestAssets:
    """Tests for attaching and removing assets."""

    @pytest.mark.asyncio
    async def test_add_asset(self, repo, mock_db_client):
        mock_db_client.execute_single.return_value = {
            "asset": {"id": "a1", "name": "House", "type": "Real Estate", "value": "1 USD"}
        }

        asset = await repo.add_asset("user-1", AssetKind.PHYSICAL, name="House", type="Real Estate", value="1 USD")

        assert asset["id"] == "a1"
        params = mock_db_client.execute_single.call_args.args[1]
        assert params["kind"] == "physical"
        assert params["user_id"] == "user-1"

    @pytest.mark.asyncio
    async def test_add_ip_token_has_empty_type(self, repo, mock_db_client):
        mock_db_client.execute_single.return_value = {"asset": {"id": "t1", "name": "Patent", "value": "2 USD"}}

        await repo.add_asset("user-1", AssetKind.IP, name="Patent", value="2 USD")

        params = mock_db_client.execute_single.call_args.args[1]
        assert params["kind"] == "ip"
        assert params["type"] == ""

    @pytest.mark.asyncio
    async def test_add_asset_without_passport(self, repo):
        assert await repo.add_asset("user-1", AssetKind.IP, name="Patent", value="2 USD") is None

    @pytest.mark.asyncio
    async def test_remove_asset_scoped_to_owner(self, repo, mock_db_client):
        mock_db_client.execute_single.return_value = {"asset": {"id": "a1", "name": "House", "value": "1 USD"}}

        removed = await repo.remove_asset("user-1", AssetKind.PHYSICAL, "a1")

        assert removed["name"] == "House"
        params = mock_db_client.execute_single.call_args.args[1]
        assert params == {"id": "a1", "kind": "physical", "user_id": "user-1"}


class TestDeleteWithHoldings:

    @pytest.mark.asyncio
    async def test_runs_in_one_transaction(self, repo, mock_db_client):
        result = MagicMock()
        result.single = AsyncMock(return_value={"deleted": 1})
        tx = MagicMock()
        tx.run = AsyncMock(return_value=result)

        @asynccontextmanager
        async def transaction():
            yield tx

        mock_db_client.transaction = transaction

        assert await repo.delete_with_holdings("user-1") is True
        assert tx.run.await_count == 3
        queries = [call.args[0] for call in tx.run.await_args_list]
        assert "Asset" in queries[0]
        assert "LinkedFederation" in queries[1]
        assert "Passport" in queries[2]
