"""
Passport Repository

Passports are ``(:Passport)`` nodes keyed by the owner's user id. Physical
assets and IP tokens are ``(:Asset)`` nodes attached with ``HELD_BY`` and
told apart by their ``kind`` property.

The TEO balance is guarded by a ``version`` counter: a balance write only
lands if the version it read is still current.

Every write here may be replayed by the client after a dropped connection,
so creates MERGE on an id chosen before the call and balance writes carry
a mint id.
"""

from typing import Any

from neo4j.exceptions import ConstraintError

from teoverse.models.passport import AssetKind, IpToken, Passport
from teoverse.repositories.base import BaseRepository, validate_identifier

UPDATABLE_FIELDS = frozenset({"email", "federation_url"})

# Mint ids remembered per passport for recognising replayed balance writes
RECENT_MINT_IDS = 32


class PassportRepository(BaseRepository[Passport]):
    """Repository for passports and the assets they hold."""

    @property
    def node_label(self) -> str:
        return "Passport"

    @property
    def model_class(self) -> type[Passport]:
        return Passport

    def _to_passport(self, record: dict[str, Any] | None) -> Passport | None:
        """Split the collected ``(:Asset)`` maps into the two typed lists."""
        if not record:
            return None
        data = dict(record)
        assets = data.pop("assets", None) or []
        data["physical_assets"] = [
            {k: a.get(k) for k in ("id", "type", "name", "value")}
            for a in assets
            if a.get("kind") == AssetKind.PHYSICAL.value
        ]
        data["ip_tokens"] = [
            {k: a.get(k) for k in ("id", "name", "value")}
            for a in assets
            if a.get("kind") == AssetKind.IP.value
        ]
        return self._to_model(data)

    async def get_by_id(self, entity_id: str) -> Passport | None:
        query = """
        MATCH (p:Passport {id: $id})
        OPTIONAL MATCH (a:Asset)-[:HELD_BY]->(p)
        WITH p, a ORDER BY a.created_at
        WITH p, collect(a {.*}) AS assets
        RETURN p {.*, assets: assets} AS passport
        """
        result = await self.client.execute_single(query, {"id": entity_id})
        if result and result.get("passport"):
            return self._to_passport(result["passport"])
        return None

    async def create(self, user_id: str, email: str, federation_url: str) -> bool:
        """
        Store a fresh passport.

        Returns False when the user already holds one. The node is stamped
        with a per-call ``create_id``, so a replay of a create that already
        committed still reports True.
        """
        query = """
        MERGE (p:Passport {id: $id})
        ON CREATE SET
            p.email = $email,
            p.federation_url = $federation_url,
            p.teo_balance = 0,
            p.version = 0,
            p.create_id = $create_id,
            p.created_at = $now,
            p.updated_at = $now
        RETURN p.create_id = $create_id AS created
        """
        try:
            result = await self.client.execute_single(
                query,
                {
                    "id": user_id,
                    "email": email,
                    "federation_url": federation_url,
                    "create_id": self._generate_id(),
                    "now": self._now().isoformat(),
                },
            )
        except ConstraintError:
            # Lost a race with a concurrent create for the same user
            return False
        return bool(result and result.get("created"))

    async def update(self, user_id: str, fields: dict[str, Any]) -> bool:
        """Partial update of the passport's own properties."""
        props = {}
        for name, value in fields.items():
            validate_identifier(name, "field")
            if name not in UPDATABLE_FIELDS:
                raise ValueError(f"Passport field '{name}' cannot be updated")
            props[name] = value
        if not props:
            return await self.exists(user_id)

        query = """
        MATCH (p:Passport {id: $id})
        SET p += $props, p.updated_at = $now
        RETURN p.id AS id
        """
        result = await self.client.execute_single(
            query,
            {"id": user_id, "props": props, "now": self._now().isoformat()},
        )
        return bool(result and result.get("id") == user_id)

    # =========================================================================
    # Balance
    # =========================================================================

    async def get_balance(self, user_id: str) -> tuple[float, int] | None:
        """Current ``(teo_balance, version)``, or None without a passport."""
        query = """
        MATCH (p:Passport {id: $id})
        RETURN coalesce(p.teo_balance, 0) AS balance, coalesce(p.version, 0) AS version
        """
        result = await self.client.execute_single(query, {"id": user_id})
        if not result:
            return None
        return result["balance"], result["version"]

    async def compare_and_set_balance(
        self,
        user_id: str,
        expected_version: int,
        new_balance: float,
        mint_id: str,
    ) -> float | None:
        """
        Write ``new_balance`` only if nobody bumped the version since it was read.

        The write records ``mint_id`` among the passport's most recent mint
        ids. Replaying a ``mint_id`` that already landed changes nothing and
        still counts as success, even if other mints landed in between.

        Returns:
            The stored balance on success, None on a version conflict
        """
        query = """
        MATCH (p:Passport {id: $id})
        WITH p, $mint_id IN coalesce(p.recent_mint_ids, []) AS replayed
        WHERE replayed OR coalesce(p.version, 0) = $expected_version
        FOREACH (_ IN CASE WHEN replayed THEN [] ELSE [1] END |
            SET p.teo_balance = $balance,
                p.version = $expected_version + 1,
                p.recent_mint_ids = ([$mint_id] + coalesce(p.recent_mint_ids, []))[0..$keep],
                p.updated_at = $now
        )
        RETURN p.teo_balance AS balance, replayed
        """
        result = await self.client.execute_single(
            query,
            {
                "id": user_id,
                "expected_version": expected_version,
                "balance": new_balance,
                "mint_id": mint_id,
                "keep": RECENT_MINT_IDS,
                "now": self._now().isoformat(),
            },
        )
        if result is None:
            return None
        if result.get("replayed"):
            self.logger.info("teo_mint_replayed", user_id=user_id, mint_id=mint_id)
        return result["balance"]

    # =========================================================================
    # Assets
    # =========================================================================

    async def add_asset(self, user_id: str, kind: AssetKind, **fields: Any) -> dict[str, Any] | None:
        """Attach a new asset; returns its properties, or None without a passport."""
        asset_id = self._generate_id()
        query = """
        MATCH (p:Passport {id: $user_id})
        MERGE (a:Asset {id: $id})
        ON CREATE SET a.kind = $kind, a.name = $name, a.type = $type, a.value = $value, a.created_at = $now
        MERGE (a)-[:HELD_BY]->(p)
        RETURN a {.id, .type, .name, .value} AS asset
        """
        result = await self.client.execute_single(
            query,
            {
                "user_id": user_id,
                "id": asset_id,
                "kind": kind.value,
                "name": fields["name"],
                "type": fields.get("type") or "",
                "value": fields["value"],
                "now": self._now().isoformat(),
            },
        )
        if result and result.get("asset"):
            return dict(result["asset"])
        return None

    async def remove_asset(self, user_id: str, kind: AssetKind, asset_id: str) -> dict[str, Any] | None:
        """Delete an asset owned by ``user_id``; returns what was removed."""
        query = """
        MATCH (a:Asset {id: $id, kind: $kind})-[:HELD_BY]->(:Passport {id: $user_id})
        WITH a, a {.id, .type, .name, .value} AS asset
        DETACH DELETE a
        RETURN asset
        """
        result = await self.client.execute_single(
            query,
            {"id": asset_id, "kind": kind.value, "user_id": user_id},
        )
        if result and result.get("asset"):
            return dict(result["asset"])
        return None

    async def list_ip_tokens(self, user_id: str) -> list[IpToken]:
        passport = await self.get_by_id(user_id)
        return passport.ip_tokens if passport else []

    async def delete_with_holdings(self, user_id: str) -> bool:
        """Delete the passport, its assets and its federation links in one transaction."""
        async with self.client.transaction() as tx:
            await tx.run(
                "MATCH (a:Asset)-[:HELD_BY]->(:Passport {id: $id}) DETACH DELETE a",
                {"id": user_id},
            )
            await tx.run(
                "MATCH (f:LinkedFederation {user_id: $id}) DETACH DELETE f",
                {"id": user_id},
            )
            result = await tx.run(
                "MATCH (p:Passport {id: $id}) DETACH DELETE p RETURN count(p) AS deleted",
                {"id": user_id},
            )
            record = await result.single()

        deleted = record["deleted"] if record else 0
        if deleted:
            self.logger.info("passport_deleted", user_id=user_id)
        return deleted > 0
