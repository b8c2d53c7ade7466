"""
Linked Federation Repository
"""

from neo4j.exceptions import ConstraintError

from teoverse.models.federation import LinkedFederation
from teoverse.repositories.base import BaseRepository


class LinkedFederationRepository(BaseRepository[LinkedFederation]):
    """``(:LinkedFederation)`` nodes, scoped to the user who created the link."""

    @property
    def node_label(self) -> str:
        return "LinkedFederation"

    @property
    def model_class(self) -> type[LinkedFederation]:
        return LinkedFederation

    async def list_for_user(self, user_id: str) -> list[LinkedFederation]:
        query = """
        MATCH (f:LinkedFederation {user_id: $user_id})
        RETURN f {.*} AS federation
        ORDER BY f.linked_at
        """
        results = await self.client.execute(query, {"user_id": user_id})
        return self._to_models([r["federation"] for r in results if r.get("federation")])

    async def is_linked(self, user_id: str, url: str) -> bool:
        query = """
        MATCH (f:LinkedFederation {user_id: $user_id, url: $url})
        RETURN count(f) > 0 AS linked
        """
        result = await self.client.execute_single(query, {"user_id": user_id, "url": url})
        return bool(result.get("linked", False)) if result else False

    async def create(
        self,
        user_id: str,
        name: str,
        url: str,
        token_symbol: str,
        version: str,
    ) -> LinkedFederation | None:
        """
        Store a link unless the user already links ``url``.

        Returns None when a link to ``url`` already exists, including one
        written by a concurrent request. A replay of this same call after it
        committed returns the link it wrote.
        """
        query = """
        MERGE (f:LinkedFederation {user_id: $user_id, url: $url})
        ON CREATE SET
            f.id = $id,
            f.name = $name,
            f.token_symbol = $token_symbol,
            f.version = $version,
            f.linked_at = $now
        RETURN f {.*} AS federation, f.id = $id AS created
        """
        try:
            result = await self.client.execute_single(
                query,
                {
                    "id": self._generate_id(),
                    "user_id": user_id,
                    "name": name,
                    "url": url,
                    "token_symbol": token_symbol,
                    "version": version,
                    "now": self._now().isoformat(),
                },
            )
        except ConstraintError:
            self.logger.info("federation_link_race_lost", user_id=user_id, url=url)
            return None
        if result and result.get("created") is False:
            return None
        federation = self._to_model(result.get("federation") if result else None)
        if federation is None:
            raise RuntimeError(f"Failed to store federation link to {url}")
        return federation

    async def delete_for_user(self, user_id: str, federation_id: str) -> bool:
        query = """
        MATCH (f:LinkedFederation {id: $id, user_id: $user_id})
        DETACH DELETE f
        RETURN count(f) AS deleted
        """
        result = await self.client.execute_single(query, {"id": federation_id, "user_id": user_id})
        deleted = result.get("deleted", 0) if result else 0
        if deleted:
            self.logger.info("federation_unlinked", user_id=user_id, federation_id=federation_id)
        return deleted > 0
