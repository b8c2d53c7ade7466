"""
Generated Media Repositories

Content-addressed caches for generated images and documentation articles,
plus the small key/value store for federation-wide settings such as the
current flag URL.
"""

from typing import Any

from teoverse.models.media import CachedDocumentation, CachedImage, DocumentationOutput
from teoverse.repositories.base import BaseRepository

FEDERATION_FLAG_KEY = "federation/flagUrl"


class GeneratedImageRepository(BaseRepository[CachedImage]):
    """``(:GeneratedImage {hash, url, created_at})``"""

    @property
    def node_label(self) -> str:
        return "GeneratedImage"

    @property
    def model_class(self) -> type[CachedImage]:
        return CachedImage

    async def get_cached_url(self, payload_hash: str) -> str | None:
        query = """
        MATCH (g:GeneratedImage {hash: $hash})
        RETURN g.url AS url
        """
        result = await self.client.execute_single(query, {"hash": payload_hash})
        return result.get("url") if result else None

    async def cache(self, payload_hash: str, url: str) -> None:
        query = """
        MERGE (g:GeneratedImage {hash: $hash})
        SET g.url = $url, g.created_at = $now
        """
        await self.client.execute_write(
            query,
            {"hash": payload_hash, "url": url, "now": self._now().isoformat()},
        )


class DocumentationRepository(BaseRepository[CachedDocumentation]):
    """``(:DocumentationArticle)`` keyed by the SHA-256 of its topic."""

    @property
    def node_label(self) -> str:
        return "DocumentationArticle"

    @property
    def model_class(self) -> type[CachedDocumentation]:
        return CachedDocumentation

    async def get_cached(self, topic_hash: str) -> DocumentationOutput | None:
        query = """
        MATCH (d:DocumentationArticle {hash: $hash})
        RETURN d.article AS article, d.image_url AS image_url
        """
        result = await self.client.execute_single(query, {"hash": topic_hash})
        if not result or result.get("article") is None:
            return None
        return DocumentationOutput(article=result["article"], image_url=result["image_url"] or "")

    async def cache(
        self,
        topic_hash: str,
        data: DocumentationOutput,
        topic: str,
        version: str,
    ) -> None:
        query = """
        MERGE (d:DocumentationArticle {hash: $hash})
        SET d.topic = $topic,
            d.version = $version,
            d.article = $article,
            d.image_url = $image_url,
            d.created_at = $now
        """
        await self.client.execute_write(
            query,
            {
                "hash": topic_hash,
                "topic": topic,
                "version": version,
                "article": data.article,
                "image_url": data.image_url,
                "now": self._now().isoformat(),
            },
        )

    async def list_for_version(self, version: str) -> list[CachedDocumentation]:
        query = """
        MATCH (d:DocumentationArticle {version: $version})
        WHERE d.topic IS NOT NULL
        RETURN d {.*} AS doc
        """
        results = await self.client.execute(query, {"version": version})
        return self._to_models([r["doc"] for r in results if r.get("doc")])


class FederationSettingRepository:
    """Federation-wide key/value settings (``(:FederationSetting {key, value})``)."""

    def __init__(self, client: Any):
        self.client = client

    async def get(self, key: str) -> str | None:
        result = await self.client.execute_single(
            "MATCH (s:FederationSetting {key: $key}) RETURN s.value AS value",
            {"key": key},
        )
        return result.get("value") if result else None

    async def set(self, key: str, value: str) -> None:
        await self.client.execute_write(
            "MERGE (s:FederationSetting {key: $key}) SET s.value = $value",
            {"key": key, "value": value},
        )
