"""
TeoVerse - Geny Image Cache

Generated images are keyed by the SHA-256 of their request: asking twice
for the same prompt, size and salt returns the stored image instead of
calling the image model again.
"""

import base64
import binascii
import hashlib
import json

import structlog

from teoverse.models.media import GenyInput, GenyOutput
from teoverse.monitoring.logging import log_duration
from teoverse.monitoring.metrics import geny_requests_total
from teoverse.repositories.media_repository import GeneratedImageRepository
from teoverse.services.image_generation import ImageGenerationError, ImageGenerationService
from teoverse.services.storage import ObjectStore

logger = structlog.get_logger(__name__)

IMAGE_PREFIX = "generated_images"
IMAGE_CONTENT_TYPE = "image/png"


def canonical_payload(data: GenyInput) -> str:
    """Compact JSON of the request with a fixed key order; ``salt`` only when set."""
    payload: dict[str, object] = {
        "prompt": data.prompt,
        "imageSize": {"width": data.image_size.width, "height": data.image_size.height},
    }
    if data.salt is not None:
        payload["salt"] = data.salt
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def payload_hash(data: GenyInput) -> str:
    return hashlib.sha256(canonical_payload(data).encode("utf-8")).hexdigest()


def decode_data_uri(data_uri: str) -> bytes:
    """
    Bytes of a base64 ``data:`` URI.

    Raises:
        ImageGenerationError: For an empty URI, a URI without a comma, or a
            payload that is not base64
    """
    if not data_uri:
        raise ImageGenerationError("Image generation failed to return a valid media object.")
    comma = data_uri.find(",")
    if comma == -1:
        raise ImageGenerationError("Invalid data URI from image generation model.")
    try:
        return base64.b64decode(data_uri[comma + 1:], validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageGenerationError("Invalid data URI from image generation model.") from e


class GenyService:

    def __init__(
        self,
        image_repo: GeneratedImageRepository,
        image_service: ImageGenerationService,
        object_store: ObjectStore,
    ):
        self.image_repo = image_repo
        self.image_service = image_service
        self.object_store = object_store

    async def geny(self, data: GenyInput) -> GenyOutput:
        """
        Return the URL of the image for ``data``, generating it on a cache miss.

        Raises:
            ImageGenerationError: The model returned no usable image
            StorageError: Upload failed
        """
        key = payload_hash(data)

        cached_url = await self.image_repo.get_cached_url(key)
        if cached_url:
            geny_requests_total.inc(result="hit")
            logger.info("geny_cache_hit", hash=key)
            return GenyOutput(url=cached_url)

        geny_requests_total.inc(result="miss")
        logger.info("geny_cache_miss", hash=key)

        with log_duration(logger, "geny_generation", hash=key):
            data_uri = await self.image_service.generate(
                data.prompt, data.image_size.width, data.image_size.height
            )
        image_bytes = decode_data_uri(data_uri)

        path = f"{IMAGE_PREFIX}/{key}.png"
        await self.object_store.save(path, image_bytes, IMAGE_CONTENT_TYPE)
        await self.object_store.make_public(path)
        url = self.object_store.public_url(path)

        await self.image_repo.cache(key, url)
        logger.info("geny_image_stored", hash=key, size=len(image_bytes))
        return GenyOutput(url=url)
