"""
TeoVerse - Federation Flag

The federation's flag is an image generated from a digest of the capital
state's passport. Because it goes through the geny cache, an unchanged
passport always yields the same flag.
"""

import json
from typing import Any

import structlog

from teoverse.config import FederationIdentity, get_federation_identity
from teoverse.models.media import FlagImageOutput, GenyInput, ImageSize
from teoverse.models.passport import Passport
from teoverse.repositories.media_repository import FEDERATION_FLAG_KEY, FederationSettingRepository
from teoverse.services.geny import GenyService, decode_data_uri
from teoverse.services.image_generation import ImageGenerationService

logger = structlog.get_logger(__name__)

FLAG_SIZE = ImageSize(width=400, height=400)

FLAG_PROMPT_TEMPLATE = (
    "Generate a futuristic, cyberpunk-style flag for the {federation_name} federation. "
    "The flag's design is derived from the Capital State's passport, representing the core "
    "identity of the federation. The identity data used to generate the flag is: {digest}. "
    "The design should be intricate and unique, incorporating the app's theme colors: deep "
    "purple (#673AB7) and teal (#009688) as glowing elements against a dark background. "
    "It should look like a national flag for a digital sovereign state."
)

FLAG_VARIATION_TEMPLATE = "{prompt}\n\nVariation seed: {salt}"


def _json_number(value: float) -> Any:
    return int(value) if float(value).is_integer() else value


def passport_digest(passport: Passport) -> str:
    """Compact JSON identity of a passport, assets sorted by id."""
    data = {
        "id": passport.id,
        "email": passport.email,
        "teoBalance": _json_number(passport.teo_balance),
        "physicalAssets": [
            {"id": a.id, "name": a.name, "type": a.type, "value": a.value}
            for a in sorted(passport.physical_assets, key=lambda a: a.id)
        ],
        "ipTokens": [
            {"id": t.id, "name": t.name, "value": t.value}
            for t in sorted(passport.ip_tokens, key=lambda t: t.id)
        ],
    }
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


class FlagService:

    def __init__(
        self,
        geny: GenyService,
        image_service: ImageGenerationService,
        settings_repo: FederationSettingRepository,
        identity: FederationIdentity | None = None,
    ):
        self.geny = geny
        self.image_service = image_service
        self.settings_repo = settings_repo
        self.identity = identity or get_federation_identity()

    def flag_prompt(self, passport: Passport) -> str:
        return FLAG_PROMPT_TEMPLATE.format(
            federation_name=self.identity.federation_name,
            digest=passport_digest(passport),
        )

    async def generate_federation_flag(self, passport: Passport) -> str:
        """Generate (or reuse) the flag for ``passport`` and publish its URL."""
        result = await self.geny.geny(GenyInput(prompt=self.flag_prompt(passport), image_size=FLAG_SIZE))
        await self.settings_repo.set(FEDERATION_FLAG_KEY, result.url)
        logger.info("federation_flag_updated", passport_id=passport.id)
        return result.url

    async def get_federation_flag_url(self) -> str | None:
        return await self.settings_repo.get(FEDERATION_FLAG_KEY)

    async def generate_flag_image(self, prompt: str, salt: str | None = None) -> FlagImageOutput:
        """
        Uncached flag generation returning the image as a data URI.

        A ``salt`` is appended to the prompt as a variation seed, so
        regenerating with a new salt asks the model for a different image.
        """
        logger.info("flag_image_generation", salted=salt is not None)
        if salt:
            prompt = FLAG_VARIATION_TEMPLATE.format(prompt=prompt, salt=salt)
        data_uri = await self.image_service.generate(prompt, FLAG_SIZE.width, FLAG_SIZE.height)
        # Same validity rules as cached images
        decode_data_uri(data_uri)
        return FlagImageOutput(data_uri=data_uri)
