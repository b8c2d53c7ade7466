"""
TeoVerse - Image Generation Service

Turns a text prompt into an image, returned as a ``data:`` URI.

Supports providers:
- OpenAI Images API (DALL-E)
- A mock provider that renders a deterministic solid-colour PNG
"""

from __future__ import annotations

import base64
import hashlib
import struct
import time
import zlib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

import httpx
import structlog

from teoverse.config import get_settings
from teoverse.monitoring.metrics import image_generation_duration_seconds
from teoverse.services.llm import LLMConfigurationError

logger = structlog.get_logger(__name__)


class ImageProvider(str, Enum):
    OPENAI = "openai"
    MOCK = "mock"


class ImageGenerationError(Exception):
    """The image model failed or returned something unusable."""


@dataclass
class ImageGenerationConfig:
    provider: ImageProvider = ImageProvider.OPENAI
    model: str = "dall-e-3"
    api_key: str | None = None
    api_base: str | None = None
    timeout_seconds: float = 120.0

    @classmethod
    def from_settings(cls) -> ImageGenerationConfig:
        settings = get_settings()
        return cls(
            provider=ImageProvider(settings.image_provider),
            model=settings.image_model,
            api_key=settings.image_api_key or settings.llm_api_key,
            timeout_seconds=settings.image_timeout_seconds,
        )


class ImageProviderBase(ABC):

    @abstractmethod
    async def generate(self, prompt: str, width: int, height: int) -> str:
        """Return the generated image as a data URI."""

    async def close(self) -> None:
        return None


def closest_openai_size(width: int, height: int) -> str:
    """DALL-E 3 only renders square, landscape or portrait 1024-based sizes."""
    ratio = width / height
    if ratio > 1.25:
        return "1792x1024"
    if ratio < 0.8:
        return "1024x1792"
    return "1024x1024"


class OpenAIImageProvider(ImageProviderBase):
    """OpenAI ``/images/generations`` with base64 output."""

    def __init__(
        self,
        api_key: str,
        model: str = "dall-e-3",
        api_base: str | None = None,
        timeout: float = 120.0,
    ):
        self._api_key = api_key
        self._model = model
        self._api_base = api_base or "https://api.openai.com/v1"
        self._timeout = timeout
        self._http_client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    async def close(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def generate(self, prompt: str, width: int, height: int) -> str:
        payload = {
            "model": self._model,
            "prompt": prompt,
            "n": 1,
            "size": closest_openai_size(width, height),
            "response_format": "b64_json",
        }
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        try:
            response = await self._get_client().post(
                f"{self._api_base}/images/generations", headers=headers, json=payload
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("image_generation_request_failed", error=str(e))
            raise ImageGenerationError(f"Image generation request failed: {e}") from e

        items = response.json().get("data") or []
        b64 = items[0].get("b64_json") if items else None
        if not b64:
            return ""
        return f"data:image/png;base64,{b64}"


def _png_chunk(tag: bytes, data: bytes) -> bytes:
    return (
        struct.pack(">I", len(data))
        + tag
        + data
        + struct.pack(">I", zlib.crc32(tag + data) & 0xFFFFFFFF)
    )


def solid_png(width: int, height: int, rgb: tuple[int, int, int]) -> bytes:
    """Encode a single-colour RGB PNG."""
    row = b"\x00" + bytes(rgb) * width
    raw = row * height
    header = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    return (
        b"\x89PNG\r\n\x1a\n"
        + _png_chunk(b"IHDR", header)
        + _png_chunk(b"IDAT", zlib.compress(raw, 9))
        + _png_chunk(b"IEND", b"")
    )


class MockImageProvider(ImageProviderBase):
    """
    Deterministic placeholder images: the colour comes from the prompt hash.

    NOT FOR PRODUCTION USE.
    """

    MAX_SIDE = 256

    def __init__(self) -> None:
        logger.warning("mock_image_provider_initialized")

    async def generate(self, prompt: str, width: int, height: int) -> str:
        digest = hashlib.sha256(prompt.encode("utf-8")).digest()
        png = solid_png(
            min(width, self.MAX_SIDE),
            min(height, self.MAX_SIDE),
            (digest[0], digest[1], digest[2]),
        )
        return "data:image/png;base64," + base64.b64encode(png).decode("ascii")


class ImageGenerationService:

    def __init__(
        self,
        config: ImageGenerationConfig | None = None,
        provider: ImageProviderBase | None = None,
    ):
        self._config = config or ImageGenerationConfig.from_settings()
        self._provider = provider or self._create_provider()
        logger.info(
            "image_generation_service_initialized",
            provider=self._config.provider.value,
            model=self._config.model,
        )

    @property
    def provider_name(self) -> str:
        return self._config.provider.value

    def _create_provider(self) -> ImageProviderBase:
        if self._config.provider == ImageProvider.OPENAI:
            if not self._config.api_key:
                raise LLMConfigurationError("API key required for OpenAI image provider")
            return OpenAIImageProvider(
                api_key=self._config.api_key,
                model=self._config.model,
                api_base=self._config.api_base,
                timeout=self._config.timeout_seconds,
            )
        if self._config.provider == ImageProvider.MOCK:
            return MockImageProvider()
        raise LLMConfigurationError(f"Unsupported image provider: {self._config.provider}")

    async def generate(self, prompt: str, width: int, height: int) -> str:
        """
        Generate an image for ``prompt``.

        Returns:
            A ``data:`` URI, or an empty string when the model returned nothing
        """
        start = time.monotonic()
        try:
            return await self._provider.generate(prompt, width, height)
        finally:
            image_generation_duration_seconds.observe(
                time.monotonic() - start, provider=self.provider_name
            )

    async def close(self) -> None:
        await self._provider.close()


_image_service: ImageGenerationService | None = None


def get_image_service() -> ImageGenerationService:
    global _image_service
    if _image_service is None:
        _image_service = ImageGenerationService()
    return _image_service


def init_image_service(config: ImageGenerationConfig | None = None) -> ImageGenerationService:
    global _image_service
    _image_service = ImageGenerationService(config)
    return _image_service


async def shutdown_image_service() -> None:
    global _image_service
    if _image_service is not None:
        await _image_service.close()
        _image_service = None
