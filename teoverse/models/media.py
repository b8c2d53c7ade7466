"""
Generated Media Models

Inputs and outputs of the image cache (geny), the standalone flag
generator, and generated documentation articles.
"""

from pydantic import ConfigDict, Field

from teoverse.models.base import TeoModel, TimestampMixin


class ImageSize(TeoModel):
    width: int = Field(gt=0)
    height: int = Field(gt=0)


class GenyInput(TeoModel):
    """
    An image request. Identical inputs map to the same cached image;
    a ``salt`` forces a fresh one.
    """

    # The cache key hashes the exact text, surrounding whitespace included
    model_config = ConfigDict(str_strip_whitespace=False)

    prompt: str = Field(min_length=1)
    image_size: ImageSize = Field(alias="imageSize")
    salt: str | None = None


class GenyOutput(TeoModel):
    url: str


class FlagImageRequest(TeoModel):
    prompt: str = Field(min_length=1, max_length=4000)
    salt: str | None = None


class FlagImageOutput(TeoModel):
    data_uri: str


class DocumentationRequest(TeoModel):
    topic: str = Field(min_length=1, max_length=200)
    regenerate: bool = Field(default=False, description="Ignore the cached article")


class DocumentationOutput(TeoModel):
    article: str
    image_url: str


class CachedImage(TeoModel, TimestampMixin):
    """Image cache entry: payload hash -> public URL."""

    hash: str
    url: str


class CachedDocumentation(TeoModel, TimestampMixin):
    hash: str
    topic: str
    version: str
    article: str
    image_url: str
