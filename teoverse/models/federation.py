"""
Federation Link Models

Records of peer federations a user has linked to, and the public data a
federation exposes to visitors.
"""

from datetime import datetime
from typing import Any
from urllib.parse import urlparse

from pydantic import Field, field_validator

from teoverse.models.base import TeoModel, convert_neo4j_datetime, utc_now
from teoverse.models.passport import IpToken


class LinkedFederation(TeoModel):
    """A peer federation linked from a user's passport."""

    id: str
    name: str
    url: str
    token_symbol: str
    version: str
    linked_at: datetime = Field(default_factory=utc_now)

    @field_validator("linked_at", mode="before")
    @classmethod
    def convert_linked_at(cls, v: Any) -> datetime:
        return convert_neo4j_datetime(v)


class LinkFederationRequest(TeoModel):
    url: str = Field(min_length=1, max_length=2048, description="Base URL of the peer federation")

    @field_validator("url")
    @classmethod
    def validate_http_url(cls, v: str) -> str:
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("Please enter a valid URL.")
        return v


class PeerFederationConfig(TeoModel):
    """
    The subset of a peer's ``app.config.json`` the link handshake relies on.

    Built only after the presence checks pass, so every field is required.
    """

    federation_name: str = Field(alias="federationName")
    token_symbol: str = Field(alias="tokenSymbol")
    version: str

    @property
    def major_version(self) -> str:
        return self.version.split(".")[0]


class PublicFederationData(TeoModel):
    """What visitors (and the AI ambassador) may see about a federation."""

    federation_name: str
    token_symbol: str
    ip_tokens: list[IpToken] = Field(default_factory=list)
