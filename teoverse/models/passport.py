"""
Passport Models

A passport is a user's identity inside the federation. It records the
physical assets and intellectual-property (IP) tokens the user has
registered and their balance of the federation currency.
"""

import math
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import EmailStr, Field, field_validator

from teoverse.models.base import TeoModel, convert_neo4j_datetime, utc_now


class AssetKind(str, Enum):
    """Stored on every ``(:Asset)`` node to tell the two asset lists apart."""

    PHYSICAL = "physical"
    IP = "ip"


class PhysicalAsset(TeoModel):
    """A physical possession registered on a passport."""

    id: str
    type: str = Field(default="", description="Free-form category, e.g. 'Real Estate'")
    name: str
    value: str = Field(description="Free-text USD value, e.g. '1,500 USD'")

    @field_validator("type", mode="before")
    @classmethod
    def default_type(cls, v: Any) -> str:
        return v or ""


class IpToken(TeoModel):
    """A tokenized piece of intellectual property."""

    id: str
    name: str
    value: str = Field(description="Free-text USD value")


class Passport(TeoModel):
    """A user's federation passport. ``id`` equals the owner's user id."""

    id: str
    federation_url: str
    email: str
    created_at: datetime = Field(default_factory=utc_now)
    physical_assets: list[PhysicalAsset] = Field(default_factory=list)
    ip_tokens: list[IpToken] = Field(default_factory=list)
    teo_balance: float = Field(default=0)
    version: int = Field(default=0, exclude=True, description="Optimistic-lock counter")

    @field_validator("created_at", mode="before")
    @classmethod
    def convert_created_at(cls, v: Any) -> datetime:
        return convert_neo4j_datetime(v)

    @field_validator("physical_assets", "ip_tokens", mode="before")
    @classmethod
    def default_list(cls, v: Any) -> list[Any]:
        return v or []

    @field_validator("teo_balance", "version", mode="before")
    @classmethod
    def default_zero(cls, v: Any) -> Any:
        return v or 0

    @property
    def total_assets(self) -> int:
        return len(self.physical_assets) + len(self.ip_tokens)


# ═══════════════════════════════════════════════════════════════
# REQUEST MODELS
# ═══════════════════════════════════════════════════════════════


class PassportCreate(TeoModel):
    """Mint a passport. Defaults to this federation's own URL."""

    federation_url: str | None = Field(default=None, max_length=500)


class PassportUpdate(TeoModel):
    email: EmailStr | None = None
    federation_url: str | None = Field(default=None, min_length=1, max_length=500)


class PhysicalAssetCreate(TeoModel):
    name: str = Field(min_length=2, max_length=200, description="Name must be at least 2 characters.")
    type: str = Field(default="", max_length=100)
    value: str = Field(min_length=1, max_length=100, description="Value is required.")


class IpTokenCreate(TeoModel):
    name: str = Field(min_length=2, max_length=200)
    value: str = Field(min_length=1, max_length=100)


class MintTeoRequest(TeoModel):
    amount: float = Field(gt=0, description="Amount must be a positive number.")

    @field_validator("amount")
    @classmethod
    def finite_amount(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("Amount must be a positive number.")
        return v


def format_amount(amount: float) -> str:
    """Thousands-separated amount, e.g. ``1000`` -> ``1,000``, ``2.5`` -> ``2.5``."""
    if float(amount).is_integer():
        return f"{int(amount):,}"
    return f"{amount:,.3f}".rstrip("0").rstrip(".")
