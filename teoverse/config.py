"""
TeoVerse Configuration Management

Centralized configuration using Pydantic Settings for type-safe environment
variable loading with validation.

The federation identity (name, URL, token symbol, version) is not an
environment setting: it lives in ``app.config.json`` so the same file can be
served verbatim to peer federations during the linking handshake.
"""

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ═══════════════════════════════════════════════════════════════
    # APPLICATION
    # ═══════════════════════════════════════════════════════════════
    app_name: str = Field(default="teoverse", description="Application name")
    app_env: Literal["development", "staging", "production", "testing"] = Field(
        default="development", description="Environment"
    )
    debug: bool = Field(default=False, description="Debug mode")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )

    # API Server
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, ge=1, le=65535, description="API port")
    api_workers: int = Field(default=1, ge=1, description="Number of workers")

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173,http://localhost:8000",
        description="Comma-separated CORS origins",
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins string into list."""
        origins = [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]
        if self.app_env == "production" and "*" in origins:
            raise ValueError("Wildcard CORS origin not allowed in production")
        return origins

    # ═══════════════════════════════════════════════════════════════
    # NEO4J DATABASE
    # ═══════════════════════════════════════════════════════════════
    neo4j_uri: str = Field(description="Neo4j connection URI")
    neo4j_user: str = Field(default="neo4j", description="Neo4j username")
    neo4j_password: str = Field(description="Neo4j password")
    neo4j_database: str = Field(default="neo4j", description="Neo4j database name")

    # Connection Pool
    neo4j_max_connection_lifetime: int = Field(
        default=3600, description="Max connection lifetime in seconds"
    )
    neo4j_max_connection_pool_size: int = Field(
        default=50, ge=1, description="Max connection pool size"
    )
    neo4j_connection_timeout: int = Field(
        default=30, ge=1, description="Connection timeout in seconds"
    )

    # ═══════════════════════════════════════════════════════════════
    # REDIS (Optional, token blacklist sharing across workers)
    # ═══════════════════════════════════════════════════════════════
    redis_url: str | None = Field(default=None, description="Redis URL")

    # ═══════════════════════════════════════════════════════════════
    # SECURITY
    # ═══════════════════════════════════════════════════════════════
    jwt_secret_key: str = Field(description="JWT secret key")
    jwt_algorithm: str = Field(default="HS256", description="JWT algorithm")
    jwt_issuer: str = Field(default="teoverse", description="JWT issuer claim")
    jwt_audience: str = Field(default="teoverse-api", description="JWT audience claim")
    jwt_access_token_expire_minutes: int = Field(
        default=30, ge=1, le=60, description="Access token expiry (max 60 min)"
    )
    jwt_refresh_token_expire_days: int = Field(
        default=7, ge=1, le=30, description="Refresh token expiry (max 30 days)"
    )
    password_bcrypt_rounds: int = Field(
        default=12, ge=4, le=31, description="Bcrypt rounds"
    )

    # Google Sign-In
    google_client_id: str | None = Field(
        default=None, description="Google OAuth client id (audience of ID tokens)"
    )

    @field_validator("jwt_secret_key")
    @classmethod
    def validate_jwt_secret(cls, v: str) -> str:
        if len(v) < 32:
            raise ValueError("JWT secret key must be at least 32 characters")
        unique_chars = len(set(v))
        if unique_chars < 10:
            raise ValueError("JWT secret key must have at least 10 unique characters for sufficient entropy")
        if v == v[0] * len(v):
            raise ValueError("JWT secret key cannot be a repeated character")
        return v

    # ═══════════════════════════════════════════════════════════════
    # AI/ML CONFIGURATION
    # ═══════════════════════════════════════════════════════════════
    llm_provider: Literal["anthropic", "openai", "ollama", "mock"] = Field(
        default="openai", description="Text model provider"
    )
    llm_api_key: str | None = Field(default=None, description="LLM API key")
    llm_model: str = Field(default="gpt-4o-mini", description="LLM model name")
    llm_max_tokens: int = Field(default=2000, ge=1, description="Max LLM output tokens")
    llm_temperature: float = Field(default=0.4, ge=0.0, le=2.0, description="LLM temperature")

    # Image generation
    image_provider: Literal["openai", "mock"] = Field(
        default="openai", description="Image generation provider"
    )
    image_api_key: str | None = Field(
        default=None, description="Image API key (falls back to LLM_API_KEY)"
    )
    image_model: str = Field(default="dall-e-3", description="Image model name")
    image_timeout_seconds: float = Field(
        default=120.0, ge=1.0, description="Image generation request timeout"
    )

    @field_validator("llm_api_key")
    @classmethod
    def validate_llm_api_key(cls, v: str | None, info) -> str | None:
        """Validate LLM API key format if provided."""
        if v is None:
            return v
        provider = info.data.get("llm_provider", "openai") if info.data else "openai"
        if provider == "openai" and not v.startswith(("sk-", "org-")):
            logger.warning(
                "llm_api_key_format_warning: OpenAI API keys typically start with 'sk-'"
            )
        if provider == "anthropic" and not v.startswith("sk-ant-"):
            logger.warning(
                "llm_api_key_format_warning: Anthropic API keys typically start with 'sk-ant-'"
            )
        return v

    # ═══════════════════════════════════════════════════════════════
    # OBJECT STORAGE
    # ═══════════════════════════════════════════════════════════════
    storage_backend: Literal["local", "s3"] = Field(
        default="local", description="Object storage backend"
    )
    storage_local_root: str = Field(
        default="./media", description="Root directory for the local backend"
    )
    storage_public_base_url: str = Field(
        default="http://localhost:8000/media",
        description="Public base URL for locally stored objects",
    )
    s3_bucket: str | None = Field(default=None, description="S3 bucket name")
    s3_region: str = Field(default="us-east-1", description="S3 region")
    s3_endpoint_url: str | None = Field(
        default=None, description="Custom S3 endpoint (MinIO, R2, ...)"
    )
    s3_public_base_url: str | None = Field(
        default=None, description="Public base URL for S3 objects (CDN)"
    )

    # ═══════════════════════════════════════════════════════════════
    # FEDERATION
    # ═══════════════════════════════════════════════════════════════
    federation_config_path: str = Field(
        default="app.config.json", description="Path to the federation identity file"
    )
    federation_fetch_timeout_seconds: float = Field(
        default=10.0, ge=1.0, description="Timeout when fetching a peer's config"
    )
    federation_allow_private_peers: bool = Field(
        default=False, description="Allow linking to private/loopback addresses"
    )

    # ═══════════════════════════════════════════════════════════════
    # MONITORING
    # ═══════════════════════════════════════════════════════════════
    sentry_dsn: str | None = Field(default=None, description="Sentry DSN")
    sentry_traces_sample_rate: float = Field(
        default=0.1, ge=0.0, le=1.0, description="Sentry traces sample rate"
    )


class FederationIdentity(BaseModel):
    """Public identity of this federation, as published in app.config.json."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    federation_name: str = Field(alias="federationName", min_length=1)
    federation_url: str = Field(alias="federationURL", min_length=1)
    token_symbol: str = Field(alias="tokenSymbol", min_length=1)
    token_name: str = Field(alias="tokenName", min_length=1)
    version: str = Field(min_length=1)

    @property
    def major_version(self) -> str:
        return self.version.split(".")[0]

    def to_public_dict(self) -> dict[str, str]:
        """The document peers fetch from ``/app.config.json``."""
        return self.model_dump(by_alias=True)


def load_federation_identity(path: str | Path) -> FederationIdentity:
    """Read and validate a federation identity file."""
    config_path = Path(path)
    with config_path.open(encoding="utf-8") as fh:
        data = json.load(fh)
    identity = FederationIdentity.model_validate(data)
    logger.debug("Loaded federation identity %s from %s", identity.federation_name, config_path)
    return identity


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


@lru_cache
def get_federation_identity() -> FederationIdentity:
    """Get the cached federation identity for this instance."""
    return load_federation_identity(get_settings().federation_config_path)


# Singleton settings instance
settings = get_settings()
