"""
TeoVerse - Service Initialization

Initializes the external-facing services from settings during application
startup and releases them on shutdown.
"""

from __future__ import annotations

import structlog

from teoverse.config import get_settings
from teoverse.federation.protocol import init_federation_protocol, shutdown_federation_protocol
from teoverse.security.tokens import TokenBlacklist
from teoverse.services.image_generation import (
    ImageGenerationConfig,
    init_image_service,
    shutdown_image_service,
)
from teoverse.services.llm import LLMConfig, init_llm_service, shutdown_llm_service
from teoverse.services.storage import init_object_store, shutdown_object_store

logger = structlog.get_logger(__name__)


async def init_all_services() -> None:
    """Initialize all services based on configuration."""
    settings = get_settings()
    logger.info("initializing_services")

    init_llm_service(LLMConfig.from_settings())
    logger.info("llm_service_ready", provider=settings.llm_provider, model=settings.llm_model)

    init_image_service(ImageGenerationConfig.from_settings())
    logger.info("image_service_ready", provider=settings.image_provider, model=settings.image_model)

    init_object_store()
    await init_federation_protocol()
    await TokenBlacklist.initialize()

    logger.info("all_services_initialized")


async def shutdown_all_services() -> None:
    """Shut down services in reverse order of initialization."""
    logger.info("shutting_down_services")

    await TokenBlacklist.close()
    await shutdown_federation_protocol()
    await shutdown_object_store()
    await shutdown_image_service()
    await shutdown_llm_service()

    logger.info("all_services_shutdown")
