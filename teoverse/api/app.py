"""
TeoVerse API application.

``create_app`` assembles the service: the middleware stack, JSON error
bodies, the ``/api/v1`` routers, the federation identity document at
``/app.config.json`` and, with local storage, the ``/media`` mount.
The module-level ``app`` is what uvicorn serves.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import sentry_sdk
import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from neo4j.exceptions import ServiceUnavailable, SessionExpired, TransientError
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration
from starlette.exceptions import HTTPException as StarletteHTTPException

from teoverse import __version__
from teoverse.config import Settings, get_federation_identity, get_settings
from teoverse.database.client import Neo4jClient
from teoverse.database.schema import SchemaManager
from teoverse.monitoring import add_metrics_middleware, configure_logging, create_metrics_endpoint
from teoverse.services.image_generation import ImageGenerationError
from teoverse.services.llm import LLMConfigurationError
from teoverse.services.storage import StorageError

if TYPE_CHECKING:
    from sentry_sdk._types import Event as SentryEvent

MEDIA_MOUNT_PATH = "/media"
MAX_BODY_BYTES = 1024 * 1024
SHUTDOWN_TIMEOUT_SECONDS = 30.0

# (module, prefix, tag, description)
ROUTERS: list[tuple[str, str, str, str]] = [
    ("auth", "/api/v1/auth", "auth", "Registration, sign-in and tokens"),
    ("passport", "/api/v1/passport", "passport", "The caller's passport, assets and TEO balance"),
    ("dex", "/api/v1/dex", "dex", "Mock BTC/TEO exchange"),
    ("federations", "/api/v1/federations", "federations", "Links to peer federations"),
    ("public", "/api/v1/public", "public", "Public federation pages and the AI ambassador"),
    ("documentation", "/api/v1/documentation", "documentation", "Generated feature documentation"),
    ("dashboard", "/api/v1/dashboard", "dashboard", "Capital state overview and the federation flag"),
    ("system", "/api/v1/system", "system", "System health"),
]

# Probes hit these constantly; their failures are not worth an event
UNREPORTED_PATHS = ("/health", "/ready")


def _drop_probe_events(event: SentryEvent, hint: dict[str, Any]) -> SentryEvent | None:
    request = event.get("request")
    url = request.get("url", "") if isinstance(request, dict) else ""
    if isinstance(url, str) and any(path in url for path in UNREPORTED_PATHS):
        return None
    return event


def _init_sentry(settings: Settings) -> bool:
    if not settings.sentry_dsn:
        return False
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        integrations=[
            StarletteIntegration(transaction_style="endpoint"),
            FastApiIntegration(transaction_style="endpoint"),
        ],
        traces_sample_rate=settings.sentry_traces_sample_rate,
        environment=settings.app_env,
        release=f"teoverse@{__version__}",
        send_default_pii=False,
        before_send=_drop_probe_events,
    )
    return True


_settings = get_settings()
_sentry_enabled = _init_sentry(_settings)
configure_logging(level=_settings.log_level, json_output=_settings.app_env == "production")

logger = structlog.get_logger(__name__)

if _sentry_enabled:
    logger.info("sentry_initialized", environment=_settings.app_env)
else:
    logger.debug("sentry_not_configured", hint="Set SENTRY_DSN to enable error tracking")


class TeoVerseApp:
    """
    Process state shared with request handlers.

    Only the database client lives here. Provider services (text model,
    images, storage, federation protocol) are module singletons reached
    through their own ``get_*`` functions.
    """

    def __init__(self) -> None:
        self.db_client: Neo4jClient | None = None
        self.services_initialized = False
        self.started_at: datetime | None = None
        self.is_ready = False

    async def initialize(self) -> None:
        logger.info("teoverse_starting")

        # Without the database there is nothing to serve
        client = Neo4jClient()
        try:
            await client.connect()
        except (ServiceUnavailable, SessionExpired, OSError) as e:
            logger.critical("database_connection_failed", error=str(e))
            raise RuntimeError(f"Cannot start: database connection failed ({e})") from e
        self.db_client = client

        try:
            await SchemaManager(client).setup_all()
        except (ServiceUnavailable, SessionExpired, TransientError) as e:
            logger.error("schema_setup_failed", error=str(e))

        # A provider that fails here leaves its routes answering 503
        from teoverse.services.init import init_all_services

        try:
            await init_all_services()
        except (LLMConfigurationError, StorageError, RuntimeError, ValueError, OSError) as e:
            logger.error("services_init_failed", error=str(e))
        else:
            self.services_initialized = True

        identity = get_federation_identity()
        self.started_at = datetime.now(UTC)
        self.is_ready = True
        logger.info(
            "teoverse_started",
            federation=identity.federation_name,
            version=identity.version,
            services=self.services_initialized,
        )

    async def shutdown(self, timeout_seconds: float = SHUTDOWN_TIMEOUT_SECONDS) -> None:
        self.is_ready = False
        from teoverse.services.init import shutdown_all_services

        try:
            await asyncio.wait_for(shutdown_all_services(), timeout=timeout_seconds)
        except TimeoutError:
            logger.warning("services_shutdown_timeout", timeout_seconds=timeout_seconds)

        if self.db_client is not None:
            await self.db_client.close()
            self.db_client = None
        logger.info("teoverse_stopped")

    def get_status(self) -> dict[str, Any]:
        uptime = (datetime.now(UTC) - self.started_at).total_seconds() if self.started_at else 0
        connected = self.db_client is not None and self.db_client.is_connected
        return {
            "status": "ready" if self.is_ready else "starting",
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "uptime_seconds": uptime,
            "database": "connected" if connected else "disconnected",
            "services": "ready" if self.services_initialized else "unavailable",
        }


teoverse_app = TeoVerseApp()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    try:
        await teoverse_app.initialize()
        yield
    finally:
        try:
            await asyncio.wait_for(
                teoverse_app.shutdown(SHUTDOWN_TIMEOUT_SECONDS),
                timeout=SHUTDOWN_TIMEOUT_SECONDS + 5.0,
            )
        except TimeoutError:
            logger.error("teoverse_shutdown_timeout", timeout_seconds=SHUTDOWN_TIMEOUT_SECONDS)


def _error_body(request: Request, error: Any, status_code: int | None = None, **extra: Any) -> dict[str, Any]:
    body: dict[str, Any] = {"error": error}
    if status_code is not None:
        body["status_code"] = status_code
    body["path"] = request.url.path
    body.update(extra)
    return body


def _install_middleware(app: FastAPI, settings: Settings) -> None:
    from teoverse.api.middleware import (
        CorrelationIdMiddleware,
        RequestLoggingMiddleware,
        RequestSizeLimitMiddleware,
        SecurityHeadersMiddleware,
    )

    origins = settings.cors_origins_list
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
            allow_headers=["Authorization", "Content-Type", "X-Correlation-ID"],
        )
    else:
        logger.warning("cors_not_configured")

    # Added innermost first; the size limit ends up outermost
    app.add_middleware(SecurityHeadersMiddleware, enable_hsts=settings.app_env == "production")
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(CorrelationIdMiddleware)
    add_metrics_middleware(app)
    app.add_middleware(RequestSizeLimitMiddleware, max_content_length=MAX_BODY_BYTES)


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def on_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(request, exc.detail, exc.status_code),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def on_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        # Submitted values are left out of the details
        details = [
            {
                "loc": err.get("loc", []),
                "type": err.get("type", "unknown"),
                "msg": err.get("msg", "Validation failed"),
            }
            for err in exc.errors()
        ]
        return JSONResponse(status_code=422, content=_error_body(request, "Validation error", details=details))

    # Neo4j trouble that a retry may fix: (message, Retry-After seconds, log level)
    retryable: dict[type[Exception], tuple[str, int, str]] = {
        ServiceUnavailable: ("Database temporarily unavailable", 5, "error"),
        SessionExpired: ("Database session expired, please retry", 1, "warning"),
        TransientError: ("Database temporarily unavailable, please retry", 2, "warning"),
    }

    async def on_database_error(request: Request, exc: Exception) -> JSONResponse:
        message, retry_after, level = next(retryable[c] for c in type(exc).__mro__ if c in retryable)
        getattr(logger, level)("database_request_failed", path=request.url.path, error=str(exc))
        return JSONResponse(
            status_code=503,
            content=_error_body(request, message, retry_after=retry_after),
            headers={"Retry-After": str(retry_after)},
        )

    for exc_class in retryable:
        app.add_exception_handler(exc_class, on_database_error)

    @app.exception_handler(ImageGenerationError)
    async def on_image_error(request: Request, exc: ImageGenerationError) -> JSONResponse:
        logger.warning("image_generation_failed", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=502, content=_error_body(request, str(exc), 502))

    @app.exception_handler(Exception)
    async def on_unhandled(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled_exception", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=500, content=_error_body(request, "Internal server error"))


def _include_routers(app: FastAPI) -> None:
    from importlib import import_module

    for module_name, prefix, tag, _ in ROUTERS:
        module = import_module(f"teoverse.api.routes.{module_name}")
        app.include_router(module.router, prefix=prefix, tags=[tag])

    from teoverse.api.routes.dashboard import federation_router

    app.include_router(federation_router, prefix="/api/v1/federation", tags=["dashboard"])


def create_app(
    title: str = "TeoVerse",
    description: str = "Passports, assets and federation linking for digital sovereign states",
    version: str = __version__,
    docs_url: str | None = "/docs",
    redoc_url: str | None = "/redoc",
    debug: bool = False,
    lifespan_handler: Any = lifespan,
) -> FastAPI:
    """
    Build the FastAPI application.

    Interactive docs are disabled in production regardless of
    ``docs_url``/``redoc_url``.
    """
    settings = get_settings()
    if settings.app_env == "production":
        docs_url = redoc_url = None

    app = FastAPI(
        title=title,
        description=description,
        version=version,
        docs_url=docs_url,
        redoc_url=redoc_url,
        debug=debug,
        lifespan=lifespan_handler,
        openapi_tags=[{"name": tag, "description": text} for _, _, tag, text in ROUTERS],
    )
    app.state.teoverse = teoverse_app

    _install_middleware(app, settings)
    _install_error_handlers(app)
    _include_routers(app)

    # Peers fetch this during the link handshake
    @app.get("/app.config.json", include_in_schema=False)
    async def federation_config() -> dict[str, str]:
        return get_federation_identity().to_public_dict()

    @app.get("/", include_in_schema=False)
    async def root() -> dict[str, Any]:
        return {
            "name": get_federation_identity().federation_name,
            "version": version,
            "status": teoverse_app.get_status(),
        }

    @app.get("/health", include_in_schema=False)
    async def health() -> dict[str, str]:
        return {"status": "healthy" if teoverse_app.is_ready else "starting"}

    @app.get("/ready", include_in_schema=False)
    async def ready() -> Response:
        if not teoverse_app.is_ready:
            return JSONResponse(status_code=503, content={"status": "not_ready"})
        db = teoverse_app.db_client
        if db is not None and not await db.verify_connection():
            return JSONResponse(
                status_code=503,
                content={"status": "degraded", "reason": "database_unreachable"},
                headers={"Retry-After": "5"},
            )
        return JSONResponse(content={"status": "ready"})

    create_metrics_endpoint(app)

    if settings.storage_backend == "local":
        media_root = Path(settings.storage_local_root)
        media_root.mkdir(parents=True, exist_ok=True)
        app.mount(MEDIA_MOUNT_PATH, StaticFiles(directory=media_root), name="media")

    logger.info("fastapi_app_created", title=title, version=version, docs_url=docs_url)
    return app


app = create_app()


def run_server(
    host: str | None = None,
    port: int | None = None,
    reload: bool = False,
    workers: int | None = None,
) -> None:
    """Serve ``teoverse.api.app:app`` with uvicorn using the configured host, port and workers."""
    import uvicorn

    uvicorn.run(
        "teoverse.api.app:app",
        host=host or _settings.api_host,
        port=port or _settings.api_port,
        reload=reload,
        workers=workers or _settings.api_workers,
        log_level=_settings.log_level.lower(),
    )


if __name__ == "__main__":
    run_server(reload=True)
