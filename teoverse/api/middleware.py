"""
TeoVerse - API Middleware

Outermost first, as installed by ``create_app``:

- ``RequestSizeLimitMiddleware``: 413 before the body is read
- ``CorrelationIdMiddleware``: ``X-Correlation-ID`` in, bound to the log context, echoed out
- ``RequestLoggingMiddleware``: one start and one completion entry per API call
- ``SecurityHeadersMiddleware``: deny-all CSP for JSON, image-only CSP for ``/media``
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from teoverse.monitoring.logging import bind_context, unbind_context

if TYPE_CHECKING:
    from starlette.datastructures import QueryParams

logger = structlog.get_logger(__name__)

CallNext = Callable[[Request], Awaitable[Response]]

SENSITIVE_PARAM_KEYS = ("token", "key", "password", "secret", "auth", "credential", "session", "jwt")

MAX_LOGGED_PARAM_LENGTH = 100


def sanitize_query_params(query_params: QueryParams | None) -> dict[str, str] | None:
    """Query params fit for a log line: secrets masked, long values cut."""
    if not query_params:
        return None

    sanitized: dict[str, str] = {}
    for key, value in query_params.items():
        if any(s in key.lower() for s in SENSITIVE_PARAM_KEYS):
            sanitized[key] = "[REDACTED]"
        elif len(value) > MAX_LOGGED_PARAM_LENGTH:
            sanitized[key] = value[:MAX_LOGGED_PARAM_LENGTH] + "...[truncated]"
        else:
            sanitized[key] = value
    return sanitized


def client_ip(request: Request) -> str:
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    HEADER_NAME = "X-Correlation-ID"

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        correlation_id = request.headers.get(self.HEADER_NAME) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        bind_context(correlation_id=correlation_id)
        try:
            response = await call_next(request)
        finally:
            unbind_context("correlation_id")

        response.headers[self.HEADER_NAME] = correlation_id
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Log API calls with their duration and add ``X-Response-Time``.

    Probes, the metrics scrape and generated images are not logged.
    """

    SKIP_PATHS = frozenset({"/health", "/ready", "/metrics", "/app.config.json", "/favicon.ico"})
    SKIP_PREFIXES = ("/media/",)

    def _skipped(self, path: str) -> bool:
        return path in self.SKIP_PATHS or path.startswith(self.SKIP_PREFIXES)

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        path = request.url.path
        if self._skipped(path):
            return await call_next(request)

        started = time.perf_counter()
        logger.info(
            "request_started",
            method=request.method,
            path=path,
            query=sanitize_query_params(request.query_params),
            client_ip=client_ip(request),
        )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(
                "request_failed",
                method=request.method,
                path=path,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
                error=str(e),
            )
            raise

        duration_ms = (time.perf_counter() - started) * 1000
        status_code = response.status_code
        log = logger.info if status_code < 400 else logger.warning if status_code < 500 else logger.error
        log(
            "request_completed",
            method=request.method,
            path=path,
            status_code=status_code,
            duration_ms=round(duration_ms, 2),
        )

        response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Hardening headers on every response.

    Browsers embed generated flags and documentation headers straight from
    ``/media``, so those responses allow same-origin images.
    """

    API_CSP = "default-src 'none'; frame-ancestors 'none'; base-uri 'none'; form-action 'none'"
    MEDIA_CSP = "default-src 'none'; img-src 'self'; frame-ancestors 'none'"

    STATIC_HEADERS = {
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "Referrer-Policy": "strict-origin-when-cross-origin",
        "Permissions-Policy": "camera=(), geolocation=(), microphone=(), payment=(), usb=()",
    }

    def __init__(self, app: Any, enable_hsts: bool = False) -> None:
        super().__init__(app)
        self.enable_hsts = enable_hsts

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        response = await call_next(request)

        response.headers.update(self.STATIC_HEADERS)
        is_media = request.url.path.startswith("/media/")
        response.headers["Content-Security-Policy"] = self.MEDIA_CSP if is_media else self.API_CSP
        if self.enable_hsts:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject bodies whose declared ``Content-Length`` exceeds ``max_content_length`` bytes."""

    def __init__(self, app: Any, max_content_length: int = 1024 * 1024) -> None:
        super().__init__(app)
        self.max_content_length = max_content_length

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        declared = request.headers.get("Content-Length", "")
        if declared.isdigit() and int(declared) > self.max_content_length:
            logger.warning("request_too_large", path=request.url.path, content_length=int(declared))
            return JSONResponse(
                status_code=413,
                content={"error": "Request entity too large", "max_size_bytes": self.max_content_length},
            )
        return await call_next(request)
