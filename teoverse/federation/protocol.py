"""
Federation Peer Protocol

Outbound side of the federation handshake: validates a peer's base URL
against SSRF targets and fetches its public ``app.config.json``.
"""

import asyncio
import ipaddress
import socket
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse

import httpx
import structlog

from teoverse.config import get_settings

logger = structlog.get_logger(__name__)

PEER_CONFIG_PATH = "/app.config.json"
MAX_PEER_CONFIG_BYTES = 64 * 1024

BLOCKED_HOSTNAMES = frozenset({
    "localhost",
    "127.0.0.1",
    "0.0.0.0",
    "::1",
    "[::1]",
    "metadata.google.internal",
    "169.254.169.254",
    "metadata.aws",
})


class SSRFError(Exception):
    """URL targets a blocked or private resource."""


class PeerFetchError(Exception):
    """The peer's config could not be retrieved or parsed."""


@dataclass
class ValidatedURL:
    url: str
    hostname: str
    port: int
    scheme: str
    resolved_ips: list[str]


def validate_url_for_ssrf(url: str, allow_private: bool = False) -> ValidatedURL:
    """
    Validate a URL before the server fetches it.

    Args:
        url: The URL to validate
        allow_private: Permit private/loopback addresses (development only)

    Raises:
        SSRFError: If the URL is malformed or targets a blocked resource
    """
    parsed = urlparse(url)

    settings = get_settings()
    if settings.app_env == "production" and parsed.scheme != "https":
        raise SSRFError("HTTPS required for federation in production")

    if parsed.scheme not in ("http", "https"):
        raise SSRFError(f"Invalid URL scheme: {parsed.scheme}")

    hostname = parsed.hostname
    if not hostname:
        raise SSRFError("URL missing hostname")

    try:
        port = parsed.port or (443 if parsed.scheme == "https" else 80)
    except ValueError as e:
        raise SSRFError(f"Invalid port in URL: {e}") from e

    if not allow_private and hostname.lower() in BLOCKED_HOSTNAMES:
        raise SSRFError(f"Blocked hostname: {hostname}")

    try:
        addr_info = socket.getaddrinfo(hostname, port, proto=socket.IPPROTO_TCP)
    except socket.gaierror as e:
        raise SSRFError(f"DNS resolution failed for {hostname}: {e}") from e
    except OSError as e:
        raise SSRFError(f"Network error resolving {hostname}: {e}") from e

    resolved_ips = sorted({str(info[4][0]) for info in addr_info})

    if not allow_private:
        for ip_str in resolved_ips:
            try:
                ip = ipaddress.ip_address(ip_str)
            except ValueError as exc:
                raise SSRFError(f"Invalid IP address resolved: {ip_str}") from exc
            if ip.is_private:
                raise SSRFError(f"Private IP address blocked: {ip_str}")
            if ip.is_loopback:
                raise SSRFError(f"Loopback address blocked: {ip_str}")
            if ip.is_link_local:
                raise SSRFError(f"Link-local address blocked: {ip_str}")
            if ip.is_reserved:
                raise SSRFError(f"Reserved address blocked: {ip_str}")
            if ip.is_multicast:
                raise SSRFError(f"Multicast address blocked: {ip_str}")

    return ValidatedURL(
        url=url,
        hostname=hostname,
        port=port,
        scheme=parsed.scheme,
        resolved_ips=resolved_ips,
    )


class FederationProtocol:
    """HTTP client for talking to peer federations."""

    def __init__(
        self,
        timeout: float | None = None,
        allow_private: bool | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        settings = get_settings()
        self.timeout = timeout or settings.federation_fetch_timeout_seconds
        if allow_private is None:
            allow_private = settings.federation_allow_private_peers or settings.app_env != "production"
        self.allow_private = allow_private
        self._http_client = http_client
        self._owns_client = http_client is None

    async def initialize(self) -> None:
        if self._http_client is None:
            # Redirects would bypass URL validation
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=False,
                headers={"Accept": "application/json"},
            )
            self._owns_client = True
        logger.info("federation_protocol_initialized", allow_private=self.allow_private)

    async def shutdown(self) -> None:
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
        self._http_client = None

    async def fetch_peer_config(self, base_url: str) -> dict[str, Any]:
        """
        ``GET {base_url}/app.config.json`` and return the decoded object.

        Raises:
            PeerFetchError: Blocked URL, transport error, non-2xx status or
                a body that is not a JSON object
        """
        if self._http_client is None:
            raise RuntimeError("Protocol not initialized")

        config_url = f"{base_url}{PEER_CONFIG_PATH}"
        try:
            await asyncio.to_thread(validate_url_for_ssrf, config_url, self.allow_private)
        except SSRFError as e:
            logger.warning("peer_url_blocked", url=base_url, reason=str(e))
            raise PeerFetchError(str(e)) from e

        try:
            response = await self._http_client.get(config_url, timeout=self.timeout)
        except httpx.HTTPError as e:
            logger.warning("peer_config_request_failed", url=base_url, error=str(e))
            raise PeerFetchError(f"Request to {config_url} failed") from e

        if not response.is_success:
            logger.warning("peer_config_bad_status", url=base_url, status_code=response.status_code)
            raise PeerFetchError(f"Peer returned HTTP {response.status_code}")

        if len(response.content) > MAX_PEER_CONFIG_BYTES:
            raise PeerFetchError("Peer config too large")

        try:
            data = response.json()
        except ValueError as e:
            raise PeerFetchError("Peer config is not valid JSON") from e

        if not isinstance(data, dict):
            raise PeerFetchError("Peer config is not a JSON object")
        return data


_federation_protocol: FederationProtocol | None = None


async def init_federation_protocol() -> FederationProtocol:
    global _federation_protocol
    if _federation_protocol is None:
        _federation_protocol = FederationProtocol()
        await _federation_protocol.initialize()
    return _federation_protocol


def get_federation_protocol() -> FederationProtocol:
    if _federation_protocol is None:
        raise RuntimeError("Federation protocol not initialized")
    return _federation_protocol


async def shutdown_federation_protocol() -> None:
    global _federation_protocol
    if _federation_protocol is not None:
        await _federation_protocol.shutdown()
        _federation_protocol = None
