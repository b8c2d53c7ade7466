"""
Federation Protocol Tests for TeoVerse

Tests for peer URL validation and fetching a peer's app.config.json.
"""

import socket
from unittest.mock import patch

import httpx
import pytest

from teoverse.federation.protocol import (
    MAX_PEER_CONFIG_BYTES,
    FederationProtocol,
    PeerFetchError,
    SSRFError,
    get_federation_protocol,
    init_federation_protocol,
    shutdown_federation_protocol,
    validate_url_for_ssrf,
)

PEER_CONFIG = {
    "federationName": "Atlantis",
    "federationURL": "https://atlantis.example.org",
    "tokenSymbol": "ATL",
    "tokenName": "Atlan",
    "version": "1.4.0",
}


def _addrinfo(ip: str):
    return [(socket.AF_INET, socket.SOCK_STREAM, 6, "", (ip, 443))]


# =============================================================================
# SSRF Validation
# =============================================================================


class TestValidateUrlForSSRF:
    """Tests for validate_url_for_ssrf."""

    def test_public_address_allowed(self):
        with patch("socket.getaddrinfo", return_value=_addrinfo("93.184.216.34")):
            result = validate_url_for_ssrf("https://atlantis.example.org/app.config.json")

        assert result.hostname == "atlantis.example.org"
        assert result.port == 443
        assert result.resolved_ips == ["93.184.216.34"]

    def test_invalid_scheme(self):
        with pytest.raises(SSRFError, match="scheme"):
            validate_url_for_ssrf("ftp://atlantis.example.org/app.config.json")

    def test_missing_hostname(self):
        with pytest.raises(SSRFError, match="hostname"):
            validate_url_for_ssrf("http:///app.config.json")

    def test_blocked_hostname(self):
        with pytest.raises(SSRFError, match="Blocked hostname"):
            validate_url_for_ssrf("http://localhost:8000/app.config.json")

    def test_metadata_endpoint_blocked(self):
        with pytest.raises(SSRFError):
            validate_url_for_ssrf("http://169.254.169.254/app.config.json")

    @pytest.mark.parametrize("ip", ["10.0.0.5", "192.168.1.10", "127.0.0.2"])
    def test_private_resolution_blocked(self, ip):
        with patch("socket.getaddrinfo", return_value=_addrinfo(ip)):
            with pytest.raises(SSRFError):
                validate_url_for_ssrf("https://sneaky.example.org/app.config.json")

    def test_private_allowed_when_enabled(self):
        with patch("socket.getaddrinfo", return_value=_addrinfo("10.0.0.5")):
            result = validate_url_for_ssrf("http://peer.internal:8001/app.config.json", allow_private=True)

        assert result.port == 8001

    def test_dns_failure(self):
        with patch("socket.getaddrinfo", side_effect=socket.gaierror("no such host")):
            with pytest.raises(SSRFError, match="DNS resolution failed"):
                validate_url_for_ssrf("https://missing.example.org/app.config.json")


# =============================================================================
# Fetching
# =============================================================================


def _protocol(handler) -> FederationProtocol:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return FederationProtocol(timeout=5.0, allow_private=True, http_client=client)


@pytest.fixture
def public_dns():
    with patch("socket.getaddrinfo", return_value=_addrinfo("93.184.216.34")):
        yield


class TestFetchPeerConfig:
    """Tests for FederationProtocol.fetch_peer_config."""

    @pytest.mark.asyncio
    async def test_fetches_config(self, public_dns):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, json=PEER_CONFIG)

        data = await _protocol(handler).fetch_peer_config("https://atlantis.example.org")

        assert data == PEER_CONFIG
        assert seen == ["https://atlantis.example.org/app.config.json"]

    @pytest.mark.asyncio
    async def test_not_initialized(self):
        protocol = FederationProtocol(timeout=5.0, allow_private=True)
        with pytest.raises(RuntimeError):
            await protocol.fetch_peer_config("https://atlantis.example.org")

    @pytest.mark.asyncio
    async def test_bad_status(self, public_dns):
        protocol = _protocol(lambda request: httpx.Response(404))
        with pytest.raises(PeerFetchError, match="404"):
            await protocol.fetch_peer_config("https://atlantis.example.org")

    @pytest.mark.asyncio
    async def test_invalid_json(self, public_dns):
        protocol = _protocol(lambda request: httpx.Response(200, content=b"<html>"))
        with pytest.raises(PeerFetchError, match="not valid JSON"):
            await protocol.fetch_peer_config("https://atlantis.example.org")

    @pytest.mark.asyncio
    async def test_json_array(self, public_dns):
        protocol = _protocol(lambda request: httpx.Response(200, json=[1, 2]))
        with pytest.raises(PeerFetchError, match="not a JSON object"):
            await protocol.fetch_peer_config("https://atlantis.example.org")

    @pytest.mark.asyncio
    async def test_oversized_body(self, public_dns):
        body = b"{" + b" " * (MAX_PEER_CONFIG_BYTES + 1) + b"}"
        protocol = _protocol(lambda request: httpx.Response(200, content=body))
        with pytest.raises(PeerFetchError, match="too large"):
            await protocol.fetch_peer_config("https://atlantis.example.org")

    @pytest.mark.asyncio
    async def test_transport_error(self, public_dns):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(PeerFetchError, match="failed"):
            await _protocol(handler).fetch_peer_config("https://atlantis.example.org")

    @pytest.mark.asyncio
    async def test_blocked_url_is_fetch_error(self):
        protocol = FederationProtocol(timeout=5.0, allow_private=False, http_client=httpx.AsyncClient())
        with pytest.raises(PeerFetchError):
            await protocol.fetch_peer_config("http://localhost:8000")


class TestProtocolSingleton:

    @pytest.mark.asyncio
    async def test_lifecycle(self):
        with pytest.raises(RuntimeError):
            get_federation_protocol()

        protocol = await init_federation_protocol()
        assert get_federation_protocol() is protocol

        await shutdown_federation_protocol()
        with pytest.raises(RuntimeError):
            get_federation_protocol()
