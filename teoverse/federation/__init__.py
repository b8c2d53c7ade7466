"""
TeoVerse Federation Module

Outbound requests to peer federations.
"""

from .protocol import (
    FederationProtocol,
    PeerFetchError,
    SSRFError,
    ValidatedURL,
    get_federation_protocol,
    init_federation_protocol,
    shutdown_federation_protocol,
    validate_url_for_ssrf,
)

__all__ = [
    "FederationProtocol",
    "PeerFetchError",
    "SSRFError",
    "ValidatedURL",
    "get_federation_protocol",
    "init_federation_protocol",
    "shutdown_federation_protocol",
    "validate_url_for_ssrf",
]
