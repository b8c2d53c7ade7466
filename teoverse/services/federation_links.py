"""
TeoVerse - Federation Linking

Links a user's passport to peer federations. A peer is accepted when its
published ``app.config.json`` is well-formed and its major version equals
ours.
"""

from typing import Any

import structlog

from teoverse.config import FederationIdentity, get_federation_identity
from teoverse.federation.protocol import FederationProtocol, PeerFetchError
from teoverse.models.federation import LinkedFederation, PeerFederationConfig
from teoverse.monitoring.metrics import federation_link_attempts_total
from teoverse.repositories.federation_repository import LinkedFederationRepository

logger = structlog.get_logger(__name__)

REQUIRED_PEER_FIELDS = ("version", "federationName", "tokenSymbol")


class FederationLinkError(Exception):
    """Base class for link failures. The message is safe to show to the user."""

    outcome = "error"


class SelfLinkError(FederationLinkError):
    outcome = "self_link"


class AlreadyLinkedError(FederationLinkError):
    outcome = "duplicate"


class PeerUnreachableError(FederationLinkError):
    outcome = "unreachable"


class InvalidPeerConfigError(FederationLinkError):
    outcome = "invalid_config"


class VersionMismatchError(FederationLinkError):
    outcome = "version_mismatch"


class FederationNotLinkedError(Exception):
    """Unlink of a federation the user has not linked."""


def normalize_federation_url(url: str) -> str:
    """Drop one trailing slash."""
    return url[:-1] if url.endswith("/") else url


def major_version(version: str) -> str:
    return version.split(".")[0]


def parse_peer_config(data: dict[str, Any]) -> PeerFederationConfig:
    """
    Raises:
        InvalidPeerConfigError: A required field is missing, empty or not a string
    """
    for name in REQUIRED_PEER_FIELDS:
        value = data.get(name)
        if not isinstance(value, str) or not value.strip():
            raise InvalidPeerConfigError("The provided URL does not point to a valid federation config.")
    return PeerFederationConfig.model_validate(data)


class FederationLinkService:

    def __init__(
        self,
        federation_repo: LinkedFederationRepository,
        protocol: FederationProtocol,
        identity: FederationIdentity | None = None,
    ):
        self.federation_repo = federation_repo
        self.protocol = protocol
        self.identity = identity or get_federation_identity()

    async def get_linked_federations(self, user_id: str) -> list[LinkedFederation]:
        return await self.federation_repo.list_for_user(user_id)

    async def link_federation(self, user_id: str, foreign_url: str) -> LinkedFederation:
        """
        Validate a peer and record the link.

        Raises:
            FederationLinkError: One of its subclasses, carrying the user-facing message
        """
        try:
            federation = await self._link(user_id, foreign_url)
        except FederationLinkError as e:
            federation_link_attempts_total.inc(outcome=e.outcome)
            logger.info("federation_link_rejected", user_id=user_id, url=foreign_url, outcome=e.outcome)
            raise
        federation_link_attempts_total.inc(outcome="linked")
        logger.info("federation_linked", user_id=user_id, url=federation.url, peer=federation.name)
        return federation

    async def _link(self, user_id: str, foreign_url: str) -> LinkedFederation:
        url = normalize_federation_url(foreign_url)

        if url == self.identity.federation_url:
            raise SelfLinkError("You cannot link to your own federation.")

        if await self.federation_repo.is_linked(user_id, url):
            raise AlreadyLinkedError("This federation is already linked.")

        try:
            data = await self.protocol.fetch_peer_config(url)
        except PeerFetchError as e:
            logger.warning("peer_config_fetch_failed", url=url, error=str(e))
            raise PeerUnreachableError("Could not retrieve federation info from the provided URL.") from e

        peer = parse_peer_config(data)

        local_major = self.identity.major_version
        foreign_major = peer.major_version
        if local_major != foreign_major:
            raise VersionMismatchError(
                f"Version mismatch. Your federation is v{local_major}, but the target is "
                f"v{foreign_major}. Major versions must match."
            )

        federation = await self.federation_repo.create(
            user_id=user_id,
            name=peer.federation_name,
            url=url,
            token_symbol=peer.token_symbol,
            version=peer.version,
        )
        # Another request linked the same URL while the peer was being checked
        if federation is None:
            raise AlreadyLinkedError("This federation is already linked.")
        return federation

    async def unlink_federation(self, user_id: str, federation_id: str) -> None:
        if not await self.federation_repo.delete_for_user(user_id, federation_id):
            raise FederationNotLinkedError("Linked federation not found.")
