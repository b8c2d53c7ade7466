"""
TeoVerse - Federation Link Routes
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from teoverse.api.dependencies import CurrentUserDep, FederationLinkServiceDep
from teoverse.models.federation import LinkedFederation, LinkFederationRequest
from teoverse.services.federation_links import (
    AlreadyLinkedError,
    FederationLinkError,
    FederationNotLinkedError,
    PeerUnreachableError,
)

router = APIRouter()


def link_error_status(error: FederationLinkError) -> int:
    if isinstance(error, AlreadyLinkedError):
        return status.HTTP_409_CONFLICT
    if isinstance(error, PeerUnreachableError):
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_400_BAD_REQUEST


@router.get("", response_model=list[LinkedFederation])
async def list_linked_federations(
    user: CurrentUserDep,
    links: FederationLinkServiceDep,
) -> list[LinkedFederation]:
    return await links.get_linked_federations(user.id)


@router.post("", response_model=LinkedFederation, status_code=status.HTTP_201_CREATED)
async def link_federation(
    request: LinkFederationRequest,
    user: CurrentUserDep,
    links: FederationLinkServiceDep,
) -> LinkedFederation:
    """
    Link a peer federation.

    The peer's ``/app.config.json`` must be reachable and well-formed, and
    its major version must equal ours.
    """
    try:
        return await links.link_federation(user.id, request.url)
    except FederationLinkError as e:
        raise HTTPException(status_code=link_error_status(e), detail=str(e))


@router.delete("/{federation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def unlink_federation(
    federation_id: str,
    user: CurrentUserDep,
    links: FederationLinkServiceDep,
) -> None:
    try:
        await links.unlink_federation(user.id, federation_id)
    except FederationNotLinkedError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
