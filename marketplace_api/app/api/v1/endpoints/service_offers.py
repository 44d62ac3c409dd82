"""
Service offer endpoints for API v1.

Providers submit offers against open requests, edit or delete them
while they are pending and withdraw them.  Accepting an offer is a
request-side action and lives in ``service_requests``.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, status

from marketplace_api.app.core.security import get_current_actor
from marketplace_api.app.schemas.service_offer import (
    OfferStatus,
    ServiceOfferCreate,
    ServiceOfferRead,
    ServiceOfferUpdate,
)
from marketplace_api.app.schemas.user import Actor
from marketplace_api.app.services.offer_service import ServiceOfferService

router = APIRouter()


@router.post(
    "",
    response_model=ServiceOfferRead,
    status_code=status.HTTP_201_CREATED,
)
async def submit_service_offer(
    body: ServiceOfferCreate,
    actor: Actor = Depends(get_current_actor),
) -> ServiceOfferRead:
    """Submit an offer on an open request.  The offer starts as ``pending``."""
    return await ServiceOfferService.submit_offer(
        body.service_request_id,
        actor,
        body.description,
        proposed_price=body.proposed_price,
        estimated_duration=body.estimated_duration,
    )


@router.get(
    "",
    response_model=List[ServiceOfferRead],
)
async def list_service_offers(
    service_request_id: Optional[int] = None,
    provider_id: Optional[int] = None,
    mine: bool = Query(False, description="Only offers submitted by the caller"),
    offer_status: Optional[OfferStatus] = Query(None, alias="status"),
    limit: Optional[int] = Query(None, ge=1, le=500),
    offset: Optional[int] = Query(None, ge=0),
    actor: Actor = Depends(get_current_actor),
) -> List[ServiceOfferRead]:
    """List offers newest-first.

    ``mine=true`` overrides ``provider_id`` with the caller's own id.
    """
    if mine:
        provider_id = actor.id
    return await ServiceOfferService.list_offers(
        service_request_id=service_request_id,
        provider_id=provider_id,
        status=offer_status,
        limit=limit,
        offset=offset,
    )


@router.get(
    "/{offer_id}",
    response_model=ServiceOfferRead,
)
async def get_service_offer(
    offer_id: int = Path(..., description="ID of the service offer"),
    actor: Actor = Depends(get_current_actor),
) -> ServiceOfferRead:
    return await ServiceOfferService.get_offer(offer_id)


@router.put(
    "/{offer_id}",
    response_model=ServiceOfferRead,
)
async def update_service_offer(
    body: ServiceOfferUpdate,
    offer_id: int = Path(..., description="ID of the service offer"),
    actor: Actor = Depends(get_current_actor),
) -> ServiceOfferRead:
    """Edit a pending offer.  Only its provider may edit it."""
    return await ServiceOfferService.update_offer(offer_id, actor, body.model_dump(exclude_unset=True))


@router.delete(
    "/{offer_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_service_offer(
    offer_id: int = Path(..., description="ID of the service offer"),
    actor: Actor = Depends(get_current_actor),
) -> None:
    await ServiceOfferService.delete_offer(offer_id, actor)


@router.post(
    "/{offer_id}/withdraw",
    response_model=ServiceOfferRead,
)
async def withdraw_service_offer(
    offer_id: int = Path(..., description="ID of the service offer"),
    actor: Actor = Depends(get_current_actor),
) -> ServiceOfferRead:
    """Withdraw a pending offer.  Returns 409 once it is no longer pending."""
    return await ServiceOfferService.withdraw_offer(offer_id, actor)
