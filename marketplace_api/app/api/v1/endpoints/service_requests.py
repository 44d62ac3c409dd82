"""
Service request endpoints for API v1.

These routes post, list, read, edit and delete service requests, and
expose the offer acceptance protocol at
``POST /service-requests/{request_id}/accept-offer``.  Marketplace
errors raised by the services are rendered by the application-wide
exception handler, so the handlers below stay thin.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, status

from marketplace_api.app.core.security import get_current_actor
from marketplace_api.app.schemas.service_request import (
    AcceptOfferBody,
    RequestStatus,
    ServiceRequestCreate,
    ServiceRequestRead,
    ServiceRequestUpdate,
)
from marketplace_api.app.schemas.user import Actor
from marketplace_api.app.services.acceptance_service import AcceptanceService
from marketplace_api.app.services.query_service import RequestQueryService
from marketplace_api.app.services.request_service import ServiceRequestService

router = APIRouter()


@router.post(
    "",
    response_model=ServiceRequestRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_service_request(
    body: ServiceRequestCreate,
    actor: Actor = Depends(get_current_actor),
) -> ServiceRequestRead:
    """Post a new request in a community.  It starts as ``open``."""
    return await ServiceRequestService.create_request(actor, body)


@router.get(
    "",
    response_model=List[ServiceRequestRead],
)
async def list_service_requests(
    community_id: Optional[int] = None,
    request_status: Optional[RequestStatus] = Query(None, alias="status"),
    category: Optional[str] = None,
    search: Optional[str] = Query(None, description="Case-insensitive match on title or description"),
    requester_id: Optional[int] = None,
    limit: Optional[int] = Query(None, ge=1, le=500),
    offset: Optional[int] = Query(None, ge=0),
    actor: Actor = Depends(get_current_actor),
) -> List[ServiceRequestRead]:
    """List requests newest-first.  All filters combine with AND."""
    return await RequestQueryService.list_requests(
        community_id=community_id,
        status=request_status.value if request_status else None,
        category=category,
        search=search,
        requester_id=requester_id,
        limit=limit,
        offset=offset,
    )


@router.get(
    "/{request_id}",
    response_model=ServiceRequestRead,
)
async def get_service_request(
    request_id: int = Path(..., description="ID of the service request"),
    actor: Actor = Depends(get_current_actor),
) -> ServiceRequestRead:
    """Retrieve a request with its requester, community, offers and accepted offer."""
    return await ServiceRequestService.get_request(request_id)


@router.put(
    "/{request_id}",
    response_model=ServiceRequestRead,
)
async def update_service_request(
    body: ServiceRequestUpdate,
    request_id: int = Path(..., description="ID of the service request"),
    actor: Actor = Depends(get_current_actor),
) -> ServiceRequestRead:
    """Edit fields or the status of a request.

    Only the requester and administrators may edit.  Status changes
    follow the request state graph; ``in_progress`` is reachable only
    through ``accept-offer``.
    """
    return await ServiceRequestService.update_request(
        request_id, actor, body.model_dump(exclude_unset=True)
    )


@router.delete(
    "/{request_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_service_request(
    request_id: int = Path(..., description="ID of the service request"),
    actor: Actor = Depends(get_current_actor),
) -> None:
    """Soft-delete a request.  Allowed for the requester and administrators."""
    await ServiceRequestService.delete_request(request_id, actor)


@router.post(
    "/{request_id}/accept-offer",
    response_model=ServiceRequestRead,
)
async def accept_service_offer(
    body: AcceptOfferBody,
    request_id: int = Path(..., description="ID of the service request"),
    actor: Actor = Depends(get_current_actor),
) -> ServiceRequestRead:
    """Accept one offer, reject the other pending offers and start the work.

    Only the requester may accept.  Returns 409 when the request is no
    longer open or the offer is no longer pending.
    """
    return await AcceptanceService.accept_offer(request_id, body.offer_id, actor)
