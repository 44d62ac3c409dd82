"""
Pydantic models for service requests.

``ServiceRequestCreate`` and ``ServiceRequestUpdate`` are the write
payloads; ``ServiceRequestRead`` is returned with its relations
(requester, community, offers and the accepted offer) loaded.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from .service_offer import ServiceOfferRead
from .status import RequestStatus
from .user import CommunitySummary, UserSummary


class ServiceRequestCreate(BaseModel):
    """Schema for posting a request.

    Title, description and community are checked by the service layer
    so that blank strings produce the marketplace ``ValidationError``
    instead of a framework-specific error.
    """

    title: str = Field(..., examples=["Kitchen sink is leaking"])
    description: str = Field(..., examples=["Water drips under the sink since Monday"])
    category: Optional[str] = Field(None, examples=["Plumbing"])
    community_id: int = Field(..., examples=[1])
    budget: Optional[float] = Field(None, ge=0, examples=[150.0])


class ServiceRequestUpdate(BaseModel):
    """Schema for editing a request.

    All fields are optional; only provided fields are changed.  A
    ``status`` value is validated against the request state graph.
    """

    title: str | None = None
    description: str | None = None
    category: str | None = None
    budget: float | None = Field(default=None, ge=0)
    status: RequestStatus | None = None


class AcceptOfferBody(BaseModel):
    offer_id: int = Field(..., ge=1)


class ServiceRequestRead(BaseModel):
    id: int
    title: str
    description: str
    category: Optional[str] = None
    requester_id: int
    community_id: int
    status: RequestStatus
    budget: Optional[float] = None
    accepted_offer_id: Optional[int] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    requester: Optional[UserSummary] = None
    community: Optional[CommunitySummary] = None
    offers: List[ServiceOfferRead] = Field(default_factory=list)
    accepted_offer: Optional[ServiceOfferRead] = None

    model_config = {
        "from_attributes": True,
    }
