"""
Pydantic models for service offers.

An offer is a provider's proposal against an open service request.
``ServiceOfferCreate`` is the submission payload, ``ServiceOfferUpdate``
carries the fields a provider may still change while the offer is
pending, and ``ServiceOfferRead`` is returned by every offer endpoint.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .status import OfferStatus, RequestStatus
from .user import UserSummary


class ServiceOfferCreate(BaseModel):
    """Schema for submitting an offer."""

    service_request_id: int = Field(..., ge=1)
    description: str = Field(..., examples=["I can fix the leak tomorrow morning"])
    proposed_price: Optional[float] = Field(None, ge=0, examples=[120.0])
    estimated_duration: Optional[str] = Field(None, examples=["2 hours"])


class ServiceOfferUpdate(BaseModel):
    """Schema for editing a pending offer.

    Status is deliberately absent: offers change status only through
    acceptance or withdrawal.
    """

    description: str | None = None
    proposed_price: float | None = Field(default=None, ge=0)
    estimated_duration: str | None = None


class ServiceRequestBrief(BaseModel):
    """Parent request as embedded in an offer."""

    id: int
    title: str
    status: RequestStatus
    requester_id: int
    community_id: int


class ServiceOfferRead(BaseModel):
    id: int
    service_request_id: int
    provider_id: int
    description: str
    proposed_price: Optional[float] = None
    estimated_duration: Optional[str] = None
    status: OfferStatus
    created_at: datetime
    updated_at: datetime
    provider: Optional[UserSummary] = None
    service_request: Optional[ServiceRequestBrief] = None

    model_config = {
        "from_attributes": True,
    }
