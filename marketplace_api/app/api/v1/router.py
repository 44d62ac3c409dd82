"""
Top-level router for version 1 of the API.

Aggregates the resource routers under a unified prefix.  When a new
resource is added, include its router here.
"""

from fastapi import APIRouter

from .endpoints import health, service_offers, service_requests

router = APIRouter()

router.include_router(health.router, tags=["health"])
router.include_router(service_requests.router, prefix="/service-requests", tags=["service-requests"])
router.include_router(service_offers.router, prefix="/service-offers", tags=["service-offers"])
