"""
Business logic for service offers.

``ServiceOfferService`` covers the provider side of the marketplace:
submitting an offer against an open request, reading and listing
offers, editing or deleting an offer while it is still pending, and
withdrawing it.  Acceptance and rejection belong to
``AcceptanceService``; nothing in this module moves an offer to
``accepted`` or ``rejected``.

Every method validates all of its preconditions before issuing a
write, and every write runs in its own ``transaction()`` scope.
"""

import logging
from typing import Any, Dict, List, Optional

from marketplace_api.app.core.db import get_cursor, transaction
from marketplace_api.app.core.exceptions import (
    ForbiddenError,
    InvalidStateError,
    ValidationError,
)
from marketplace_api.app.schemas.service_offer import OfferStatus, ServiceOfferRead
from marketplace_api.app.schemas.user import Actor
from marketplace_api.app.services.store import EntityStore

logger = logging.getLogger(__name__)

EDITABLE_OFFER_FIELDS = ("description", "proposed_price", "estimated_duration")


def _check_price(price: Optional[float]) -> None:
    if price is not None and price < 0:
        raise ValidationError("proposed_price must not be negative", field="proposed_price")


class ServiceOfferService:
    """Service for submitting and managing offers."""

    @classmethod
    async def submit_offer(
        cls,
        request_id: int,
        actor: Actor,
        description: str,
        proposed_price: Optional[float] = None,
        estimated_duration: Optional[str] = None,
    ) -> ServiceOfferRead:
        """Submit a new offer against an open request.

        Raises ``NotFoundError`` if the request does not exist or was
        deleted, ``InvalidStateError`` if the request is not ``open``
        and ``ValidationError`` for an empty description.  The checks
        run in that order.  The same provider may submit several offers
        to one request.
        """
        with transaction() as cursor:
            offer_id = EntityStore.create_offer(
                cursor,
                {
                    "service_request_id": request_id,
                    "provider_id": actor.id,
                    "description": description,
                    "proposed_price": proposed_price,
                    "estimated_duration": estimated_duration,
                },
            )
            offer = EntityStore.get_offer(cursor, offer_id)
        logger.info("User %s submitted offer %s on request %s", actor.id, offer_id, request_id)
        return offer

    @classmethod
    async def get_offer(cls, offer_id: int) -> ServiceOfferRead:
        """Retrieve a single offer with its provider and parent request."""
        with get_cursor() as cursor:
            return EntityStore.get_offer(cursor, offer_id)

    @classmethod
    async def list_offers(
        cls,
        service_request_id: Optional[int] = None,
        provider_id: Optional[int] = None,
        status: Optional[OfferStatus] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[ServiceOfferRead]:
        """List offers newest-first, optionally filtered.

        Filters combine with AND.  ``limit`` and ``offset`` paginate;
        without ``limit`` every matching offer is returned.
        """
        where_clauses: List[str] = []
        params: List[Any] = []
        if service_request_id is not None:
            where_clauses.append("service_request_id = ?")
            params.append(service_request_id)
        if provider_id is not None:
            where_clauses.append("provider_id = ?")
            params.append(provider_id)
        if status is not None:
            where_clauses.append("status = ?")
            params.append(OfferStatus(status).value)
        with get_cursor() as cursor:
            return EntityStore.select_offers(cursor, where_clauses, params, limit=limit, offset=offset)

    @classmethod
    async def update_offer(cls, offer_id: int, actor: Actor, updates: Dict[str, Any]) -> ServiceOfferRead:
        """Edit a pending offer.

        Only the provider may edit, and only while the offer is
        ``pending``.  Unknown keys are ignored; a ``status`` key is
        rejected because offers change status through dedicated
        operations.
        """
        if "status" in updates:
            raise ValidationError(
                "Offer status cannot be edited; use withdraw or accept-offer", field="status"
            )
        values = {key: updates[key] for key in EDITABLE_OFFER_FIELDS if key in updates}
        if "description" in values and (not values["description"] or not values["description"].strip()):
            raise ValidationError("description must not be empty", field="description")
        _check_price(values.get("proposed_price"))
        with transaction() as cursor:
            row = EntityStore.require_offer_row(cursor, offer_id)
            if row["provider_id"] != actor.id:
                raise ForbiddenError("Only the provider can edit this offer")
            if row["status"] != OfferStatus.PENDING.value:
                raise InvalidStateError(
                    f"Cannot edit an offer with status {row['status']}",
                    details={"status": row["status"]},
                )
            if values:
                EntityStore.update_columns(
                    cursor, "service_offers", offer_id, values, expected_status=OfferStatus.PENDING.value
                )
            offer = EntityStore.get_offer(cursor, offer_id)
        return offer

    @classmethod
    async def withdraw_offer(cls, offer_id: int, actor: Actor) -> ServiceOfferRead:
        """Withdraw a pending offer on behalf of its provider.

        Accepted, rejected and already withdrawn offers cannot be
        withdrawn, so a second call on the same offer raises
        ``InvalidStateError`` instead of repeating the effect.
        """
        with transaction() as cursor:
            row = EntityStore.require_offer_row(cursor, offer_id)
            if row["provider_id"] != actor.id:
                raise ForbiddenError("Only the provider can withdraw this offer")
            if row["status"] != OfferStatus.PENDING.value:
                raise InvalidStateError(
                    f"Cannot withdraw an offer with status {row['status']}",
                    details={"status": row["status"]},
                )
            changed = EntityStore.update_columns(
                cursor,
                "service_offers",
                offer_id,
                {"status": OfferStatus.WITHDRAWN.value},
                expected_status=OfferStatus.PENDING.value,
            )
            if changed != 1:
                raise InvalidStateError("Offer is no longer pending")
            offer = EntityStore.get_offer(cursor, offer_id)
        logger.info("User %s withdrew offer %s", actor.id, offer_id)
        return offer

    @classmethod
    async def delete_offer(cls, offer_id: int, actor: Actor) -> None:
        """Soft-delete an offer.  Accepted offers stay in place."""
        with transaction() as cursor:
            row = EntityStore.require_offer_row(cursor, offer_id)
            if row["provider_id"] != actor.id:
                raise ForbiddenError("Only the provider can delete this offer")
            if row["status"] == OfferStatus.ACCEPTED.value:
                raise InvalidStateError("Cannot delete an accepted offer", details={"status": row["status"]})
            EntityStore.soft_delete(cursor, "service_offer", offer_id)
        logger.info("User %s deleted offer %s", actor.id, offer_id)
