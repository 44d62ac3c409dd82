"""
Offer acceptance protocol.

Accepting an offer moves three kinds of rows at once: the request goes
to ``in_progress`` and points at the accepted offer, the offer becomes
``accepted`` and every other pending offer on the request becomes
``rejected``.  ``AcceptanceService.accept_offer`` performs all of it in
a single ``BEGIN IMMEDIATE`` transaction:

* the write lock is taken before the preconditions are read, so two
  concurrent acceptances on one request run one after the other and
  the second sees the request already ``in_progress``;
* the request update is additionally conditional on ``status = 'open'``
  and its row count is checked, so a lost race can never overwrite the
  winner's accepted offer;
* the post-condition (one accepted offer, no pending offers) is
  verified before commit.

Any failure rolls the whole transaction back.
"""

import logging

from marketplace_api.app.core.db import transaction, utcnow
from marketplace_api.app.core.exceptions import (
    ForbiddenError,
    InternalError,
    InvalidStateError,
    ValidationError,
)
from marketplace_api.app.schemas.service_offer import OfferStatus
from marketplace_api.app.schemas.service_request import RequestStatus, ServiceRequestRead
from marketplace_api.app.schemas.user import Actor
from marketplace_api.app.services.status_guard import validate_transition
from marketplace_api.app.services.store import EntityStore

logger = logging.getLogger(__name__)


class AcceptanceService:
    """Coordinator that commits one offer and rejects its rivals."""

    @classmethod
    async def accept_offer(cls, request_id: int, offer_id: int, actor: Actor) -> ServiceRequestRead:
        """Accept ``offer_id`` for ``request_id`` on behalf of ``actor``.

        Preconditions, checked in this order before any write:

        1. the request exists and is not deleted (``NotFoundError``);
        2. the actor is the requester; admins get no exception here
           (``ForbiddenError``);
        3. the offer exists and is not deleted (``NotFoundError``);
        4. the offer belongs to the request (``ValidationError``);
        5. the request may move to ``in_progress``, which in practice
           means it is ``open`` (``InvalidTransitionError`` or
           ``InvalidStateError``);
        6. the offer is still ``pending`` (``InvalidStateError``).

        Returns the request with its relations reloaded.
        """
        with transaction() as cursor:
            request_row = EntityStore.require_request_row(cursor, request_id)
            if request_row["requester_id"] != actor.id:
                raise ForbiddenError("Only the requester can accept offers")

            offer_row = EntityStore.require_offer_row(cursor, offer_id)
            if offer_row["service_request_id"] != request_id:
                raise ValidationError("Offer does not belong to this request", field="offer_id")

            current = request_row["status"]
            if current == RequestStatus.IN_PROGRESS.value:
                raise InvalidStateError(
                    "This request already has an accepted offer",
                    details={"status": current, "accepted_offer_id": request_row["accepted_offer_id"]},
                )
            validate_transition(current, RequestStatus.IN_PROGRESS)

            if offer_row["status"] != OfferStatus.PENDING.value:
                raise InvalidStateError(
                    f"Cannot accept an offer with status {offer_row['status']}",
                    details={"status": offer_row["status"]},
                )

            advanced = EntityStore.update_columns(
                cursor,
                "service_requests",
                request_id,
                {"status": RequestStatus.IN_PROGRESS.value, "accepted_offer_id": offer_id},
                expected_status=RequestStatus.OPEN.value,
            )
            if advanced != 1:
                logger.warning("Lost acceptance race on request %s (offer %s)", request_id, offer_id)
                raise InvalidStateError("This request already has an accepted offer")

            EntityStore.update_columns(
                cursor,
                "service_offers",
                offer_id,
                {"status": OfferStatus.ACCEPTED.value},
                expected_status=OfferStatus.PENDING.value,
            )
            cursor.execute(
                """
                UPDATE service_offers SET status = ?, updated_at = ?
                WHERE service_request_id = ? AND id != ? AND status = ? AND deleted_at IS NULL
                """,
                (
                    OfferStatus.REJECTED.value,
                    utcnow(),
                    request_id,
                    offer_id,
                    OfferStatus.PENDING.value,
                ),
            )
            rejected = cursor.rowcount

            cls._check_outcome(cursor, request_id)
            result = EntityStore.get_request(cursor, request_id)

        logger.info(
            "User %s accepted offer %s on request %s; %s rival offer(s) rejected",
            actor.id,
            offer_id,
            request_id,
            rejected,
        )
        return result

    @staticmethod
    def _check_outcome(cursor, request_id: int) -> None:
        counts = cursor.execute(
            """
            SELECT
                SUM(CASE WHEN status = 'accepted' THEN 1 ELSE 0 END) AS accepted,
                SUM(CASE WHEN status = 'pending' THEN 1 ELSE 0 END) AS pending
            FROM service_offers
            WHERE service_request_id = ? AND deleted_at IS NULL
            """,
            (request_id,),
        ).fetchone()
        if counts["accepted"] != 1 or counts["pending"]:
            logger.error(
                "Acceptance on request %s left %s accepted and %s pending offers",
                request_id,
                counts["accepted"],
                counts["pending"],
            )
            raise InternalError("Offer acceptance did not complete consistently")
