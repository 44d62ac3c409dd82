"""
Business logic for service requests.

``ServiceRequestService`` handles the requester side: posting a
request, reading it with its relations, editing fields and status, and
soft deletion.  Status edits go through the transition guard; the only
way into ``in_progress`` is ``AcceptanceService.accept_offer``.
"""

import logging
from typing import Any, Dict

from marketplace_api.app.core.db import get_cursor, transaction, utcnow
from marketplace_api.app.core.exceptions import (
    ForbiddenError,
    InvalidStateError,
    ValidationError,
)
from marketplace_api.app.schemas.service_request import (
    RequestStatus,
    ServiceRequestCreate,
    ServiceRequestRead,
)
from marketplace_api.app.schemas.user import Actor
from marketplace_api.app.services.status_guard import as_status, validate_transition
from marketplace_api.app.services.store import EntityStore

logger = logging.getLogger(__name__)

EDITABLE_REQUEST_FIELDS = ("title", "description", "category", "budget")
REQUIRED_TEXT_FIELDS = ("title", "description")


class ServiceRequestService:
    """Service for posting and managing service requests."""

    @classmethod
    async def create_request(cls, actor: Actor, data: ServiceRequestCreate) -> ServiceRequestRead:
        """Post a new request owned by ``actor`` with status ``open``."""
        with transaction() as cursor:
            request_id = EntityStore.create_request(cursor, actor.id, data.model_dump())
            request = EntityStore.get_request(cursor, request_id)
        logger.info("User %s created service request %s '%s'", actor.id, request_id, request.title)
        return request

    @classmethod
    async def get_request(cls, request_id: int, with_relations: bool = True) -> ServiceRequestRead:
        """Retrieve one request; soft-deleted requests raise ``NotFoundError``."""
        with get_cursor() as cursor:
            return EntityStore.get_request(cursor, request_id, with_relations)

    @classmethod
    async def update_request(cls, request_id: int, actor: Actor, updates: Dict[str, Any]) -> ServiceRequestRead:
        """Edit fields and/or the status of a request.

        The requester and admin roles may edit.  Setting the status to
        its current value is a no-op.  Other status changes must be
        edges of the request state graph, except that ``in_progress``
        is reserved for offer acceptance.  Completing a request stamps
        ``completed_at``; cancelling an ``in_progress`` request clears
        ``accepted_offer_id`` (the accepted offer keeps its status).
        """
        values: Dict[str, Any] = {}
        for key in EDITABLE_REQUEST_FIELDS:
            if key not in updates:
                continue
            value = updates[key]
            if key in REQUIRED_TEXT_FIELDS:
                if value is None or not str(value).strip():
                    raise ValidationError(f"{key} must not be empty", field=key)
                value = str(value).strip()
            if key == "budget" and value is not None and value < 0:
                raise ValidationError("budget must not be negative", field="budget")
            values[key] = value
        target = as_status(updates["status"]) if updates.get("status") is not None else None

        with transaction() as cursor:
            row = EntityStore.require_request_row(cursor, request_id)
            if row["requester_id"] != actor.id and not actor.is_admin:
                raise ForbiddenError("Only the requester or an admin can edit this request")

            expected_status = None
            if target is not None and validate_transition(row["status"], target):
                if target == RequestStatus.IN_PROGRESS:
                    raise InvalidStateError(
                        "A request moves to in_progress only by accepting an offer",
                        details={"status": row["status"]},
                    )
                values["status"] = target.value
                if target == RequestStatus.COMPLETED:
                    values["completed_at"] = utcnow()
                if target == RequestStatus.CANCELLED:
                    values["accepted_offer_id"] = None
                expected_status = row["status"]

            if values:
                changed = EntityStore.update_columns(
                    cursor, "service_requests", request_id, values, expected_status=expected_status
                )
                if changed != 1:
                    raise InvalidStateError("Request status changed concurrently, reload and retry")
            request = EntityStore.get_request(cursor, request_id)

        if "status" in values:
            logger.info(
                "User %s moved request %s from %s to %s", actor.id, request_id, row["status"], values["status"]
            )
        return request

    @classmethod
    async def delete_request(cls, request_id: int, actor: Actor) -> None:
        """Soft-delete a request.  Allowed for the requester and admin roles."""
        with transaction() as cursor:
            row = EntityStore.require_request_row(cursor, request_id)
            if row["requester_id"] != actor.id and not actor.is_admin:
                raise ForbiddenError("Only the requester or an admin can delete this request")
            EntityStore.soft_delete(cursor, "service_request", request_id)
        logger.info("User %s deleted service request %s", actor.id, request_id)
