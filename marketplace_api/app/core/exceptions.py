"""
Error taxonomy for the marketplace service.

Every error raised by the service layer derives from
``MarketplaceError`` and carries the HTTP status code it maps to, so
the API layer can render all of them with a single exception handler.
"""

from typing import Optional


class MarketplaceError(Exception):
    """Base exception for all marketplace errors."""

    status_code = 500
    error_code = "MARKETPLACE_ERROR"

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(MarketplaceError):
    """Malformed or missing input."""

    status_code = 400
    error_code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message, details={"field": field} if field else None)


class NotFoundError(MarketplaceError):
    """Referenced entity is absent or soft-deleted."""

    status_code = 404
    error_code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: int):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            f"{entity} {entity_id} not found",
            details={"entity": entity, "id": entity_id},
        )


class ForbiddenError(MarketplaceError):
    """The actor lacks permission for this entity."""

    status_code = 403
    error_code = "FORBIDDEN"


class InvalidStateError(MarketplaceError):
    """Operation is not legal in the entity's current lifecycle state."""

    status_code = 409
    error_code = "INVALID_STATE"


class InvalidTransitionError(InvalidStateError):
    """Requested status change is not an edge of the request state graph."""

    error_code = "INVALID_TRANSITION"

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(
            f"Invalid status transition from {current} to {target}",
            details={"current": current, "target": target},
        )


class InternalError(MarketplaceError):
    """Store failure that does not map to a known error case."""

    status_code = 500
    error_code = "INTERNAL_ERROR"
