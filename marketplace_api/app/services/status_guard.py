"""
Status transition rules for service requests.

Pure functions only; nothing here touches the database.  The guard is
consulted for explicit status edits and by the acceptance protocol for
its ``open -> in_progress`` step.
"""

from typing import Dict, FrozenSet, Union

from marketplace_api.app.core.exceptions import InvalidTransitionError, ValidationError
from marketplace_api.app.schemas.service_request import RequestStatus

ALLOWED_TRANSITIONS: Dict[RequestStatus, FrozenSet[RequestStatus]] = {
    RequestStatus.OPEN: frozenset({RequestStatus.IN_PROGRESS, RequestStatus.CANCELLED}),
    RequestStatus.IN_PROGRESS: frozenset({RequestStatus.COMPLETED, RequestStatus.CANCELLED}),
    RequestStatus.COMPLETED: frozenset(),
    RequestStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in ALLOWED_TRANSITIONS.items() if not targets)


def as_status(value: Union[str, RequestStatus]) -> RequestStatus:
    """Coerce a raw status string into ``RequestStatus``."""
    try:
        return RequestStatus(value)
    except ValueError as exc:
        raise ValidationError(f"Unknown request status '{value}'", field="status") from exc


def is_allowed(current: Union[str, RequestStatus], target: Union[str, RequestStatus]) -> bool:
    current, target = as_status(current), as_status(target)
    return current == target or target in ALLOWED_TRANSITIONS[current]


def validate_transition(current: Union[str, RequestStatus], target: Union[str, RequestStatus]) -> bool:
    """Check that ``current -> target`` is a legal request transition.

    Returns ``True`` when the transition changes the status and
    ``False`` when it is a same-status no-op.  Raises
    ``InvalidTransitionError`` naming both states otherwise.
    """
    current, target = as_status(current), as_status(target)
    if current == target:
        return False
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(current.value, target.value)
    return True
