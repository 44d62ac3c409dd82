import pytest

from marketplace_api.app.core.exceptions import InvalidTransitionError, ValidationError
from marketplace_api.app.schemas.service_request import RequestStatus
from marketplace_api.app.services.status_guard import (
    TERMINAL_STATUSES,
    as_status,
    is_allowed,
    validate_transition,
)


@pytest.mark.parametrize(
    "current, target",
    [
        ("open", "in_progress"),
        ("open", "cancelled"),
        ("in_progress", "completed"),
        ("in_progress", "cancelled"),
    ],
)
def test_graph_edges_are_allowed(current, target):
    assert validate_transition(current, target) is True
    assert is_allowed(current, target)


@pytest.mark.parametrize(
    "current, target",
    [
        ("open", "completed"),
        ("in_progress", "open"),
        ("completed", "open"),
        ("completed", "in_progress"),
        ("completed", "cancelled"),
        ("cancelled", "open"),
        ("cancelled", "in_progress"),
        ("cancelled", "completed"),
    ],
)
def test_other_transitions_are_rejected(current, target):
    assert not is_allowed(current, target)
    with pytest.raises(InvalidTransitionError) as excinfo:
        validate_transition(current, target)
    assert excinfo.value.status_code == 409
    assert current in excinfo.value.message and target in excinfo.value.message


@pytest.mark.parametrize("status", list(RequestStatus))
def test_same_status_is_a_noop(status):
    assert validate_transition(status, status) is False
    assert is_allowed(status, status)


def test_terminal_statuses():
    assert TERMINAL_STATUSES == {RequestStatus.COMPLETED, RequestStatus.CANCELLED}


def test_unknown_status_is_a_validation_error():
    with pytest.raises(ValidationError) as excinfo:
        as_status("archived")
    assert excinfo.value.details == {"field": "status"}
