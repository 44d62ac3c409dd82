import asyncio
import sqlite3
import threading

import pytest

from marketplace_api.app.core.db import get_connection
from marketplace_api.app.core.exceptions import (
    ForbiddenError,
    InternalError,
    InvalidStateError,
    MarketplaceError,
    NotFoundError,
    ValidationError,
)
from marketplace_api.app.schemas.service_offer import OfferStatus
from marketplace_api.app.schemas.service_request import RequestStatus
from marketplace_api.app.services.acceptance_service import AcceptanceService
from marketplace_api.app.services.offer_service import ServiceOfferService
from marketplace_api.app.services.request_service import ServiceRequestService


def _snapshot(request_id):
    """Raw request and offer rows, bypassing the services."""
    conn = get_connection()
    try:
        request = dict(
            conn.execute(
                "SELECT status, accepted_offer_id, updated_at FROM service_requests WHERE id = ?",
                (request_id,),
            ).fetchone()
        )
        offers = {
            row["id"]: row["status"]
            for row in conn.execute(
                "SELECT id, status FROM service_offers WHERE service_request_id = ?", (request_id,)
            )
        }
    finally:
        conn.close()
    return request, offers


@pytest.mark.asyncio
async def test_accept_offer_rejects_other_pending_offers(make_request, make_offer, requester, other_provider):
    request = await make_request()
    o1 = await make_offer(request.id)
    o2 = await make_offer(request.id, actor=other_provider)

    result = await AcceptanceService.accept_offer(request.id, o1.id, requester)

    assert result.status == RequestStatus.IN_PROGRESS
    assert result.accepted_offer_id == o1.id
    assert result.accepted_offer is not None and result.accepted_offer.id == o1.id
    statuses = {offer.id: offer.status for offer in result.offers}
    assert statuses == {o1.id: OfferStatus.ACCEPTED, o2.id: OfferStatus.REJECTED}


@pytest.mark.asyncio
async def test_second_accept_fails_without_changing_state(make_request, make_offer, requester, other_provider):
    request = await make_request()
    o1 = await make_offer(request.id)
    o2 = await make_offer(request.id, actor=other_provider)
    await AcceptanceService.accept_offer(request.id, o1.id, requester)
    before = _snapshot(request.id)

    with pytest.raises(InvalidStateError) as excinfo:
        await AcceptanceService.accept_offer(request.id, o2.id, requester)

    assert "already has an accepted offer" in excinfo.value.message
    assert _snapshot(request.id) == before


@pytest.mark.asyncio
async def test_withdrawn_offer_cannot_be_accepted(make_request, make_offer, requester, provider):
    request = await make_request()
    offer = await make_offer(request.id)
    await ServiceOfferService.withdraw_offer(offer.id, provider)

    with pytest.raises(InvalidStateError) as excinfo:
        await AcceptanceService.accept_offer(request.id, offer.id, requester)

    assert "withdrawn" in excinfo.value.message
    request_row, offers = _snapshot(request.id)
    assert request_row["status"] == "open"
    assert request_row["accepted_offer_id"] is None
    assert offers == {offer.id: "withdrawn"}


@pytest.mark.asyncio
async def test_withdrawn_offers_are_not_rejected_by_acceptance(
    make_request, make_offer, requester, provider, other_provider
):
    request = await make_request()
    withdrawn = await make_offer(request.id, actor=other_provider)
    await ServiceOfferService.withdraw_offer(withdrawn.id, other_provider)
    chosen = await make_offer(request.id)

    await AcceptanceService.accept_offer(request.id, chosen.id, requester)

    _, offers = _snapshot(request.id)
    assert offers == {withdrawn.id: "withdrawn", chosen.id: "accepted"}


@pytest.mark.asyncio
async def test_only_requester_may_accept(make_request, make_offer, provider, admin):
    request = await make_request()
    offer = await make_offer(request.id)

    for actor in (provider, admin):
        with pytest.raises(ForbiddenError):
            await AcceptanceService.accept_offer(request.id, offer.id, actor)

    assert _snapshot(request.id)[0]["status"] == "open"


@pytest.mark.asyncio
async def test_offer_from_another_request_is_a_validation_error(make_request, make_offer, requester):
    first = await make_request()
    second = await make_request(title="Paint the fence")
    foreign_offer = await make_offer(second.id)

    with pytest.raises(ValidationError) as excinfo:
        await AcceptanceService.accept_offer(first.id, foreign_offer.id, requester)

    assert excinfo.value.details == {"field": "offer_id"}
    assert _snapshot(first.id)[0]["status"] == "open"
    assert _snapshot(second.id)[1] == {foreign_offer.id: "pending"}


@pytest.mark.asyncio
async def test_missing_request_and_offer_are_not_found(make_request, requester):
    request = await make_request()

    with pytest.raises(NotFoundError):
        await AcceptanceService.accept_offer(9999, 1, requester)
    with pytest.raises(NotFoundError):
        await AcceptanceService.accept_offer(request.id, 9999, requester)


@pytest.mark.asyncio
async def test_accept_on_cancelled_request_is_an_invalid_transition(make_request, make_offer, requester):
    request = await make_request()
    offer = await make_offer(request.id)
    await ServiceRequestService.update_request(request.id, requester, {"status": "cancelled"})

    with pytest.raises(InvalidStateError) as excinfo:
        await AcceptanceService.accept_offer(request.id, offer.id, requester)

    assert excinfo.value.error_code == "INVALID_TRANSITION"
    assert excinfo.value.details == {"current": "cancelled", "target": "in_progress"}


@pytest.mark.asyncio
async def test_deleted_offer_cannot_be_accepted(make_request, make_offer, requester, provider):
    request = await make_request()
    offer = await make_offer(request.id)
    await ServiceOfferService.delete_offer(offer.id, provider)

    with pytest.raises(NotFoundError):
        await AcceptanceService.accept_offer(request.id, offer.id, requester)


def test_concurrent_accepts_commit_exactly_one(make_request, make_offer, requester, other_provider):
    request = asyncio.run(make_request())
    offers = [
        asyncio.run(make_offer(request.id)),
        asyncio.run(make_offer(request.id, actor=other_provider)),
    ]
    barrier = threading.Barrier(len(offers))
    outcomes = {}

    def accept(offer_id):
        barrier.wait()
        try:
            asyncio.run(AcceptanceService.accept_offer(request.id, offer_id, requester))
            outcomes[offer_id] = "accepted"
        except MarketplaceError as exc:
            outcomes[offer_id] = exc

    threads = [threading.Thread(target=accept, args=(offer.id,)) for offer in offers]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    winners = [offer_id for offer_id, outcome in outcomes.items() if outcome == "accepted"]
    losers = [outcome for outcome in outcomes.values() if outcome != "accepted"]
    assert len(winners) == 1
    assert len(losers) == 1 and isinstance(losers[0], InvalidStateError)

    request_row, statuses = _snapshot(request.id)
    assert request_row["status"] == "in_progress"
    assert request_row["accepted_offer_id"] == winners[0]
    assert sorted(statuses.values()) == ["accepted", "rejected"]
    assert statuses[winners[0]] == "accepted"


def test_schema_rejects_accepted_pointer_on_open_request(make_request, make_offer):
    request = asyncio.run(make_request())
    offer = asyncio.run(make_offer(request.id))
    conn = get_connection()
    try:
        with pytest.raises(sqlite3.IntegrityError, match="CHECK constraint failed"):
            conn.execute(
                "UPDATE service_requests SET accepted_offer_id = ? WHERE id = ?", (offer.id, request.id)
            )
    finally:
        conn.close()


@pytest.mark.asyncio
async def test_failure_after_writes_rolls_back_the_whole_acceptance(
    make_request, make_offer, requester, other_provider, monkeypatch
):
    request = await make_request()
    chosen = await make_offer(request.id)
    rival = await make_offer(request.id, actor=other_provider)
    before = _snapshot(request.id)

    def fail_outcome(cursor, request_id):
        raise InternalError("Offer acceptance did not complete consistently")

    monkeypatch.setattr(AcceptanceService, "_check_outcome", staticmethod(fail_outcome))

    with pytest.raises(InternalError):
        await AcceptanceService.accept_offer(request.id, chosen.id, requester)

    request_row, offers = _snapshot(request.id)
    assert _snapshot(request.id) == before
    assert request_row["status"] == "open"
    assert request_row["accepted_offer_id"] is None
    assert offers == {chosen.id: "pending", rival.id: "pending"}
