import json

import pytest
import requests

from marketplace_client import MarketplaceClient


def _response(status_code, payload=None, url="http://testserver"):
    response = requests.Response()
    response.status_code = status_code
    response._content = b"" if payload is None else json.dumps(payload).encode("utf-8")
    response.headers["Content-Type"] = "application/json"
    response.url = url
    return response


class StubSession:
    """Records calls and replays canned responses in order."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def request(self, **kwargs):
        self.calls.append(kwargs)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def session():
    return StubSession()


@pytest.fixture
def client(session):
    return MarketplaceClient(base_url="http://testserver/", api_key="secret-token", session=session)


def test_accept_offer_posts_offer_id_with_bearer_token(client, session):
    session.responses.append(_response(200, {"id": 3, "status": "in_progress", "accepted_offer_id": 7}))

    data, error = client.accept_offer(3, 7)

    assert error is None
    assert data["accepted_offer_id"] == 7
    call = session.calls[0]
    assert call["method"] == "POST"
    assert call["url"] == "http://testserver/api/v1/service-requests/3/accept-offer"
    assert call["json"] == {"offer_id": 7}
    assert call["headers"] == {"Authorization": "Bearer secret-token"}


def test_list_requests_drops_unset_filters(client, session):
    session.responses.append(_response(200, [{"id": 1}]))

    data, error = client.list_requests(status="open", search="tap")

    assert error is None
    assert data == [{"id": 1}]
    assert session.calls[0]["params"] == {"status": "open", "search": "tap"}


def test_list_offers_mine_flag(client, session):
    session.responses.append(_response(200, []))

    client.list_offers(mine=True)

    assert session.calls[0]["params"] == {"mine": "true"}


def test_error_body_is_reported(client, session):
    session.responses.append(
        _response(
            409,
            {"detail": "Cannot withdraw an offer with status withdrawn", "error_code": "INVALID_STATE", "details": {}},
        )
    )

    data, error = client.withdraw_offer(5)

    assert data is None
    assert error == {
        "status_code": 409,
        "error_code": "INVALID_STATE",
        "message": "Cannot withdraw an offer with status withdrawn",
    }


def test_validation_detail_list_is_stringified(client, session):
    session.responses.append(_response(422, {"detail": [{"loc": ["body", "title"], "msg": "Field required"}]}))

    data, error = client.create_request(title="", description="x", community_id=1)

    assert data is None
    assert error["status_code"] == 422
    assert "Field required" in error["message"]


def test_delete_with_empty_body(client, session):
    session.responses.append(_response(204))

    assert client.delete_request(9) == (None, None)
    assert session.calls[0]["method"] == "DELETE"


def test_transport_failure(client, session):
    session.responses.append(requests.ConnectionError("connection refused"))

    data, error = client.get_offer(1)

    assert data is None
    assert error["status_code"] is None
    assert "connection refused" in error["message"]
