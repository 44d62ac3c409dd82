import pytest
from fastapi.testclient import TestClient

from marketplace_api.app.core.config import settings
from marketplace_api.app.core.db import get_connection, init_db
from marketplace_api.app.core.security import create_access_token
from marketplace_api.app.schemas.service_request import ServiceRequestCreate
from marketplace_api.app.schemas.user import Actor, UserRole
from marketplace_api.app.services.offer_service import ServiceOfferService
from marketplace_api.app.services.request_service import ServiceRequestService

# (id, name, email, role, is_active)
USERS = [
    (1, "Rita Requester", "rita@example.com", "user", 1),
    (2, "Paul Provider", "paul@example.com", "service_provider", 1),
    (3, "Pia Provider", "pia@example.com", "service_provider", 1),
    (4, "Ada Admin", "ada@example.com", "admin", 1),
    (5, "Ivan Inactive", "ivan@example.com", "user", 0),
]

COMMUNITIES = [
    (1, "Maple Street", "maple-street"),
    (2, "Harbor View", "harbor-view"),
]


@pytest.fixture(autouse=True)
def database(tmp_path, monkeypatch):
    """A fresh, migrated SQLite file per test with users and communities seeded."""
    db_path = tmp_path / "marketplace.db"
    monkeypatch.setattr(settings, "database_url", str(db_path))
    init_db()
    conn = get_connection()
    try:
        conn.executemany(
            "INSERT INTO users (id, name, email, role, is_active) VALUES (?, ?, ?, ?, ?)", USERS
        )
        conn.executemany("INSERT INTO communities (id, name, slug) VALUES (?, ?, ?)", COMMUNITIES)
    finally:
        conn.close()
    return db_path


@pytest.fixture
def requester() -> Actor:
    return Actor(id=1, role=UserRole.USER)


@pytest.fixture
def provider() -> Actor:
    return Actor(id=2, role=UserRole.SERVICE_PROVIDER)


@pytest.fixture
def other_provider() -> Actor:
    return Actor(id=3, role=UserRole.SERVICE_PROVIDER)


@pytest.fixture
def admin() -> Actor:
    return Actor(id=4, role=UserRole.ADMIN)


@pytest.fixture
def make_request(requester):
    """Factory posting a request; keyword arguments override the defaults."""

    async def _make(actor: Actor = None, **fields):
        data = {
            "title": "Fix leaking tap",
            "description": "The kitchen tap drips all night",
            "category": "plumbing",
            "community_id": 1,
        }
        data.update(fields)
        return await ServiceRequestService.create_request(actor or requester, ServiceRequestCreate(**data))

    return _make


@pytest.fixture
def make_offer(provider):
    """Factory submitting an offer on a request."""

    async def _make(request_id: int, actor: Actor = None, **fields):
        data = {"description": "I can come by tomorrow", "proposed_price": 80.0}
        data.update(fields)
        return await ServiceOfferService.submit_offer(request_id, actor or provider, **data)

    return _make


@pytest.fixture
def client(database) -> TestClient:
    """A test client for the FastAPI application bound to the per-test database."""
    from marketplace_api.app.main import app

    with TestClient(app) as c:
        yield c


def auth_headers(email: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token({'sub': email})}"}


@pytest.fixture
def auth():
    return auth_headers
