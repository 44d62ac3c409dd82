"""
Entity store for service requests and offers.

The store owns every SQL statement that reads or writes the
``service_requests`` and ``service_offers`` tables, plus the
relationship loading (requester, community, offers, offer provider,
accepted offer) used by the read paths.

Unlike the service classes, the store's methods are synchronous and
take a cursor: callers open a ``transaction()`` or ``get_cursor()``
scope and hand the cursor in, so that a multi-row protocol such as
offer acceptance runs all of its statements inside one transaction.
Soft-deleted rows are invisible to every read unless
``include_deleted`` is passed.
"""

import sqlite3
from typing import Any, Dict, Iterable, List, Optional, Sequence

from marketplace_api.app.core.db import utcnow
from marketplace_api.app.core.exceptions import (
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from marketplace_api.app.schemas.service_offer import (
    OfferStatus,
    ServiceOfferRead,
    ServiceRequestBrief,
)
from marketplace_api.app.schemas.service_request import RequestStatus, ServiceRequestRead
from marketplace_api.app.schemas.user import CommunitySummary, UserSummary


REQUEST_COLUMNS = (
    "id, title, description, category, requester_id, community_id, status, budget, "
    "accepted_offer_id, completed_at, created_at, updated_at, deleted_at"
)
OFFER_COLUMNS = (
    "id, service_request_id, provider_id, description, proposed_price, estimated_duration, "
    "status, created_at, updated_at, deleted_at"
)

# Entities that support soft deletion, mapped to their tables.
SOFT_DELETE_TABLES = {
    "service_request": "service_requests",
    "service_offer": "service_offers",
}


def _placeholders(values: Sequence[Any]) -> str:
    return ", ".join("?" for _ in values)


def _require_text(value: Optional[str], field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required", field=field)
    return str(value).strip()


class EntityStore:
    """Cursor-level access to service requests and offers."""

    # ------------------------------------------------------------------
    # Row lookups
    # ------------------------------------------------------------------

    @classmethod
    def fetch_request_row(
        cls, cursor: sqlite3.Cursor, request_id: int, include_deleted: bool = False
    ) -> Optional[sqlite3.Row]:
        query = f"SELECT {REQUEST_COLUMNS} FROM service_requests WHERE id = ?"
        if not include_deleted:
            query += " AND deleted_at IS NULL"
        return cursor.execute(query, (request_id,)).fetchone()

    @classmethod
    def fetch_offer_row(
        cls, cursor: sqlite3.Cursor, offer_id: int, include_deleted: bool = False
    ) -> Optional[sqlite3.Row]:
        query = f"SELECT {OFFER_COLUMNS} FROM service_offers WHERE id = ?"
        if not include_deleted:
            query += " AND deleted_at IS NULL"
        return cursor.execute(query, (offer_id,)).fetchone()

    @classmethod
    def require_request_row(cls, cursor: sqlite3.Cursor, request_id: int) -> sqlite3.Row:
        row = cls.fetch_request_row(cursor, request_id)
        if row is None:
            raise NotFoundError("Service request", request_id)
        return row

    @classmethod
    def require_offer_row(cls, cursor: sqlite3.Cursor, offer_id: int) -> sqlite3.Row:
        row = cls.fetch_offer_row(cursor, offer_id)
        if row is None:
            raise NotFoundError("Service offer", offer_id)
        return row

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    @classmethod
    def create_request(cls, cursor: sqlite3.Cursor, requester_id: int, fields: Dict[str, Any]) -> int:
        """Insert a new request with status ``open`` and return its id.

        Title, description and community are mandatory.  The community
        must exist; its domain routing is someone else's concern.
        """
        title = _require_text(fields.get("title"), "title")
        description = _require_text(fields.get("description"), "description")
        community_id = fields.get("community_id")
        if not community_id:
            raise ValidationError("community_id is required", field="community_id")
        community = cursor.execute(
            "SELECT id FROM communities WHERE id = ?", (community_id,)
        ).fetchone()
        if community is None:
            raise ValidationError(f"Community {community_id} does not exist", field="community_id")

        category = fields.get("category")
        now = utcnow()
        cursor.execute(
            """
            INSERT INTO service_requests
                (title, description, category, requester_id, community_id, status, budget,
                 created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                title,
                description,
                category.strip() if category else None,
                requester_id,
                community_id,
                RequestStatus.OPEN.value,
                fields.get("budget"),
                now,
                now,
            ),
        )
        return cursor.lastrowid

    @classmethod
    def create_offer(cls, cursor: sqlite3.Cursor, fields: Dict[str, Any]) -> int:
        """Insert a ``pending`` offer against an open request and return its id.

        The request is checked for existence, then for status ``open``,
        and only then are the offer fields validated.
        """
        request_id = fields["service_request_id"]
        request_row = cls.require_request_row(cursor, request_id)
        if request_row["status"] != RequestStatus.OPEN.value:
            raise InvalidStateError(
                f"Cannot submit an offer to a request with status {request_row['status']}",
                details={"status": request_row["status"]},
            )
        description = _require_text(fields.get("description"), "description")
        price = fields.get("proposed_price")
        if price is not None and price < 0:
            raise ValidationError("proposed_price must not be negative", field="proposed_price")
        now = utcnow()
        cursor.execute(
            """
            INSERT INTO service_offers
                (service_request_id, provider_id, description, proposed_price,
                 estimated_duration, status, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                request_id,
                fields["provider_id"],
                description,
                fields.get("proposed_price"),
                fields.get("estimated_duration"),
                OfferStatus.PENDING.value,
                now,
                now,
            ),
        )
        return cursor.lastrowid

    # ------------------------------------------------------------------
    # Mutation helpers
    # ------------------------------------------------------------------

    @classmethod
    def update_columns(
        cls,
        cursor: sqlite3.Cursor,
        table: str,
        row_id: int,
        values: Dict[str, Any],
        expected_status: Optional[str] = None,
    ) -> int:
        """Update ``values`` on one row and return the affected row count.

        ``expected_status`` turns the statement into a compare-and-swap
        on the current status.  ``updated_at`` is always refreshed.
        """
        if table not in SOFT_DELETE_TABLES.values():
            raise ValueError(f"Unsupported table {table}")
        assignments = [f"{column} = ?" for column in values]
        params: List[Any] = list(values.values())
        assignments.append("updated_at = ?")
        params.append(utcnow())
        query = f"UPDATE {table} SET {', '.join(assignments)} WHERE id = ? AND deleted_at IS NULL"
        params.append(row_id)
        if expected_status is not None:
            query += " AND status = ?"
            params.append(expected_status)
        cursor.execute(query, tuple(params))
        return cursor.rowcount

    @classmethod
    def soft_delete(cls, cursor: sqlite3.Cursor, entity: str, entity_id: int) -> bool:
        """Mark an entity deleted.  Returns False if it was already gone."""
        table = SOFT_DELETE_TABLES[entity]
        now = utcnow()
        cursor.execute(
            f"UPDATE {table} SET deleted_at = ?, updated_at = ? WHERE id = ? AND deleted_at IS NULL",
            (now, now, entity_id),
        )
        return cursor.rowcount == 1

    # ------------------------------------------------------------------
    # Relationship loading
    # ------------------------------------------------------------------

    @classmethod
    def _users(cls, cursor: sqlite3.Cursor, user_ids: Iterable[int]) -> Dict[int, UserSummary]:
        ids = sorted(set(user_ids))
        if not ids:
            return {}
        rows = cursor.execute(
            f"SELECT id, name, email, role FROM users WHERE id IN ({_placeholders(ids)})",
            tuple(ids),
        ).fetchall()
        return {row["id"]: UserSummary(**dict(row)) for row in rows}

    @classmethod
    def _communities(cls, cursor: sqlite3.Cursor, community_ids: Iterable[int]) -> Dict[int, CommunitySummary]:
        ids = sorted(set(community_ids))
        if not ids:
            return {}
        rows = cursor.execute(
            f"SELECT id, name, slug FROM communities WHERE id IN ({_placeholders(ids)})",
            tuple(ids),
        ).fetchall()
        return {row["id"]: CommunitySummary(**dict(row)) for row in rows}

    @classmethod
    def _offers_by_request(
        cls, cursor: sqlite3.Cursor, request_ids: Sequence[int]
    ) -> Dict[int, List[ServiceOfferRead]]:
        grouped: Dict[int, List[ServiceOfferRead]] = {rid: [] for rid in request_ids}
        if not request_ids:
            return grouped
        rows = cursor.execute(
            f"SELECT {OFFER_COLUMNS} FROM service_offers "
            f"WHERE service_request_id IN ({_placeholders(request_ids)}) AND deleted_at IS NULL "
            "ORDER BY id ASC",
            tuple(request_ids),
        ).fetchall()
        providers = cls._users(cursor, (row["provider_id"] for row in rows))
        for row in rows:
            offer = ServiceOfferRead(**dict(row), provider=providers.get(row["provider_id"]))
            grouped[row["service_request_id"]].append(offer)
        return grouped

    @classmethod
    def hydrate_requests(
        cls, cursor: sqlite3.Cursor, rows: Sequence[sqlite3.Row], with_relations: bool = True
    ) -> List[ServiceRequestRead]:
        """Turn request rows into read models, loading relations in bulk."""
        if not with_relations:
            return [ServiceRequestRead(**dict(row)) for row in rows]
        request_ids = [row["id"] for row in rows]
        users = cls._users(cursor, (row["requester_id"] for row in rows))
        communities = cls._communities(cursor, (row["community_id"] for row in rows))
        offers = cls._offers_by_request(cursor, request_ids)
        result: List[ServiceRequestRead] = []
        for row in rows:
            request_offers = offers.get(row["id"], [])
            accepted = next(
                (offer for offer in request_offers if offer.id == row["accepted_offer_id"]),
                None,
            )
            result.append(
                ServiceRequestRead(
                    **dict(row),
                    requester=users.get(row["requester_id"]),
                    community=communities.get(row["community_id"]),
                    offers=request_offers,
                    accepted_offer=accepted,
                )
            )
        return result

    @classmethod
    def get_request(
        cls, cursor: sqlite3.Cursor, request_id: int, with_relations: bool = True
    ) -> ServiceRequestRead:
        row = cls.require_request_row(cursor, request_id)
        return cls.hydrate_requests(cursor, [row], with_relations)[0]

    @classmethod
    def select_requests(
        cls,
        cursor: sqlite3.Cursor,
        where_clauses: Sequence[str] = (),
        params: Sequence[Any] = (),
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        with_relations: bool = True,
    ) -> List[ServiceRequestRead]:
        """Newest-first request listing; soft-deleted rows are always excluded."""
        clauses = ["deleted_at IS NULL", *where_clauses]
        query = f"SELECT {REQUEST_COLUMNS} FROM service_requests WHERE {' AND '.join(clauses)}"
        query += " ORDER BY created_at DESC, id DESC"
        bound: List[Any] = list(params)
        if limit is not None:
            query += " LIMIT ? OFFSET ?"
            bound.extend([limit, offset or 0])
        rows = cursor.execute(query, tuple(bound)).fetchall()
        return cls.hydrate_requests(cursor, rows, with_relations)

    @classmethod
    def hydrate_offers(cls, cursor: sqlite3.Cursor, rows: Sequence[sqlite3.Row]) -> List[ServiceOfferRead]:
        providers = cls._users(cursor, (row["provider_id"] for row in rows))
        request_ids = sorted({row["service_request_id"] for row in rows})
        briefs: Dict[int, ServiceRequestBrief] = {}
        if request_ids:
            parent_rows = cursor.execute(
                "SELECT id, title, status, requester_id, community_id FROM service_requests "
                f"WHERE id IN ({_placeholders(request_ids)})",
                tuple(request_ids),
            ).fetchall()
            briefs = {row["id"]: ServiceRequestBrief(**dict(row)) for row in parent_rows}
        return [
            ServiceOfferRead(
                **dict(row),
                provider=providers.get(row["provider_id"]),
                service_request=briefs.get(row["service_request_id"]),
            )
            for row in rows
        ]

    @classmethod
    def get_offer(cls, cursor: sqlite3.Cursor, offer_id: int) -> ServiceOfferRead:
        row = cls.require_offer_row(cursor, offer_id)
        return cls.hydrate_offers(cursor, [row])[0]

    @classmethod
    def select_offers(
        cls,
        cursor: sqlite3.Cursor,
        where_clauses: Sequence[str] = (),
        params: Sequence[Any] = (),
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[ServiceOfferRead]:
        clauses = ["deleted_at IS NULL", *where_clauses]
        query = f"SELECT {OFFER_COLUMNS} FROM service_offers WHERE {' AND '.join(clauses)}"
        query += " ORDER BY created_at DESC, id DESC"
        bound: List[Any] = list(params)
        if limit is not None:
            query += " LIMIT ? OFFSET ?"
            bound.extend([limit, offset or 0])
        rows = cursor.execute(query, tuple(bound)).fetchall()
        return cls.hydrate_offers(cursor, rows)
