"""
Search and filtering over service requests.
"""

from typing import Any, List, Optional

from marketplace_api.app.core.db import get_cursor
from marketplace_api.app.core.exceptions import ValidationError
from marketplace_api.app.schemas.service_request import ServiceRequestRead
from marketplace_api.app.services.status_guard import as_status
from marketplace_api.app.services.store import EntityStore


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class RequestQueryService:
    """Read-only listing of requests with their relations loaded."""

    @classmethod
    async def list_requests(
        cls,
        community_id: Optional[int] = None,
        status: Optional[str] = None,
        category: Optional[str] = None,
        search: Optional[str] = None,
        requester_id: Optional[int] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[ServiceRequestRead]:
        """Return non-deleted requests newest-first.

        - ``community_id``, ``status``, ``category`` and ``requester_id``
          are exact matches.
        - ``search`` is a case-insensitive substring match against the
          title or the description.
        - All filters combine with AND; empty strings are ignored.
        - ``limit`` and ``offset`` paginate.  Without ``limit`` every
          matching request is returned.
        """
        if limit is not None and limit < 1:
            raise ValidationError("limit must be positive", field="limit")
        if offset is not None and offset < 0:
            raise ValidationError("offset must not be negative", field="offset")

        where_clauses: List[str] = []
        params: List[Any] = []
        if community_id is not None:
            where_clauses.append("community_id = ?")
            params.append(community_id)
        if status:
            where_clauses.append("status = ?")
            params.append(as_status(status).value)
        if category:
            where_clauses.append("category = ?")
            params.append(category)
        if requester_id is not None:
            where_clauses.append("requester_id = ?")
            params.append(requester_id)
        if search and search.strip():
            pattern = f"%{_escape_like(search.strip().casefold())}%"
            where_clauses.append(
                "(casefold(title) LIKE ? ESCAPE '\\' OR casefold(description) LIKE ? ESCAPE '\\')"
            )
            params.extend([pattern, pattern])

        with get_cursor() as cursor:
            return EntityStore.select_requests(cursor, where_clauses, params, limit=limit, offset=offset)
