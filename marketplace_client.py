"""Community Marketplace API client.

A thin wrapper around the marketplace REST API built on ``requests``.
Every method returns a tuple ``(data, error)``: on success ``data`` holds
the decoded JSON body (or ``None`` for 204 responses) and ``error`` is
``None``; on failure ``data`` is ``None`` and ``error`` is a dictionary
with ``status_code``, ``error_code`` and ``message`` keys.

Example::

    client = MarketplaceClient(base_url="http://localhost:8000", api_key=token)
    request, error = client.create_request(
        title="Fix leaking tap", description="Kitchen tap drips", community_id=1
    )
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

import requests


logger = logging.getLogger(__name__)

Result = Tuple[Optional[Any], Optional[Dict[str, Any]]]


class MarketplaceClient:
    """Client for the service request and offer endpoints."""

    def __init__(
        self,
        *,
        base_url: str,
        api_key: Optional[str] = None,
        api_prefix: str = "/api/v1",
        session: Optional[requests.Session] = None,
        timeout: float = 15,
    ) -> None:
        """Initialise the client.

        Args:
            base_url: Server root, e.g. ``http://localhost:8000``.
            api_key: Bearer token sent in the ``Authorization`` header.
            api_prefix: Path prefix of the versioned API.
            session: Optional requests session; one is created if omitted.
            timeout: Per-request timeout in seconds.
        """
        self.base_url = base_url.rstrip("/") + api_prefix
        self.api_key = api_key
        self.session = session or requests.Session()
        self.timeout = timeout

    def _request(
        self, method: str, path: str, *, params: Dict[str, Any] | None = None,
        json_body: Any | None = None
    ) -> Result:
        url = f"{self.base_url}{path}"
        headers: Dict[str, str] = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        if params:
            params = {key: value for key, value in params.items() if value is not None}
        try:
            logger.debug("Sending %s request to %s", method, url)
            response = self.session.request(
                method=method,
                url=url,
                params=params,
                json=json_body,
                headers=headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
            if response.content:
                return response.json(), None
            return None, None
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            message = ""
            error_code = None
            if exc.response is not None:
                try:
                    err_json = exc.response.json()
                except ValueError:
                    message = exc.response.text
                else:
                    if isinstance(err_json, dict):
                        message = err_json.get("detail") or str(err_json)
                        error_code = err_json.get("error_code")
                    else:
                        message = str(err_json)
            if not isinstance(message, str):
                # FastAPI's 422 carries a list of field errors in ``detail``.
                message = str(message)
            if not message:
                message = str(exc)
            logger.error("API request failed (%s): %s", status, message)
            return None, {"status_code": status, "error_code": error_code, "message": message}
        except requests.RequestException as exc:
            logger.error("API request failed: %s", exc)
            return None, {"status_code": None, "error_code": None, "message": str(exc)}

    # ------------------------------------------------------------------
    # Service requests
    # ------------------------------------------------------------------
    def create_request(
        self,
        *,
        title: str,
        description: str,
        community_id: int,
        category: Optional[str] = None,
        budget: Optional[float] = None,
    ) -> Result:
        body = {
            "title": title,
            "description": description,
            "community_id": community_id,
            "category": category,
            "budget": budget,
        }
        return self._request("POST", "/service-requests", json_body=body)

    def list_requests(
        self,
        *,
        community_id: Optional[int] = None,
        status: Optional[str] = None,
        category: Optional[str] = None,
        search: Optional[str] = None,
        requester_id: Optional[int] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> Tuple[List[Dict[str, Any]], Optional[Dict[str, Any]]]:
        """List requests matching the given filters.

        Returns ``([], error)`` on failure so callers can iterate safely.
        """
        params = {
            "community_id": community_id,
            "status": status,
            "category": category,
            "search": search,
            "requester_id": requester_id,
            "limit": limit,
            "offset": offset,
        }
        data, error = self._request("GET", "/service-requests", params=params)
        return (data or []), error

    def get_request(self, request_id: int) -> Result:
        return self._request("GET", f"/service-requests/{request_id}")

    def update_request(self, request_id: int, **fields: Any) -> Result:
        """Send only the given fields, e.g. ``update_request(3, status="completed")``."""
        return self._request("PUT", f"/service-requests/{request_id}", json_body=fields)

    def delete_request(self, request_id: int) -> Result:
        return self._request("DELETE", f"/service-requests/{request_id}")

    def accept_offer(self, request_id: int, offer_id: int) -> Result:
        return self._request(
            "POST",
            f"/service-requests/{request_id}/accept-offer",
            json_body={"offer_id": offer_id},
        )

    # ------------------------------------------------------------------
    # Service offers
    # ------------------------------------------------------------------
    def submit_offer(
        self,
        *,
        service_request_id: int,
        description: str,
        proposed_price: Optional[float] = None,
        estimated_duration: Optional[str] = None,
    ) -> Result:
        body = {
            "service_request_id": service_request_id,
            "description": description,
            "proposed_price": proposed_price,
            "estimated_duration": estimated_duration,
        }
        return self._request("POST", "/service-offers", json_body=body)

    def list_offers(
        self,
        *,
        service_request_id: Optional[int] = None,
        provider_id: Optional[int] = None,
        mine: bool = False,
        status: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> Tuple[List[Dict[str, Any]], Optional[Dict[str, Any]]]:
        params = {
            "service_request_id": service_request_id,
            "provider_id": provider_id,
            "mine": "true" if mine else None,
            "status": status,
            "limit": limit,
            "offset": offset,
        }
        data, error = self._request("GET", "/service-offers", params=params)
        return (data or []), error

    def get_offer(self, offer_id: int) -> Result:
        return self._request("GET", f"/service-offers/{offer_id}")

    def update_offer(self, offer_id: int, **fields: Any) -> Result:
        return self._request("PUT", f"/service-offers/{offer_id}", json_body=fields)

    def delete_offer(self, offer_id: int) -> Result:
        return self._request("DELETE", f"/service-offers/{offer_id}")

    def withdraw_offer(self, offer_id: int) -> Result:
        return self._request("POST", f"/service-offers/{offer_id}/withdraw")

    def health(self) -> Result:
        return self._request("GET", "/health")
