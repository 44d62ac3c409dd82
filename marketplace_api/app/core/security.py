"""
Bearer token verification.

Tokens are issued by the identity service; this module only verifies
them and turns the caller into an ``Actor``.  A token is a compact JWT
(HS256, base64url parts) whose ``sub`` claim is the user's email and
whose ``exp`` claim is a UNIX timestamp.  ``create_access_token`` is
kept for development tooling and tests.
"""

import base64
import hashlib
import hmac
import json
import time
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from marketplace_api.app.schemas.user import Actor, UserRole

from .config import settings
from .db import get_cursor


def _b64_url_encode(data: bytes) -> str:
    """Base64-url encode bytes without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("utf-8")


def _b64_url_decode(data: str) -> bytes:
    """Decode base64-url encoded string, adding padding if necessary."""
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def _sign(message: bytes, secret: str) -> bytes:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).digest()


def create_access_token(data: Dict[str, Any], expires_delta: Optional[int] = None) -> str:
    """Create a signed token carrying ``data`` plus an ``exp`` claim.

    Parameters
    ----------
    data : dict
        Claims to embed, e.g. ``{"sub": "user@example.com"}``.
    expires_delta : Optional[int]
        Lifetime in seconds.  Defaults to
        ``settings.access_token_expire_minutes * 60``.
    """
    to_encode = data.copy()
    exp_seconds = expires_delta or settings.access_token_expire_minutes * 60
    to_encode["exp"] = int(time.time()) + exp_seconds
    header = {"alg": settings.algorithm, "typ": "JWT"}
    header_b64 = _b64_url_encode(json.dumps(header, separators=(",", ":")).encode("utf-8"))
    payload_b64 = _b64_url_encode(json.dumps(to_encode, separators=(",", ":")).encode("utf-8"))
    signature = _sign(f"{header_b64}.{payload_b64}".encode("utf-8"), settings.secret_key)
    return f"{header_b64}.{payload_b64}.{_b64_url_encode(signature)}"


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """Verify a token and return its payload, or ``None`` if invalid or expired."""
    parts = token.split(".")
    if len(parts) != 3:
        return None
    header_b64, payload_b64, signature_b64 = parts
    try:
        expected_sig = _sign(f"{header_b64}.{payload_b64}".encode("utf-8"), settings.secret_key)
        if not hmac.compare_digest(expected_sig, _b64_url_decode(signature_b64)):
            return None
        data = json.loads(_b64_url_decode(payload_b64).decode("utf-8"))
        expires_at = int(data["exp"])
    except (ValueError, TypeError, KeyError, UnicodeDecodeError):
        return None
    if expires_at < int(time.time()):
        return None
    return data


security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_actor(credentials: HTTPAuthorizationCredentials = Depends(security)) -> Actor:
    """Dependency that resolves the bearer token into an ``Actor``.

    The token subject must name an existing, active user; the actor's
    role is read from that user's row.
    """
    if credentials is None:
        raise _unauthorized("Not authenticated")
    payload = decode_access_token(credentials.credentials)
    if not payload:
        raise _unauthorized("Invalid or expired token")
    with get_cursor() as cursor:
        user_row = cursor.execute(
            "SELECT id, role, is_active FROM users WHERE email = ?",
            (payload.get("sub"),),
        ).fetchone()
    if not user_row:
        raise _unauthorized("User no longer exists")
    if not user_row["is_active"]:
        raise _unauthorized("User account disabled")
    return Actor(id=user_row["id"], role=UserRole(user_row["role"]))
