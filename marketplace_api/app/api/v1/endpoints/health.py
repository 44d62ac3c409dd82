"""
Liveness endpoint.  Public; used by load balancers and the launcher.
"""

from typing import Dict

from fastapi import APIRouter

from marketplace_api.app.core.db import get_cursor

router = APIRouter()


@router.get("/health")
async def health() -> Dict[str, str]:
    """Return ``{"status": "ok"}`` when the database answers."""
    with get_cursor() as cursor:
        cursor.execute("SELECT 1").fetchone()
    return {"status": "ok"}
