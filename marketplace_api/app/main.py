"""
Main entrypoint for the Community Marketplace API.

This module assembles the FastAPI application: it sets up logging,
registers the handler that renders marketplace errors and includes the
versioned routers.  ``create_app`` builds the app, which is then
instantiated at import time as ``app`` so it can be served with::

    uvicorn marketplace_api.app.main:app --reload
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .api.v1.router import router as v1_router
from .core.config import settings
from .core.db import init_db
from .core.exceptions import MarketplaceError
from .core.logging_config import setup_logging

logger = logging.getLogger(__name__)


async def marketplace_error_handler(request: Request, exc: MarketplaceError) -> JSONResponse:
    """Render a ``MarketplaceError`` as a structured JSON response."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error_code": exc.error_code, "details": exc.details},
    )


def create_app() -> FastAPI:
    """Create and configure a FastAPI application.

    Returns
    -------
    FastAPI
        A configured application with ``/api/v1`` routes mounted and
        migrations scheduled to run at startup.
    """
    setup_logging(settings.log_level, settings.log_file or None)

    app = FastAPI(title=settings.project_name, version=settings.api_version, debug=settings.debug)
    app.add_exception_handler(MarketplaceError, marketplace_error_handler)
    app.include_router(v1_router, prefix="/api/v1")

    @app.on_event("startup")
    async def startup_event() -> None:
        # Creates the database file on first start and applies pending migrations.
        init_db()

    return app


app = create_app()
