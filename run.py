"""Entry point for the Community Marketplace API.

Serves ``marketplace_api.app.main:app`` with Uvicorn.  Host, port and
log level come from the same environment variables as the application
settings (``API_HOST``, ``API_PORT``, ``LOG_LEVEL``).

Usage:
    python run.py
"""
import asyncio
import logging

from uvicorn import Config, Server

from marketplace_api.app.core.config import settings
from marketplace_api.app.main import app


async def main() -> None:
    """Start the API server and block until it stops."""
    config = Config(
        app=app,
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
        log_level=settings.log_level.lower(),
    )
    server = Server(config)
    logging.getLogger(__name__).info("Serving on %s:%s", settings.api_host, settings.api_port)
    await server.serve()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        pass
