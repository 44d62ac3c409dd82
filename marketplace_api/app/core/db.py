"""
SQLite database integration and simple migration system.

This module provides connections (``get_connection``), a read scope
(``get_cursor``), a write scope with explicit transaction control
(``transaction``) and the migration runner applied on application start
(``init_db``).

Connections run with ``isolation_level=None`` so that the sqlite3
module never opens transactions implicitly; write paths open them
explicitly with ``BEGIN IMMEDIATE``.  ``IMMEDIATE`` takes the database
write lock before the first read, which is what serialises concurrent
offer acceptances on the same request.

Applied migration versions are stored in the ``migrations`` table and
new migrations are executed in order.
"""

import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from .config import settings
from .exceptions import InternalError, MarketplaceError, ValidationError

logger = logging.getLogger(__name__)


def get_database_path() -> str:
    """Compute the path to the SQLite database file.

    If ``settings.database_url`` is an absolute path, use it directly.
    Otherwise resolve it relative to the project root.
    """
    db_url = settings.database_url
    if os.path.isabs(db_url):
        return db_url
    base_dir = Path(__file__).resolve().parent.parent.parent  # marketplace_api/
    return str((base_dir / db_url).resolve())


def utcnow() -> str:
    """Current UTC time as an ISO 8601 string with microseconds."""
    return datetime.now(timezone.utc).isoformat()


def _casefold(value):
    return value.casefold() if isinstance(value, str) else value


def get_connection() -> sqlite3.Connection:
    """Create and return a new SQLite connection.

    Rows are returned as ``sqlite3.Row`` so columns can be accessed by
    name.  Foreign key enforcement is switched on per connection since
    SQLite leaves it off by default.

    ``casefold(text)`` is registered for case-insensitive matching;
    SQLite's own ``LOWER`` folds ASCII letters only.
    """
    conn = sqlite3.connect(
        get_database_path(),
        timeout=settings.db_busy_timeout,
        isolation_level=None,
    )
    conn.row_factory = sqlite3.Row
    conn.create_function("casefold", 1, _casefold, deterministic=True)
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def get_cursor() -> Iterator[sqlite3.Cursor]:
    """Context manager for read paths; closes the connection on exit."""
    conn = get_connection()
    try:
        yield conn.cursor()
    except sqlite3.Error as exc:
        logger.exception("Database read failed")
        raise InternalError("Database read failed") from exc
    finally:
        conn.close()


def _integrity_error(exc: sqlite3.IntegrityError) -> MarketplaceError:
    message = str(exc)
    if message.startswith("UNIQUE constraint failed"):
        return ValidationError(f"Duplicate value: {message.split(':', 1)[-1].strip()}")
    if message.startswith("FOREIGN KEY constraint failed"):
        return ValidationError("Referenced record does not exist")
    if message.startswith("NOT NULL constraint failed"):
        field = message.split(".")[-1]
        return ValidationError(f"{field} is required", field=field)
    # CHECK failures mean a lifecycle invariant would have been broken.
    logger.error("Integrity violation: %s", message)
    return InternalError("Database constraint violated")


@contextmanager
def transaction() -> Iterator[sqlite3.Cursor]:
    """Run a block inside a single ``BEGIN IMMEDIATE`` transaction.

    The transaction commits when the block exits normally and rolls
    back on any exception, including task cancellation.  Marketplace
    errors raised by the block propagate unchanged; sqlite errors are
    translated into the marketplace taxonomy.
    """
    conn = get_connection()
    cursor = conn.cursor()
    try:
        cursor.execute("BEGIN IMMEDIATE")
    except sqlite3.Error as exc:
        conn.close()
        logger.error("Could not start transaction: %s", exc)
        raise InternalError("Database is busy, try again later") from exc
    try:
        yield cursor
        conn.commit()
    except sqlite3.IntegrityError as exc:
        conn.rollback()
        raise _integrity_error(exc) from exc
    except sqlite3.Error as exc:
        conn.rollback()
        logger.exception("Database write failed")
        raise InternalError("Database write failed") from exc
    except BaseException:
        conn.rollback()
        raise
    finally:
        conn.close()


MIGRATIONS: list[tuple[int, str]] = [
    # Migration 1: users and communities.  Both are owned by other
    # services; this schema only keeps what relation loading needs.
    (
        1,
        """
        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            email TEXT NOT NULL UNIQUE,
            role TEXT NOT NULL DEFAULT 'user',
            is_active INTEGER NOT NULL DEFAULT 1,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS communities (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            slug TEXT NOT NULL UNIQUE,
            description TEXT,
            is_active INTEGER NOT NULL DEFAULT 1,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        );
        """,
    ),
    # Migration 2: service requests and offers.
    (
        2,
        """
        -- accepted_offer_id is set iff the request is in_progress or completed.
        CREATE TABLE IF NOT EXISTS service_requests (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            title TEXT NOT NULL,
            description TEXT NOT NULL,
            category TEXT,
            requester_id INTEGER NOT NULL,
            community_id INTEGER NOT NULL,
            status TEXT NOT NULL DEFAULT 'open'
                CHECK (status IN ('open', 'in_progress', 'completed', 'cancelled')),
            budget REAL,
            accepted_offer_id INTEGER,
            completed_at TIMESTAMP,
            created_at TIMESTAMP NOT NULL,
            updated_at TIMESTAMP NOT NULL,
            deleted_at TIMESTAMP,
            CHECK ((accepted_offer_id IS NOT NULL) = (status IN ('in_progress', 'completed'))),
            FOREIGN KEY(requester_id) REFERENCES users(id),
            FOREIGN KEY(community_id) REFERENCES communities(id),
            FOREIGN KEY(accepted_offer_id) REFERENCES service_offers(id)
        );

        CREATE TABLE IF NOT EXISTS service_offers (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            service_request_id INTEGER NOT NULL,
            provider_id INTEGER NOT NULL,
            description TEXT NOT NULL,
            proposed_price REAL,
            estimated_duration TEXT,
            status TEXT NOT NULL DEFAULT 'pending'
                CHECK (status IN ('pending', 'accepted', 'rejected', 'withdrawn')),
            created_at TIMESTAMP NOT NULL,
            updated_at TIMESTAMP NOT NULL,
            deleted_at TIMESTAMP,
            FOREIGN KEY(service_request_id) REFERENCES service_requests(id),
            FOREIGN KEY(provider_id) REFERENCES users(id)
        );

        CREATE INDEX IF NOT EXISTS idx_service_requests_community ON service_requests(community_id);
        CREATE INDEX IF NOT EXISTS idx_service_requests_requester ON service_requests(requester_id);
        CREATE INDEX IF NOT EXISTS idx_service_requests_status ON service_requests(status);
        CREATE INDEX IF NOT EXISTS idx_service_requests_category ON service_requests(category);
        CREATE INDEX IF NOT EXISTS idx_service_offers_request ON service_offers(service_request_id);
        CREATE INDEX IF NOT EXISTS idx_service_offers_provider ON service_offers(provider_id);
        """,
    ),
    # Migration 3: at most one accepted offer per request, enforced by
    # the store as well as by the acceptance protocol.
    (
        3,
        """
        CREATE UNIQUE INDEX IF NOT EXISTS uq_service_offers_one_accepted
            ON service_offers(service_request_id) WHERE status = 'accepted';
        """,
    ),
]


def init_db() -> None:
    """Initialise the database and apply pending migrations.

    Creates the ``migrations`` table if it does not exist, reads the
    current schema version and applies every newer entry of
    ``MIGRATIONS``.  To change the schema, append a migration with an
    incremented version number.
    """
    conn = get_connection()
    try:
        cursor = conn.cursor()
        cursor.execute("CREATE TABLE IF NOT EXISTS migrations (version INTEGER PRIMARY KEY)")
        row = cursor.execute("SELECT MAX(version) AS version FROM migrations").fetchone()
        current_version = row["version"] if row and row["version"] is not None else 0

        for version, sql in MIGRATIONS:
            if version > current_version:
                cursor.executescript(sql)
                cursor.execute("INSERT INTO migrations (version) VALUES (?)", (version,))
                logger.info("Applied migration %s", version)
                current_version = version
    finally:
        conn.close()
