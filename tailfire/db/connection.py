"""
Pooled PostgreSQL connections for the credential repository and migrations.

Pool bounds come from ``TAILFIRE_DB_POOL_MIN`` / ``TAILFIRE_DB_POOL_MAX``.
Every borrowed connection is one transaction; the credential repository
relies on that for rotate and rollback.

Usage:
    from tailfire.db import get_connection

    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT 1")
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Generator
from contextlib import contextmanager

import psycopg2
import psycopg2.pool

from tailfire.config import DatabaseConfig, get_config

logger = logging.getLogger(__name__)

_pool: psycopg2.pool.ThreadedConnectionPool | None = None
_pool_lock = threading.Lock()


def _open_pool(cfg: DatabaseConfig) -> psycopg2.pool.ThreadedConnectionPool:
    where = f"{cfg.host or '<socket>'}:{cfg.port}/{cfg.name}"
    logger.info(
        "Opening credential database pool: %s@%s (min=%d, max=%d)",
        cfg.user,
        where,
        cfg.pool_min,
        cfg.pool_max,
    )
    try:
        return psycopg2.pool.ThreadedConnectionPool(cfg.pool_min, cfg.pool_max, **cfg.dict)
    except psycopg2.OperationalError as e:
        raise ConnectionError(
            f"Cannot connect to PostgreSQL at {where}: {e}\n"
            f"Check TAILFIRE_DB_* environment variables and ensure PostgreSQL is running."
        ) from e


def get_pool() -> psycopg2.pool.ThreadedConnectionPool:
    """Return the process-wide pool, opening it on first use."""
    global _pool
    with _pool_lock:
        if _pool is None or _pool.closed:
            _pool = _open_pool(get_config().db)
        return _pool


@contextmanager
def get_connection() -> Generator[psycopg2.extensions.connection, None, None]:
    """Borrow a pooled connection as one transaction.

    Commits when the block exits normally, rolls back and re-raises otherwise.
    """
    pool = get_pool()
    conn = pool.getconn()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        pool.putconn(conn)


def close_pool() -> None:
    """Close every pooled connection. The next ``get_connection`` reopens."""
    global _pool
    with _pool_lock:
        if _pool is not None:
            _pool.closeall()
            logger.info("Closed credential database pool")
            _pool = None
