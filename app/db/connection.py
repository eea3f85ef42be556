# app/db/connection.py
"""
Per-run PostgreSQL connections using psycopg.

Each birthday run opens a fresh connection and is guaranteed to close it,
whatever way the run ends (success, error, cancellation).
"""

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import psycopg
from psycopg import sql
from psycopg.rows import dict_row

from app.config import settings
from app.db.helpers import DatabaseError, fetch_one
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class StoreConnectionError(DatabaseError):
    """Raised when the store cannot be reached for a run."""

    def __init__(self, message: str):
        super().__init__(message, operation="connect", recoverable=True)


async def _configure_connection(conn: psycopg.AsyncConnection) -> None:
    """Configure a freshly opened connection."""
    app_name = f"birthday-wish-{settings.environment}"

    # Read-only scan; autocommit avoids leaving the session INTRANS
    await conn.set_autocommit(True)

    # Don't parameterize SET; inline safely with Literal
    await conn.execute(sql.SQL("SET application_name = {}").format(sql.Literal(app_name)))
    await conn.execute("SET timezone = 'UTC'")
    await conn.execute("SET statement_timeout = '60s'")


async def connect_store(**overrides: Any) -> psycopg.AsyncConnection:
    """
    Open and configure a single store connection.

    Raises:
        StoreConnectionError: If the server is unreachable or rejects the session
    """
    config = settings.get_store_connect_config()
    config.update(overrides)

    try:
        conn = await psycopg.AsyncConnection.connect(row_factory=dict_row, **config)
    except psycopg.Error as e:
        logger.error(
            "Error occurred while establishing connection with store",
            dbname=config.get("dbname"),
            error=str(e),
            error_type=type(e).__name__,
        )
        raise StoreConnectionError(f"Store connection failed: {e}") from e

    try:
        await _configure_connection(conn)
    except psycopg.Error as e:
        await conn.close()
        raise StoreConnectionError(f"Store connection setup failed: {e}") from e

    return conn


@asynccontextmanager
async def open_store_connection(**overrides: Any) -> AsyncGenerator[psycopg.AsyncConnection, None]:
    """
    Scoped store connection.

    Usage:
        async with open_store_connection() as conn:
            repo = RouteUserRepository(conn)
            ...
    """
    conn = await connect_store(**overrides)
    logger.info("Store connection successfully created", dbname=settings.STORE_DB_NAME)

    try:
        yield conn
    finally:
        try:
            await conn.close()
            logger.debug("Store connection closed")
        except Exception as e:
            logger.error("Error closing store connection", error=str(e))


async def store_health_check() -> dict[str, Any]:
    """
    Open a short-lived connection and run SELECT 1.

    Returns:
        dict: Health status with latency
    """
    start_time = time.time()

    try:
        async with open_store_connection() as conn:
            row = await fetch_one("SELECT 1 AS ok", connection=conn)

        test_value = list(row.values())[0] if row else None
        if test_value != 1:
            return {
                "healthy": False,
                "service": "store",
                "error": f"Store test failed - got {test_value} instead of 1",
            }

        return {
            "healthy": True,
            "service": "store",
            "connection_time_ms": round((time.time() - start_time) * 1000, 2),
        }

    except Exception as e:
        logger.error("Store health check failed", error=str(e))
        return {
            "healthy": False,
            "service": "store",
            "error": str(e),
            "error_type": type(e).__name__,
        }
