# app/db/helpers.py
"""
Database helper functions for common query patterns.
Reduces boilerplate in the repository layer.
"""

from typing import Any

import psycopg

from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class DatabaseError(Exception):
    """Custom exception for database operations."""

    def __init__(self, message: str, operation: str = "unknown", recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


async def fetch_one(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection
) -> dict[str, Any] | None:
    """
    Execute query and return single row as dict.

    Args:
        query: SQL query with %s placeholders
        params: Query parameters
        connection: Open connection (dict_row factory)

    Returns:
        Dict with row data or None if no results
    """
    try:
        async with connection.cursor() as cur:
            await cur.execute(query, params)
            row = await cur.fetchone()
            return row if row else None

    except psycopg.Error as e:
        logger.error("Database fetch_one error", query=query[:100], error=str(e))
        raise DatabaseError(f"Query failed: {e}", operation="fetch_one") from e


async def fetch_all(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection
) -> list[dict[str, Any]]:
    """
    Execute query and return all rows as list of dicts.

    Args:
        query: SQL query with %s placeholders
        params: Query parameters
        connection: Open connection (dict_row factory)

    Returns:
        List of dicts with row data
    """
    try:
        async with connection.cursor() as cur:
            await cur.execute(query, params)
            rows = await cur.fetchall()
            return list(rows)

    except psycopg.Error as e:
        logger.error("Database fetch_all error", query=query[:100], error=str(e))
        raise DatabaseError(f"Query failed: {e}", operation="fetch_all") from e
