"""
Read-only access to the routes and users tables.

Expected schema:

    routes(id, name)
    users(id, route_id, email, first_name, last_name, cell_phone, country,
          metadata jsonb)  -- [{"id": 1, "name": "birthday_date", "value": "..."}]

Both tables are paged with OFFSET/LIMIT so a scan never holds more than one
page in memory. Rows are ordered by id to keep offsets stable between pages.
"""

import json
from typing import Any, Protocol

import psycopg

from app.db.helpers import DatabaseError, fetch_all
from app.features.birthday_wishes.domain import BirthdayUser, MetadataEntry, Route
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class RouteUserRepositoryError(DatabaseError):
    """Raised when a page of routes or users cannot be fetched."""


class RouteUserStore(Protocol):
    """Paged lookups the scanner depends on."""

    async def fetch_routes_page(self, offset: int, limit: int) -> list[Route]: ...

    async def fetch_users_page(self, route_id: str, offset: int, limit: int) -> list[BirthdayUser]: ...


class RouteUserRepository:
    """psycopg-backed RouteUserStore bound to one open connection."""

    ROUTE_SELECT_COLUMNS = "id, name"
    USER_SELECT_COLUMNS = """
        id, route_id, email, first_name, last_name, cell_phone, country, metadata
    """

    def __init__(self, connection: psycopg.AsyncConnection):
        self._connection = connection

    @staticmethod
    def _row_to_route(row: dict) -> Route:
        return Route(id=str(row["id"]), name=row.get("name") or "")

    @staticmethod
    def _parse_metadata(raw: Any, user_id: str | None = None) -> list[MetadataEntry]:
        if not raw:
            return []
        if isinstance(raw, (str, bytes)):
            try:
                raw = json.loads(raw)
            except ValueError as e:
                logger.warning("Unreadable user metadata, treating as empty", user_id=user_id, error=str(e))
                return []
        if not isinstance(raw, list):
            return []

        entries = []
        for item in raw:
            if not isinstance(item, dict) or "name" not in item:
                continue
            # store documents may use either "id" or "_id"
            entry_id = item.get("id", item.get("_id"))
            entries.append(
                MetadataEntry(
                    id=str(entry_id) if entry_id is not None else None,
                    name=item["name"],
                    value=item.get("value"),
                )
            )
        return entries

    @classmethod
    def _row_to_user(cls, row: dict) -> BirthdayUser:
        return BirthdayUser(
            id=str(row["id"]),
            route_id=str(row["route_id"]),
            email=row.get("email"),
            first_name=row.get("first_name"),
            last_name=row.get("last_name"),
            cell_phone=row.get("cell_phone"),
            country=row.get("country"),
            metadata=cls._parse_metadata(row.get("metadata"), user_id=str(row["id"])),
        )

    async def fetch_routes_page(self, offset: int, limit: int) -> list[Route]:
        """Return routes [offset, offset + limit) in id order."""
        query = f"""
            SELECT {self.ROUTE_SELECT_COLUMNS}
            FROM routes
            ORDER BY id
            OFFSET %s LIMIT %s
        """
        try:
            rows = await fetch_all(query, (offset, limit), connection=self._connection)
        except DatabaseError as e:
            raise RouteUserRepositoryError(
                f"Failed to fetch routes page at offset {offset}: {e}",
                operation="fetch_routes_page",
            ) from e

        return [self._row_to_route(row) for row in rows]

    async def fetch_users_page(self, route_id: str, offset: int, limit: int) -> list[BirthdayUser]:
        """Return one page of the users that belong to route_id."""
        query = f"""
            SELECT {self.USER_SELECT_COLUMNS}
            FROM users
            WHERE route_id = %s
            ORDER BY id
            OFFSET %s LIMIT %s
        """
        try:
            rows = await fetch_all(query, (route_id, offset, limit), connection=self._connection)
        except DatabaseError as e:
            raise RouteUserRepositoryError(
                f"Failed to fetch users page for route {route_id} at offset {offset}: {e}",
                operation="fetch_users_page",
            ) from e

        return [self._row_to_user(row) for row in rows]
