"""
Two-level paged traversal over routes and their users.

Every route is visited, and for each route every user, using fixed-size
pages. A page shorter than the page size (including an empty one) is the
only termination signal: a full page always triggers one more fetch.
Matching users get one dispatch attempt each and the outcome is counted
once the dispatch resolves.
"""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import date, datetime
from typing import Any, TypeVar

from app.features.birthday_wishes.domain import (
    BIRTHDAY_METADATA_NAME,
    BirthdayUser,
    ScanReport,
    ScanResult,
)
from app.features.birthday_wishes.repository.route_user_repository import RouteUserStore
from app.features.birthday_wishes.services.date_service import (
    format_timestamp,
    is_same_day_of_year,
    parse_calendar_date,
)
from app.features.birthday_wishes.services.notification_dispatcher import NotificationDispatcher
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

DEFAULT_PAGE_SIZE = 50

T = TypeVar("T")


class ScanInProgressError(Exception):
    """Raised when scan() is called while another scan is running."""

    def __init__(self, message: str = "A birthday scan is already in progress"):
        super().__init__(message)
        self.recoverable = True


def find_birthday_value(user: BirthdayUser) -> Any:
    """Value of the first `birthday_date` metadata entry, or None."""
    for entry in user.metadata:
        if entry.name == BIRTHDAY_METADATA_NAME:
            return entry.value
    return None


def is_birthday_match(value: Any, target_date: date) -> bool:
    """Day-and-month comparison; missing or empty values never match."""
    birthday = parse_calendar_date(value)
    if birthday is None:
        return False
    return is_same_day_of_year(birthday, target_date)


async def iter_pages(
    fetch_page: Callable[[int, int], Awaitable[list[T]]],
    page_size: int,
    on_page: Callable[[], None] | None = None,
) -> AsyncIterator[list[T]]:
    """
    Yield pages from fetch_page(offset, limit) until a short page.

    The next page is requested only after the consumer is done with the
    current one.
    """
    offset = 0
    while True:
        page = await fetch_page(offset, page_size)
        if on_page:
            on_page()
        if page:
            yield page
        if len(page) < page_size:
            return
        offset += page_size


class RouteUserScanner:
    """Finds today's birthday users and dispatches a wish to each."""

    def __init__(
        self,
        store: RouteUserStore,
        dispatcher: NotificationDispatcher,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        self.store = store
        self.dispatcher = dispatcher
        self.page_size = page_size
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    async def scan(self, target_date: date) -> ScanResult:
        """
        Traverse all routes/users and dispatch to birthday matches.

        Raises:
            ScanInProgressError: If a scan is already running
            RouteUserRepositoryError: If any page fetch fails (scan aborted)
        """
        if self._lock.locked():
            raise ScanInProgressError()

        async with self._lock:
            return await self._scan(target_date)

    async def _scan(self, target_date: date) -> ScanResult:
        started_at = datetime.now()
        result = ScanResult(
            report=ScanReport(),
            target_date=target_date,
            started_at=started_at,
            finished_at=started_at,
        )

        logger.info(
            "Searching birthday users started",
            started_at=format_timestamp(started_at),
            target_date=target_date.isoformat(),
            page_size=self.page_size,
        )

        def count_route_page() -> None:
            result.route_pages_fetched += 1

        async for routes in iter_pages(self.store.fetch_routes_page, self.page_size, count_route_page):
            for route in routes:
                result.routes_visited += 1
                await self._scan_route(route.id, route.name, target_date, result)

        result.finished_at = datetime.now()

        logger.info("Birthday scan completed", **result.to_dict())
        return result

    async def _scan_route(self, route_id: str, route_name: str, target_date: date, result: ScanResult) -> None:
        async def fetch_users(offset: int, limit: int) -> list[BirthdayUser]:
            return await self.store.fetch_users_page(route_id, offset, limit)

        def count_user_page() -> None:
            result.user_pages_fetched += 1

        async for users in iter_pages(fetch_users, self.page_size, count_user_page):
            for user in users:
                result.users_visited += 1
                if not is_birthday_match(find_birthday_value(user), target_date):
                    continue
                delivered = await self._dispatch(route_name, user)
                result.report.record(delivered)

    async def _dispatch(self, route_name: str, user: BirthdayUser) -> bool:
        try:
            return bool(await self.dispatcher.send(route_name, user))
        except Exception as e:
            logger.error(
                "Birthday notification dispatch error",
                user_id=user.id,
                route=route_name,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False
