import time
from contextlib import asynccontextmanager
from datetime import date

import pytest

from app.features.birthday_wishes.domain import BirthdayUser, MetadataEntry, Route
from app.features.birthday_wishes.services.notification_dispatcher import NotificationDispatcher


def make_user(
    user_id: str,
    route_id: str = "r1",
    birthday=None,
    extra_metadata: list[MetadataEntry] | None = None,
) -> BirthdayUser:
    metadata = list(extra_metadata or [])
    if birthday is not None:
        metadata.insert(0, MetadataEntry(id=1, name="birthday_date", value=birthday))
    return BirthdayUser(
        id=user_id,
        route_id=route_id,
        email=f"{user_id}@example.com",
        first_name=f"fname-{user_id}",
        last_name=f"lname-{user_id}",
        cell_phone=f"+1555{user_id}",
        country="India",
        metadata=metadata,
    )


class FakeRouteUserStore:
    """In-memory paged store that records every fetch."""

    def __init__(self, routes: list[Route] | None = None, users: list[BirthdayUser] | None = None):
        self.routes = routes or []
        self.users = users or []
        self.route_fetches: list[tuple[int, int]] = []
        self.user_fetches: list[tuple[str, int, int]] = []
        self.fail_on_users_for: str | None = None

    async def fetch_routes_page(self, offset: int, limit: int) -> list[Route]:
        self.route_fetches.append((offset, limit))
        return self.routes[offset : offset + limit]

    async def fetch_users_page(self, route_id: str, offset: int, limit: int) -> list[BirthdayUser]:
        self.user_fetches.append((route_id, offset, limit))
        if route_id == self.fail_on_users_for:
            raise RuntimeError(f"users page failed for {route_id}")
        matching = [user for user in self.users if user.route_id == route_id]
        return matching[offset : offset + limit]


class RecordingDispatcher(NotificationDispatcher):
    """Dispatcher returning a fixed outcome and remembering who it saw."""

    def __init__(self, outcome: bool = True, fail_for: set[str] | None = None, raise_for: set[str] | None = None):
        self.outcome = outcome
        self.fail_for = fail_for or set()
        self.raise_for = raise_for or set()
        self.sent: list[tuple[str, str]] = []
        self.closed = False

    async def send(self, route_name: str, user: BirthdayUser) -> bool:
        self.sent.append((route_name, user.id))
        if user.id in self.raise_for:
            raise RuntimeError("gateway exploded")
        if user.id in self.fail_for:
            return False
        return self.outcome

    async def close(self) -> None:
        self.closed = True


class FakeConnectionFactory:
    """Stand-in for open_store_connection that tracks open/close."""

    def __init__(self, error: Exception | None = None):
        self.error = error
        self.opened = 0
        self.closed = 0

    def __call__(self):
        return self._connect()

    @asynccontextmanager
    async def _connect(self):
        if self.error is not None:
            raise self.error
        self.opened += 1
        try:
            yield object()
        finally:
            self.closed += 1


@pytest.fixture
def target_date():
    return date(2024, 3, 15)


@pytest.fixture
def recording_dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def user_factory():
    return make_user


@pytest.fixture
def store_factory():
    return FakeRouteUserStore


@pytest.fixture
def dispatcher_factory():
    return RecordingDispatcher


@pytest.fixture
def connection_factory():
    return FakeConnectionFactory


@pytest.fixture
def india_local_time(monkeypatch):
    """Run with the process local time fixed at UTC+05:30."""
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset is not available on this platform")
    monkeypatch.setenv("TZ", "IST-05:30")
    time.tzset()
    yield
    monkeypatch.undo()
    time.tzset()
