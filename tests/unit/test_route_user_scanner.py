"""
Tests for the paged route/user traversal and birthday matching.
"""

from datetime import date, datetime

import pytest

from app.features.birthday_wishes.domain import MetadataEntry, Route
from app.features.birthday_wishes.services.scanner import (
    RouteUserScanner,
    ScanInProgressError,
    find_birthday_value,
    is_birthday_match,
)


def _routes(count: int) -> list[Route]:
    return [Route(id=f"r{i}", name=f"route{i}") for i in range(1, count + 1)]


class TestBirthdayPredicate:
    def test_day_and_month_match_ignores_year(self):
        assert is_birthday_match(date(1990, 3, 15), date(2024, 3, 15)) is True
        assert is_birthday_match(datetime(1975, 3, 15, 8, 30), date(2024, 3, 15)) is True
        assert is_birthday_match("2001-03-15", date(2024, 3, 15)) is True

    def test_different_day_or_month_does_not_match(self):
        assert is_birthday_match(date(1990, 3, 16), date(2024, 3, 15)) is False
        assert is_birthday_match(date(1990, 4, 15), date(2024, 3, 15)) is False

    def test_utc_stored_birthday_matches_local_day(self, india_local_time):
        assert is_birthday_match("1990-03-14T18:30:00.000Z", date(2024, 3, 15)) is True
        assert is_birthday_match("1990-03-14T18:30:00.000Z", date(2024, 3, 14)) is False

    @pytest.mark.parametrize("value", [None, "", "   ", "not-a-date"])
    def test_missing_or_empty_value_never_matches(self, value):
        assert is_birthday_match(value, date(2024, 3, 15)) is False

    def test_first_birthday_entry_wins(self, user_factory):
        user = user_factory(
            "u1",
            extra_metadata=[
                MetadataEntry(id=2, name="anniversary_date", value="2010-03-15"),
                MetadataEntry(id=3, name="birthday_date", value="1990-03-15"),
                MetadataEntry(id=4, name="birthday_date", value="1990-07-01"),
            ],
        )

        assert find_birthday_value(user) == "1990-03-15"

    def test_no_birthday_entry_returns_none(self, user_factory):
        user = user_factory("u1", extra_metadata=[MetadataEntry(id=2, name="anniversary_date", value="")])

        assert find_birthday_value(user) is None


class TestRouteUserScanner:
    @pytest.mark.asyncio
    async def test_example_page_counts_one_success(
        self, store_factory, user_factory, recording_dispatcher, target_date
    ):
        store = store_factory(
            routes=_routes(1),
            users=[
                user_factory("A", route_id="r1", birthday=date(1990, 3, 15)),
                user_factory("B", route_id="r1", birthday=date(1990, 3, 16)),
                user_factory("C", route_id="r1"),
            ],
        )
        scanner = RouteUserScanner(store, recording_dispatcher, page_size=50)

        result = await scanner.scan(target_date)

        assert result.report.succeeded == 1
        assert result.report.failed == 0
        assert recording_dispatcher.sent == [("route1", "A")]
        assert result.users_visited == 3

    @pytest.mark.asyncio
    async def test_51_users_need_exactly_two_user_fetches(
        self, store_factory, user_factory, recording_dispatcher, target_date
    ):
        users = [user_factory(f"u{i}", route_id="r1") for i in range(51)]
        store = store_factory(routes=_routes(1), users=users)
        scanner = RouteUserScanner(store, recording_dispatcher, page_size=50)

        result = await scanner.scan(target_date)

        assert store.user_fetches == [("r1", 0, 50), ("r1", 50, 50)]
        assert result.users_visited == 51

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "route_count, expected_fetches",
        [(0, 1), (1, 1), (4, 2), (5, 2), (8, 3), (9, 3)],
    )
    async def test_every_route_visited_regardless_of_page_size(
        self, store_factory, recording_dispatcher, target_date, route_count, expected_fetches
    ):
        store = store_factory(routes=_routes(route_count))
        scanner = RouteUserScanner(store, recording_dispatcher, page_size=4)

        result = await scanner.scan(target_date)

        assert result.routes_visited == route_count
        assert result.route_pages_fetched == expected_fetches
        assert [offset for offset, _ in store.route_fetches] == [4 * i for i in range(expected_fetches)]
        # Each route gets one (empty) users fetch
        assert len(store.user_fetches) == route_count

    @pytest.mark.asyncio
    @pytest.mark.parametrize("user_count", [0, 1, 3, 4, 5, 12, 13])
    async def test_every_user_of_every_route_visited(
        self, store_factory, user_factory, recording_dispatcher, target_date, user_count
    ):
        users = [
            user_factory(f"{route_id}-u{i}", route_id=route_id, birthday=date(1980 + i, 3, 15))
            for route_id in ("r1", "r2", "r3")
            for i in range(user_count)
        ]
        store = store_factory(routes=_routes(3), users=users)
        scanner = RouteUserScanner(store, recording_dispatcher, page_size=4)

        result = await scanner.scan(target_date)

        assert result.users_visited == 3 * user_count
        assert result.report.total == 3 * user_count
        assert sorted(user_id for _, user_id in recording_dispatcher.sent) == sorted(u.id for u in users)

    @pytest.mark.asyncio
    async def test_route_without_users_does_not_stop_the_scan(
        self, store_factory, user_factory, recording_dispatcher, target_date
    ):
        store = store_factory(
            routes=_routes(3),
            users=[
                user_factory("u1", route_id="r1", birthday="1990-03-15"),
                user_factory("u3", route_id="r3", birthday="1985-03-15"),
            ],
        )
        scanner = RouteUserScanner(store, recording_dispatcher, page_size=2)

        result = await scanner.scan(target_date)

        assert result.routes_visited == 3
        assert recording_dispatcher.sent == [("route1", "u1"), ("route3", "u3")]

    @pytest.mark.asyncio
    async def test_same_day_different_years_both_match(
        self, store_factory, user_factory, recording_dispatcher, target_date
    ):
        store = store_factory(
            routes=_routes(1),
            users=[
                user_factory("old", route_id="r1", birthday=date(1950, 3, 15)),
                user_factory("young", route_id="r1", birthday=date(2010, 3, 15)),
            ],
        )
        scanner = RouteUserScanner(store, recording_dispatcher)

        result = await scanner.scan(target_date)

        assert result.report.succeeded == 2

    @pytest.mark.asyncio
    async def test_dispatch_failures_and_errors_are_counted(
        self, store_factory, user_factory, dispatcher_factory, target_date
    ):
        dispatcher = dispatcher_factory(outcome=True, fail_for={"u2"}, raise_for={"u3"})
        store = store_factory(
            routes=_routes(1),
            users=[user_factory(f"u{i}", route_id="r1", birthday="1990-03-15") for i in range(1, 5)],
        )
        scanner = RouteUserScanner(store, dispatcher)

        result = await scanner.scan(target_date)

        assert result.report.succeeded == 2
        assert result.report.failed == 2
        assert len(dispatcher.sent) == 4

    @pytest.mark.asyncio
    async def test_page_fetch_error_aborts_scan(
        self, store_factory, user_factory, recording_dispatcher, target_date
    ):
        store = store_factory(routes=_routes(2), users=[user_factory("u1", route_id="r1", birthday="1990-03-15")])
        store.fail_on_users_for = "r2"
        scanner = RouteUserScanner(store, recording_dispatcher)

        with pytest.raises(RuntimeError):
            await scanner.scan(target_date)

        assert scanner.is_running is False

    @pytest.mark.asyncio
    async def test_concurrent_scan_is_rejected(self, store_factory, recording_dispatcher, target_date):
        scanner = RouteUserScanner(store_factory(), recording_dispatcher)

        await scanner._lock.acquire()
        try:
            with pytest.raises(ScanInProgressError):
                await scanner.scan(target_date)
        finally:
            scanner._lock.release()

    def test_page_size_must_be_positive(self, store_factory, recording_dispatcher):
        with pytest.raises(ValueError):
            RouteUserScanner(store_factory(), recording_dispatcher, page_size=0)
