"""
Process-wide entry point for birthday runs.

BirthdayWishService owns the single RunScheduler, opens a fresh store
connection for each run that is due, drives the scanner and emits the
report. Every error is caught here, logged and turned into a RunOutcome
so neither the HTTP trigger nor the recheck timer ever sees it.
"""

import asyncio
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from datetime import datetime

import psycopg

from app.config import Settings
from app.db.connection import StoreConnectionError, open_store_connection
from app.features.birthday_wishes.domain import RunDecision, RunOutcome, ScanResult
from app.features.birthday_wishes.repository.route_user_repository import (
    RouteUserRepository,
    RouteUserStore,
)
from app.features.birthday_wishes.services.date_service import format_timestamp
from app.features.birthday_wishes.services.notification_dispatcher import (
    NotificationDispatcher,
    build_dispatcher,
)
from app.features.birthday_wishes.services.report_emitter import ReportEmitter
from app.features.birthday_wishes.services.run_scheduler import (
    DEFAULT_RECHECK_INTERVAL_SECONDS,
    RunScheduler,
)
from app.features.birthday_wishes.services.scanner import (
    DEFAULT_PAGE_SIZE,
    RouteUserScanner,
    ScanInProgressError,
)
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

ConnectionFactory = Callable[[], AbstractAsyncContextManager[psycopg.AsyncConnection]]
StoreFactory = Callable[[psycopg.AsyncConnection], RouteUserStore]


class BirthdayWishService:
    """Wires scheduler, store, scanner, dispatcher and report together."""

    def __init__(
        self,
        scheduler: RunScheduler,
        dispatcher: NotificationDispatcher,
        report_emitter: ReportEmitter,
        connection_factory: ConnectionFactory = open_store_connection,
        store_factory: StoreFactory = RouteUserRepository,
        page_size: int = DEFAULT_PAGE_SIZE,
        recheck_interval_seconds: float = DEFAULT_RECHECK_INTERVAL_SECONDS,
        rollback_on_connection_failure: bool = False,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.scheduler = scheduler
        self.dispatcher = dispatcher
        self.report_emitter = report_emitter
        self.page_size = page_size
        self.recheck_interval_seconds = recheck_interval_seconds
        self.rollback_on_connection_failure = rollback_on_connection_failure
        self.last_outcome: RunOutcome | None = None
        self._connection_factory = connection_factory
        self._store_factory = store_factory
        self._clock = clock
        self._run_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "BirthdayWishService":
        return cls(
            scheduler=RunScheduler(target_date=settings.TARGET_DATE),
            dispatcher=build_dispatcher(settings),
            report_emitter=ReportEmitter.from_settings(settings),
            page_size=settings.PAGE_SIZE,
            recheck_interval_seconds=settings.RECHECK_INTERVAL_SECONDS,
            rollback_on_connection_failure=settings.ROLLBACK_ON_CONNECTION_FAILURE,
        )

    async def start(self) -> None:
        """Run once now, then keep rechecking on the configured interval."""
        logger.info(
            "Birthday wish service starting",
            target_date=self.scheduler.target_date.isoformat(),
            interval_seconds=self.recheck_interval_seconds,
            page_size=self.page_size,
        )
        await self.run_now()
        self.scheduler.start_periodic_recheck(self.run_now, self.recheck_interval_seconds)

    async def stop(self) -> None:
        """
        Stop the recheck timer and release the dispatcher.

        A run already in progress is left to finish; the dispatcher is only
        closed once it has.
        """
        await self.scheduler.stop()
        async with self._run_lock:
            try:
                await self.dispatcher.close()
            except Exception as e:
                logger.error("Error closing notification dispatcher", error=str(e))
        logger.info("Birthday wish service stopped")

    async def run_now(self) -> RunOutcome:
        """Run the daily scan if it has not started yet today."""
        attempted_at = self._clock()

        if self._run_lock.locked():
            logger.warning("Birthday run already in progress, skipping", attempted_at=format_timestamp(attempted_at))
            return self._finish(RunOutcome(status="already_running", attempted_at=attempted_at))

        async with self._run_lock:
            previous = self.scheduler.state.last_execution_date
            if self.scheduler.attempt_run() is RunDecision.SKIP:
                return self._finish(
                    RunOutcome(
                        status="skipped",
                        attempted_at=attempted_at,
                        details={"last_execution": previous.isoformat() if previous else None},
                    )
                )

            logger.info("Service initialized, trying to connect to store", attempted_at=format_timestamp(attempted_at))
            try:
                result = await self._connect_and_scan()

            except StoreConnectionError as e:
                logger.error("Birthday run aborted - store unreachable", error=str(e))
                if self.rollback_on_connection_failure:
                    self.scheduler.forget_attempt(previous)
                return self._finish(RunOutcome(status="connection_failed", attempted_at=attempted_at, error=str(e)))

            except ScanInProgressError:
                logger.warning("Birthday scan already in progress, skipping")
                self.scheduler.forget_attempt(previous)
                return self._finish(RunOutcome(status="already_running", attempted_at=attempted_at))

            except Exception as e:
                logger.error("Birthday run failed", error=str(e), error_type=type(e).__name__)
                return self._finish(RunOutcome(status="failed", attempted_at=attempted_at, error=str(e)))

            return self._finish(RunOutcome(status="completed", attempted_at=attempted_at, result=result))

    async def _connect_and_scan(self) -> ScanResult:
        async with self._connection_factory() as conn:
            scanner = RouteUserScanner(self._store_factory(conn), self.dispatcher, self.page_size)
            result = await scanner.scan(self.scheduler.target_date)
            await self._emit_report(result)
            return result

    async def _emit_report(self, result: ScanResult) -> None:
        try:
            await self.report_emitter.emit(result.report, result.duration_seconds, result.target_date)
        except Exception as e:
            logger.error("Report emission failed", error=str(e), error_type=type(e).__name__)

    def _finish(self, outcome: RunOutcome) -> RunOutcome:
        self.last_outcome = outcome
        return outcome

    def get_status(self) -> dict:
        return {
            "job_name": "birthday_wishes",
            "is_running": self._run_lock.locked(),
            "page_size": self.page_size,
            **self.scheduler.get_status(),
            "last_outcome": self.last_outcome.to_dict() if self.last_outcome else None,
        }
