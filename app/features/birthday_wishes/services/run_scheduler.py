"""
Day-level run deduplication and the periodic recheck timer.

At most one run may be recorded as started per calendar day. The recheck
timer re-attempts every interval (hourly by default) so a process that was
down at the usual trigger time still runs once that day.
"""

import asyncio
import threading
from collections.abc import Awaitable, Callable
from datetime import date, datetime

from app.features.birthday_wishes.domain import RunDecision, RunState
from app.features.birthday_wishes.services.date_service import (
    format_timestamp,
    is_same_calendar_day,
)
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

DEFAULT_RECHECK_INTERVAL_SECONDS = 3600.0

RecheckCallback = Callable[[], Awaitable[object]]


class RunScheduler:
    """
    Owns RunState and the recheck task.

    The target date is fixed when the scheduler is built; it defaults to the
    clock's current day.
    """

    def __init__(
        self,
        target_date: date | None = None,
        clock: Callable[[], datetime] = datetime.now,
        state: RunState | None = None,
    ):
        self._clock = clock
        self.state = state or RunState()
        self.target_date = target_date or clock().date()
        self.interval_seconds: float | None = None
        self._lock = threading.Lock()
        self._task: asyncio.Task | None = None
        self._inflight: asyncio.Future | None = None

    def attempt_run(self) -> RunDecision:
        """Check-and-set the dedup flag for the current calendar day."""
        with self._lock:
            now = self._clock()
            last = self.state.last_execution_date

            if last is not None and is_same_calendar_day(last, now):
                logger.warning(
                    "Service can't be started again for the same day",
                    attempted_at=format_timestamp(now),
                    last_execution=format_timestamp(last),
                )
                return RunDecision.SKIP

            self.state.last_execution_date = now

        logger.info("Birthday run due", attempted_at=format_timestamp(now))
        return RunDecision.PROCEED

    def forget_attempt(self, previous: datetime | None) -> None:
        """Put back the dedup flag as it was before the last PROCEED."""
        with self._lock:
            self.state.last_execution_date = previous
        logger.info(
            "Birthday run attempt rolled back",
            last_execution=format_timestamp(previous) if previous else None,
        )

    @property
    def is_rechecking(self) -> bool:
        return self._task is not None and not self._task.done()

    def start_periodic_recheck(
        self,
        callback: RecheckCallback,
        interval_seconds: float = DEFAULT_RECHECK_INTERVAL_SECONDS,
    ) -> None:
        """Invoke callback every interval until stop(). Must run inside an event loop."""
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        if self.is_rechecking:
            logger.debug("Periodic recheck already running")
            return

        self.interval_seconds = interval_seconds
        self._task = asyncio.get_running_loop().create_task(
            self._recheck_loop(callback, interval_seconds), name="birthday-run-recheck"
        )
        logger.info("Periodic recheck started", interval_seconds=interval_seconds)

    async def _recheck_loop(self, callback: RecheckCallback, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            run = asyncio.ensure_future(callback())
            run.add_done_callback(self._log_run_failure)
            self._inflight = run
            # stop() cancels this wait, never the run itself
            await asyncio.wait({run})

    @staticmethod
    def _log_run_failure(run: asyncio.Future) -> None:
        if run.cancelled():
            return
        error = run.exception()
        if error is not None:
            # Keep ticking; the next interval gets another chance
            logger.error(
                "Error in periodic birthday recheck",
                error=str(error),
                error_type=type(error).__name__,
            )

    async def stop(self) -> None:
        """
        Cancel the recheck timer. No callback is started after this returns;
        a run that is already in flight is left to finish.
        """
        task, self._task = self._task, None
        if task is None or task.done():
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Periodic recheck stopped")

    def get_status(self) -> dict:
        last = self.state.last_execution_date
        return {
            "target_date": self.target_date.isoformat(),
            "last_execution_date": last.isoformat() if last else None,
            "recheck_running": self.is_rechecking,
            "interval_seconds": self.interval_seconds,
        }
