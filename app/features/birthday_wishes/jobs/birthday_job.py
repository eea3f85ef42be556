"""
Birthday wish job runners for the worker process.

- start_birthday_scheduler: initial run plus the hourly recheck, until the
  process is stopped.
- run_birthday_once: a single run (TARGET_DATE honoured), then exit.
"""

import asyncio

from app.config import settings
from app.features.birthday_wishes.domain import RunOutcome
from app.features.birthday_wishes.services.controller import BirthdayWishService
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


async def start_birthday_scheduler() -> None:
    """Keep the birthday service ticking until cancelled."""
    service = BirthdayWishService.from_settings(settings)
    await service.start()

    try:
        while True:
            await asyncio.sleep(60)
    except asyncio.CancelledError:
        logger.info("Birthday scheduler stopped")
        raise
    finally:
        await service.stop()


async def run_birthday_once() -> RunOutcome:
    """Single run, e.g. from cron or for a specific TARGET_DATE."""
    service = BirthdayWishService.from_settings(settings)
    try:
        outcome = await service.run_now()
    finally:
        await service.stop()

    logger.info("Birthday run finished", **outcome.to_dict())
    return outcome


if __name__ == "__main__":
    asyncio.run(run_birthday_once())
