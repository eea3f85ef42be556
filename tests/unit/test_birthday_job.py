from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.features.birthday_wishes.domain import RunOutcome
from app.features.birthday_wishes.jobs import birthday_job


@pytest.mark.asyncio
async def test_run_birthday_once_runs_and_stops(monkeypatch):
    service = MagicMock()
    service.run_now = AsyncMock(return_value=RunOutcome(status="skipped", attempted_at=datetime(2024, 3, 15)))
    service.stop = AsyncMock()
    monkeypatch.setattr(birthday_job.BirthdayWishService, "from_settings", MagicMock(return_value=service))

    outcome = await birthday_job.run_birthday_once()

    assert outcome.status == "skipped"
    service.run_now.assert_awaited_once()
    service.stop.assert_awaited_once()


@pytest.mark.asyncio
async def test_run_birthday_once_stops_even_on_error(monkeypatch):
    service = MagicMock()
    service.run_now = AsyncMock(side_effect=RuntimeError("unexpected"))
    service.stop = AsyncMock()
    monkeypatch.setattr(birthday_job.BirthdayWishService, "from_settings", MagicMock(return_value=service))

    with pytest.raises(RuntimeError):
        await birthday_job.run_birthday_once()

    service.stop.assert_awaited_once()
