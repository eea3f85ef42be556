"""
Birthday notification delivery.

The scanner only depends on NotificationDispatcher.send() and its boolean
outcome. Two implementations ship with the service:

- SmsGatewayDispatcher posts to an HTTP SMS gateway (SMS_GATEWAY_URL).
- SimulatedSmsDispatcher waits briefly and returns a random outcome; it is
  used whenever no gateway is configured.

Each match gets exactly one attempt; nothing here retries.
"""

import asyncio
import random
from abc import ABC, abstractmethod

import httpx

from app.config import Settings
from app.features.birthday_wishes.domain import BirthdayUser
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class SmsGatewayError(Exception):
    """Custom exception for SMS gateway responses."""

    def __init__(self, message: str, status_code: int | None = None, recoverable: bool = True):
        super().__init__(message)
        self.status_code = status_code
        self.recoverable = recoverable


def build_birthday_message(route_name: str, user: BirthdayUser) -> str:
    name = user.first_name or user.full_name or "there"
    return f"Happy birthday, {name}! Best wishes from all of us at {route_name}."


class NotificationDispatcher(ABC):
    """Delivers one birthday wish and reports whether it went out."""

    @abstractmethod
    async def send(self, route_name: str, user: BirthdayUser) -> bool:
        """Return True when delivered, False when delivery failed."""

    async def close(self) -> None:
        """Release any underlying resources."""
        return None


class SmsGatewayDispatcher(NotificationDispatcher):
    """Sends wishes through an HTTP SMS gateway."""

    def __init__(
        self,
        gateway_url: str,
        token: str | None = None,
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.gateway_url = gateway_url
        self._token = token
        self._timeout_seconds = timeout_seconds
        self._client = client or self._create_client(timeout_seconds)

    def _create_client(self, timeout_seconds: float) -> httpx.AsyncClient:
        """Create async HTTP client for the gateway."""
        timeout = httpx.Timeout(timeout_seconds)
        limits = httpx.Limits(max_keepalive_connections=5, max_connections=10)
        return httpx.AsyncClient(timeout=timeout, limits=limits)

    def _get_client(self) -> httpx.AsyncClient:
        # reopened after close() so a restarted service can send again
        if self._client.is_closed:
            self._client = self._create_client(self._timeout_seconds)
        return self._client

    async def close(self) -> None:
        await self._client.aclose()

    def _get_headers(self) -> dict:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def _post_message(self, route_name: str, user: BirthdayUser) -> None:
        payload = {
            "to": user.cell_phone,
            "message": build_birthday_message(route_name, user),
            "route": route_name,
            "user_id": user.id,
        }
        response = await self._get_client().post(self.gateway_url, json=payload, headers=self._get_headers())
        if not response.is_success:
            raise SmsGatewayError(
                f"SMS gateway returned {response.status_code}",
                status_code=response.status_code,
                recoverable=response.status_code >= 500,
            )

    async def send(self, route_name: str, user: BirthdayUser) -> bool:
        if not user.cell_phone:
            logger.warning("Birthday SMS skipped - user has no phone number", user_id=user.id, route=route_name)
            return False

        try:
            await self._post_message(route_name, user)
        except SmsGatewayError as e:
            logger.warning(
                "Birthday SMS rejected by gateway",
                user_id=user.id,
                route=route_name,
                status_code=e.status_code,
            )
            return False
        except httpx.HTTPError as e:
            logger.warning(
                "Birthday SMS request failed",
                user_id=user.id,
                route=route_name,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        logger.info("Birthday SMS sent", user_id=user.id, route=route_name)
        return True


class SimulatedSmsDispatcher(NotificationDispatcher):
    """Stand-in delivery with a fixed delay and a random outcome."""

    def __init__(self, delay_seconds: float = 0.3, success_rate: float = 0.6, rng: random.Random | None = None):
        self.delay_seconds = delay_seconds
        self.success_rate = success_rate
        self._rng = rng or random.Random()

    async def send(self, route_name: str, user: BirthdayUser) -> bool:
        await asyncio.sleep(self.delay_seconds)
        status = self._rng.random() < self.success_rate

        logger.info(
            "Birthday SMS simulated",
            route=route_name,
            name=user.full_name,
            cell_phone=user.cell_phone,
            status=status,
        )
        return status


def build_dispatcher(settings: Settings) -> NotificationDispatcher:
    """Pick the gateway dispatcher when configured, else the simulated one."""
    if settings.SMS_GATEWAY_URL:
        return SmsGatewayDispatcher(
            settings.SMS_GATEWAY_URL,
            token=settings.SMS_GATEWAY_TOKEN,
            timeout_seconds=settings.SMS_TIMEOUT_SECONDS,
        )

    logger.info("SMS gateway not configured, using simulated delivery")
    return SimulatedSmsDispatcher(
        delay_seconds=settings.SMS_SIMULATED_DELAY_SECONDS,
        success_rate=settings.SMS_SIMULATED_SUCCESS_RATE,
    )
