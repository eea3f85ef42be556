"""
Service layer for the birthday wish feature.
"""

from .controller import BirthdayWishService
from .notification_dispatcher import (
    NotificationDispatcher,
    SimulatedSmsDispatcher,
    SmsGatewayDispatcher,
    build_dispatcher,
)
from .report_emitter import ReportEmitter
from .run_scheduler import RunScheduler
from .scanner import RouteUserScanner, ScanInProgressError

__all__ = [
    "BirthdayWishService",
    "NotificationDispatcher",
    "ReportEmitter",
    "RouteUserScanner",
    "RunScheduler",
    "ScanInProgressError",
    "SimulatedSmsDispatcher",
    "SmsGatewayDispatcher",
    "build_dispatcher",
]
