"""
Birthday wish feature package.

Keeps every layer of the daily birthday run co-located: domain models, the
route/user repository, the scan/schedule/report services, the worker jobs
and the HTTP trigger.
"""

# Re-export the primary building blocks for easy access.
from .api.router import router as birthday_router  # noqa: F401
from .services.controller import BirthdayWishService  # noqa: F401
from .services.run_scheduler import RunScheduler  # noqa: F401
from .services.scanner import RouteUserScanner  # noqa: F401
from .domain.models import Route, BirthdayUser, ScanReport  # noqa: F401
