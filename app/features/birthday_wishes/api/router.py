"""
Birthday wish HTTP routes.

The trigger endpoint queues a run and always answers with the same
acknowledgment; whether the run actually scanned or was skipped for the
day shows up in the logs and the status endpoint.
"""

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request

from app.features.birthday_wishes.services.controller import BirthdayWishService
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["birthday-wishes"])


def get_birthday_service(request: Request) -> BirthdayWishService:
    service = getattr(request.app.state, "birthday_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Birthday wish service not started")
    return service


@router.api_route("/run-birthday-service", methods=["GET", "POST"])
async def run_birthday_service(request: Request, background_tasks: BackgroundTasks) -> dict:
    """Manual trigger; subject to the once-per-day rule."""
    service = getattr(request.app.state, "birthday_service", None)
    if service is None:
        logger.warning("Manual birthday run requested before service start")
    else:
        background_tasks.add_task(service.run_now)
        logger.info("Manual birthday run requested")
    return {"status": True}


@router.get("/birthday-service/status")
async def get_birthday_service_status(request: Request) -> dict:
    return get_birthday_service(request).get_status()
