"""FastAPI application exposing availability and booking to the website."""

from __future__ import annotations

from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Optional

import structlog
from fastapi import Body, Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from . import __version__
from .availability import urgency_message
from .config import Settings
from .core import BookingCore
from .errors import (
    BookingFailedError,
    ConfigurationError,
    ProviderTimeoutError,
    UpstreamError,
    ValidationError,
)
from .utils import today_in_timezone

LOGGER = structlog.get_logger(__name__)

app = FastAPI(title="Venue Booking", version=__version__)


@lru_cache(maxsize=1)
def get_core() -> BookingCore:
    """Process-wide core; one shared cache per running instance."""
    return BookingCore.from_settings(Settings())


class AvailabilityResponse(BaseModel):
    """Response schema for the availability endpoint."""

    availability: dict[str, Any]
    urgency_message: Optional[str] = None
    fetched_at: str


class ActivityResponse(BaseModel):
    activity: dict[str, Any]
    fetched_at: str


def _error(status: int, error: str, message: Optional[str] = None) -> JSONResponse:
    body: dict[str, Any] = {"error": error, "status": status}
    if message:
        body["message"] = message
    return JSONResponse(status_code=status, content=body)


def _now_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


@app.exception_handler(ValidationError)
async def handle_validation(request: Request, exc: ValidationError) -> JSONResponse:
    return _error(400, "Invalid request", str(exc))


@app.exception_handler(ConfigurationError)
async def handle_configuration(request: Request, exc: ConfigurationError) -> JSONResponse:
    LOGGER.error("api.configuration_error", path=request.url.path, error=str(exc))
    return _error(500, "Server configuration error")


@app.exception_handler(ProviderTimeoutError)
async def handle_timeout(request: Request, exc: ProviderTimeoutError) -> JSONResponse:
    LOGGER.error("api.provider_timeout", path=request.url.path, error=str(exc))
    return _error(504, "Provider did not respond in time", "Please try again in a moment.")


@app.exception_handler(BookingFailedError)
async def handle_booking_failed(request: Request, exc: BookingFailedError) -> JSONResponse:
    LOGGER.error("api.booking_failed", path=request.url.path, error=str(exc))
    return _error(
        502,
        "Failed to create booking",
        "We were unable to confirm your booking. Please try again or contact us directly.",
    )


@app.exception_handler(UpstreamError)
async def handle_upstream(request: Request, exc: UpstreamError) -> JSONResponse:
    LOGGER.error("api.upstream_error", path=request.url.path, status_code=exc.status_code, error=str(exc))
    if exc.is_not_found:
        return _error(404, "Game not found")
    return _error(502, "Failed to reach the booking provider", "Please try again or contact us directly.")


@app.get("/games")
async def list_games(
    limit: Optional[int] = Query(default=None, ge=1, le=100),
    company_group_id: Optional[int] = None,
    core: BookingCore = Depends(get_core),
) -> dict[str, Any]:
    page = await core.catalog.list_items(limit=limit, company_group_id=company_group_id)
    return page.model_dump()


@app.get("/availability/{item_id}", response_model=AvailabilityResponse)
async def get_availability(
    item_id: str,
    date: str = Query(default="", description="Date in YYYY-MM-DD format"),
    core: BookingCore = Depends(get_core),
) -> JSONResponse:
    """Timeslots for one item on one date, with a scarcity hint."""
    availability = await core.availability(item_id, date)
    payload = AvailabilityResponse(
        availability=availability.to_dict(),
        urgency_message=urgency_message(availability),
        fetched_at=_now_iso(),
    )
    return JSONResponse(
        content=payload.model_dump(),
        headers={"Cache-Control": "public, s-maxage=30, stale-while-revalidate=60"},
    )


@app.get("/activity/{item_id}", response_model=ActivityResponse)
async def get_activity(item_id: int, core: BookingCore = Depends(get_core)) -> ActivityResponse:
    activity = await core.catalog.activity(item_id, today=today_in_timezone(core.settings.timezone))
    return ActivityResponse(activity=activity.to_dict(), fetched_at=_now_iso())


@app.post("/book", status_code=201)
async def book(
    payload: dict[str, Any] = Body(...),
    core: BookingCore = Depends(get_core),
) -> dict[str, Any]:
    LOGGER.info("api.book.received", item_id=payload.get("itemId"), date=payload.get("date"))
    result = await core.confirm_booking(payload)
    result["message"] = "Booking confirmed successfully!"
    if result["usedFallback"]:
        result["note"] = "Booking confirmed via direct slot reservation. Payment will be collected at arrival."
    return result
