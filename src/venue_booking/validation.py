"""Input checks applied before any provider call is made."""

from __future__ import annotations

import re
from datetime import date, timedelta
from typing import Any, Mapping, Optional

from .errors import ValidationError
from .models import BookingAttempt, ProviderItem
from .utils import TIME_PATTERN, parse_iso_date, whole_number

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_STRIP = re.compile(r"[\s\-().]")

MAX_PARTY_SIZE = 50
REQUIRED_BOOKING_FIELDS = (
    "itemId",
    "date",
    "start_time",
    "end_time",
    "partySize",
    "email",
    "firstName",
    "lastName",
)


def parse_booking_request(payload: Mapping[str, Any]) -> BookingAttempt:
    """Turn a raw booking request into a :class:`BookingAttempt` or raise ``ValidationError``."""
    missing = [name for name in REQUIRED_BOOKING_FIELDS if payload.get(name) in (None, "")]
    if missing:
        raise ValidationError(f"The following fields are required: {', '.join(missing)}")
    try:
        return BookingAttempt.from_request(dict(payload))
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid booking request: {exc}") from exc


def validate_item_id(item_id: Any) -> int:
    try:
        value = whole_number(item_id, "itemId")
    except ValueError:
        value = 0
    if value <= 0:
        raise ValidationError("Item ID must be a positive integer.", field="itemId")
    return value


def validate_date(date_iso: str, *, today: date, max_days_ahead: Optional[int] = None) -> date:
    value = parse_iso_date(date_iso)
    if value is None:
        raise ValidationError("Date must be in YYYY-MM-DD format.", field="date")
    if value < today:
        raise ValidationError("Cannot use past dates.", field="date")
    if max_days_ahead is not None and value > today + timedelta(days=max_days_ahead):
        raise ValidationError(
            f"Availability is only available up to {max_days_ahead} days in advance.",
            field="date",
        )
    return value


def validate_availability_request(
    item_id: Any,
    date_iso: str,
    *,
    today: date,
    max_days_ahead: int,
) -> tuple[int, str]:
    value = validate_item_id(item_id)
    validate_date(date_iso, today=today, max_days_ahead=max_days_ahead)
    return value, date_iso.strip()


def validate_attempt(attempt: BookingAttempt, *, today: date) -> None:
    """Shape checks on a booking attempt that need no provider data."""
    validate_item_id(attempt.item_id)
    validate_date(attempt.date, today=today)

    if not TIME_PATTERN.match(attempt.start_time) or not TIME_PATTERN.match(attempt.end_time):
        raise ValidationError("start_time and end_time must be in HH:MM or HH:MM:SS format.", field="start_time")
    if not 1 <= attempt.party_size <= MAX_PARTY_SIZE:
        raise ValidationError(f"Party size must be between 1 and {MAX_PARTY_SIZE}.", field="partySize")
    if not EMAIL_PATTERN.match(attempt.email):
        raise ValidationError("Please provide a valid email address.", field="email")
    if not attempt.first_name:
        raise ValidationError("First name is required.", field="firstName")
    if not attempt.last_name:
        raise ValidationError("Last name is required.", field="lastName")
    if attempt.phone:
        digits = PHONE_STRIP.sub("", attempt.phone.lstrip("+"))
        if not digits.isdigit():
            raise ValidationError("Phone number should contain only digits.", field="phone")
        if not 10 <= len(digits) <= 15:
            raise ValidationError("Phone number must have between 10 and 15 digits.", field="phone")
    if attempt.known_slot_id is not None and attempt.known_slot_id <= 0:
        raise ValidationError("knownSlotId must be a positive integer.", field="knownSlotId")


def validate_party_for_item(attempt: BookingAttempt, item: ProviderItem) -> None:
    if attempt.party_size < item.min_party:
        raise ValidationError(f"This room requires at least {item.min_party} players.", field="partySize")
    if attempt.party_size > item.max_party:
        raise ValidationError(f"This room allows a maximum of {item.max_party} players.", field="partySize")
