"""Utility helpers for time handling and text cleanup."""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog

LOGGER = structlog.get_logger(__name__)

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIME_PATTERN = re.compile(r"^\d{1,2}:\d{2}(:\d{2})?$")


def get_zone(timezone_name: str) -> ZoneInfo:
    """Return a ZoneInfo instance, defaulting to UTC on failure."""
    try:
        return ZoneInfo(timezone_name)
    except (ZoneInfoNotFoundError, ValueError):
        LOGGER.warning("timezone.unknown", timezone=timezone_name, fallback="UTC")
        return ZoneInfo("UTC")


def now_in_timezone(timezone_name: str) -> datetime:
    """Current datetime in the configured timezone."""
    return datetime.now(tz=get_zone(timezone_name))


def today_in_timezone(timezone_name: str) -> date:
    return now_in_timezone(timezone_name).date()


def parse_iso_date(text: str) -> Optional[date]:
    """Strict ``YYYY-MM-DD`` parsing; anything else is ``None``."""
    if not text or not DATE_PATTERN.match(text.strip()):
        return None
    try:
        return date.fromisoformat(text.strip())
    except ValueError:
        return None


def normalize_time(value: str) -> str:
    """Collapse provider time strings (``H:MM``, ``HH:MM:SS``) to ``HH:MM``."""
    parts = (value or "").strip().split(":")
    if len(parts) < 2:
        return (value or "").strip()
    hour, minute = parts[0].strip(), parts[1].strip()
    if hour.isdigit() and minute.isdigit():
        return f"{int(hour):02d}:{int(minute):02d}"
    return f"{hour}:{minute}"


def provider_time(value: str) -> str:
    """Expand ``HH:MM`` to the ``HH:MM:SS`` form the provider expects on writes."""
    cleaned = normalize_time(value)
    return f"{cleaned}:00" if len(cleaned) == 5 else value.strip()


def normalize_status(value: object) -> str:
    """Case-fold and trim a provider status; ``None`` becomes the empty string."""
    if value is None:
        return ""
    return str(value).strip().casefold()


def normalise_whitespace(text: str) -> str:
    """Collapse repeated whitespace into single spaces."""
    return re.sub(r"\s+", " ", text or "").strip()


def whole_number(value: object, name: str) -> int:
    """``int()`` that refuses to truncate: ``4.7`` and ``"4.7"`` are errors, ``4.0`` is 4."""
    if isinstance(value, bool):
        raise ValueError(f"{name} must be a whole number")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"{name} must be a whole number")
        return int(value)
    try:
        return int(str(value).strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be a whole number") from exc
