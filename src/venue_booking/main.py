"""Command-line entry point for checking availability and confirming bookings."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Optional

import structlog

from .availability import urgency_message
from .config import Settings
from .core import BookingCore
from .errors import BookingError, ValidationError


def configure_logging(level: int = logging.INFO) -> None:
    """Configure structlog + stdlib logging."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        stream=sys.stderr,
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.EventRenamer("event"),
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


LOGGER = structlog.get_logger(__name__)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """CLI argument parsing."""
    parser = argparse.ArgumentParser(description="Query availability and confirm bookings with the reservation provider.")
    parser.add_argument("--verbose", action="store_true", help="Log provider traffic at debug level.")
    commands = parser.add_subparsers(dest="command", required=True)

    availability = commands.add_parser("availability", help="Show timeslots for an item on a date.")
    availability.add_argument("item_id", type=int)
    availability.add_argument("date", help="Date in YYYY-MM-DD format.")

    book = commands.add_parser("book", help="Confirm a booking.")
    book.add_argument("item_id", type=int)
    book.add_argument("date", help="Date in YYYY-MM-DD format.")
    book.add_argument("start_time", help="HH:MM")
    book.add_argument("end_time", help="HH:MM")
    book.add_argument("--party-size", type=int, required=True)
    book.add_argument("--email", required=True)
    book.add_argument("--first-name", required=True)
    book.add_argument("--last-name", required=True)
    book.add_argument("--phone")
    book.add_argument("--slot-id", type=int, help="Provider slot id from the availability output.")

    commands.add_parser("games", help="List bookable items.")
    return parser.parse_args(argv)


async def run(core: BookingCore, args: argparse.Namespace) -> dict[str, Any]:
    """Execute one subcommand and return its JSON-serialisable result."""
    if args.command == "availability":
        availability = await core.availability(args.item_id, args.date)
        return {
            "availability": availability.to_dict(),
            "urgency_message": urgency_message(availability),
        }
    if args.command == "book":
        return await core.confirm_booking(
            {
                "itemId": args.item_id,
                "date": args.date,
                "start_time": args.start_time,
                "end_time": args.end_time,
                "partySize": args.party_size,
                "email": args.email,
                "firstName": args.first_name,
                "lastName": args.last_name,
                "phone": args.phone,
                "knownSlotId": args.slot_id,
            }
        )
    page = await core.catalog.list_items()
    return {"games": [{"id": item.id, "name": item.name} for item in page.games]}


def cli(argv: Optional[list[str]] = None) -> int:
    """Console script entrypoint."""
    args = parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.INFO)

    try:
        settings = Settings()
    except Exception as exc:  # pragma: no cover - startup validation
        LOGGER.exception("settings.error", error=str(exc))
        return 2

    try:
        result = asyncio.run(run(BookingCore.from_settings(settings), args))
    except ValidationError as exc:
        print(f"Invalid input: {exc}", file=sys.stderr)
        return 2
    except BookingError as exc:
        LOGGER.error("command.failed", command=args.command, error=str(exc))
        print("The booking provider could not complete the request. Please try again.", file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(cli())
