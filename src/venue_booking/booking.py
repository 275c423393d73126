"""Booking confirmation orchestrator.

Two write strategies, tried in order:

* **Transaction** (preferred): link a slot already picked from the availability
  engine to a new customer and financial record in one atomic provider call.
  This endpoint fails server-side for some account configurations.
* **Direct slot** (fallback): create a standalone slot record at the requested
  time with the customer's contact details in its display text, so staff can
  see who reserved it.

The fallback never touches the provider's waiver endpoint. Calling it records
a signed legal document, which the customer has not signed; waivers stay with
the surrounding application.
"""

from __future__ import annotations

from datetime import date
from typing import Callable, Optional

import structlog

from .cache import TTLCache, availability_key
from .catalog import Catalog
from .config import Settings
from .errors import BookingFailedError, ConfigurationError, ProviderError, UnexpectedPayloadError
from .gateway import ProviderGateway
from .models import (
    BookingAttempt,
    BookingOutcome,
    Confirmation,
    ConfirmedViaDirectSlot,
    ConfirmedViaTransaction,
    FinancialRecordSummary,
    ProviderSlotRecord,
)
from .utils import normalize_time, today_in_timezone
from .validation import validate_attempt, validate_party_for_item

LOGGER = structlog.get_logger(__name__)


class BookingOrchestrator:
    def __init__(
        self,
        gateway: ProviderGateway,
        cache: TTLCache,
        settings: Settings,
        catalog: Optional[Catalog] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        self._gateway = gateway
        self._cache = cache
        self._settings = settings
        self._catalog = catalog or Catalog(gateway, cache)
        self._today = today or (lambda: today_in_timezone(settings.timezone))

    async def confirm_booking(self, attempt: BookingAttempt) -> BookingOutcome:
        """Confirm ``attempt`` with the provider and return a strategy-agnostic outcome.

        Raises ``ValidationError`` before any write when the attempt is
        malformed, ``ConfigurationError`` when the item has no location, and
        ``BookingFailedError`` once both strategies are exhausted. A write the
        provider accepted is never followed by another write, even when its
        reply is unreadable.
        """
        validate_attempt(attempt, today=self._today())
        attempt = await self._prepare(attempt)

        confirmation: Optional[Confirmation] = None
        primary_error: Optional[Exception] = None

        if attempt.known_slot_id is not None:
            try:
                confirmation = await self._confirm_via_transaction(attempt)
            except ConfigurationError:
                raise
            except UnexpectedPayloadError as exc:
                LOGGER.warning(
                    "booking.transaction.unreadable",
                    item_id=attempt.item_id,
                    slot_id=attempt.known_slot_id,
                    error=str(exc),
                )
                confirmation = ConfirmedViaTransaction(slot_id=attempt.known_slot_id, transaction=None)
            except Exception as exc:  # noqa: BLE001 - any failure falls through to the direct slot
                primary_error = exc
                LOGGER.warning(
                    "booking.transaction.failed",
                    item_id=attempt.item_id,
                    slot_id=attempt.known_slot_id,
                    error=str(exc),
                )
        else:
            LOGGER.info("booking.transaction.skipped", item_id=attempt.item_id, reason="no known slot id")

        if confirmation is None:
            try:
                confirmation = await self._confirm_via_direct_slot(attempt, primary_error)
            except ProviderError as exc:
                LOGGER.error(
                    "booking.failed",
                    item_id=attempt.item_id,
                    date=attempt.date,
                    primary_error=str(primary_error) if primary_error else None,
                    error=str(exc),
                )
                raise BookingFailedError(exc, primary_error) from exc

        self._cache.invalidate(availability_key(attempt.item_id, attempt.date))
        outcome = self._build_outcome(attempt, confirmation)
        LOGGER.info(
            "booking.confirmed",
            item_id=attempt.item_id,
            date=attempt.date,
            slot_id=outcome.slot_id,
            confirmation_code=outcome.confirmation_code,
            strategy="direct_slot" if outcome.used_fallback else "transaction",
        )
        return outcome

    async def _prepare(self, attempt: BookingAttempt) -> BookingAttempt:
        """Attach the provider location and check the party against the item's limits."""
        item = await self._catalog.get_item(attempt.item_id)
        validate_party_for_item(attempt, item)
        if item.location_id is None:
            raise ConfigurationError(f"Item {attempt.item_id} does not have an associated location.")
        return attempt.with_location(item.location_id)

    async def _confirm_via_transaction(self, attempt: BookingAttempt) -> ConfirmedViaTransaction:
        LOGGER.info("booking.transaction.start", item_id=attempt.item_id, slot_id=attempt.known_slot_id)
        transaction = await self._gateway.create_transaction(
            {
                "company_group_id": attempt.location_id,
                "customer": attempt.customer_payload(),
                "bookings": [attempt.known_slot_id],
            }
        )
        LOGGER.info(
            "booking.transaction.created",
            transaction_id=transaction.id,
            order_number=transaction.order_number,
        )
        return ConfirmedViaTransaction(slot_id=attempt.known_slot_id, transaction=transaction)

    async def _confirm_via_direct_slot(
        self,
        attempt: BookingAttempt,
        primary_error: Optional[Exception],
    ) -> ConfirmedViaDirectSlot:
        slot_text = attempt.slot_text
        primary = str(primary_error) if primary_error else None
        LOGGER.info("booking.direct_slot.start", item_id=attempt.item_id, date=attempt.date)
        try:
            record = await self._gateway.create_slot_record(
                {
                    "game_id": attempt.item_id,
                    "company_group_id": attempt.location_id,
                    "booking_date": attempt.date,
                    "start_time": attempt.provider_start_time,
                    "end_time": attempt.provider_end_time,
                    "group_size": attempt.party_size,
                    "slot_text": slot_text,
                }
            )
        except UnexpectedPayloadError as exc:
            LOGGER.warning("booking.direct_slot.unreadable", item_id=attempt.item_id, error=str(exc))
            record = await self._find_created_record(attempt)
            if record is None:
                return ConfirmedViaDirectSlot(slot_id=None, record=None, primary_error=primary)
        LOGGER.info("booking.direct_slot.created", record_id=record.id, status=record.status)

        repaired = False
        if not (record.slot_text or "").strip():
            repaired = await self._repair_slot_text(record.id, slot_text)

        return ConfirmedViaDirectSlot(
            slot_id=record.id,
            record=record,
            repaired=repaired,
            primary_error=primary,
        )

    async def _find_created_record(self, attempt: BookingAttempt) -> Optional[ProviderSlotRecord]:
        """Read back the record an accepted write produced, matched by time and display text."""
        try:
            page = await self._gateway.list_slot_records(attempt.item_id, attempt.date, attempt.date)
        except ProviderError as exc:
            LOGGER.warning("booking.direct_slot.lookup_failed", item_id=attempt.item_id, error=str(exc))
            return None
        start = normalize_time(attempt.start_time)
        matches = [
            record
            for record in page.bookings
            if normalize_time(record.start_time) == start and (record.slot_text or "").strip() == attempt.slot_text
        ]
        return max(matches, key=lambda record: record.id, default=None)

    async def _repair_slot_text(self, record_id: int, slot_text: str) -> bool:
        """One best-effort write of the display text; the booking stands either way."""
        LOGGER.warning("booking.direct_slot.text_missing", record_id=record_id)
        try:
            await self._gateway.update_slot_record(record_id, {"slot_text": slot_text})
        except ProviderError as exc:
            LOGGER.warning("booking.direct_slot.repair_failed", record_id=record_id, error=str(exc))
            return False
        LOGGER.info("booking.direct_slot.repaired", record_id=record_id)
        return True

    def _local_code(self, attempt: BookingAttempt, slot_id: Optional[int]) -> str:
        prefix = self._settings.confirmation_prefix
        if slot_id is not None:
            return f"{prefix}-{slot_id}"
        compact_time = normalize_time(attempt.start_time).replace(":", "")
        return f"{prefix}-{attempt.item_id}-{attempt.date.replace('-', '')}-{compact_time}"

    def _build_outcome(self, attempt: BookingAttempt, confirmation: Confirmation) -> BookingOutcome:
        fallback_code = self._local_code(attempt, confirmation.slot_id)
        if isinstance(confirmation, ConfirmedViaTransaction):
            transaction = confirmation.transaction
            if transaction is None:
                return BookingOutcome(
                    slot_id=confirmation.slot_id,
                    confirmation_code=fallback_code,
                    used_fallback=False,
                    confirmation=confirmation,
                )
            return BookingOutcome(
                slot_id=confirmation.slot_id,
                confirmation_code=transaction.order_number or fallback_code,
                used_fallback=False,
                confirmation=confirmation,
                financial_record=FinancialRecordSummary.from_transaction(transaction),
            )
        return BookingOutcome(
            slot_id=confirmation.slot_id,
            confirmation_code=fallback_code,
            used_fallback=True,
            confirmation=confirmation,
        )
