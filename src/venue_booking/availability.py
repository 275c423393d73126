"""Availability reconciliation engine.

Derives a deduplicated, per-start-time view of an item's day from the
provider's raw calendar entries. Availability is advisory: provider failures
degrade to an empty result instead of raising, so the booking page keeps
rendering.
"""

from __future__ import annotations

from typing import Optional

import structlog

from .cache import MISSING, CacheTTL, TTLCache, availability_key
from .catalog import Catalog
from .errors import ProviderError
from .gateway import ProviderGateway
from .models import Availability, ProviderItem
from .reconciliation import reconcile

LOGGER = structlog.get_logger(__name__)


def slot_pricing(item: Optional[ProviderItem]) -> tuple[Optional[float], Optional[str]]:
    """Cheapest pricing category, else the deposit amount, else no price."""
    if item is None:
        return None, None
    if item.pricing_categories:
        return min(category.price for category in item.pricing_categories), item.pricing_type
    if item.deposit_amount and item.deposit_amount > 0:
        return item.deposit_amount, "deposit"
    return None, None


class AvailabilityEngine:
    def __init__(self, gateway: ProviderGateway, cache: TTLCache, catalog: Optional[Catalog] = None):
        self._gateway = gateway
        self._cache = cache
        self._catalog = catalog or Catalog(gateway, cache)

    async def get_availability(self, item_id: int, date_iso: str) -> Availability:
        """Return every timeslot for ``item_id`` on ``date_iso``, flagged available or booked.

        Only ``ConfigurationError`` escapes; timeouts and upstream failures
        produce a well-formed (possibly empty) result.
        """
        key = availability_key(item_id, date_iso)
        cached = self._cache.get(key)
        if cached is not MISSING:
            LOGGER.info(
                "availability.cache.hit",
                item_id=item_id,
                date=date_iso,
                available=cached.available_slots,
                total=cached.total_slots,
            )
            return cached

        LOGGER.info("availability.cache.miss", item_id=item_id, date=date_iso)
        item = await self._resolve_item(item_id)
        price, pricing_type = slot_pricing(item)
        item_name = item.name if item is not None else None

        try:
            page = await self._gateway.list_slot_records(item_id, date_iso, date_iso, limit=100)
        except ProviderError as exc:
            LOGGER.error("availability.fetch.failed", item_id=item_id, date=date_iso, error=str(exc))
            empty = Availability(item_id=item_id, date=date_iso, item_name=item_name)
            self._cache.set(key, empty, CacheTTL.AVAILABILITY_FAILURE)
            return empty

        LOGGER.debug(
            "availability.records",
            item_id=item_id,
            date=date_iso,
            count=len(page.bookings),
            records=[
                {
                    "id": record.id,
                    "status": record.status,
                    "start_time": record.start_time,
                    "group_size": record.group_size,
                    "customer_id": record.customer_id,
                }
                for record in page.bookings
            ],
        )

        decisions = reconcile(page.bookings, price=price, pricing_type=pricing_type)
        for decision in decisions:
            if decision.booked_by is not None:
                LOGGER.info(
                    "availability.slot.booked",
                    item_id=item_id,
                    start_time=decision.timeslot.start_time,
                    record_id=decision.booked_by.id,
                    status=decision.booked_by.status,
                    detected_via=decision.reason,
                )

        availability = Availability(
            item_id=item_id,
            date=date_iso,
            item_name=item_name,
            timeslots=[decision.timeslot for decision in decisions],
        )
        LOGGER.info(
            "availability.computed",
            item_id=item_id,
            date=date_iso,
            available=availability.available_slots,
            total=availability.total_slots,
        )
        self._cache.set(key, availability, CacheTTL.AVAILABILITY)
        return availability

    async def _resolve_item(self, item_id: int) -> Optional[ProviderItem]:
        try:
            return await self._catalog.get_item(item_id)
        except ProviderError as exc:
            LOGGER.warning("availability.item.unavailable", item_id=item_id, error=str(exc))
            return None


def urgency_message(availability: Availability) -> Optional[str]:
    """Short scarcity hint for the booking page, or ``None`` when plenty is left."""
    available, total = availability.available_slots, availability.total_slots
    if available == 0:
        return "Sold out for today! Check another date."
    if available == 1:
        return "Only 1 slot left today -- book now!"
    if available <= 2:
        return f"Only {available} slots left today!"
    ratio = available / total
    if ratio <= 0.25:
        return f"Almost sold out -- only {available} slots remaining!"
    if ratio <= 0.5:
        return f"Filling up fast -- {available} slots left today."
    return None
