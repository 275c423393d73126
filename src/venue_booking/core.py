"""Wiring for the booking core and the two calls the website layer makes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

import httpx

from .availability import AvailabilityEngine
from .booking import BookingOrchestrator
from .cache import TTLCache
from .catalog import Catalog
from .config import Settings
from .gateway import ProviderGateway
from .models import Availability
from .utils import today_in_timezone
from .validation import parse_booking_request, validate_availability_request


@dataclass
class BookingCore:
    """One cache, gateway, engine and orchestrator sharing state for a process."""

    settings: Settings
    cache: TTLCache
    gateway: ProviderGateway
    catalog: Catalog
    engine: AvailabilityEngine
    orchestrator: BookingOrchestrator

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        cache: Optional[TTLCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "BookingCore":
        cache = cache or TTLCache(max_entries=settings.cache_max_entries)
        gateway = ProviderGateway(settings, transport=transport)
        catalog = Catalog(gateway, cache)
        return cls(
            settings=settings,
            cache=cache,
            gateway=gateway,
            catalog=catalog,
            engine=AvailabilityEngine(gateway, cache, catalog),
            orchestrator=BookingOrchestrator(gateway, cache, settings, catalog),
        )

    async def availability(self, item_id: Any, date_iso: str) -> Availability:
        """Validated availability lookup for one item and date."""
        item_id, date_iso = validate_availability_request(
            item_id,
            date_iso,
            today=today_in_timezone(self.settings.timezone),
            max_days_ahead=self.settings.max_days_ahead,
        )
        return await self.engine.get_availability(item_id, date_iso)

    async def get_availability(self, item_id: Any, date_iso: str) -> dict[str, Any]:
        """``{timeslots, total_slots, available_slots}`` for one item and date."""
        availability = await self.availability(item_id, date_iso)
        return availability.to_dict()

    async def confirm_booking(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        """``{slotId, confirmationCode, financialRecord?, usedFallback}`` for a booking request."""
        attempt = parse_booking_request(payload)
        outcome = await self.orchestrator.confirm_booking(attempt)
        return outcome.to_dict()
