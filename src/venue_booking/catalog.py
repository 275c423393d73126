"""Cached item lookups shared by the availability engine and the orchestrator."""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any, Optional

import structlog

from .cache import MISSING, CacheTTL, TTLCache, activity_key, games_key, pricing_key
from .errors import ProviderError
from .gateway import ProviderGateway
from .models import ItemActivity, ItemPage, ProviderItem
from .reconciliation import count_booked

LOGGER = structlog.get_logger(__name__)


class Catalog:
    """Read-through cache in front of the provider's item endpoints."""

    def __init__(self, gateway: ProviderGateway, cache: TTLCache):
        self._gateway = gateway
        self._cache = cache

    async def get_item(self, item_id: int) -> ProviderItem:
        """Return the item with pricing when the provider can compute it.

        The pricing-enabled lookup fails server-side for accounts without
        pricing categories; the plain lookup is used instead and whatever it
        returns is cached under the same key.
        """
        key = pricing_key(item_id)
        cached = self._cache.get(key)
        if cached is not MISSING:
            return cached

        try:
            item = await self._gateway.get_item(item_id, include_pricing=True)
        except ProviderError as exc:
            LOGGER.warning("catalog.pricing.unavailable", item_id=item_id, error=str(exc))
            item = await self._gateway.get_item(item_id, include_pricing=False)

        self._cache.set(key, item, CacheTTL.PRICING)
        return item

    async def list_items(self, **params: Any) -> ItemPage:
        filters = {name: value for name, value in params.items() if value is not None}
        key = games_key(filters)
        cached = self._cache.get(key)
        if cached is not MISSING:
            return cached

        page = await self._gateway.list_items(**filters)
        self._cache.set(key, page, CacheTTL.GAMES)
        LOGGER.info("catalog.items.fetched", count=len(page.games), cache_key=key)
        return page

    async def activity(self, item_id: int, today: Optional[date] = None) -> ItemActivity:
        """Recent-reservation count for an item over the last day."""
        key = activity_key(item_id)
        cached = self._cache.get(key)
        if cached is not MISSING:
            return cached

        today = today or date.today()
        yesterday = today - timedelta(days=1)
        recent = 0
        try:
            page = await self._gateway.list_slot_records(
                item_id,
                yesterday.isoformat(),
                today.isoformat(),
                sort_by=None,
                sort_order=None,
            )
            recent = count_booked(page.bookings)
        except ProviderError as exc:
            LOGGER.warning("catalog.activity.failed", item_id=item_id, error=str(exc))

        activity = ItemActivity(
            item_id=item_id,
            recent_bookings=recent,
            activity_message=activity_message(recent),
        )
        self._cache.set(key, activity, CacheTTL.ACTIVITY)
        return activity


def activity_message(recent_bookings: int) -> str:
    if recent_bookings >= 5:
        return "Very popular! Booked multiple times today."
    if recent_bookings >= 2:
        return f"Booked {recent_bookings} times recently."
    if recent_bookings == 1:
        return "Booked once recently."
    return "Be the first to book today!"
