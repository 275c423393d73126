"""Shared fixtures: a scriptable fake provider behind httpx.MockTransport."""

from __future__ import annotations

import json
from datetime import date, timedelta
from typing import Any, Callable, Union

import httpx
import pytest
from tenacity import wait_none

from venue_booking.availability import AvailabilityEngine
from venue_booking.booking import BookingOrchestrator
from venue_booking.cache import TTLCache
from venue_booking.catalog import Catalog
from venue_booking.config import Settings
from venue_booking.gateway import ProviderGateway

TODAY = date(2030, 6, 1)
TOMORROW = (TODAY + timedelta(days=1)).isoformat()

Responder = Union[httpx.Response, Callable[[httpx.Request], httpx.Response], Exception]


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProvider:
    """Routes ``(METHOD, path)`` to canned responses and records every request."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], list[Responder]] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, path: str, *responses: Responder) -> None:
        """Queue responses; the last one repeats once the queue is drained."""
        self.routes.setdefault((method.upper(), path), []).extend(responses)

    def json(self, method: str, path: str, payload: Any, status: int = 200) -> None:
        self.add(method, path, httpx.Response(status, json=payload))

    def fail(self, method: str, path: str, status: int = 500, body: str = "Internal server error") -> None:
        self.add(method, path, httpx.Response(status, text=body))

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method.upper() and r.url.path == path]

    def body(self, request: httpx.Request) -> dict[str, Any]:
        return json.loads(request.content.decode("utf-8"))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, json={"error": "not found"})
        responder = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(responder, Exception):
            raise responder
        if callable(responder):
            return responder(request)
        return responder

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def slot_record(record_id: int, start: str, status: Any = "available", **fields: Any) -> dict[str, Any]:
    hour, minute = start.split(":")[:2]
    end_hour = (int(hour) + 1) % 24
    record = {
        "id": record_id,
        "booking_date": TOMORROW,
        "start_time": f"{start}:00" if start.count(":") == 1 else start,
        "end_time": f"{end_hour:02d}:{minute}:00",
        "status": status,
        "group_size": 0,
        "customer_id": None,
        "transaction_id": None,
    }
    record.update(fields)
    return record


def item_payload(item_id: int = 7, **fields: Any) -> dict[str, Any]:
    item = {
        "id": item_id,
        "name": "The Vault",
        "min_players": 2,
        "max_players": 8,
        "deposit_amount": 25.0,
        "pricing_type": "per_person",
        "company_group": {"id": 3, "name": "Downtown", "code": "DT"},
    }
    item.update(fields)
    return item


@pytest.fixture
def settings() -> Settings:
    return Settings(
        provider_api_key="test-key",
        provider_base_url="https://provider.test",
        read_retry_attempts=1,
        _env_file=None,
    )


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> TTLCache:
    return TTLCache(max_entries=500, clock=clock)


@pytest.fixture
def gateway(settings: Settings, provider: FakeProvider) -> ProviderGateway:
    return ProviderGateway(settings, transport=provider.transport, retry_wait=wait_none())


@pytest.fixture
def catalog(gateway: ProviderGateway, cache: TTLCache) -> Catalog:
    return Catalog(gateway, cache)


@pytest.fixture
def engine(gateway: ProviderGateway, cache: TTLCache, catalog: Catalog) -> AvailabilityEngine:
    return AvailabilityEngine(gateway, cache, catalog)


@pytest.fixture
def orchestrator(
    gateway: ProviderGateway,
    cache: TTLCache,
    settings: Settings,
    catalog: Catalog,
) -> BookingOrchestrator:
    return BookingOrchestrator(gateway, cache, settings, catalog, today=lambda: TODAY)
