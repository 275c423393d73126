"""Authenticated access to the reservation provider's REST API.

The gateway knows nothing about caching or booking rules. It attaches
credentials, enforces the request deadline, normalises failures into
:mod:`venue_booking.errors` and smooths over the provider's habit of sometimes
wrapping entities in a named envelope and sometimes returning them bare.
"""

from __future__ import annotations

import asyncio
from typing import Any, Mapping, Optional

import httpx
import structlog
from pydantic import ValidationError as PydanticValidationError
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential
from tenacity.wait import wait_base

from .config import Settings
from .errors import ProviderError, ProviderTimeoutError, UnexpectedPayloadError, UpstreamError
from .models import (
    ItemPage,
    Pagination,
    ProviderItem,
    ProviderSlotRecord,
    ProviderTransaction,
    SlotRecordPage,
)

LOGGER = structlog.get_logger(__name__)

ERROR_BODY_LIMIT = 500


def unwrap(payload: Any, key: str) -> Any:
    """Return ``payload[key]`` when the entity arrived inside an envelope."""
    if isinstance(payload, dict) and isinstance(payload.get(key), dict):
        return payload[key]
    return payload


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, ProviderTimeoutError):
        return True
    if isinstance(exc, UpstreamError):
        return exc.status_code == 0 or exc.status_code >= 500
    return False


def _query(params: Mapping[str, Any]) -> dict[str, str]:
    """Drop unset parameters and render booleans the way the provider expects."""
    rendered: dict[str, str] = {}
    for name, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            rendered[name] = "true" if value else "false"
        else:
            rendered[name] = str(value)
    return rendered


class ProviderGateway:
    """Thin async client for the provider endpoints the booking core consumes."""

    def __init__(
        self,
        settings: Settings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_wait: Optional[wait_base] = None,
    ):
        self._settings = settings
        self._transport = transport
        self._retry_wait = retry_wait or wait_exponential(multiplier=0.5, min=0.5, max=4)

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        json: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """Perform one provider call and return the decoded JSON body.

        Raises ``ConfigurationError`` before any I/O when no API key is set,
        ``ProviderTimeoutError`` when the deadline passes and ``UpstreamError``
        for non-2xx answers or transport failures.
        """
        headers = {
            "X-API-Key": self._settings.api_key(),
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        endpoint = f"{method.upper()} {path}"
        timeout = self._settings.timeout_seconds

        LOGGER.debug("provider.request.start", endpoint=endpoint, params=dict(params or {}))
        try:
            response = await asyncio.wait_for(
                self._send(method, path, headers=headers, params=params, json=json),
                timeout=timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            LOGGER.warning("provider.request.timeout", endpoint=endpoint, timeout_seconds=timeout)
            raise ProviderTimeoutError(endpoint, timeout) from exc
        except httpx.HTTPError as exc:
            LOGGER.warning("provider.request.transport_error", endpoint=endpoint, error=str(exc))
            raise UpstreamError(0, endpoint, body=str(exc), reason="transport error") from exc

        if not response.is_success:
            body = response.text[:ERROR_BODY_LIMIT]
            LOGGER.warning(
                "provider.request.failed",
                endpoint=endpoint,
                status_code=response.status_code,
                body=body,
            )
            raise UpstreamError(response.status_code, endpoint, body=body, reason=response.reason_phrase)

        try:
            return response.json()
        except ValueError as exc:
            raise UnexpectedPayloadError(
                response.status_code,
                endpoint,
                body=response.text[:ERROR_BODY_LIMIT],
                reason="invalid JSON",
            ) from exc

    async def _send(
        self,
        method: str,
        path: str,
        *,
        headers: dict[str, str],
        params: Optional[Mapping[str, Any]],
        json: Optional[Mapping[str, Any]],
    ) -> httpx.Response:
        async with httpx.AsyncClient(
            base_url=self._settings.base_url,
            timeout=self._settings.timeout_seconds,
            transport=self._transport,
        ) as client:
            return await client.request(
                method,
                path,
                headers=headers,
                params=_query(params) if params else None,
                json=dict(json) if json is not None else None,
            )

    async def _read(self, path: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        """GET with retry on timeouts and 5xx. Writes never go through here."""
        async for attempt in AsyncRetrying(
            wait=self._retry_wait,
            stop=stop_after_attempt(self._settings.read_retry_attempts),
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        ):
            with attempt:
                return await self.request("GET", path, params=params)
        raise ProviderError(f"Provider read failed [{path}]")  # safety net

    # -- items ---------------------------------------------------------------

    async def list_items(
        self,
        *,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        company_group_id: Optional[int] = None,
        archived: Optional[bool] = None,
        sort_by: str = "position",
        sort_order: str = "asc",
    ) -> ItemPage:
        """List bookable items, ordered as configured in the provider console by default."""
        payload = await self._read(
            "/games",
            {
                "limit": limit,
                "offset": offset,
                "company_group_id": company_group_id,
                "archived": archived,
                "sort_by": sort_by,
                "sort_order": sort_order,
            },
        )
        if isinstance(payload, list):
            payload = {"games": payload, "pagination": {"total_count": len(payload)}}
        return _parse(ItemPage, payload, "GET /games")

    async def get_item(self, item_id: int, *, include_pricing: bool = False) -> ProviderItem:
        params = {"include_pricing": 1} if include_pricing else None
        payload = await self._read(f"/games/{item_id}", params)
        return _parse(ProviderItem, unwrap(payload, "game"), f"GET /games/{item_id}")

    async def verify_api_key(self) -> bool:
        """Cheap credential check: request a single item."""
        try:
            await self.list_items(limit=1)
        except ProviderError as exc:
            LOGGER.error("provider.api_key.invalid", error=str(exc))
            return False
        return True

    # -- slot records --------------------------------------------------------

    async def list_slot_records(
        self,
        item_id: int,
        start_date: str,
        end_date: str,
        *,
        limit: int = 100,
        offset: Optional[int] = None,
        status: Optional[str] = None,
        sort_by: Optional[str] = "start_time",
        sort_order: Optional[str] = "asc",
    ) -> SlotRecordPage:
        """Fetch calendar entries for one item within a date range.

        Records that fail to parse are skipped with a warning rather than
        failing the whole page.
        """
        endpoint = "GET /bookings"
        payload = await self._read(
            "/bookings",
            {
                "game_id": item_id,
                "start_date": start_date,
                "end_date": end_date,
                "limit": min(100, max(1, limit)),
                "offset": offset,
                "status": status,
                "sort_by": sort_by,
                "sort_order": sort_order,
            },
        )
        if isinstance(payload, list):
            raw_records, raw_pagination = payload, None
        elif isinstance(payload, dict):
            raw_records, raw_pagination = payload.get("bookings") or [], payload.get("pagination")
        else:
            raw_records, raw_pagination = None, None
        if not isinstance(raw_records, list):
            raise UnexpectedPayloadError(200, endpoint, body=str(payload)[:ERROR_BODY_LIMIT])

        records: list[ProviderSlotRecord] = []
        for raw in raw_records:
            try:
                records.append(ProviderSlotRecord.model_validate(raw))
            except PydanticValidationError as exc:
                LOGGER.warning("provider.slot_record.skipped", record=raw, error=str(exc))

        pagination = (
            _parse(Pagination, raw_pagination, endpoint)
            if raw_pagination
            else Pagination(total_count=len(records))
        )
        if pagination.has_more:
            LOGGER.warning(
                "provider.slot_records.truncated",
                item_id=item_id,
                start_date=start_date,
                end_date=end_date,
                returned=len(records),
                total_count=pagination.total_count,
            )
        return SlotRecordPage(bookings=records, pagination=pagination)

    async def create_slot_record(self, params: Mapping[str, Any]) -> ProviderSlotRecord:
        payload = await self.request("POST", "/bookings", json=params)
        return _parse(ProviderSlotRecord, unwrap(payload, "booking"), "POST /bookings")

    async def update_slot_record(self, record_id: int, params: Mapping[str, Any]) -> ProviderSlotRecord:
        """PUT a slot record. The provider silently ignores ``status`` and customer fields here."""
        payload = await self.request("PUT", f"/bookings/{record_id}", json=params)
        return _parse(ProviderSlotRecord, unwrap(payload, "booking"), f"PUT /bookings/{record_id}")

    # -- transactions --------------------------------------------------------

    async def create_transaction(self, params: Mapping[str, Any]) -> ProviderTransaction:
        payload = await self.request("POST", "/transactions", json=params)
        return _parse(ProviderTransaction, unwrap(payload, "transaction"), "POST /transactions")


def _parse(model: Any, payload: Any, endpoint: str) -> Any:
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        LOGGER.warning("provider.payload.invalid", endpoint=endpoint, error=str(exc))
        raise UnexpectedPayloadError(
            200,
            endpoint,
            body=str(payload)[:ERROR_BODY_LIMIT],
            reason="unexpected payload",
        ) from exc
