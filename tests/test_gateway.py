import asyncio

import httpx
import pytest
from structlog.testing import capture_logs
from tenacity import wait_none

from conftest import item_payload, slot_record
from venue_booking.config import Settings
from venue_booking.errors import ConfigurationError, ProviderTimeoutError, UnexpectedPayloadError, UpstreamError
from venue_booking.gateway import ProviderGateway, unwrap


async def test_requests_carry_auth_and_json_headers(gateway, provider):
    provider.json("GET", "/games/7", item_payload())
    await gateway.get_item(7)

    [request] = provider.calls("GET", "/games/7")
    assert request.headers["X-API-Key"] == "test-key"
    assert request.headers["Accept"] == "application/json"
    assert request.headers["Content-Type"] == "application/json"
    assert "include_pricing" not in request.url.params


async def test_missing_api_key_fails_before_any_request(provider):
    settings = Settings(provider_base_url="https://provider.test", _env_file=None)
    gateway = ProviderGateway(settings, transport=provider.transport)
    with pytest.raises(ConfigurationError):
        await gateway.get_item(7)
    assert provider.requests == []


async def test_get_item_unwraps_envelope_and_pricing_flag(gateway, provider):
    provider.json(
        "GET",
        "/games/7",
        {"game": item_payload(pricing_categories=[{"id": 1, "name": "Adult", "price": 32.5}])},
    )
    item = await gateway.get_item(7, include_pricing=True)

    assert item.id == 7
    assert item.location_id == 3
    assert item.pricing_categories[0].price == 32.5
    assert provider.calls("GET", "/games/7")[0].url.params["include_pricing"] == "1"


async def test_non_2xx_becomes_upstream_error_with_body(gateway, provider):
    provider.fail("POST", "/transactions", 500, "Internal server error")
    with pytest.raises(UpstreamError) as excinfo:
        await gateway.create_transaction({"company_group_id": 3})
    assert excinfo.value.status_code == 500
    assert excinfo.value.body == "Internal server error"
    assert "POST /transactions" in str(excinfo.value)


async def test_error_body_is_truncated(gateway, provider):
    provider.fail("GET", "/games/7", 502, "x" * 2000)
    with pytest.raises(UpstreamError) as excinfo:
        await gateway.get_item(7)
    assert len(excinfo.value.body) == 500


async def test_httpx_timeout_becomes_provider_timeout(gateway, provider):
    provider.add("GET", "/bookings", httpx.ReadTimeout("slow"))
    with pytest.raises(ProviderTimeoutError) as excinfo:
        await gateway.list_slot_records(7, "2030-06-02", "2030-06-02")
    assert excinfo.value.timeout_seconds == 10.0


async def test_deadline_cancels_slow_call(provider):
    settings = Settings(
        provider_api_key="k",
        provider_base_url="https://provider.test",
        timeout_seconds=0.05,
        read_retry_attempts=1,
        _env_file=None,
    )

    class SlowTransport(httpx.AsyncBaseTransport):
        async def handle_async_request(self, request):
            await asyncio.sleep(1)
            return httpx.Response(200, json={})

    gateway = ProviderGateway(settings, transport=SlowTransport())
    with pytest.raises(ProviderTimeoutError):
        await gateway.get_item(7)


async def test_transport_failure_is_upstream_error(gateway, provider):
    provider.add("GET", "/games/7", httpx.ConnectError("refused"))
    with pytest.raises(UpstreamError) as excinfo:
        await gateway.get_item(7)
    assert excinfo.value.status_code == 0


async def test_reads_retry_on_server_errors(provider):
    settings = Settings(
        provider_api_key="k",
        provider_base_url="https://provider.test",
        read_retry_attempts=3,
        _env_file=None,
    )
    gateway = ProviderGateway(settings, transport=provider.transport, retry_wait=wait_none())
    provider.add(
        "GET",
        "/games/7",
        httpx.Response(503, text="busy"),
        httpx.Response(200, json=item_payload()),
    )
    item = await gateway.get_item(7)
    assert item.name == "The Vault"
    assert len(provider.calls("GET", "/games/7")) == 2


async def test_reads_do_not_retry_client_errors(provider):
    settings = Settings(
        provider_api_key="k",
        provider_base_url="https://provider.test",
        read_retry_attempts=3,
        _env_file=None,
    )
    gateway = ProviderGateway(settings, transport=provider.transport, retry_wait=wait_none())
    provider.fail("GET", "/games/99", 404, "not found")
    with pytest.raises(UpstreamError) as excinfo:
        await gateway.get_item(99)
    assert excinfo.value.is_not_found
    assert len(provider.calls("GET", "/games/99")) == 1


async def test_writes_are_never_retried(provider):
    settings = Settings(
        provider_api_key="k",
        provider_base_url="https://provider.test",
        read_retry_attempts=3,
        _env_file=None,
    )
    gateway = ProviderGateway(settings, transport=provider.transport, retry_wait=wait_none())
    provider.fail("POST", "/bookings", 500)
    with pytest.raises(UpstreamError):
        await gateway.create_slot_record({"game_id": 7})
    assert len(provider.calls("POST", "/bookings")) == 1


async def test_list_slot_records_query_and_bad_records(gateway, provider):
    provider.json(
        "GET",
        "/bookings",
        {
            "bookings": [slot_record(1, "16:00"), {"id": "not-a-number"}, slot_record(2, "17:30", status=1)],
            "pagination": {"total_count": 3, "has_more": False},
        },
    )
    page = await gateway.list_slot_records(7, "2030-06-02", "2030-06-02", limit=500)

    assert [record.id for record in page.bookings] == [1, 2]
    assert page.bookings[1].status == "1"
    assert page.pagination.total_count == 3
    params = provider.calls("GET", "/bookings")[0].url.params
    assert params["game_id"] == "7"
    assert params["start_date"] == params["end_date"] == "2030-06-02"
    assert params["limit"] == "100"
    assert params["sort_by"] == "start_time"


async def test_list_slot_records_accepts_bare_list(gateway, provider):
    provider.json("GET", "/bookings", [slot_record(1, "16:00")])
    page = await gateway.list_slot_records(7, "2030-06-02", "2030-06-02")
    assert page.pagination.total_count == 1


async def test_create_and_update_slot_record_accept_both_envelopes(gateway, provider):
    provider.json("POST", "/bookings", {"booking": slot_record(900, "18:00", status="1")})
    provider.json("PUT", "/bookings/900", slot_record(900, "18:00", status="1", slot_text="hello"))

    created = await gateway.create_slot_record({"game_id": 7, "slot_text": "hello"})
    updated = await gateway.update_slot_record(900, {"slot_text": "hello"})

    assert created.id == 900
    assert updated.slot_text == "hello"
    assert provider.body(provider.calls("PUT", "/bookings/900")[0]) == {"slot_text": "hello"}


async def test_list_items_defaults_to_console_order(gateway, provider):
    provider.json("GET", "/games", {"games": [item_payload()], "pagination": {"total_count": 1}})
    page = await gateway.list_items(limit=1, archived=False)
    params = provider.calls("GET", "/games")[0].url.params
    assert params["sort_by"] == "position"
    assert params["sort_order"] == "asc"
    assert params["archived"] == "false"
    assert page.games[0].id == 7


async def test_verify_api_key(gateway, provider):
    provider.fail("GET", "/games", 401, "bad key")
    assert await gateway.verify_api_key() is False


async def test_malformed_entity_is_unexpected_payload(gateway, provider):
    provider.json("POST", "/transactions", {"transaction": {"id": "not-a-number"}})
    with pytest.raises(UnexpectedPayloadError):
        await gateway.create_transaction({})


async def test_transaction_without_id_still_parses(gateway, provider):
    provider.json("POST", "/transactions", {"transaction": {"order_number": "A1"}}, status=201)
    transaction = await gateway.create_transaction({})
    assert transaction.id is None
    assert transaction.order_number == "A1"


async def test_success_with_non_json_body_is_unexpected_payload(gateway, provider):
    provider.add("POST", "/bookings", httpx.Response(201, text="Created"))
    with pytest.raises(UnexpectedPayloadError) as excinfo:
        await gateway.create_slot_record({"game_id": 7})
    assert excinfo.value.status_code == 201


@pytest.mark.parametrize("payload", [{"bookings": 5}, {"bookings": "none"}, "text"])
async def test_slot_record_page_of_wrong_shape_is_unexpected_payload(gateway, provider, payload):
    provider.json("GET", "/bookings", payload)
    with pytest.raises(UnexpectedPayloadError):
        await gateway.list_slot_records(7, "2030-06-02", "2030-06-02")


async def test_truncated_slot_record_page_is_logged(gateway, provider):
    provider.json(
        "GET",
        "/bookings",
        {
            "bookings": [slot_record(1, "16:00")],
            "pagination": {"total_count": 140, "has_more": True, "next_offset": 100},
        },
    )
    with capture_logs() as logs:
        page = await gateway.list_slot_records(7, "2030-06-02", "2030-06-02")

    assert page.pagination.has_more is True
    [warning] = [entry for entry in logs if entry["event"] == "provider.slot_records.truncated"]
    assert warning["log_level"] == "warning"
    assert warning["item_id"] == 7
    assert warning["returned"] == 1
    assert warning["total_count"] == 140


async def test_complete_slot_record_page_is_not_flagged(gateway, provider):
    provider.json("GET", "/bookings", {"bookings": [slot_record(1, "16:00")], "pagination": {"has_more": False}})
    with capture_logs() as logs:
        await gateway.list_slot_records(7, "2030-06-02", "2030-06-02")
    assert not [entry for entry in logs if entry["event"] == "provider.slot_records.truncated"]


def test_unwrap():
    assert unwrap({"game": {"id": 1}}, "game") == {"id": 1}
    assert unwrap({"id": 1, "name": "x"}, "game") == {"id": 1, "name": "x"}
    assert unwrap([1, 2], "game") == [1, 2]
