from datetime import date

import pytest

from venue_booking.errors import ValidationError
from venue_booking.models import BookingAttempt, ProviderItem
from venue_booking.validation import (
    parse_booking_request,
    validate_attempt,
    validate_availability_request,
    validate_party_for_item,
)

TODAY = date(2030, 6, 1)


def request(**overrides):
    payload = {
        "itemId": "7",
        "date": "2030-06-02",
        "start_time": "18:00",
        "end_time": "19:00",
        "partySize": "4",
        "email": "  Ada@Example.com ",
        "firstName": "  Ada ",
        "lastName": "Lovelace",
        "phone": " 555 010 2030 ",
        "knownSlotId": 501,
    }
    payload.update(overrides)
    return payload


def test_parse_booking_request_cleans_fields():
    attempt = parse_booking_request(request())
    assert attempt.item_id == 7
    assert attempt.party_size == 4
    assert attempt.email == "ada@example.com"
    assert attempt.first_name == "Ada"
    assert attempt.phone == "555 010 2030"
    assert attempt.known_slot_id == 501
    assert attempt.location_id is None


def test_parse_booking_request_lists_missing_fields():
    with pytest.raises(ValidationError) as excinfo:
        parse_booking_request(request(email="", firstName=None))
    assert "email" in str(excinfo.value)
    assert "firstName" in str(excinfo.value)


def test_parse_booking_request_rejects_non_numeric_party():
    with pytest.raises(ValidationError):
        parse_booking_request(request(partySize="four"))


@pytest.mark.parametrize("value", [None, "", 0])
def test_absent_slot_id_means_unknown(value):
    assert parse_booking_request(request(knownSlotId=value)).known_slot_id is None


def test_blank_phone_is_dropped():
    assert parse_booking_request(request(phone="   ")).phone is None


@pytest.mark.parametrize(
    "overrides, field",
    [
        ({"date": "2030-05-31"}, "date"),
        ({"date": "06/02/2030"}, "date"),
        ({"start_time": "6pm"}, "start_time"),
        ({"partySize": "0"}, "partySize"),
        ({"partySize": "51"}, "partySize"),
        ({"email": "ada.example.com"}, "email"),
        ({"phone": "12345"}, "phone"),
        ({"phone": "555-010-CALL"}, "phone"),
        ({"knownSlotId": -3}, "knownSlotId"),
    ],
)
def test_validate_attempt_rejects(overrides, field):
    attempt = parse_booking_request(request(**overrides))
    with pytest.raises(ValidationError) as excinfo:
        validate_attempt(attempt, today=TODAY)
    assert excinfo.value.field == field


def test_validate_attempt_accepts_international_phone():
    validate_attempt(parse_booking_request(request(phone="+44 (20) 7946-0958")), today=TODAY)


def test_party_checked_against_item_limits():
    attempt = parse_booking_request(request(partySize="1"))
    item = ProviderItem(id=7, min_players=2, max_players=6)
    with pytest.raises(ValidationError, match="at least 2"):
        validate_party_for_item(attempt, item)
    validate_party_for_item(parse_booking_request(request(partySize="6")), item)


def test_item_without_limits_falls_back_to_global_bounds():
    item = ProviderItem(id=7)
    attempt = BookingAttempt(7, "2030-06-02", "18:00", "19:00", 50, "a@b.co", "A", "B")
    validate_party_for_item(attempt, item)


def test_availability_request_window():
    assert validate_availability_request("7", " 2030-06-01 ", today=TODAY, max_days_ahead=90) == (7, "2030-06-01")
    with pytest.raises(ValidationError, match="90 days"):
        validate_availability_request(7, "2030-09-01", today=TODAY, max_days_ahead=90)
    with pytest.raises(ValidationError, match="past"):
        validate_availability_request(7, "2030-05-31", today=TODAY, max_days_ahead=90)
    with pytest.raises(ValidationError, match="YYYY-MM-DD"):
        validate_availability_request(7, "", today=TODAY, max_days_ahead=90)


@pytest.mark.parametrize("item_id", ["abc", "0", -1, None])
def test_availability_request_rejects_bad_item(item_id):
    with pytest.raises(ValidationError) as excinfo:
        validate_availability_request(item_id, "2030-06-02", today=TODAY, max_days_ahead=90)
    assert excinfo.value.field == "itemId"


@pytest.mark.parametrize(
    "overrides, name",
    [
        ({"knownSlotId": 501.9}, "knownSlotId"),
        ({"partySize": 4.7}, "partySize"),
        ({"partySize": "4.7"}, "partySize"),
        ({"itemId": 7.5}, "itemId"),
        ({"partySize": True}, "partySize"),
    ],
)
def test_fractional_numbers_are_rejected_not_truncated(overrides, name):
    with pytest.raises(ValidationError, match=name):
        parse_booking_request(request(**overrides))


def test_integral_floats_are_accepted():
    attempt = parse_booking_request(request(partySize=4.0, knownSlotId=501.0))
    assert attempt.party_size == 4
    assert attempt.known_slot_id == 501


def test_availability_item_id_is_not_truncated():
    with pytest.raises(ValidationError):
        validate_availability_request(7.5, "2030-06-02", today=TODAY, max_days_ahead=90)
