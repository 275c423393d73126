"""Provider payload models and the derived value objects built from them."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .utils import normalise_whitespace, provider_time, whole_number


class ProviderModel(BaseModel):
    """Base for provider payloads; unknown fields are ignored, never rejected."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class CompanyGroup(ProviderModel):
    """Location the provider groups items under."""

    id: int
    name: Optional[str] = None
    code: Optional[str] = None


class PricingCategory(ProviderModel):
    id: Optional[int] = None
    name: Optional[str] = None
    price: float
    min_players: Optional[int] = None
    max_players: Optional[int] = None


class ProviderItem(ProviderModel):
    """A bookable item (a room/game) as returned by the item endpoints."""

    id: int
    name: str = ""
    description: Optional[str] = None
    min_players: Optional[int] = None
    min_players_count: Optional[int] = None
    max_players: Optional[int] = None
    max_players_count: Optional[int] = None
    deposit_amount: Optional[float] = None
    pricing_type: Optional[str] = None
    pricing_categories: List[PricingCategory] = Field(default_factory=list)
    company_group: Optional[CompanyGroup] = None
    company_group_id: Optional[int] = None

    @field_validator("pricing_categories", mode="before")
    @classmethod
    def none_as_empty(cls, value: Any) -> Any:
        return value or []

    @property
    def min_party(self) -> int:
        return self.min_players or self.min_players_count or 1

    @property
    def max_party(self) -> int:
        return self.max_players or self.max_players_count or 50

    @property
    def location_id(self) -> Optional[int]:
        if self.company_group is not None:
            return self.company_group.id
        return self.company_group_id


class Pagination(ProviderModel):
    total_count: int = 0
    has_more: bool = False
    next_offset: Optional[int] = None


class ItemPage(ProviderModel):
    games: List[ProviderItem] = Field(default_factory=list)
    pagination: Pagination = Field(default_factory=Pagination)


class ProviderSlotRecord(ProviderModel):
    """One calendar entry for an item, exactly as the provider reports it.

    ``status`` is an open vocabulary: "available", "expired", numeric codes
    such as ``"1"``, and customer-facing states like "confirmed". It is kept
    as a raw string and only ever compared after normalisation.
    """

    id: int
    booking_date: Optional[str] = None
    start_time: str
    end_time: str = ""
    status: Optional[str] = None
    group_size: int = 0
    customer_id: Optional[int] = None
    customer_email: Optional[str] = None
    transaction_id: Optional[int] = None
    order_number: Optional[str] = None
    slot_text: Optional[str] = None
    game_id: Optional[int] = None

    @field_validator("status", mode="before")
    @classmethod
    def coerce_status(cls, value: Any) -> Any:
        if value is None:
            return None
        return str(value)

    @field_validator("group_size", mode="before")
    @classmethod
    def coerce_group_size(cls, value: Any) -> Any:
        if value in (None, ""):
            return 0
        return value

    @model_validator(mode="before")
    @classmethod
    def flatten_legacy_shapes(cls, data: Any) -> Any:
        """Older responses nest customer/game objects instead of flat ids."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        customer = data.get("customer")
        if data.get("customer_id") is None and isinstance(customer, dict) and customer.get("id") is not None:
            data["customer_id"] = customer["id"]
            data.setdefault("customer_email", customer.get("email"))
        game = data.get("game")
        if data.get("game_id") is None and isinstance(game, dict):
            data["game_id"] = game.get("id")
        return data


class SlotRecordPage(ProviderModel):
    bookings: List[ProviderSlotRecord] = Field(default_factory=list)
    pagination: Pagination = Field(default_factory=Pagination)


class ProviderTransaction(ProviderModel):
    """Financial record created by the atomic reservation endpoint."""

    id: Optional[int] = None
    order_number: Optional[str] = None
    status: Optional[str] = None
    total: Optional[float] = None
    due: Optional[float] = None
    paid: Optional[float] = None


@dataclass
class CanonicalTimeslot:
    """One logical slot derived from a group of same-start-time provider records."""

    start_time: str
    end_time: str
    available: bool
    price: Optional[float] = None
    pricing_type: Optional[str] = None
    slot_id: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "start_time": self.start_time,
            "end_time": self.end_time,
            "available": self.available,
        }
        if self.price is not None:
            payload["price"] = self.price
        if self.pricing_type is not None:
            payload["pricing_type"] = self.pricing_type
        if self.slot_id is not None:
            payload["booking_slot_id"] = self.slot_id
        return payload


@dataclass
class Availability:
    item_id: int
    date: str
    timeslots: List[CanonicalTimeslot] = field(default_factory=list)
    item_name: Optional[str] = None

    @property
    def total_slots(self) -> int:
        return len(self.timeslots)

    @property
    def available_slots(self) -> int:
        return sum(1 for slot in self.timeslots if slot.available)

    def to_dict(self) -> dict[str, Any]:
        return {
            "game_id": self.item_id,
            "game_name": self.item_name,
            "date": self.date,
            "timeslots": [slot.to_dict() for slot in self.timeslots],
            "total_slots": self.total_slots,
            "available_slots": self.available_slots,
        }


@dataclass(frozen=True)
class BookingAttempt:
    """A customer's desired reservation, alive only for one confirmation call."""

    item_id: int
    date: str
    start_time: str
    end_time: str
    party_size: int
    email: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    known_slot_id: Optional[int] = None
    location_id: Optional[int] = None

    @classmethod
    def from_request(cls, payload: dict[str, Any]) -> "BookingAttempt":
        """Build an attempt from the camelCase request shape, cleaning contact fields.

        Type problems surface as ``TypeError``/``ValueError``; range and format
        checks belong to :mod:`venue_booking.validation`.
        """
        phone = str(payload.get("phone") or "").strip()
        known_slot_id = payload.get("knownSlotId")
        return cls(
            item_id=whole_number(payload["itemId"], "itemId"),
            date=str(payload["date"]).strip(),
            start_time=str(payload["start_time"]).strip(),
            end_time=str(payload["end_time"]).strip(),
            party_size=whole_number(payload["partySize"], "partySize"),
            email=str(payload["email"]).strip().lower(),
            first_name=normalise_whitespace(str(payload["firstName"])),
            last_name=normalise_whitespace(str(payload["lastName"])),
            phone=phone or None,
            known_slot_id=whole_number(known_slot_id, "knownSlotId") if known_slot_id not in (None, "", 0) else None,
        )

    def with_location(self, location_id: int) -> "BookingAttempt":
        return replace(self, location_id=location_id)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def provider_start_time(self) -> str:
        return provider_time(self.start_time)

    @property
    def provider_end_time(self) -> str:
        return provider_time(self.end_time)

    @property
    def slot_text(self) -> str:
        """Staff-facing summary written into the slot's display text."""
        label = "player" if self.party_size == 1 else "players"
        pieces = [self.full_name, self.email]
        if self.phone:
            pieces.append(self.phone)
        pieces.append(f"{self.party_size} {label}")
        return " | ".join(pieces)

    def customer_payload(self) -> dict[str, str]:
        customer = {
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
        }
        if self.phone:
            customer["phone"] = self.phone
        return customer


@dataclass(frozen=True)
class ConfirmedViaTransaction:
    """Strategy A: the known slot was linked to a new customer and financial record.

    ``transaction`` is ``None`` when the provider accepted the call but its
    reply could not be read.
    """

    slot_id: int
    transaction: Optional[ProviderTransaction]


@dataclass(frozen=True)
class ConfirmedViaDirectSlot:
    """Strategy B: a standalone slot record now carries the customer in its display text.

    ``slot_id`` and ``record`` are ``None`` when the provider accepted the
    write but neither its reply nor a follow-up lookup identified the record.
    """

    slot_id: Optional[int]
    record: Optional[ProviderSlotRecord]
    repaired: bool = False
    primary_error: Optional[str] = None


Confirmation = Union[ConfirmedViaTransaction, ConfirmedViaDirectSlot]


@dataclass(frozen=True)
class FinancialRecordSummary:
    id: Optional[int]
    order_number: Optional[str]
    total: Optional[float]
    due: Optional[float]
    status: Optional[str]

    @classmethod
    def from_transaction(cls, transaction: ProviderTransaction) -> "FinancialRecordSummary":
        return cls(
            id=transaction.id,
            order_number=transaction.order_number,
            total=transaction.total,
            due=transaction.due,
            status=transaction.status,
        )


@dataclass(frozen=True)
class BookingOutcome:
    """Strategy-agnostic result of a successful confirmation."""

    slot_id: Optional[int]
    confirmation_code: str
    used_fallback: bool
    confirmation: Confirmation
    financial_record: Optional[FinancialRecordSummary] = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "slotId": self.slot_id,
            "confirmationCode": self.confirmation_code,
            "usedFallback": self.used_fallback,
        }
        if self.financial_record is not None:
            payload["financialRecord"] = asdict(self.financial_record)
        return payload


@dataclass
class ItemActivity:
    item_id: int
    recent_bookings: int
    activity_message: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
