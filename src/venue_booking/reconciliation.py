"""Rules that turn raw provider slot records into canonical timeslots.

The provider has no availability endpoint. Its schedule engine pre-populates
calendar entries with status ``available`` (open) or ``expired`` (past), and a
reservation shows up either by mutating such an entry (linking a customer and
a financial record) or as an extra entry at the same start time. Everything
here is pure: same records in, same slots out, regardless of input order.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Sequence

from .models import CanonicalTimeslot, ProviderSlotRecord
from .utils import normalize_status, normalize_time

AVAILABLE = "available"
EXPIRED = "expired"

# Entries created directly through the slot-record endpoint come back with
# this numeric status and mean "occupied".
ACTIVE_SENTINEL_STATUSES = frozenset({"1"})


@dataclass(frozen=True)
class BookedRule:
    name: str
    matches: Callable[[ProviderSlotRecord], bool]


# Evaluated in order; the first match names the reason. "non_open_status" is a
# catch-all and must stay after the sentinel rule.
BOOKED_RULES: tuple[BookedRule, ...] = (
    BookedRule("financial_record", lambda record: record.transaction_id is not None),
    BookedRule("linked_customer", lambda record: record.customer_id is not None),
    BookedRule(
        "active_sentinel",
        lambda record: normalize_status(record.status) in ACTIVE_SENTINEL_STATUSES,
    ),
    BookedRule(
        "non_open_status",
        lambda record: normalize_status(record.status) not in (AVAILABLE, EXPIRED),
    ),
    # Legacy writes could set a party size on an open entry but not its status.
    # Still present in historical data; see DESIGN.md before removing.
    BookedRule(
        "legacy_party_size",
        lambda record: normalize_status(record.status) == AVAILABLE and record.group_size > 0,
    ),
)


def booked_reason(record: ProviderSlotRecord) -> Optional[str]:
    """Name of the first rule that marks ``record`` as booked, or ``None``."""
    for rule in BOOKED_RULES:
        if rule.matches(record):
            return rule.name
    return None


def is_open(record: ProviderSlotRecord) -> bool:
    return normalize_status(record.status) == AVAILABLE


@dataclass(frozen=True)
class SlotDecision:
    """Outcome for one start time, kept for logging alongside the timeslot."""

    timeslot: CanonicalTimeslot
    booked_by: Optional[ProviderSlotRecord] = None
    reason: Optional[str] = None


def group_by_start(records: Iterable[ProviderSlotRecord]) -> dict[str, list[ProviderSlotRecord]]:
    """Group records under their ``HH:MM`` start time, sorted by time."""
    groups: dict[str, list[ProviderSlotRecord]] = defaultdict(list)
    for record in records:
        groups[normalize_time(record.start_time)].append(record)
    return {start: sorted(groups[start], key=lambda record: record.id) for start in sorted(groups)}


def decide_slot(
    start_time: str,
    records: Sequence[ProviderSlotRecord],
    *,
    price: Optional[float] = None,
    pricing_type: Optional[str] = None,
) -> SlotDecision:
    """Collapse all records sharing ``start_time`` into one canonical timeslot.

    The slot is available only when an open entry exists and no entry at the
    same time carries any booked signal. Ties are broken by lowest record id.
    """
    ordered = sorted(records, key=lambda record: record.id)
    open_record = next((record for record in ordered if is_open(record)), None)

    booked_by: Optional[ProviderSlotRecord] = None
    reason: Optional[str] = None
    for record in ordered:
        reason = booked_reason(record)
        if reason is not None:
            booked_by = record
            break

    available = open_record is not None and booked_by is None
    representative = open_record or ordered[0]
    timeslot = CanonicalTimeslot(
        start_time=start_time,
        end_time=normalize_time(representative.end_time),
        available=available,
        price=price,
        pricing_type=pricing_type,
        slot_id=representative.id if available else None,
    )
    return SlotDecision(timeslot=timeslot, booked_by=booked_by, reason=reason)


def reconcile(
    records: Iterable[ProviderSlotRecord],
    *,
    price: Optional[float] = None,
    pricing_type: Optional[str] = None,
) -> list[SlotDecision]:
    return [
        decide_slot(start, group, price=price, pricing_type=pricing_type)
        for start, group in group_by_start(records).items()
    ]


def count_booked(records: Iterable[ProviderSlotRecord]) -> int:
    """Number of records that represent a real reservation."""
    return sum(1 for record in records if booked_reason(record) is not None)
