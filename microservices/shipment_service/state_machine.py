"""
Shipment status rules

Pure functions: transition table, tracking ordering, hazmat threshold and
delivery estimates. No I/O.
"""

import re
from collections import OrderedDict
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, FrozenSet, Iterable, Optional, Union

from .models import ShipmentLineItem, ShipmentStatus
from .protocols import InvalidStatusTransitionError

DEFAULT_HAZMAT_THRESHOLD = 30.0

Quantity = Union[int, float, Decimal, str]

# Forward ordering; cancelled sits outside it
STATUS_RANK: Dict[ShipmentStatus, int] = {
    ShipmentStatus.INITIATED: 0,
    ShipmentStatus.PROCESSING: 1,
    ShipmentStatus.SHIPPED: 2,
    ShipmentStatus.IN_TRANSIT: 3,
    ShipmentStatus.DELIVERED: 4,
}

TERMINAL_STATUSES: FrozenSet[ShipmentStatus] = frozenset(
    {ShipmentStatus.DELIVERED, ShipmentStatus.CANCELLED}
)

ALLOWED_TRANSITIONS: Dict[ShipmentStatus, FrozenSet[ShipmentStatus]] = {
    ShipmentStatus.INITIATED: frozenset({ShipmentStatus.PROCESSING, ShipmentStatus.CANCELLED}),
    ShipmentStatus.PROCESSING: frozenset({ShipmentStatus.SHIPPED, ShipmentStatus.CANCELLED}),
    ShipmentStatus.SHIPPED: frozenset(
        {ShipmentStatus.IN_TRANSIT, ShipmentStatus.DELIVERED, ShipmentStatus.CANCELLED}
    ),
    ShipmentStatus.IN_TRANSIT: frozenset({ShipmentStatus.DELIVERED, ShipmentStatus.CANCELLED}),
    ShipmentStatus.DELIVERED: frozenset(),
    ShipmentStatus.CANCELLED: frozenset(),
}

# Statuses a carrier report may move a shipment into
CARRIER_DRIVEN_STATUSES: FrozenSet[ShipmentStatus] = frozenset(
    {ShipmentStatus.IN_TRANSIT, ShipmentStatus.DELIVERED}
)

# Carrier-side status strings -> shipment status
CARRIER_STATUS_MAP: Dict[str, Optional[ShipmentStatus]] = {
    "processing": ShipmentStatus.PROCESSING,
    "label_created": ShipmentStatus.SHIPPED,
    "picked_up": ShipmentStatus.IN_TRANSIT,
    "in_transit": ShipmentStatus.IN_TRANSIT,
    "out_for_delivery": ShipmentStatus.IN_TRANSIT,
    "delivered": ShipmentStatus.DELIVERED,
    "exception": None,
}

_UN_NUMBER_RE = re.compile(r"^(?:UN)?\s*-?\s*(\d{4})$", re.IGNORECASE)

_SERVICE_TRANSIT_DAYS = {
    "PRIORITY_OVERNIGHT": 1,
    "STANDARD_OVERNIGHT": 1,
    "OVERNIGHT_EXPRESS": 1,
    "FEDEX_EXPRESS_SAVER": 2,
    "EXPRESS_SAVER": 2,
    "FEDEX_GROUND": 5,
    "GROUND_HOME_DELIVERY": 5,
}
_DEFAULT_TRANSIT_DAYS = 3


def can_transition(current: ShipmentStatus, target: ShipmentStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def ensure_transition(current: ShipmentStatus, target: ShipmentStatus) -> None:
    """Raise InvalidStatusTransitionError unless ``current -> target`` is allowed"""
    if not can_transition(current, target):
        raise InvalidStatusTransitionError(
            f"Cannot move shipment from {current.value} to {target.value}",
            current=current,
            target=target,
        )


def is_terminal(status: ShipmentStatus) -> bool:
    return status in TERMINAL_STATUSES


def carrier_status_to_shipment_status(carrier_status: str) -> Optional[ShipmentStatus]:
    """Unknown or exception statuses map to None (no status change)"""
    return CARRIER_STATUS_MAP.get((carrier_status or "").strip().lower())


def is_forward_tracking_update(current: ShipmentStatus, reported: Optional[ShipmentStatus]) -> bool:
    """
    True when a carrier-reported status should move the shipment.

    Only ``in_transit`` and ``delivered`` are carrier driven, and only when
    strictly ahead of the current status; the shipment must already be
    shipped. Cancelled shipments never move.
    """
    if reported is None or reported not in CARRIER_DRIVEN_STATUSES:
        return False
    if current not in STATUS_RANK or STATUS_RANK[current] < STATUS_RANK[ShipmentStatus.SHIPPED]:
        return False
    return STATUS_RANK[reported] > STATUS_RANK[current] and can_transition(current, reported)


def to_decimal(value: Quantity) -> Decimal:
    """Exact decimal for a quantity; floats go through their shortest repr, so 0.1 is 0.1"""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def is_hazmat(total_quantity: Quantity, unit: Optional[str] = None, threshold: Quantity = DEFAULT_HAZMAT_THRESHOLD) -> bool:
    """
    Dangerous-goods threshold check, inclusive at the threshold.

    The unit is not converted: 30 of any declared unit is hazmat.
    """
    return to_decimal(total_quantity) >= to_decimal(threshold)


def total_requested_quantity(line_items: Iterable[ShipmentLineItem]) -> Decimal:
    return sum((to_decimal(item.quantity) for item in line_items), Decimal("0"))


def quantities_by_lot(line_items: Iterable[ShipmentLineItem]) -> "OrderedDict[str, Decimal]":
    """Sum requested quantities per lot, in first-seen order"""
    totals: "OrderedDict[str, Decimal]" = OrderedDict()
    for item in line_items:
        totals[item.lot_number] = totals.get(item.lot_number, Decimal("0")) + to_decimal(item.quantity)
    return totals


def normalize_un_number(value: str) -> str:
    """``1170``, ``un1170`` and ``UN 1170`` all become ``UN1170``; anything else raises ValueError"""
    match = _UN_NUMBER_RE.match((value or "").strip())
    if not match:
        raise ValueError(f"Invalid UN number: {value!r}")
    return f"UN{match.group(1)}"


def transit_business_days(service_type: Optional[str]) -> int:
    return _SERVICE_TRANSIT_DAYS.get((service_type or "").upper(), _DEFAULT_TRANSIT_DAYS)


def add_business_days(start: date, days: int) -> date:
    current = start
    added = 0
    while added < days:
        current += timedelta(days=1)
        if current.weekday() < 5:
            added += 1
    return current


def estimate_delivery_date(service_type: Optional[str], from_date: Optional[date] = None) -> date:
    """Business-day estimate used when the carrier gives no delivery date"""
    return add_business_days(from_date or date.today(), transit_business_days(service_type))
