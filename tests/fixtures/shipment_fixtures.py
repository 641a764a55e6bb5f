"""
Shipment Service Fixtures

Factories for shipment requests and carrier payloads.
"""
from typing import Any, Dict, List, Optional, Sequence, Tuple

from microservices.shipment_service.models import (
    Address,
    HazmatDeclarationRequest,
    Recipient,
    ShipmentCreateRequest,
    ShipmentLineItem,
    SupplyCreateRequest,
)

from .common import make_email


def make_address(**overrides) -> Address:
    data = {
        "street": "100 Research Pkwy",
        "city": "Madison",
        "state": "WI",
        "postal_code": "53711",
        "country": "US",
    }
    data.update(overrides)
    return Address(**data)


def make_recipient(**overrides) -> Recipient:
    data = {
        "name": "Dr. Ada Rivera",
        "email": make_email("ada"),
        "phone": "6085550100",
        "company": "Rivera Labs",
    }
    data.update(overrides)
    return Recipient(**data)


def make_line_items(items: Sequence[Tuple[str, float]], unit: str = "ml") -> List[ShipmentLineItem]:
    return [ShipmentLineItem(lot_number=lot, quantity=qty, unit=unit) for lot, qty in items]


def make_create_request(
    items: Sequence[Tuple[str, float]] = (("LOT-A", 10.0),),
    unit: str = "ml",
    requested_by: Optional[str] = "usr_requester",
    **overrides,
) -> ShipmentCreateRequest:
    data: Dict[str, Any] = {
        "line_items": make_line_items(items, unit),
        "recipient": make_recipient(),
        "delivery_address": make_address(),
        "requested_by": requested_by,
    }
    data.update(overrides)
    return ShipmentCreateRequest(**data)


def make_create_payload(items: Sequence[Tuple[str, float]] = (("LOT-A", 10.0),), unit: str = "ml") -> Dict[str, Any]:
    """JSON body for POST /api/v1/shipments"""
    return make_create_request(items, unit).model_dump(mode="json", exclude_none=True)


def make_hazmat_request(**overrides) -> HazmatDeclarationRequest:
    data = {
        "un_number": "UN1170",
        "proper_shipping_name": "Ethanol solution",
        "hazard_class": "3",
        "packing_group": "II",
        "emergency_phone": "8005550199",
    }
    data.update(overrides)
    return HazmatDeclarationRequest(**data)


def make_supply_request(**overrides) -> SupplyCreateRequest:
    data = {
        "supply_type": "box",
        "name": "Insulated shipper, small",
        "initial_quantity": 20,
        "reorder_threshold": 5,
    }
    data.update(overrides)
    return SupplyCreateRequest(**data)
