"""Mock carrier provider (sandbox used when carrier credentials are not configured)."""

import itertools
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from ..models import (
    Address,
    AddressValidationResult,
    HazmatDeclaration,
    LabelResult,
    RateQuote,
    Shipment,
    TrackingEvent,
    TrackingInfo,
)
from ..protocols import CarrierError
from ..state_machine import estimate_delivery_date
from .base import CarrierProvider

UNDELIVERABLE_POSTAL_CODE = "00000"


def mock_rate(weight: float, service_type: str) -> Decimal:
    per_unit = 45 if "OVERNIGHT" in (service_type or "").upper() else 12
    return (Decimal(str(weight)) * per_unit).quantize(Decimal("0.01"))


class MockCarrierProvider(CarrierProvider):
    name = "mock"

    def __init__(self, today: Optional[date] = None):
        self._counter = itertools.count(1)
        self._today = today
        self._failures: Dict[str, Exception] = {}
        self._tracking: Dict[str, TrackingInfo] = {}
        self.calls: List[str] = []

    def set_failure(self, operation: str, error: Optional[Exception]) -> None:
        """Make ``operation`` raise ``error`` until cleared with None"""
        if error is None:
            self._failures.pop(operation, None)
        else:
            self._failures[operation] = error

    def set_tracking(self, tracking_number: str, status: str, events: Optional[List[TrackingEvent]] = None) -> None:
        self._tracking[tracking_number] = TrackingInfo(
            tracking_number=tracking_number,
            status=status,
            events=events or [TrackingEvent(status=status, timestamp=datetime.utcnow())],
        )

    def _record(self, operation: str) -> None:
        self.calls.append(operation)
        error = self._failures.get(operation)
        if error is not None:
            raise error

    async def validate_address(self, address: Address) -> AddressValidationResult:
        self._record("validate_address")
        if address.postal_code == UNDELIVERABLE_POSTAL_CODE:
            return AddressValidationResult(valid=False, messages=["Address could not be resolved"])
        return AddressValidationResult(valid=True, corrected_address=address.model_copy())

    async def get_rate(self, shipment: Shipment, weight: float, weight_unit: str, service_type: str) -> RateQuote:
        self._record("get_rate")
        return RateQuote(
            service_type=service_type,
            cost=mock_rate(weight, service_type),
            weight=weight,
            weight_unit=weight_unit,
        )

    async def create_label(
        self,
        shipment: Shipment,
        weight: float,
        weight_unit: str,
        service_type: str,
        hazmat: Optional[HazmatDeclaration] = None,
    ) -> LabelResult:
        self._record("create_label")
        tracking_number = f"MOCK{next(self._counter):010d}"
        self.set_tracking(tracking_number, "processing")
        return LabelResult(
            tracking_number=tracking_number,
            label_url=f"mock://labels/{tracking_number}.pdf",
            cost=mock_rate(weight, service_type),
            estimated_delivery=estimate_delivery_date(service_type, self._today),
        )

    async def get_tracking(self, tracking_number: str) -> TrackingInfo:
        self._record("get_tracking")
        info = self._tracking.get(tracking_number)
        if info is None:
            raise CarrierError(f"Tracking number {tracking_number} not found", code="TRACKING.TRACKINGNUMBER.NOTFOUND", status_code=404)
        return info.model_copy(update={"retrieved_at": datetime.utcnow()})
