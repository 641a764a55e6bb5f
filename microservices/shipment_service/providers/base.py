"""Carrier provider interface."""

from abc import ABC, abstractmethod
from typing import Optional

from ..models import (
    Address,
    AddressValidationResult,
    HazmatDeclaration,
    LabelResult,
    RateQuote,
    Shipment,
    TrackingInfo,
)


class CarrierProvider(ABC):
    """Abstract carrier provider.

    Implementations raise ``CarrierError`` / ``CarrierTimeoutError`` and never
    retry on their own.
    """

    name: str = "carrier"

    @abstractmethod
    async def validate_address(self, address: Address) -> AddressValidationResult:
        """Validate (and possibly correct) a delivery address."""
        raise NotImplementedError

    @abstractmethod
    async def get_rate(self, shipment: Shipment, weight: float, weight_unit: str, service_type: str) -> RateQuote:
        """Quote a rate without creating anything."""
        raise NotImplementedError

    @abstractmethod
    async def create_label(
        self,
        shipment: Shipment,
        weight: float,
        weight_unit: str,
        service_type: str,
        hazmat: Optional[HazmatDeclaration] = None,
    ) -> LabelResult:
        """Create the shipment at the carrier and return the label. Charges the account."""
        raise NotImplementedError

    @abstractmethod
    async def get_tracking(self, tracking_number: str) -> TrackingInfo:
        """Current tracking snapshot."""
        raise NotImplementedError

    async def close(self) -> None:
        return None
