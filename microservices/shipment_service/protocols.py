"""
Shipment Service Protocols (Interfaces)

These interfaces define contracts for dependency injection.
NO import-time I/O dependencies - safe to import anywhere.
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional, Protocol, Tuple, runtime_checkable

# Import only models (no I/O dependencies)
from .models import (
    Address,
    AddressValidationResult,
    CustodyEvent,
    CustodyEventType,
    HazmatDeclaration,
    LabelHold,
    LabelResult,
    RateQuote,
    SampleLot,
    Shipment,
    ShipmentStatus,
    SupplyItem,
    SupplyTransaction,
    SupplyUsage,
    TrackingInfo,
)


# ============================================================================
# Custom Exceptions - defined here to avoid importing repository
# ============================================================================

class ShipmentServiceError(Exception):
    """Base exception for shipment service errors"""
    pass


class ShipmentNotFoundError(ShipmentServiceError):
    """Shipment not found"""
    pass


class SupplyNotFoundError(ShipmentServiceError):
    """Shipping supply not found"""
    pass


class SampleLotNotFoundError(ShipmentServiceError):
    """Referenced sample lot does not exist"""

    def __init__(self, message: str, lot_number: Optional[str] = None):
        super().__init__(message)
        self.lot_number = lot_number


class ShipmentValidationError(ShipmentServiceError):
    """Bad input; ``field`` names the offending field when known"""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class InsufficientQuantityError(ShipmentValidationError):
    """A lot does not hold enough sample for the requested quantity"""

    def __init__(self, message: str, lot_number: str, available: float, requested: float):
        super().__init__(message, field="line_items")
        self.lot_number = lot_number
        self.available = available
        self.requested = requested


class InsufficientSupplyError(ShipmentValidationError):
    """Consuming more shipping supplies than are in stock"""

    def __init__(self, message: str, supply_id: str, available: int, requested: int):
        super().__init__(message, field="supplies_used")
        self.supply_id = supply_id
        self.available = available
        self.requested = requested


class ShipmentConflictError(ShipmentServiceError):
    """Action rejected because of the current record state"""
    pass


class InvalidStatusTransitionError(ShipmentConflictError):
    """Status change not allowed from the current status"""

    def __init__(self, message: str, current: Optional[ShipmentStatus] = None, target: Optional[ShipmentStatus] = None):
        super().__init__(message)
        self.current = current
        self.target = target


class CarrierError(ShipmentServiceError):
    """Carrier API returned an error or was unreachable"""

    def __init__(self, message: str, code: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.code = code
        self.status_code = status_code


class CarrierTimeoutError(CarrierError):
    """Carrier API did not answer within the configured timeout"""
    pass


class PartialFailureError(ShipmentServiceError):
    """
    The carrier created a label (and charged for it) but the local record
    could not be updated. Needs manual reconciliation.
    """

    def __init__(
        self,
        message: str,
        shipment_id: str,
        tracking_number: str,
        label_url: Optional[str] = None,
        cost: Optional[Decimal] = None,
    ):
        super().__init__(message)
        self.shipment_id = shipment_id
        self.tracking_number = tracking_number
        self.label_url = label_url
        self.cost = cost


# ============================================================================
# Repository Protocol
# ============================================================================

@runtime_checkable
class ShipmentRepositoryProtocol(Protocol):
    """
    Interface for Shipment Repository.

    Implementations must provide these methods.
    Used for dependency injection to enable testing.
    """

    # Sample lots -----------------------------------------------------------

    async def get_sample_lots(self, lot_numbers: List[str]) -> Dict[str, SampleLot]:
        """Get lots by lot number; unknown lots are absent from the result"""
        ...

    # Shipments -------------------------------------------------------------

    async def create_shipment(
        self,
        shipment_data: Dict[str, Any],
        performed_by: Optional[str] = None,
        lot_quantities: Optional[Dict[str, Decimal]] = None,
    ) -> Shipment:
        """
        Insert a shipment in ``initiated`` with the next shipment number and a
        ``created`` custody event, taking ``lot_quantities`` from the lots in
        the same transaction. A lot reaching zero is marked depleted.

        Raises InsufficientQuantityError (nothing written) when a lot no
        longer holds its quantity.
        """
        ...

    async def get_shipment(self, shipment_id: str) -> Optional[Shipment]:
        ...

    async def get_shipment_by_tracking(self, tracking_number: str) -> Optional[Shipment]:
        ...

    async def list_shipments(
        self,
        statuses: Optional[List[ShipmentStatus]] = None,
        limit: int = 50,
        offset: int = 0,
        oldest_first: bool = False,
    ) -> List[Shipment]:
        ...

    async def update_shipment(self, shipment_id: str, updates: Dict[str, Any]) -> Optional[Shipment]:
        """Update non-status fields"""
        ...

    async def transition_status(
        self,
        shipment_id: str,
        from_statuses: List[ShipmentStatus],
        to_status: ShipmentStatus,
        updates: Optional[Dict[str, Any]] = None,
        custody_event: Optional[Dict[str, Any]] = None,
    ) -> Optional[Shipment]:
        """
        Conditional status update: applies only while the current status is
        one of ``from_statuses``. Returns None when nothing matched.
        """
        ...

    async def delete_shipment(self, shipment_id: str) -> bool:
        ...

    # Label claim / completion ---------------------------------------------

    async def claim_label(self, shipment_id: str, claim_token: str, ttl_seconds: int) -> bool:
        """Take the label slot: no tracking number, no hold and no live claim"""
        ...

    async def release_label_claim(self, shipment_id: str, claim_token: str) -> bool:
        """Drop a claim after a clean carrier failure; never drops a held slot"""
        ...

    async def hold_label_claim(self, shipment_id: str, hold: LabelHold) -> bool:
        """Freeze the claim named by ``hold.claim_token`` until an operator clears it"""
        ...

    async def clear_label_hold(self, shipment_id: str) -> Optional[Shipment]:
        """Clear a held slot so a new label can be bought. Returns None when nothing was held"""
        ...

    async def complete_label(
        self,
        shipment_id: str,
        claim_token: str,
        label: LabelResult,
        weight: float,
        weight_unit: str,
        service_type: str,
        supplies_used: List[SupplyUsage],
        performed_by: Optional[str] = None,
    ) -> Tuple[Shipment, List[SupplyItem]]:
        """
        In one transaction: record the label, move to ``shipped``, decrement
        supplies and write ledger and custody rows. Clears any hold. Returns the shipment and
        the supply items after decrement.
        """
        ...

    # Chain of custody -----------------------------------------------------

    async def add_custody_event(
        self,
        shipment_id: str,
        event_type: CustodyEventType,
        performed_by: Optional[str] = None,
        location: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> CustodyEvent:
        ...

    async def get_custody_log(self, shipment_id: str) -> List[CustodyEvent]:
        ...

    # Hazmat ---------------------------------------------------------------

    async def create_hazmat_declaration(
        self, declaration_data: Dict[str, Any], performed_by: Optional[str] = None
    ) -> HazmatDeclaration:
        """Raises ShipmentConflictError when the shipment already has one"""
        ...

    async def get_hazmat_declaration(self, shipment_id: str) -> Optional[HazmatDeclaration]:
        ...

    async def mark_labels_printed(self, shipment_id: str, performed_by: Optional[str] = None) -> Optional[HazmatDeclaration]:
        ...

    # Supply ledger --------------------------------------------------------

    async def list_supplies(self) -> List[SupplyItem]:
        ...

    async def get_supply(self, supply_id: str) -> Optional[SupplyItem]:
        ...

    async def get_supplies(self, supply_ids: List[str]) -> Dict[str, SupplyItem]:
        ...

    async def create_supply(self, supply_data: Dict[str, Any]) -> SupplyItem:
        ...

    async def restock_supply(
        self, supply_id: str, quantity: int, performed_by: Optional[str] = None, notes: Optional[str] = None
    ) -> Optional[SupplyItem]:
        ...

    async def get_supply_transactions(self, supply_id: str, limit: int = 50) -> List[SupplyTransaction]:
        ...

    async def get_supplies_used(self, shipment_id: str) -> List[SupplyUsage]:
        ...


# ============================================================================
# External collaborators
# ============================================================================

@runtime_checkable
class CarrierProviderProtocol(Protocol):
    """Carrier API (FedEx or sandbox)"""

    async def validate_address(self, address: Address) -> AddressValidationResult:
        ...

    async def get_rate(
        self, shipment: Shipment, weight: float, weight_unit: str, service_type: str
    ) -> RateQuote:
        ...

    async def create_label(
        self,
        shipment: Shipment,
        weight: float,
        weight_unit: str,
        service_type: str,
        hazmat: Optional[HazmatDeclaration] = None,
    ) -> LabelResult:
        ...

    async def get_tracking(self, tracking_number: str) -> TrackingInfo:
        ...


@runtime_checkable
class NotificationClientProtocol(Protocol):
    """Email notifications; every method returns False instead of raising"""

    async def notify_shipment_requested(self, shipment: Shipment) -> bool:
        ...

    async def notify_label_created(self, shipment: Shipment) -> bool:
        ...

    async def notify_status_changed(self, shipment: Shipment, previous_status: ShipmentStatus) -> bool:
        ...


@runtime_checkable
class EventBusProtocol(Protocol):
    """Interface for Event Bus"""

    async def publish_event(self, event: Any) -> bool:
        ...
