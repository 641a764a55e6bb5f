"""
Shipment Service Data Models

Pydantic models for outbound sample shipments, hazmat (dangerous goods)
declarations, the shipping-supply ledger, chain of custody and carrier
value objects.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, computed_field, field_validator


class ShipmentStatus(str, Enum):
    """Shipment status"""
    INITIATED = "initiated"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


# Values written by older versions of the backend
LEGACY_STATUS_ALIASES: Dict[str, ShipmentStatus] = {
    "pending": ShipmentStatus.INITIATED,
    "in_progress": ShipmentStatus.PROCESSING,
}


def normalize_status(value: Union[str, ShipmentStatus]) -> ShipmentStatus:
    """Map a stored status (including legacy aliases) to ``ShipmentStatus``.

    Raises ValueError for anything else.
    """
    if isinstance(value, ShipmentStatus):
        return value
    key = str(value).strip().lower()
    if key in LEGACY_STATUS_ALIASES:
        return LEGACY_STATUS_ALIASES[key]
    return ShipmentStatus(key)


class ServiceType(str, Enum):
    """Carrier service levels"""
    FEDEX_GROUND = "FEDEX_GROUND"
    GROUND_HOME_DELIVERY = "GROUND_HOME_DELIVERY"
    FEDEX_EXPRESS_SAVER = "FEDEX_EXPRESS_SAVER"
    EXPRESS_SAVER = "EXPRESS_SAVER"
    STANDARD_OVERNIGHT = "STANDARD_OVERNIGHT"
    PRIORITY_OVERNIGHT = "PRIORITY_OVERNIGHT"
    OVERNIGHT_EXPRESS = "OVERNIGHT_EXPRESS"


class WeightUnit(str, Enum):
    LB = "LB"
    KG = "KG"


class PackingGroup(str, Enum):
    """UN packing group (I = great danger, III = minor danger)"""
    I = "I"
    II = "II"
    III = "III"


class CustodyEventType(str, Enum):
    """Chain of custody event types"""
    CREATED = "created"
    PROCESSING_STARTED = "processing_started"
    ADDRESS_VALIDATED = "address_validated"
    HAZMAT_DECLARED = "hazmat_declared"
    WARNING_LABELS_PRINTED = "warning_labels_printed"
    PACKED = "packed"
    LABEL_GENERATED = "label_generated"
    TRACKING_UPDATED = "tracking_updated"
    LABEL_HOLD_RELEASED = "label_hold_released"
    CANCELLED = "cancelled"


class SupplyTransactionType(str, Enum):
    USAGE = "usage"
    RESTOCK = "restock"


# ============================================================================
# Value objects
# ============================================================================


class Address(BaseModel):
    """Structured postal address"""
    street: str = Field(..., min_length=1)
    street2: Optional[str] = None
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1, description="State or province code")
    postal_code: str = Field(..., min_length=1)
    country: str = Field(default="US", min_length=2, max_length=2)


class Recipient(BaseModel):
    """Shipment recipient"""
    name: str = Field(..., min_length=1)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    company: Optional[str] = None


class ShipmentLineItem(BaseModel):
    """One requested quantity from a sample lot"""
    lot_number: str = Field(..., min_length=1)
    sample_name: Optional[str] = None
    quantity: float = Field(..., gt=0)
    unit: str = Field(default="ml", min_length=1)


class SampleLot(BaseModel):
    """Sample inventory lot; requested quantities are taken from it when a shipment is requested"""
    lot_number: str
    sample_name: Optional[str] = None
    available_quantity: float
    unit: str = "ml"
    status: str = "active"


class RateQuote(BaseModel):
    """Carrier rate quote (display only, never binding)"""
    service_type: str
    cost: Decimal
    currency: str = "USD"
    weight: Optional[float] = None
    weight_unit: Optional[str] = None
    quoted_at: datetime = Field(default_factory=datetime.utcnow)


class AddressValidationResult(BaseModel):
    valid: bool
    corrected_address: Optional[Address] = None
    messages: List[str] = Field(default_factory=list)


class LabelResult(BaseModel):
    """Result of a successful label generation"""
    tracking_number: str
    label_url: Optional[str] = None
    cost: Decimal
    estimated_delivery: Optional[date] = None


class LabelHold(BaseModel):
    """
    Label slot frozen after a carrier call that may have charged without a
    matching local record.

    While set, no new label can be bought. An operator clears it by adopting
    ``label`` as the shipment's label or by confirming it was voided with the
    carrier.
    """
    reason: str
    claim_token: str
    label: Optional[LabelResult] = None
    weight: Optional[float] = None
    weight_unit: Optional[str] = None
    service_type: Optional[str] = None
    held_at: datetime = Field(default_factory=datetime.utcnow)


class TrackingEvent(BaseModel):
    status: str
    description: Optional[str] = None
    location: Optional[str] = None
    timestamp: Optional[datetime] = None


class TrackingInfo(BaseModel):
    """Carrier tracking snapshot.

    ``status`` is the carrier-side status: ``processing``, ``in_transit``,
    ``delivered`` or ``exception``.
    """
    tracking_number: str
    status: str
    events: List[TrackingEvent] = Field(default_factory=list)
    estimated_delivery: Optional[date] = None
    retrieved_at: datetime = Field(default_factory=datetime.utcnow)


# ============================================================================
# Entities
# ============================================================================


class Shipment(BaseModel):
    """Shipment record"""
    shipment_id: str
    shipment_number: str
    status: ShipmentStatus = ShipmentStatus.INITIATED
    line_items: List[ShipmentLineItem] = Field(default_factory=list)
    recipient: Recipient
    delivery_address: Address
    scheduled_ship_date: Optional[date] = None
    total_quantity: float = 0
    quantity_unit: str = "ml"
    is_hazmat: bool = False

    address_validated: bool = False
    validated_address: Optional[Address] = None
    weight: Optional[float] = None
    weight_unit: Optional[str] = None
    service_type: Optional[str] = None
    last_rate_quote: Optional[RateQuote] = None

    tracking_number: Optional[str] = None
    label_url: Optional[str] = None
    shipping_cost: Optional[Decimal] = None
    estimated_delivery: Optional[date] = None
    tracking_snapshot: Optional[TrackingInfo] = None
    label_hold: Optional[LabelHold] = None

    special_instructions: Optional[str] = None
    requested_by: Optional[str] = None
    prepared_by: Optional[str] = None
    cancellation_reason: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, v):
        return normalize_status(v)


class HazmatDeclaration(BaseModel):
    """Dangerous goods declaration, at most one per shipment"""
    declaration_id: str
    shipment_id: str
    dg_form_number: str
    un_number: str
    proper_shipping_name: str
    hazard_class: str
    packing_group: Optional[PackingGroup] = None
    technical_name: Optional[str] = None
    emergency_phone: str
    quantity: float
    unit: str
    labels_printed: bool = False
    labels_printed_by: Optional[str] = None
    labels_printed_at: Optional[datetime] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None


class SupplyItem(BaseModel):
    """Shipping-supply ledger entry"""
    supply_id: str
    supply_type: str
    name: str
    current_quantity: int = Field(..., ge=0)
    unit: str = "each"
    reorder_threshold: int = 0
    unit_cost: Optional[Decimal] = None
    supplier: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @computed_field
    @property
    def is_low_stock(self) -> bool:
        return self.current_quantity <= self.reorder_threshold


class SupplyUsage(BaseModel):
    """Supplies consumed when packing a shipment"""
    supply_id: str
    quantity: int = Field(..., gt=0)


class SupplyTransaction(BaseModel):
    transaction_id: str
    supply_id: str
    transaction_type: SupplyTransactionType
    quantity_change: int
    quantity_before: int
    quantity_after: int
    shipment_id: Optional[str] = None
    performed_by: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


class CustodyEvent(BaseModel):
    """Chain of custody entry"""
    event_id: str
    shipment_id: str
    event_type: CustodyEventType
    performed_by: Optional[str] = None
    location: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


class LotInventory(BaseModel):
    """Per-lot stock for a shipment; the requested quantity left the lot when the shipment was requested"""
    lot_number: str
    sample_name: Optional[str] = None
    requested_quantity: float
    remaining_quantity: Optional[float] = None
    lot_status: Optional[str] = None
    unit: str


class ShipmentDetails(BaseModel):
    """Everything the processing view needs for one shipment"""
    shipment: Shipment
    inventory: List[LotInventory] = Field(default_factory=list)
    hazmat_declaration: Optional[HazmatDeclaration] = None
    custody_log: List[CustodyEvent] = Field(default_factory=list)
    supplies_used: List[SupplyUsage] = Field(default_factory=list)


# ============================================================================
# Request Models
# ============================================================================


class ShipmentCreateRequest(BaseModel):
    """Request a shipment of one or more sample lots"""
    line_items: List[ShipmentLineItem] = Field(..., description="Requested lots and quantities")
    recipient: Recipient
    delivery_address: Address
    scheduled_ship_date: Optional[date] = None
    special_instructions: Optional[str] = Field(None, max_length=2000)
    requested_by: Optional[str] = None
    # Accepted for compatibility with older clients; always recomputed
    is_hazmat: Optional[bool] = None


class AddressValidationRequest(BaseModel):
    address: Address


class RateQuoteRequest(BaseModel):
    weight: float = Field(..., description="Package weight")
    weight_unit: WeightUnit = WeightUnit.LB
    service_type: ServiceType = ServiceType.FEDEX_GROUND


class LabelRequest(BaseModel):
    weight: float = Field(..., description="Package weight")
    weight_unit: WeightUnit = WeightUnit.LB
    service_type: ServiceType = ServiceType.FEDEX_GROUND
    supplies_used: List[SupplyUsage] = Field(default_factory=list)


class HazmatDeclarationRequest(BaseModel):
    un_number: str = Field(..., description="UN number, e.g. UN1170")
    proper_shipping_name: str = ""
    hazard_class: str = ""
    packing_group: Optional[PackingGroup] = None
    technical_name: Optional[str] = None
    emergency_phone: Optional[str] = Field(None, description="24-hour emergency contact")


class LabelAdoptRequest(BaseModel):
    """Record a held carrier label as the shipment's label"""
    supplies_used: List[SupplyUsage] = Field(default_factory=list)


class LabelHoldReleaseRequest(BaseModel):
    notes: Optional[str] = Field(None, max_length=1000, description="How the held label was resolved with the carrier")


class CancelShipmentRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class SupplyCreateRequest(BaseModel):
    supply_type: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    initial_quantity: int = Field(default=0, ge=0)
    unit: str = "each"
    reorder_threshold: int = Field(default=0, ge=0)
    unit_cost: Optional[Decimal] = Field(None, ge=0)
    supplier: Optional[str] = None


class SupplyRestockRequest(BaseModel):
    quantity: int = Field(..., description="Units added")
    notes: Optional[str] = None


class TrackingWebhookRequest(BaseModel):
    """Carrier push notification"""
    tracking_number: str
    status: str
    description: Optional[str] = None
    location: Optional[str] = None
    timestamp: Optional[datetime] = None
    estimated_delivery: Optional[date] = None


# ============================================================================
# Response Models
# ============================================================================


class ShipmentListResponse(BaseModel):
    shipments: List[Shipment]
    count: int
    limit: int
    offset: int


class SupplyListResponse(BaseModel):
    supplies: List[SupplyItem]
    low_stock_count: int


class HealthResponse(BaseModel):
    status: str
    service: str
    port: int
    version: str
    dependencies: Dict[str, str] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    """Error body; handlers add kind-specific keys (lot_number, carrier_code, partial_failure, ...)"""
    model_config = ConfigDict(extra="allow")

    detail: str
    field: Optional[str] = None
