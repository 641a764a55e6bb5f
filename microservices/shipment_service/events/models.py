"""
Shipment Service Event Models

Pydantic models for events published by shipment service
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


# =============================================================================
# Event Type Definitions (Service-Specific)
# =============================================================================

class ShipmentEventType(str, Enum):
    """
    Events published by shipment_service.

    Streams: shipment-stream (shipment.>), supply-stream (supply.>)
    """
    SHIPMENT_REQUESTED = "shipment.requested"
    PROCESSING_STARTED = "shipment.processing_started"
    LABEL_CREATED = "shipment.label_created"
    STATUS_CHANGED = "shipment.status_changed"
    SHIPMENT_CANCELLED = "shipment.cancelled"
    PARTIAL_FAILURE = "shipment.partial_failure"
    SUPPLY_LOW_STOCK = "supply.low_stock"


class ShipmentSubscribedEventType(str, Enum):
    """Events that shipment_service subscribes to."""
    CARRIER_TRACKING_UPDATED = "carrier.tracking.updated"


class ShipmentStreamConfig:
    """Stream configuration for shipment_service"""
    STREAM_NAME = "shipment-stream"
    SUBJECTS = ["shipment.>"]
    MAX_MESSAGES = 100000
    CONSUMER_PREFIX = "shipment"


# =============================================================================
# Event Data Models
# =============================================================================

class LineItemSummary(BaseModel):
    lot_number: str
    quantity: float
    unit: str


class ShipmentRequestedEvent(BaseModel):
    """Published when a shipment request is accepted"""
    shipment_id: str
    shipment_number: str
    line_items: List[LineItemSummary]
    total_quantity: float
    quantity_unit: str
    is_hazmat: bool
    requested_by: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class ProcessingStartedEvent(BaseModel):
    shipment_id: str
    shipment_number: str
    prepared_by: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class LabelCreatedEvent(BaseModel):
    """Published after the label is recorded locally"""
    shipment_id: str
    shipment_number: str
    tracking_number: str
    label_url: Optional[str] = None
    service_type: str
    shipping_cost: Decimal
    estimated_delivery: Optional[date] = None
    is_hazmat: bool = False
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class StatusChangedEvent(BaseModel):
    shipment_id: str
    shipment_number: str
    previous_status: str
    status: str
    tracking_number: Optional[str] = None
    source: str = Field(default="carrier", description="carrier or operator")
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class ShipmentCancelledEvent(BaseModel):
    shipment_id: str
    shipment_number: str
    previous_status: str
    reason: Optional[str] = None
    cancelled_by: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class PartialFailureEvent(BaseModel):
    """Carrier label exists but the local record could not be updated"""
    shipment_id: str
    tracking_number: str
    label_url: Optional[str] = None
    cost: Optional[Decimal] = None
    error: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class SupplyLowStockEvent(BaseModel):
    supply_id: str
    name: str
    current_quantity: int
    reorder_threshold: int
    shipment_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class TrackingUpdatedEvent(BaseModel):
    """Inbound carrier.tracking.updated payload"""
    tracking_number: str
    status: str
    description: Optional[str] = None
    location: Optional[str] = None
    timestamp: Optional[datetime] = None
    estimated_delivery: Optional[date] = None
