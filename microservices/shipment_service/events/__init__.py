"""
Shipment Service Events Module

Exports all event-related functionality for shipment service
"""

from .models import (
    ShipmentEventType,
    ShipmentSubscribedEventType,
    ShipmentStreamConfig,
    ShipmentRequestedEvent,
    ProcessingStartedEvent,
    LabelCreatedEvent,
    StatusChangedEvent,
    ShipmentCancelledEvent,
    PartialFailureEvent,
    SupplyLowStockEvent,
    TrackingUpdatedEvent,
)

from .publishers import (
    publish_shipment_requested,
    publish_processing_started,
    publish_label_created,
    publish_status_changed,
    publish_shipment_cancelled,
    publish_partial_failure,
    publish_supply_low_stock,
)

from .handlers import get_event_handlers, handle_tracking_updated, tracking_info_from_update

__all__ = [
    # Event Types
    "ShipmentEventType",
    "ShipmentSubscribedEventType",
    "ShipmentStreamConfig",
    # Event Models
    "ShipmentRequestedEvent",
    "ProcessingStartedEvent",
    "LabelCreatedEvent",
    "StatusChangedEvent",
    "ShipmentCancelledEvent",
    "PartialFailureEvent",
    "SupplyLowStockEvent",
    "TrackingUpdatedEvent",
    # Publishers
    "publish_shipment_requested",
    "publish_processing_started",
    "publish_label_created",
    "publish_status_changed",
    "publish_shipment_cancelled",
    "publish_partial_failure",
    "publish_supply_low_stock",
    # Handlers
    "get_event_handlers",
    "handle_tracking_updated",
    "tracking_info_from_update",
]
