"""
Shipment Service Event Publishers

Functions to publish events from shipment service. All of them are
best-effort: they return False and log instead of raising.
"""

import logging
from typing import Optional

from core.nats_client import Event, ServiceSource

from ..models import Shipment, ShipmentStatus, SupplyItem
from .models import (
    LabelCreatedEvent,
    LineItemSummary,
    PartialFailureEvent,
    ProcessingStartedEvent,
    ShipmentCancelledEvent,
    ShipmentEventType,
    ShipmentRequestedEvent,
    StatusChangedEvent,
    SupplyLowStockEvent,
)

logger = logging.getLogger(__name__)


async def _publish(event_bus, event_type: ShipmentEventType, payload, subject: Optional[str] = None) -> bool:
    if not event_bus:
        logger.warning(f"Event bus not available, skipping {event_type.value} event")
        return False

    try:
        event = Event(
            event_type=event_type,
            source=ServiceSource.SHIPMENT_SERVICE,
            data=payload.model_dump(mode="json"),
            subject=subject,
        )
        published = await event_bus.publish_event(event)
        if published is False:
            logger.warning(f"Event bus rejected {event_type.value} event")
            return False
        logger.info(f"Published {event_type.value} event{f' for {subject}' if subject else ''}")
        return True

    except Exception as e:
        logger.error(f"Failed to publish {event_type.value} event: {e}")
        return False


async def publish_shipment_requested(event_bus, shipment: Shipment) -> bool:
    """Publish shipment.requested event"""
    payload = ShipmentRequestedEvent(
        shipment_id=shipment.shipment_id,
        shipment_number=shipment.shipment_number,
        line_items=[
            LineItemSummary(lot_number=item.lot_number, quantity=item.quantity, unit=item.unit)
            for item in shipment.line_items
        ],
        total_quantity=shipment.total_quantity,
        quantity_unit=shipment.quantity_unit,
        is_hazmat=shipment.is_hazmat,
        requested_by=shipment.requested_by,
    )
    return await _publish(event_bus, ShipmentEventType.SHIPMENT_REQUESTED, payload, shipment.shipment_id)


async def publish_processing_started(event_bus, shipment: Shipment) -> bool:
    """Publish shipment.processing_started event"""
    payload = ProcessingStartedEvent(
        shipment_id=shipment.shipment_id,
        shipment_number=shipment.shipment_number,
        prepared_by=shipment.prepared_by,
    )
    return await _publish(event_bus, ShipmentEventType.PROCESSING_STARTED, payload, shipment.shipment_id)


async def publish_label_created(event_bus, shipment: Shipment) -> bool:
    """Publish shipment.label_created event"""
    payload = LabelCreatedEvent(
        shipment_id=shipment.shipment_id,
        shipment_number=shipment.shipment_number,
        tracking_number=shipment.tracking_number,
        label_url=shipment.label_url,
        service_type=shipment.service_type or "",
        shipping_cost=shipment.shipping_cost,
        estimated_delivery=shipment.estimated_delivery,
        is_hazmat=shipment.is_hazmat,
    )
    return await _publish(event_bus, ShipmentEventType.LABEL_CREATED, payload, shipment.shipment_id)


async def publish_status_changed(
    event_bus, shipment: Shipment, previous_status: ShipmentStatus, source: str = "carrier"
) -> bool:
    """Publish shipment.status_changed event"""
    payload = StatusChangedEvent(
        shipment_id=shipment.shipment_id,
        shipment_number=shipment.shipment_number,
        previous_status=previous_status.value,
        status=shipment.status.value,
        tracking_number=shipment.tracking_number,
        source=source,
    )
    return await _publish(event_bus, ShipmentEventType.STATUS_CHANGED, payload, shipment.shipment_id)


async def publish_shipment_cancelled(
    event_bus, shipment: Shipment, previous_status: ShipmentStatus, cancelled_by: Optional[str] = None
) -> bool:
    """Publish shipment.cancelled event"""
    payload = ShipmentCancelledEvent(
        shipment_id=shipment.shipment_id,
        shipment_number=shipment.shipment_number,
        previous_status=previous_status.value,
        reason=shipment.cancellation_reason,
        cancelled_by=cancelled_by,
    )
    return await _publish(event_bus, ShipmentEventType.SHIPMENT_CANCELLED, payload, shipment.shipment_id)


async def publish_partial_failure(
    event_bus,
    shipment_id: str,
    tracking_number: str,
    error: str,
    label_url: Optional[str] = None,
    cost=None,
) -> bool:
    """Publish shipment.partial_failure event"""
    payload = PartialFailureEvent(
        shipment_id=shipment_id,
        tracking_number=tracking_number,
        label_url=label_url,
        cost=cost,
        error=error,
    )
    return await _publish(event_bus, ShipmentEventType.PARTIAL_FAILURE, payload, shipment_id)


async def publish_supply_low_stock(event_bus, supply: SupplyItem, shipment_id: Optional[str] = None) -> bool:
    """Publish supply.low_stock event"""
    payload = SupplyLowStockEvent(
        supply_id=supply.supply_id,
        name=supply.name,
        current_quantity=supply.current_quantity,
        reorder_threshold=supply.reorder_threshold,
        shipment_id=shipment_id,
    )
    return await _publish(event_bus, ShipmentEventType.SUPPLY_LOW_STOCK, payload, supply.supply_id)
