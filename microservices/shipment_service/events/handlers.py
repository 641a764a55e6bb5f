"""
Shipment Service Event Handlers

Handlers for events from other services
"""

import logging
from typing import Any, Callable, Dict, Union

from pydantic import ValidationError

from ..models import TrackingEvent, TrackingInfo
from ..protocols import ShipmentNotFoundError
from .models import ShipmentSubscribedEventType, TrackingUpdatedEvent

logger = logging.getLogger(__name__)


def extract_event_data(event_or_data: Union[Dict[str, Any], Any]) -> Dict[str, Any]:
    """Accept either an Event (from NATS) or a raw dict (tests, direct calls)"""
    if hasattr(event_or_data, "data"):
        return event_or_data.data
    return event_or_data


def tracking_info_from_update(update) -> TrackingInfo:
    """Single-scan TrackingInfo from a pushed carrier update (event or webhook body)"""
    return TrackingInfo(
        tracking_number=update.tracking_number,
        status=update.status,
        estimated_delivery=update.estimated_delivery,
        events=[
            TrackingEvent(
                status=update.status,
                description=update.description,
                location=update.location,
                timestamp=update.timestamp,
            )
        ],
    )


async def handle_tracking_updated(event_or_data, shipment_service) -> None:
    """
    Handle carrier.tracking.updated

    Relayed carrier webhook; applies the reported status through the
    forward-only tracking rules.
    """
    try:
        update = TrackingUpdatedEvent(**extract_event_data(event_or_data))
    except ValidationError as e:
        logger.warning(f"Ignoring malformed carrier.tracking.updated event: {e}")
        return

    info = tracking_info_from_update(update)
    try:
        await shipment_service.apply_tracking_update(update.tracking_number, info)
    except ShipmentNotFoundError:
        logger.warning(f"Tracking update for unknown tracking number {update.tracking_number}")


def get_event_handlers(shipment_service) -> Dict[str, Callable]:
    """
    Return a mapping of event patterns to handler functions

    Used in main.py to register event subscriptions.
    """
    return {
        ShipmentSubscribedEventType.CARRIER_TRACKING_UPDATED.value: lambda event: handle_tracking_updated(
            event, shipment_service
        ),
    }
