"""
Notification Service Client

Client for shipment_service to send email notifications through
notification_service. Delivery is best-effort: every method returns a bool
and logs failures instead of raising.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from ..models import Shipment, ShipmentStatus

logger = logging.getLogger(__name__)


class NotificationClient:
    """Notification Service HTTP client"""

    def __init__(
        self,
        base_url: str = "http://localhost:8208",
        timeout: float = 5.0,
        sender_name: str = "T-Link",
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.sender_name = sender_name
        self._owns_client = http_client is None
        self.client = http_client or httpx.AsyncClient(timeout=timeout)

    async def close(self):
        """Close HTTP client"""
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def send_email(
        self,
        recipient_email: str,
        subject: str,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        payload = {
            "type": "email",
            "recipient_email": recipient_email,
            "subject": subject,
            "content": content,
            "sender_name": self.sender_name,
            "metadata": metadata or {},
        }
        try:
            response = await self.client.post(f"{self.base_url}/api/v1/notifications/send", json=payload)
            response.raise_for_status()
            return True
        except httpx.HTTPStatusError as e:
            logger.error(f"Failed to send notification: {e.response.status_code}")
            return False
        except httpx.HTTPError as e:
            logger.error(f"Error sending notification: {e}")
            return False

    # =============================================================================
    # Shipment-specific convenience methods
    # =============================================================================

    async def notify_shipment_requested(self, shipment: Shipment) -> bool:
        """Confirmation to the recipient that a shipment was requested"""
        if not shipment.recipient.email:
            logger.debug(f"No recipient email for {shipment.shipment_number}, skipping confirmation")
            return False
        lots = ", ".join(
            f"{item.lot_number} ({item.quantity:g} {item.unit})" for item in shipment.line_items
        )
        return await self.send_email(
            recipient_email=shipment.recipient.email,
            subject=f"Shipment request {shipment.shipment_number} received",
            content=(
                f"Hello {shipment.recipient.name},\n\n"
                f"We received shipment request {shipment.shipment_number} for: {lots}.\n"
                f"You will receive another message with tracking details once it ships."
            ),
            metadata={"shipment_id": shipment.shipment_id, "event": "shipment_requested"},
        )

    async def notify_label_created(self, shipment: Shipment) -> bool:
        if not shipment.recipient.email:
            return False
        delivery = shipment.estimated_delivery.isoformat() if shipment.estimated_delivery else "TBD"
        return await self.send_email(
            recipient_email=shipment.recipient.email,
            subject=f"Shipment {shipment.shipment_number} has shipped",
            content=(
                f"Hello {shipment.recipient.name},\n\n"
                f"Shipment {shipment.shipment_number} has shipped.\n"
                f"Tracking number: {shipment.tracking_number}\n"
                f"Estimated delivery: {delivery}"
            ),
            metadata={
                "shipment_id": shipment.shipment_id,
                "tracking_number": shipment.tracking_number,
                "event": "label_created",
            },
        )

    async def notify_status_changed(self, shipment: Shipment, previous_status: ShipmentStatus) -> bool:
        if not shipment.recipient.email:
            return False
        return await self.send_email(
            recipient_email=shipment.recipient.email,
            subject=f"Shipment {shipment.shipment_number} is now {shipment.status.value.replace('_', ' ')}",
            content=(
                f"Hello {shipment.recipient.name},\n\n"
                f"Shipment {shipment.shipment_number} changed from "
                f"{previous_status.value} to {shipment.status.value}."
            ),
            metadata={
                "shipment_id": shipment.shipment_id,
                "previous_status": previous_status.value,
                "status": shipment.status.value,
                "event": "status_changed",
            },
        )
