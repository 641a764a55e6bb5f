"""
Shipment Service Factory

Factory for creating ShipmentService with real dependencies.
This is the ONLY module that imports concrete implementations.
"""

import logging
from typing import Optional

from core.config_manager import ConfigManager

from .clients import NotificationClient
from .providers import CarrierProvider, FedExCarrierProvider, MockCarrierProvider
from .shipment_repository import ShipmentRepository
from .shipment_service import ShipmentService

logger = logging.getLogger(__name__)


def create_carrier_provider(config: ConfigManager) -> CarrierProvider:
    """FedEx when credentials are configured, otherwise the sandbox provider"""
    carrier_config = config.get_service_config().carrier
    if carrier_config.has_credentials:
        logger.info(f"Using FedEx carrier at {carrier_config.base_url}")
        return FedExCarrierProvider(carrier_config)

    logger.warning("FedEx credentials not configured; using mock carrier provider")
    return MockCarrierProvider()


def create_shipment_service(
    config: Optional[ConfigManager] = None,
    event_bus=None,
) -> ShipmentService:
    """
    Create ShipmentService with all real dependencies

    Args:
        config: Optional config manager (creates default if not provided)
        event_bus: Optional event bus for event publishing

    Returns:
        Fully initialized ShipmentService instance
    """
    # Initialize config if not provided
    if config is None:
        config = ConfigManager("shipment_service")

    service_config = config.get_service_config()
    shipping = service_config.shipping

    repository = ShipmentRepository(config=config)
    carrier = create_carrier_provider(config)
    notification_client = NotificationClient(
        base_url=shipping.notification_service_url,
        timeout=shipping.notification_timeout_seconds,
        sender_name=shipping.sender_name,
    )

    logger.info("ShipmentService created with real dependencies")

    return ShipmentService(
        repository=repository,
        carrier=carrier,
        notification_client=notification_client,
        event_bus=event_bus,
        hazmat_threshold=shipping.hazmat_threshold,
        label_claim_ttl_seconds=shipping.label_claim_ttl_seconds,
        default_emergency_phone=service_config.carrier.hazmat_emergency_phone or None,
    )


__all__ = ["create_shipment_service", "create_carrier_provider"]
