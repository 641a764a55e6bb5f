"""
Component Test Mocks

Shared mock implementations for component testing.
These mocks replace real I/O dependencies (database, NATS, HTTP).
"""

from .nats_mock import MockEventBus
from .notification_mock import MockNotificationClient
from .shipment_repository_mock import InMemoryShipmentRepository

__all__ = [
    'MockEventBus',
    'MockNotificationClient',
    'InMemoryShipmentRepository',
]
