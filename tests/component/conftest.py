"""
Component Test Layer Configuration

Structure:
    tests/component/
    ├── shipment/    Shipment service flows, adapters and HTTP routes
    └── mocks/       Mock implementations

Usage:
    pytest tests/component -v
    pytest -m component -v
"""
import pytest

from microservices.shipment_service.providers import MockCarrierProvider
from microservices.shipment_service.shipment_service import ShipmentService
from tests.component.mocks import (
    InMemoryShipmentRepository,
    MockEventBus,
    MockNotificationClient,
)


# =============================================================================
# Dependency Mocks
# =============================================================================

@pytest.fixture
def mock_repository() -> InMemoryShipmentRepository:
    """In-memory repository seeded with two sample lots"""
    repository = InMemoryShipmentRepository()
    repository.add_lot("LOT-A", 100.0, sample_name="Serum panel A")
    repository.add_lot("LOT-B", 40.0, sample_name="Reference standard B")
    return repository


@pytest.fixture
def mock_carrier() -> MockCarrierProvider:
    return MockCarrierProvider()


@pytest.fixture
def mock_event_bus() -> MockEventBus:
    """Mock NATS event bus"""
    return MockEventBus()


@pytest.fixture
def mock_notifications() -> MockNotificationClient:
    return MockNotificationClient()


# =============================================================================
# Service
# =============================================================================

@pytest.fixture
def shipment_service(mock_repository, mock_carrier, mock_event_bus, mock_notifications) -> ShipmentService:
    return ShipmentService(
        repository=mock_repository,
        carrier=mock_carrier,
        notification_client=mock_notifications,
        event_bus=mock_event_bus,
        hazmat_threshold=30.0,
        label_claim_ttl_seconds=300,
    )
