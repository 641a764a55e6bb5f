"""
Unit Tests for the Sandbox Carrier

Deterministic rates, tracking numbers and injected failures.
"""

from datetime import date
from decimal import Decimal

import pytest

from microservices.shipment_service.protocols import CarrierError, CarrierTimeoutError
from microservices.shipment_service.providers.mock import MockCarrierProvider, mock_rate
from tests.fixtures import make_address

pytestmark = pytest.mark.unit


class TestMockRate:
    def test_ground_rate(self):
        assert mock_rate(2.5, "FEDEX_GROUND") == Decimal("30.00")

    def test_overnight_rate(self):
        assert mock_rate(2, "PRIORITY_OVERNIGHT") == Decimal("90.00")


class TestMockCarrierProvider:
    @pytest.mark.asyncio
    async def test_valid_address_echoes_back(self):
        carrier = MockCarrierProvider()
        address = make_address()

        result = await carrier.validate_address(address)

        assert result.valid is True
        assert result.corrected_address == address

    @pytest.mark.asyncio
    async def test_undeliverable_postal_code(self):
        carrier = MockCarrierProvider()
        result = await carrier.validate_address(make_address(postal_code="00000"))
        assert result.valid is False
        assert result.messages

    @pytest.mark.asyncio
    async def test_tracking_numbers_are_sequential(self):
        carrier = MockCarrierProvider(today=date(2024, 3, 4))

        first = await carrier.create_label(None, 1, "LB", "FEDEX_GROUND")
        second = await carrier.create_label(None, 1, "LB", "FEDEX_GROUND")

        assert first.tracking_number == "MOCK0000000001"
        assert second.tracking_number == "MOCK0000000002"
        assert first.estimated_delivery == date(2024, 3, 11)

    @pytest.mark.asyncio
    async def test_new_label_tracks_as_processing(self):
        carrier = MockCarrierProvider()
        label = await carrier.create_label(None, 1, "LB", "FEDEX_GROUND")

        info = await carrier.get_tracking(label.tracking_number)

        assert info.status == "processing"

    @pytest.mark.asyncio
    async def test_unknown_tracking_number(self):
        with pytest.raises(CarrierError):
            await MockCarrierProvider().get_tracking("NOPE")

    @pytest.mark.asyncio
    async def test_injected_failure_until_cleared(self):
        carrier = MockCarrierProvider()
        carrier.set_failure("create_label", CarrierTimeoutError("slow"))

        with pytest.raises(CarrierTimeoutError):
            await carrier.create_label(None, 1, "LB", "FEDEX_GROUND")

        carrier.set_failure("create_label", None)
        label = await carrier.create_label(None, 1, "LB", "FEDEX_GROUND")
        assert label.tracking_number.startswith("MOCK")
        assert carrier.calls == ["create_label", "create_label"]
