"""
Component Tests for the Notification Service Client
"""
import json

import httpx
import pytest

from microservices.shipment_service.clients import NotificationClient
from microservices.shipment_service.models import Shipment, ShipmentStatus
from tests.fixtures import make_address, make_line_items, make_recipient

pytestmark = pytest.mark.component

BASE_URL = "http://notifications.test"


def _shipment(**overrides):
    data = dict(
        shipment_id="shp_test",
        shipment_number="SHIP-000007",
        status=ShipmentStatus.SHIPPED,
        line_items=make_line_items([("LOT-A", 10.0)]),
        recipient=make_recipient(email="ada@example.com"),
        delivery_address=make_address(),
        tracking_number="794699999999",
    )
    data.update(overrides)
    return Shipment(**data)


def _client(handler):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return NotificationClient(base_url=BASE_URL, http_client=http_client)


class TestNotificationClient:
    @pytest.mark.asyncio
    async def test_label_created_email(self):
        sent = []

        def handler(request):
            sent.append(request)
            return httpx.Response(200, json={"success": True})

        client = _client(handler)
        assert await client.notify_label_created(_shipment()) is True

        request = sent[0]
        assert str(request.url) == f"{BASE_URL}/api/v1/notifications/send"
        body = json.loads(request.content)
        assert body["type"] == "email"
        assert body["recipient_email"] == "ada@example.com"
        assert "794699999999" in body["content"]
        assert body["metadata"]["event"] == "label_created"

    @pytest.mark.asyncio
    async def test_status_changed_email(self):
        sent = []

        def handler(request):
            sent.append(json.loads(request.content))
            return httpx.Response(200, json={})

        client = _client(handler)
        shipment = _shipment(status=ShipmentStatus.IN_TRANSIT)
        assert await client.notify_status_changed(shipment, ShipmentStatus.SHIPPED) is True

        assert sent[0]["subject"] == "Shipment SHIP-000007 is now in transit"
        assert sent[0]["metadata"]["previous_status"] == "shipped"

    @pytest.mark.asyncio
    async def test_no_recipient_email_skips_send(self):
        def handler(request):
            raise AssertionError("should not be called")

        client = _client(handler)
        shipment = _shipment(recipient=make_recipient(email=None))

        assert await client.notify_shipment_requested(shipment) is False

    @pytest.mark.asyncio
    async def test_server_error_returns_false(self):
        client = _client(lambda request: httpx.Response(503, json={"detail": "down"}))

        assert await client.notify_shipment_requested(_shipment()) is False

    @pytest.mark.asyncio
    async def test_connection_error_returns_false(self):
        def handler(request):
            raise httpx.ConnectError("refused")

        client = _client(handler)

        assert await client.notify_label_created(_shipment()) is False
