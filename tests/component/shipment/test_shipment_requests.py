"""
Component Tests for Shipment Requests

Request validation, hazmat computation, processing start, cancellation and
queries, with in-memory dependencies.
"""

import pytest

from microservices.shipment_service.models import CustodyEventType, ShipmentStatus
from microservices.shipment_service.protocols import (
    InsufficientQuantityError,
    InvalidStatusTransitionError,
    SampleLotNotFoundError,
    ShipmentNotFoundError,
    ShipmentValidationError,
)
from tests.fixtures import make_create_request

pytestmark = pytest.mark.component


class TestRequestShipment:
    """Tests for request_shipment"""

    @pytest.mark.asyncio
    async def test_creates_initiated_shipment(self, shipment_service, mock_repository):
        shipment = await shipment_service.request_shipment(make_create_request([("LOT-A", 10.0)]))

        assert shipment.status == ShipmentStatus.INITIATED
        assert shipment.shipment_number.startswith("SHIP-")
        assert shipment.total_quantity == 10.0
        assert shipment.quantity_unit == "ml"
        assert shipment.is_hazmat is False
        assert shipment.tracking_number is None
        assert shipment.line_items[0].sample_name == "Serum panel A"
        assert mock_repository.custody_types(shipment.shipment_id) == [CustodyEventType.CREATED]

    @pytest.mark.asyncio
    async def test_hazmat_computed_from_total(self, shipment_service):
        shipment = await shipment_service.request_shipment(
            make_create_request([("LOT-A", 10.0), ("LOT-B", 25.0)])
        )

        assert shipment.total_quantity == 35.0
        assert shipment.is_hazmat is True

    @pytest.mark.asyncio
    async def test_threshold_is_inclusive(self, shipment_service):
        at = await shipment_service.request_shipment(make_create_request([("LOT-A", 30.0)]))
        below = await shipment_service.request_shipment(make_create_request([("LOT-A", 29.999)]))

        assert at.is_hazmat is True
        assert below.is_hazmat is False

    @pytest.mark.asyncio
    async def test_client_hazmat_flag_ignored(self, shipment_service):
        shipment = await shipment_service.request_shipment(
            make_create_request([("LOT-A", 10.0)], is_hazmat=True)
        )
        assert shipment.is_hazmat is False

        shipment = await shipment_service.request_shipment(
            make_create_request([("LOT-A", 50.0)], is_hazmat=False)
        )
        assert shipment.is_hazmat is True

    @pytest.mark.asyncio
    async def test_unknown_lot(self, shipment_service, mock_repository):
        with pytest.raises(SampleLotNotFoundError) as exc_info:
            await shipment_service.request_shipment(make_create_request([("LOT-MISSING", 1.0)]))

        assert exc_info.value.lot_number == "LOT-MISSING"
        assert mock_repository.shipments == {}

    @pytest.mark.asyncio
    async def test_quantity_above_available(self, shipment_service):
        with pytest.raises(InsufficientQuantityError) as exc_info:
            await shipment_service.request_shipment(make_create_request([("LOT-B", 40.5)]))

        assert exc_info.value.lot_number == "LOT-B"
        assert exc_info.value.available == 40.0
        assert exc_info.value.requested == 40.5

    @pytest.mark.asyncio
    async def test_quantities_for_same_lot_are_summed(self, shipment_service):
        with pytest.raises(InsufficientQuantityError) as exc_info:
            await shipment_service.request_shipment(
                make_create_request([("LOT-B", 25.0), ("LOT-B", 20.0)])
            )
        assert exc_info.value.requested == 45.0

    @pytest.mark.asyncio
    async def test_whole_lot_can_be_requested(self, shipment_service):
        shipment = await shipment_service.request_shipment(make_create_request([("LOT-B", 40.0)]))
        assert shipment.total_quantity == 40.0

    @pytest.mark.asyncio
    async def test_fractional_items_totalling_threshold_are_hazmat(self, shipment_service):
        shipment = await shipment_service.request_shipment(
            make_create_request([("LOT-A", 29.4), ("LOT-A", 0.4), ("LOT-B", 0.2)])
        )

        assert shipment.total_quantity == 30.0
        assert shipment.is_hazmat is True
    @pytest.mark.asyncio
    async def test_empty_line_items_rejected(self, shipment_service):
        with pytest.raises(ShipmentValidationError) as exc_info:
            await shipment_service.request_shipment(make_create_request([]))
        assert exc_info.value.field == "line_items"

    @pytest.mark.asyncio
    async def test_mixed_units_rejected(self, shipment_service):
        request = make_create_request([("LOT-A", 5.0), ("LOT-B", 5.0)])
        request.line_items[1].unit = "g"

        with pytest.raises(ShipmentValidationError) as exc_info:
            await shipment_service.request_shipment(request)
        assert exc_info.value.field == "line_items.unit"

    @pytest.mark.asyncio
    async def test_publishes_requested_event(self, shipment_service, mock_event_bus):
        shipment = await shipment_service.request_shipment(make_create_request([("LOT-A", 10.0)]))

        event = mock_event_bus.assert_event_published(
            "shipment.requested", {"shipment_id": shipment.shipment_id}
        )
        assert event["data"]["is_hazmat"] is False

    @pytest.mark.asyncio
    async def test_notifies_requester(self, shipment_service, mock_notifications):
        await shipment_service.request_shipment(make_create_request([("LOT-A", 10.0)]))
        await shipment_service.wait_for_background_tasks()

        assert mock_notifications.methods() == ["notify_shipment_requested"]

    @pytest.mark.asyncio
    async def test_notification_failure_does_not_fail_request(
        self, shipment_service, mock_notifications, mock_repository
    ):
        mock_notifications.error = RuntimeError("mail relay down")

        shipment = await shipment_service.request_shipment(make_create_request([("LOT-A", 10.0)]))
        await shipment_service.wait_for_background_tasks()

        assert shipment.shipment_id in mock_repository.shipments
        assert mock_notifications.sent == []

    @pytest.mark.asyncio
    async def test_event_bus_failure_does_not_fail_request(self, shipment_service, mock_event_bus, mock_repository):
        mock_event_bus.set_error(ConnectionError("nats down"))

        shipment = await shipment_service.request_shipment(make_create_request([("LOT-A", 10.0)]))

        assert shipment.shipment_id in mock_repository.shipments

    @pytest.mark.asyncio
    async def test_works_without_optional_collaborators(self, mock_repository, mock_carrier):
        from microservices.shipment_service.shipment_service import ShipmentService

        service = ShipmentService(repository=mock_repository, carrier=mock_carrier)
        shipment = await service.request_shipment(make_create_request([("LOT-A", 10.0)]))

        assert shipment.status == ShipmentStatus.INITIATED


class TestLotStock:
    """Requested quantities leave the lot when the shipment is requested"""

    @pytest.mark.asyncio
    async def test_request_takes_quantity_from_lot(self, shipment_service, mock_repository):
        await shipment_service.request_shipment(make_create_request([("LOT-A", 10.0), ("LOT-B", 15.0)]))

        assert mock_repository.lots["LOT-A"].available_quantity == 90.0
        assert mock_repository.lots["LOT-B"].available_quantity == 25.0
        assert mock_repository.lots["LOT-A"].status == "active"

    @pytest.mark.asyncio
    async def test_successive_requests_cannot_overcommit_lot(self, shipment_service, mock_repository):
        await shipment_service.request_shipment(make_create_request([("LOT-A", 100.0)]))

        with pytest.raises(InsufficientQuantityError) as exc_info:
            await shipment_service.request_shipment(make_create_request([("LOT-A", 100.0)]))
        with pytest.raises(InsufficientQuantityError):
            await shipment_service.request_shipment(make_create_request([("LOT-A", 0.5)]))

        assert exc_info.value.available == 0.0
        assert len(mock_repository.shipments) == 1

    @pytest.mark.asyncio
    async def test_lot_emptied_by_request_is_depleted(self, shipment_service, mock_repository):
        await shipment_service.request_shipment(make_create_request([("LOT-B", 40.0)]))

        assert mock_repository.lots["LOT-B"].available_quantity == 0.0
        assert mock_repository.lots["LOT-B"].status == "depleted"

    @pytest.mark.asyncio
    async def test_exact_fractional_split_of_lot(self, shipment_service, mock_repository):
        mock_repository.add_lot("LOT-C", 0.3)

        shipment = await shipment_service.request_shipment(make_create_request([("LOT-C", 0.1), ("LOT-C", 0.2)]))

        assert shipment.status == ShipmentStatus.INITIATED
        assert mock_repository.lots["LOT-C"].available_quantity == 0.0
        assert mock_repository.lots["LOT-C"].status == "depleted"

    @pytest.mark.asyncio
    async def test_lot_drained_after_check_rejects_whole_request(self, shipment_service, mock_repository):
        stale_lots = dict(mock_repository.lots)
        await shipment_service.request_shipment(make_create_request([("LOT-B", 30.0)]))

        async def stale_read(lot_numbers):
            return {n: stale_lots[n] for n in lot_numbers if n in stale_lots}

        mock_repository.get_sample_lots = stale_read

        with pytest.raises(InsufficientQuantityError) as exc_info:
            await shipment_service.request_shipment(make_create_request([("LOT-A", 10.0), ("LOT-B", 30.0)]))

        assert exc_info.value.lot_number == "LOT-B"
        assert exc_info.value.available == 10.0
        assert mock_repository.lots["LOT-A"].available_quantity == 100.0
        assert len(mock_repository.shipments) == 1


class TestStartProcessing:
    @pytest.mark.asyncio
    async def test_initiated_to_processing(self, shipment_service, prepare_shipment, mock_repository, mock_event_bus):
        shipment = await prepare_shipment(stage="initiated")

        updated = await shipment_service.start_processing(shipment.shipment_id, performed_by="usr_lab")

        assert updated.status == ShipmentStatus.PROCESSING
        assert updated.prepared_by == "usr_lab"
        assert CustodyEventType.PROCESSING_STARTED in mock_repository.custody_types(shipment.shipment_id)
        mock_event_bus.assert_event_published("shipment.processing_started")

    @pytest.mark.asyncio
    async def test_cannot_start_twice(self, shipment_service, prepare_shipment):
        shipment = await prepare_shipment(stage="processing")

        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            await shipment_service.start_processing(shipment.shipment_id)
        assert exc_info.value.current == ShipmentStatus.PROCESSING

    @pytest.mark.asyncio
    async def test_unknown_shipment(self, shipment_service):
        with pytest.raises(ShipmentNotFoundError):
            await shipment_service.start_processing("shp_missing")


class TestCancelShipment:
    @pytest.mark.asyncio
    async def test_cancel_initiated(self, shipment_service, prepare_shipment, mock_event_bus, mock_repository):
        shipment = await prepare_shipment(stage="initiated")

        cancelled = await shipment_service.cancel_shipment(
            shipment.shipment_id, reason="Requester withdrew", performed_by="usr_lab"
        )

        assert cancelled.status == ShipmentStatus.CANCELLED
        assert cancelled.cancellation_reason == "Requester withdrew"
        assert cancelled.cancelled_at is not None
        assert CustodyEventType.CANCELLED in mock_repository.custody_types(shipment.shipment_id)
        event = mock_event_bus.assert_event_published("shipment.cancelled")
        assert event["data"]["previous_status"] == "initiated"

    @pytest.mark.asyncio
    async def test_cancel_shipped(self, shipment_service, shipped_shipment):
        shipment = await shipped_shipment()

        cancelled = await shipment_service.cancel_shipment(shipment.shipment_id)

        assert cancelled.status == ShipmentStatus.CANCELLED
        assert cancelled.tracking_number == shipment.tracking_number

    @pytest.mark.asyncio
    async def test_cancelled_is_terminal(self, shipment_service, prepare_shipment):
        shipment = await prepare_shipment(stage="initiated")
        await shipment_service.cancel_shipment(shipment.shipment_id)

        with pytest.raises(InvalidStatusTransitionError):
            await shipment_service.cancel_shipment(shipment.shipment_id)
        with pytest.raises(InvalidStatusTransitionError):
            await shipment_service.start_processing(shipment.shipment_id)

    @pytest.mark.asyncio
    async def test_delivered_cannot_be_cancelled(self, shipment_service, shipped_shipment, mock_repository):
        shipment = await shipped_shipment()
        mock_repository.force_status(shipment.shipment_id, ShipmentStatus.DELIVERED)

        with pytest.raises(InvalidStatusTransitionError):
            await shipment_service.cancel_shipment(shipment.shipment_id)

    @pytest.mark.asyncio
    async def test_cancel_does_not_restore_lot_stock(self, shipment_service, prepare_shipment, mock_repository):
        shipment = await prepare_shipment(stage="initiated")
        await shipment_service.cancel_shipment(shipment.shipment_id)

        assert mock_repository.lots["LOT-A"].available_quantity == 90.0


class TestQueries:
    @pytest.mark.asyncio
    async def test_list_by_status(self, shipment_service, prepare_shipment):
        await prepare_shipment(stage="initiated")
        processing = await prepare_shipment(stage="processing")

        result = await shipment_service.list_shipments(status="processing")

        assert [s.shipment_id for s in result] == [processing.shipment_id]

    @pytest.mark.asyncio
    async def test_list_accepts_legacy_status(self, shipment_service, prepare_shipment):
        initiated = await prepare_shipment(stage="initiated")

        result = await shipment_service.list_shipments(status="pending")

        assert [s.shipment_id for s in result] == [initiated.shipment_id]

    @pytest.mark.asyncio
    async def test_list_rejects_unknown_status(self, shipment_service):
        with pytest.raises(ShipmentValidationError) as exc_info:
            await shipment_service.list_shipments(status="lost")
        assert exc_info.value.field == "status"

    @pytest.mark.asyncio
    async def test_processing_queue_oldest_first(self, shipment_service, prepare_shipment):
        first = await prepare_shipment(stage="initiated")
        second = await prepare_shipment(stage="initiated")
        await prepare_shipment(stage="processing")

        queue = await shipment_service.get_processing_queue()

        assert [s.shipment_id for s in queue] == [first.shipment_id, second.shipment_id]

    @pytest.mark.asyncio
    async def test_details_projects_lot_inventory(self, shipment_service, prepare_shipment):
        shipment = await prepare_shipment([("LOT-B", 15.0), ("LOT-B", 10.0)], stage="initiated")

        details = await shipment_service.get_shipment_details(shipment.shipment_id)

        assert len(details.inventory) == 1
        lot = details.inventory[0]
        assert lot.requested_quantity == 25.0
        assert lot.remaining_quantity == 15.0
        assert lot.lot_status == "active"
        assert [e.event_type for e in details.custody_log] == [CustodyEventType.CREATED]

    @pytest.mark.asyncio
    async def test_delete(self, shipment_service, prepare_shipment, mock_repository):
        shipment = await prepare_shipment(stage="initiated")

        await shipment_service.delete_shipment(shipment.shipment_id)

        assert shipment.shipment_id not in mock_repository.shipments
        with pytest.raises(ShipmentNotFoundError):
            await shipment_service.delete_shipment(shipment.shipment_id)
