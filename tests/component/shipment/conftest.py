"""
Shipment Component Fixtures

Builders that walk a shipment through the workflow up to a given stage.
"""
import pytest

from tests.fixtures import make_create_request, make_hazmat_request, make_supply_request

OPERATOR = "usr_lab_operator"


@pytest.fixture
def prepare_shipment(shipment_service):
    """
    Returns ``async prepare(items, stage)``.

    Stages: ``initiated``, ``processing``, ``validated`` (address validated)
    and ``ready`` (validated, plus hazmat paperwork when the shipment is hazmat).
    """

    async def _prepare(items=(("LOT-A", 10.0),), stage="ready", unit="ml"):
        shipment = await shipment_service.request_shipment(make_create_request(items, unit))
        if stage == "initiated":
            return shipment

        shipment = await shipment_service.start_processing(shipment.shipment_id, performed_by=OPERATOR)
        if stage == "processing":
            return shipment

        await shipment_service.validate_address(shipment.shipment_id, performed_by=OPERATOR)
        if stage == "ready" and shipment.is_hazmat:
            await shipment_service.submit_hazmat_declaration(
                shipment.shipment_id, make_hazmat_request(), performed_by=OPERATOR
            )
            await shipment_service.mark_warning_labels_printed(shipment.shipment_id, performed_by=OPERATOR)
        return await shipment_service.get_shipment(shipment.shipment_id)

    return _prepare


@pytest.fixture
def create_supply(shipment_service):
    async def _create(**overrides):
        return await shipment_service.create_supply(make_supply_request(**overrides))

    return _create


@pytest.fixture
def shipped_shipment(prepare_shipment, shipment_service):
    """Returns ``async ship()`` producing a shipped shipment"""

    async def _ship(items=(("LOT-A", 10.0),)):
        shipment = await prepare_shipment(items)
        await shipment_service.generate_label(
            shipment.shipment_id, weight=2.0, service_type="FEDEX_GROUND", performed_by=OPERATOR
        )
        return await shipment_service.get_shipment(shipment.shipment_id)

    return _ship
