"""
Shipment Service - Business Logic Layer

Outbound sample shipments from request to delivery:
- Shipment requests validated against sample-lot stock, hazmat computed server-side
- Lab processing: address validation, rate quotes, label generation
- Dangerous goods declarations and warning labels
- Carrier tracking (poll and push), forward-only
- Shipping-supply ledger, consumed only by label generation
"""

import asyncio
import logging
import time
import uuid
from collections import OrderedDict
from typing import Any, Awaitable, Dict, List, Optional, Set

from .events.publishers import (
    publish_label_created,
    publish_partial_failure,
    publish_processing_started,
    publish_shipment_cancelled,
    publish_shipment_requested,
    publish_status_changed,
    publish_supply_low_stock,
)
from .models import (
    Address,
    AddressValidationResult,
    CustodyEvent,
    CustodyEventType,
    HazmatDeclaration,
    HazmatDeclarationRequest,
    LabelHold,
    LabelResult,
    LotInventory,
    RateQuote,
    Shipment,
    ShipmentCreateRequest,
    ShipmentDetails,
    ShipmentStatus,
    SupplyCreateRequest,
    SupplyItem,
    SupplyTransaction,
    SupplyUsage,
    TrackingInfo,
    normalize_status,
)
from .protocols import (
    CarrierError,
    CarrierProviderProtocol,
    EventBusProtocol,
    InsufficientQuantityError,
    InsufficientSupplyError,
    InvalidStatusTransitionError,
    NotificationClientProtocol,
    PartialFailureError,
    SampleLotNotFoundError,
    ShipmentConflictError,
    ShipmentNotFoundError,
    ShipmentRepositoryProtocol,
    ShipmentValidationError,
    SupplyNotFoundError,
)
from .state_machine import (
    DEFAULT_HAZMAT_THRESHOLD,
    STATUS_RANK,
    carrier_status_to_shipment_status,
    ensure_transition,
    estimate_delivery_date,
    is_forward_tracking_update,
    is_hazmat,
    is_terminal,
    normalize_un_number,
    quantities_by_lot,
    to_decimal,
    total_requested_quantity,
)

logger = logging.getLogger(__name__)

# Statuses in which lab processing (validation, quotes, hazmat paperwork) is allowed
PREPARATION_STATUSES = (ShipmentStatus.INITIATED, ShipmentStatus.PROCESSING)


class ShipmentService:
    """
    Shipment Service - Core business logic

    Collaborators are injected: repository (persistence), carrier (FedEx or
    sandbox), notification client and event bus (both optional, best-effort).
    """

    def __init__(
        self,
        repository: ShipmentRepositoryProtocol,
        carrier: CarrierProviderProtocol,
        notification_client: Optional[NotificationClientProtocol] = None,
        event_bus: Optional[EventBusProtocol] = None,
        hazmat_threshold: float = DEFAULT_HAZMAT_THRESHOLD,
        label_claim_ttl_seconds: int = 300,
        default_emergency_phone: Optional[str] = None,
    ):
        """
        Initialize shipment service with dependencies.

        Args:
            repository: Shipment repository for data access
            carrier: Carrier provider used for address, rate, label and tracking calls
            notification_client: Email notifications (optional)
            event_bus: Event bus for publishing events (optional)
            hazmat_threshold: Total quantity at or above which a shipment is hazmat
            label_claim_ttl_seconds: How long an in-flight label claim blocks other callers
            default_emergency_phone: Used when a declaration does not name one
        """
        self.repository = repository
        self.carrier = carrier
        self.notification_client = notification_client
        self.event_bus = event_bus
        self.hazmat_threshold = hazmat_threshold
        self.label_claim_ttl_seconds = label_claim_ttl_seconds
        self.default_emergency_phone = default_emergency_phone
        self._background_tasks: Set[asyncio.Task] = set()

    # ====================
    # Background dispatch
    # ====================

    def _dispatch(self, coro: Awaitable[Any], description: str) -> None:
        """Run ``coro`` after the caller returns; failures are logged only"""
        task = asyncio.create_task(self._run_background(coro, description))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    @staticmethod
    async def _run_background(coro: Awaitable[Any], description: str) -> None:
        try:
            result = await coro
            if result is False:
                logger.warning(f"{description} was not delivered")
        except Exception as e:
            logger.error(f"Background {description} failed: {e}", exc_info=True)

    def _notify(self, method: str, *args) -> None:
        if self.notification_client is None:
            return
        self._dispatch(getattr(self.notification_client, method)(*args), f"notification {method}")

    async def wait_for_background_tasks(self) -> None:
        """Wait for pending notifications (shutdown, tests)"""
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    # ====================
    # Helpers
    # ====================

    async def _get_shipment_or_raise(self, shipment_id: str) -> Shipment:
        shipment = await self.repository.get_shipment(shipment_id)
        if not shipment:
            raise ShipmentNotFoundError(f"Shipment {shipment_id} not found")
        return shipment

    @staticmethod
    def _ensure_preparing(shipment: Shipment, action: str) -> None:
        if shipment.status not in PREPARATION_STATUSES or shipment.tracking_number:
            raise ShipmentConflictError(
                f"Cannot {action}: shipment {shipment.shipment_number} is {shipment.status.value}"
            )

    async def _reload_and_raise_transition(self, shipment_id: str, target: ShipmentStatus) -> None:
        """A conditional update matched nothing; report against the status now stored"""
        current = await self._get_shipment_or_raise(shipment_id)
        raise InvalidStatusTransitionError(
            f"Cannot move shipment from {current.status.value} to {target.value}",
            current=current.status,
            target=target,
        )

    # ====================
    # Shipment requests
    # ====================

    async def request_shipment(self, request: ShipmentCreateRequest) -> Shipment:
        """
        Validate and persist a shipment request in ``initiated``.

        Quantities are checked per lot (line items for the same lot are
        summed) against the lot's available quantity and taken from the lot
        in the same transaction as the insert. The hazmat flag is always
        recomputed here.
        """
        if not request.line_items:
            raise ShipmentValidationError("At least one line item is required", field="line_items")

        for index, item in enumerate(request.line_items):
            if item.quantity is None or item.quantity <= 0:
                raise ShipmentValidationError(
                    f"Quantity for lot {item.lot_number} must be greater than zero",
                    field=f"line_items[{index}].quantity",
                )

        units = {item.unit.strip().lower() for item in request.line_items}
        if len(units) > 1:
            raise ShipmentValidationError(
                f"All line items must use the same unit, got {', '.join(sorted(units))}",
                field="line_items.unit",
            )
        unit = units.pop()

        requested_by_lot = quantities_by_lot(request.line_items)
        lots = await self.repository.get_sample_lots(list(requested_by_lot.keys()))
        for lot_number, requested in requested_by_lot.items():
            lot = lots.get(lot_number)
            if lot is None:
                raise SampleLotNotFoundError(f"Sample lot {lot_number} not found", lot_number=lot_number)
            if requested > to_decimal(lot.available_quantity):
                raise InsufficientQuantityError(
                    f"Insufficient quantity for lot {lot_number}: requested {requested:g}, "
                    f"available {lot.available_quantity:g}",
                    lot_number=lot_number,
                    available=lot.available_quantity,
                    requested=float(requested),
                )

        total = total_requested_quantity(request.line_items)
        hazmat = is_hazmat(total, unit, self.hazmat_threshold)
        if request.is_hazmat is not None and request.is_hazmat != hazmat:
            logger.info(f"Ignoring client hazmat flag {request.is_hazmat}; computed {hazmat} for total {total:g}{unit}")

        line_items = [
            item.model_copy(update={
                "unit": unit,
                "sample_name": item.sample_name or lots[item.lot_number].sample_name,
            })
            for item in request.line_items
        ]

        shipment = await self.repository.create_shipment(
            {
                "line_items": line_items,
                "recipient": request.recipient,
                "delivery_address": request.delivery_address,
                "scheduled_ship_date": request.scheduled_ship_date,
                "total_quantity": float(total),
                "quantity_unit": unit,
                "is_hazmat": hazmat,
                "special_instructions": request.special_instructions,
                "requested_by": request.requested_by,
            },
            performed_by=request.requested_by,
            lot_quantities=requested_by_lot,
        )
        logger.info(
            f"Shipment {shipment.shipment_number} requested: {len(line_items)} line item(s), "
            f"{total:g}{unit}, hazmat={hazmat}"
        )

        await publish_shipment_requested(self.event_bus, shipment)
        self._notify("notify_shipment_requested", shipment)
        return shipment

    async def start_processing(self, shipment_id: str, performed_by: Optional[str] = None) -> Shipment:
        """``initiated -> processing``"""
        shipment = await self._get_shipment_or_raise(shipment_id)
        ensure_transition(shipment.status, ShipmentStatus.PROCESSING)

        updated = await self.repository.transition_status(
            shipment_id,
            [ShipmentStatus.INITIATED],
            ShipmentStatus.PROCESSING,
            updates={"prepared_by": performed_by},
            custody_event={
                "event_type": CustodyEventType.PROCESSING_STARTED,
                "performed_by": performed_by,
                "location": "Lab",
            },
        )
        if updated is None:
            await self._reload_and_raise_transition(shipment_id, ShipmentStatus.PROCESSING)

        logger.info(f"Shipment {updated.shipment_number} processing started by {performed_by}")
        await publish_processing_started(self.event_bus, updated)
        return updated

    # ====================
    # Lab processing
    # ====================

    async def validate_address(
        self,
        shipment_id: str,
        address: Optional[Address] = None,
        performed_by: Optional[str] = None,
    ) -> AddressValidationResult:
        """
        Validate the delivery address with the carrier.

        A valid result records ``address_validated`` and the corrected
        address; the status does not change. Invalid results change nothing
        and the operator may retry with a corrected address.
        """
        shipment = await self._get_shipment_or_raise(shipment_id)
        self._ensure_preparing(shipment, "validate address")
        address = address or shipment.delivery_address

        result = await self.carrier.validate_address(address)
        if not result.valid:
            logger.info(f"Address for {shipment.shipment_number} did not validate: {result.messages}")
            return result

        await self.repository.update_shipment(
            shipment_id,
            {
                "delivery_address": address,
                "address_validated": True,
                "validated_address": result.corrected_address or address,
            },
        )
        await self.repository.add_custody_event(
            shipment_id,
            CustodyEventType.ADDRESS_VALIDATED,
            performed_by=performed_by,
            notes=f"{address.city}, {address.state} {address.postal_code}",
        )
        return result

    async def quote_rate(
        self,
        shipment_id: str,
        weight: float,
        service_type: str,
        weight_unit: str = "LB",
    ) -> RateQuote:
        """Read-through rate quote; only the latest one is kept, for display"""
        shipment = await self._get_shipment_or_raise(shipment_id)
        self._ensure_preparing(shipment, "quote a rate")
        if weight is None or weight <= 0:
            raise ShipmentValidationError("Weight must be greater than zero", field="weight")

        quote = await self.carrier.get_rate(shipment, weight, weight_unit, service_type)
        await self.repository.update_shipment(shipment_id, {"last_rate_quote": quote})
        return quote

    async def generate_label(
        self,
        shipment_id: str,
        weight: float,
        service_type: str,
        supplies_used: Optional[List[SupplyUsage]] = None,
        performed_by: Optional[str] = None,
        weight_unit: str = "LB",
    ) -> LabelResult:
        """
        Buy the carrier label and move ``processing -> shipped``.

        Succeeds at most once per shipment. All guards and supply stock are
        checked before the carrier is called; the label slot is claimed with
        a conditional update so concurrent callers cannot both reach the
        carrier. Recording the label, the status change and the supply
        decrements happen in one transaction; if that fails after the
        carrier succeeded, PartialFailureError is raised and the label slot is
        held (see adopt_held_label and release_label_hold).
        """
        shipment = await self._get_shipment_or_raise(shipment_id)

        if shipment.tracking_number:
            raise ShipmentConflictError(
                f"Shipment {shipment.shipment_number} already has tracking number {shipment.tracking_number}"
            )
        if shipment.label_hold is not None:
            raise ShipmentConflictError(
                f"Label slot for {shipment.shipment_number} is held ({shipment.label_hold.reason}); "
                f"adopt or release the held label first"
            )
        if shipment.status != ShipmentStatus.PROCESSING:
            ensure_transition(shipment.status, ShipmentStatus.SHIPPED)

        if not shipment.address_validated:
            raise ShipmentValidationError("Delivery address has not been validated", field="address_validated")
        if weight is None or weight <= 0:
            raise ShipmentValidationError("Weight must be greater than zero", field="weight")

        declaration: Optional[HazmatDeclaration] = None
        if shipment.is_hazmat:
            declaration = await self.repository.get_hazmat_declaration(shipment_id)
            if declaration is None:
                raise ShipmentValidationError(
                    "Hazmat shipment requires a dangerous goods declaration", field="hazmat_declaration"
                )
            if not declaration.labels_printed:
                raise ShipmentValidationError(
                    "Hazmat warning labels have not been printed", field="labels_printed"
                )

        usage = self._merge_supply_usage(supplies_used or [])
        await self._check_supply_stock(usage)

        claim_token = uuid.uuid4().hex
        if not await self.repository.claim_label(shipment_id, claim_token, self.label_claim_ttl_seconds):
            raise ShipmentConflictError(
                f"Label generation for {shipment.shipment_number} is already in progress or complete"
            )

        hold = LabelHold(
            reason="",
            claim_token=claim_token,
            weight=weight,
            weight_unit=weight_unit,
            service_type=service_type,
        )
        try:
            label = await self.carrier.create_label(shipment, weight, weight_unit, service_type, hazmat=declaration)
        except CarrierError:
            await self.repository.release_label_claim(shipment_id, claim_token)
            raise
        except (Exception, asyncio.CancelledError) as e:
            # The carrier may have charged; only an operator can tell
            logger.critical(
                f"Carrier label call for shipment {shipment_id} ended without a result: {e!r}", exc_info=True
            )
            await asyncio.shield(
                self._hold_label_slot(shipment_id, hold.model_copy(update={"reason": f"Carrier call did not complete: {e!r}"}))
            )
            raise

        if label.estimated_delivery is None:
            label = label.model_copy(update={"estimated_delivery": estimate_delivery_date(service_type)})

        try:
            updated, supplies_after = await self.repository.complete_label(
                shipment_id,
                claim_token,
                label,
                weight=weight,
                weight_unit=weight_unit,
                service_type=service_type,
                supplies_used=usage,
                performed_by=performed_by,
            )
        except Exception as e:
            logger.critical(
                f"PARTIAL FAILURE: carrier label {label.tracking_number} (cost {label.cost}) created for "
                f"shipment {shipment_id} but local update failed: {e}",
                exc_info=True,
            )
            await self._hold_label_slot(
                shipment_id,
                hold.model_copy(update={"reason": f"Local update failed after label: {e}", "label": label}),
            )
            await publish_partial_failure(
                self.event_bus,
                shipment_id=shipment_id,
                tracking_number=label.tracking_number,
                error=str(e),
                label_url=label.label_url,
                cost=label.cost,
            )
            raise PartialFailureError(
                f"Label {label.tracking_number} was created but the shipment could not be updated",
                shipment_id=shipment_id,
                tracking_number=label.tracking_number,
                label_url=label.label_url,
                cost=label.cost,
            ) from e

        logger.info(
            f"Shipment {updated.shipment_number} shipped: tracking {label.tracking_number}, cost {label.cost}"
        )
        await self._after_label_recorded(updated, supplies_after)
        return label

    async def _after_label_recorded(self, shipment: Shipment, supplies_after: List[SupplyItem]) -> None:
        for supply in supplies_after:
            if supply.is_low_stock:
                logger.warning(
                    f"Supply {supply.name} low: {supply.current_quantity} left (reorder at {supply.reorder_threshold})"
                )
                await publish_supply_low_stock(self.event_bus, supply, shipment_id=shipment.shipment_id)

        await publish_label_created(self.event_bus, shipment)
        self._notify("notify_label_created", shipment)

    async def _hold_label_slot(self, shipment_id: str, hold: LabelHold) -> bool:
        try:
            held = await self.repository.hold_label_claim(shipment_id, hold)
        except Exception as e:
            logger.critical(
                f"Could not hold label slot for {shipment_id}; it frees when the claim expires: {e}",
                exc_info=True,
            )
            return False
        if not held:
            logger.warning(f"Label claim for {shipment_id} was no longer held; nothing to freeze")
        return held

    async def adopt_held_label(
        self,
        shipment_id: str,
        supplies_used: Optional[List[SupplyUsage]] = None,
        performed_by: Optional[str] = None,
    ) -> LabelResult:
        """
        Record a held carrier label as the shipment's label.

        For a hold left by a partial failure: the label already exists and was
        paid for, so this finishes the ``processing -> shipped`` write without
        calling the carrier again.
        """
        shipment = await self._get_shipment_or_raise(shipment_id)
        hold = shipment.label_hold
        if hold is None:
            raise ShipmentConflictError(f"Shipment {shipment.shipment_number} has no held label")
        if hold.label is None:
            raise ShipmentConflictError(
                f"Hold on {shipment.shipment_number} has no carrier label to adopt; "
                f"check with the carrier and release the hold"
            )
        if shipment.status != ShipmentStatus.PROCESSING:
            ensure_transition(shipment.status, ShipmentStatus.SHIPPED)

        usage = self._merge_supply_usage(supplies_used or [])
        await self._check_supply_stock(usage)

        updated, supplies_after = await self.repository.complete_label(
            shipment_id,
            hold.claim_token,
            hold.label,
            weight=hold.weight,
            weight_unit=hold.weight_unit or "LB",
            service_type=hold.service_type,
            supplies_used=usage,
            performed_by=performed_by,
        )
        logger.warning(
            f"Shipment {updated.shipment_number} shipped from held label {hold.label.tracking_number} "
            f"(adopted by {performed_by})"
        )
        await self._after_label_recorded(updated, supplies_after)
        return hold.label

    async def release_label_hold(
        self,
        shipment_id: str,
        performed_by: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Shipment:
        """
        Clear a held label slot once the operator has voided the held label
        (or confirmed none was created) with the carrier. A new label can then
        be bought.
        """
        shipment = await self._get_shipment_or_raise(shipment_id)
        hold = shipment.label_hold
        if hold is None:
            raise ShipmentConflictError(f"Shipment {shipment.shipment_number} has no held label")

        updated = await self.repository.clear_label_hold(shipment_id)
        if updated is None:
            raise ShipmentConflictError(f"Hold on {shipment.shipment_number} was already released")

        held_tracking = hold.label.tracking_number if hold.label else "none"
        await self.repository.add_custody_event(
            shipment_id,
            CustodyEventType.LABEL_HOLD_RELEASED,
            performed_by=performed_by,
            notes=f"Held label {held_tracking}: {notes or hold.reason}",
        )
        logger.warning(f"Label hold on {shipment.shipment_number} released by {performed_by} (held label {held_tracking})")
        return updated

    @staticmethod
    def _merge_supply_usage(supplies_used: List[SupplyUsage]) -> List[SupplyUsage]:
        totals: "OrderedDict[str, int]" = OrderedDict()
        for usage in supplies_used:
            if usage.quantity <= 0:
                raise ShipmentValidationError(
                    f"Supply quantity for {usage.supply_id} must be greater than zero", field="supplies_used"
                )
            totals[usage.supply_id] = totals.get(usage.supply_id, 0) + usage.quantity
        return [SupplyUsage(supply_id=supply_id, quantity=qty) for supply_id, qty in totals.items()]

    async def _check_supply_stock(self, usage: List[SupplyUsage]) -> None:
        if not usage:
            return
        supplies = await self.repository.get_supplies([u.supply_id for u in usage])
        for item in usage:
            supply = supplies.get(item.supply_id)
            if supply is None:
                raise SupplyNotFoundError(f"Supply {item.supply_id} not found")
            if supply.current_quantity < item.quantity:
                raise InsufficientSupplyError(
                    f"Insufficient stock for {supply.name}: requested {item.quantity}, "
                    f"available {supply.current_quantity}",
                    supply_id=item.supply_id,
                    available=supply.current_quantity,
                    requested=item.quantity,
                )

    # ====================
    # Tracking
    # ====================

    async def poll_tracking(self, tracking_number: str) -> TrackingInfo:
        """Ask the carrier for tracking and apply it"""
        shipment = await self.repository.get_shipment_by_tracking(tracking_number)
        if not shipment:
            raise ShipmentNotFoundError(f"No shipment with tracking number {tracking_number}")

        info = await self.carrier.get_tracking(tracking_number)
        await self.apply_tracking_update(tracking_number, info)
        return info

    async def apply_tracking_update(self, tracking_number: str, info: TrackingInfo) -> Shipment:
        """
        Store the tracking snapshot and move the status forward if the
        carrier reports progress. Regressions and repeats only refresh the
        snapshot.
        """
        shipment = await self.repository.get_shipment_by_tracking(tracking_number)
        if not shipment:
            raise ShipmentNotFoundError(f"No shipment with tracking number {tracking_number}")

        updates: Dict[str, Any] = {"tracking_snapshot": info}
        if info.estimated_delivery and not is_terminal(shipment.status):
            updates["estimated_delivery"] = info.estimated_delivery

        reported = carrier_status_to_shipment_status(info.status)
        previous = shipment.status

        if is_forward_tracking_update(previous, reported):
            location = next((e.location for e in info.events if e.location), None)
            updated = await self.repository.transition_status(
                shipment.shipment_id,
                [previous],
                reported,
                updates=updates,
                custody_event={
                    "event_type": CustodyEventType.TRACKING_UPDATED,
                    "performed_by": "carrier",
                    "location": location,
                    "notes": f"{previous.value} -> {reported.value}",
                },
            )
            if updated is not None:
                logger.info(f"Shipment {updated.shipment_number} {previous.value} -> {reported.value}")
                await publish_status_changed(self.event_bus, updated, previous, source="carrier")
                self._notify("notify_status_changed", updated, previous)
                return updated
            # Status moved underneath us; keep the snapshot only
        elif reported in STATUS_RANK and previous in STATUS_RANK and STATUS_RANK[reported] < STATUS_RANK[previous]:
            logger.debug(
                f"Ignoring tracking regression for {shipment.shipment_number}: "
                f"{previous.value} -> {reported.value}"
            )

        updated = await self.repository.update_shipment(shipment.shipment_id, updates)
        return updated or shipment

    # ====================
    # Hazmat
    # ====================

    async def submit_hazmat_declaration(
        self,
        shipment_id: str,
        request: HazmatDeclarationRequest,
        performed_by: Optional[str] = None,
    ) -> HazmatDeclaration:
        """Create the one dangerous-goods declaration for a hazmat shipment"""
        shipment = await self._get_shipment_or_raise(shipment_id)
        if not shipment.is_hazmat:
            raise ShipmentValidationError(
                f"Shipment {shipment.shipment_number} is below the hazmat threshold", field="is_hazmat"
            )
        self._ensure_preparing(shipment, "submit a hazmat declaration")

        if await self.repository.get_hazmat_declaration(shipment_id):
            raise ShipmentConflictError(
                f"Shipment {shipment.shipment_number} already has a dangerous goods declaration"
            )

        try:
            un_number = normalize_un_number(request.un_number)
        except ValueError as e:
            raise ShipmentValidationError(str(e), field="un_number") from e

        proper_shipping_name = (request.proper_shipping_name or "").strip()
        if not proper_shipping_name:
            raise ShipmentValidationError("Proper shipping name is required", field="proper_shipping_name")
        hazard_class = (request.hazard_class or "").strip()
        if not hazard_class:
            raise ShipmentValidationError("Hazard class is required", field="hazard_class")
        emergency_phone = (request.emergency_phone or self.default_emergency_phone or "").strip()
        if not emergency_phone:
            raise ShipmentValidationError("24-hour emergency phone is required", field="emergency_phone")

        declaration = await self.repository.create_hazmat_declaration(
            {
                "shipment_id": shipment_id,
                "dg_form_number": f"DG-{int(time.time() * 1000)}",
                "un_number": un_number,
                "proper_shipping_name": proper_shipping_name,
                "hazard_class": hazard_class,
                "packing_group": request.packing_group,
                "technical_name": request.technical_name,
                "emergency_phone": emergency_phone,
                "quantity": shipment.total_quantity,
                "unit": shipment.quantity_unit,
            },
            performed_by=performed_by,
        )
        await self.repository.add_custody_event(
            shipment_id,
            CustodyEventType.HAZMAT_DECLARED,
            performed_by=performed_by,
            notes=f"{declaration.dg_form_number} {un_number} class {hazard_class}",
        )
        logger.info(f"Hazmat declaration {declaration.dg_form_number} created for {shipment.shipment_number}")
        return declaration

    async def mark_warning_labels_printed(
        self, shipment_id: str, performed_by: Optional[str] = None
    ) -> HazmatDeclaration:
        shipment = await self._get_shipment_or_raise(shipment_id)
        declaration = await self.repository.get_hazmat_declaration(shipment_id)
        if declaration is None:
            raise ShipmentValidationError(
                "No dangerous goods declaration found for this shipment", field="hazmat_declaration"
            )
        if declaration.labels_printed:
            return declaration
        self._ensure_preparing(shipment, "print warning labels")

        updated = await self.repository.mark_labels_printed(shipment_id, performed_by)
        await self.repository.add_custody_event(
            shipment_id,
            CustodyEventType.WARNING_LABELS_PRINTED,
            performed_by=performed_by,
            notes="Warning labels printed",
        )
        return updated or declaration

    # ====================
    # Cancellation / admin
    # ====================

    async def cancel_shipment(
        self, shipment_id: str, reason: Optional[str] = None, performed_by: Optional[str] = None
    ) -> Shipment:
        """Cancel from any non-terminal status. Nothing is restored to inventory."""
        shipment = await self._get_shipment_or_raise(shipment_id)
        ensure_transition(shipment.status, ShipmentStatus.CANCELLED)

        updated = await self.repository.transition_status(
            shipment_id,
            [shipment.status],
            ShipmentStatus.CANCELLED,
            updates={"cancellation_reason": reason},
            custody_event={
                "event_type": CustodyEventType.CANCELLED,
                "performed_by": performed_by,
                "notes": reason,
            },
        )
        if updated is None:
            await self._reload_and_raise_transition(shipment_id, ShipmentStatus.CANCELLED)

        logger.info(f"Shipment {updated.shipment_number} cancelled by {performed_by}: {reason}")
        await publish_shipment_cancelled(self.event_bus, updated, shipment.status, cancelled_by=performed_by)
        self._notify("notify_status_changed", updated, shipment.status)
        return updated

    async def delete_shipment(self, shipment_id: str) -> None:
        """Hard delete (admin). Declaration, custody and usage rows go with it."""
        if not await self.repository.delete_shipment(shipment_id):
            raise ShipmentNotFoundError(f"Shipment {shipment_id} not found")
        logger.warning(f"Shipment {shipment_id} permanently deleted")

    # ====================
    # Queries
    # ====================

    async def get_shipment(self, shipment_id: str) -> Shipment:
        return await self._get_shipment_or_raise(shipment_id)

    async def get_shipment_by_tracking(self, tracking_number: str) -> Shipment:
        shipment = await self.repository.get_shipment_by_tracking(tracking_number)
        if not shipment:
            raise ShipmentNotFoundError(f"No shipment with tracking number {tracking_number}")
        return shipment

    async def list_shipments(
        self, status: Optional[str] = None, limit: int = 50, offset: int = 0
    ) -> List[Shipment]:
        statuses = None
        if status:
            try:
                statuses = [normalize_status(status)]
            except ValueError as e:
                raise ShipmentValidationError(f"Unknown status {status!r}", field="status") from e
        return await self.repository.list_shipments(statuses=statuses, limit=limit, offset=offset)

    async def get_processing_queue(self, limit: int = 100) -> List[Shipment]:
        """Shipments waiting for the lab, oldest first"""
        return await self.repository.list_shipments(
            statuses=[ShipmentStatus.INITIATED], limit=limit, offset=0, oldest_first=True
        )

    async def get_shipment_details(self, shipment_id: str) -> ShipmentDetails:
        shipment = await self._get_shipment_or_raise(shipment_id)

        requested_by_lot = quantities_by_lot(shipment.line_items)
        lots = await self.repository.get_sample_lots(list(requested_by_lot.keys()))
        inventory = []
        for lot_number, requested in requested_by_lot.items():
            lot = lots.get(lot_number)
            inventory.append(
                LotInventory(
                    lot_number=lot_number,
                    sample_name=lot.sample_name if lot else None,
                    requested_quantity=float(requested),
                    remaining_quantity=lot.available_quantity if lot else None,
                    lot_status=lot.status if lot else None,
                    unit=shipment.quantity_unit,
                )
            )

        return ShipmentDetails(
            shipment=shipment,
            inventory=inventory,
            hazmat_declaration=await self.repository.get_hazmat_declaration(shipment_id),
            custody_log=await self.repository.get_custody_log(shipment_id),
            supplies_used=await self.repository.get_supplies_used(shipment_id),
        )

    async def get_custody_log(self, shipment_id: str) -> List[CustodyEvent]:
        await self._get_shipment_or_raise(shipment_id)
        return await self.repository.get_custody_log(shipment_id)

    # ====================
    # Supply ledger
    # ====================

    async def list_supplies(self) -> List[SupplyItem]:
        return await self.repository.list_supplies()

    async def get_supply(self, supply_id: str) -> SupplyItem:
        supply = await self.repository.get_supply(supply_id)
        if not supply:
            raise SupplyNotFoundError(f"Supply {supply_id} not found")
        return supply

    async def create_supply(self, request: SupplyCreateRequest) -> SupplyItem:
        supply = await self.repository.create_supply(request.model_dump())
        logger.info(f"Supply {supply.name} created with {supply.current_quantity} {supply.unit}")
        return supply

    async def restock_supply(
        self,
        supply_id: str,
        quantity: int,
        performed_by: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> SupplyItem:
        """The only way a supply count goes up"""
        if quantity is None or quantity <= 0:
            raise ShipmentValidationError("Restock quantity must be greater than zero", field="quantity")
        supply = await self.repository.restock_supply(supply_id, quantity, performed_by, notes)
        if not supply:
            raise SupplyNotFoundError(f"Supply {supply_id} not found")
        logger.info(f"Supply {supply.name} restocked by {quantity}, now {supply.current_quantity}")
        return supply

    async def get_supply_transactions(self, supply_id: str, limit: int = 50) -> List[SupplyTransaction]:
        await self.get_supply(supply_id)
        return await self.repository.get_supply_transactions(supply_id, limit=limit)
