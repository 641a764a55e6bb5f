"""
Shipment Microservice API

Outbound sample shipments: requests against sample lots, lab processing,
hazmat declarations, carrier labels and tracking, shipping-supply ledger.
Port: 8260
"""

from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse

from core.config_manager import ConfigManager
from core.logger import setup_service_logger
from core.nats_client import get_event_bus

from .events import get_event_handlers, tracking_info_from_update
from .factory import create_shipment_service
from .models import (
    AddressValidationRequest,
    AddressValidationResult,
    CancelShipmentRequest,
    CustodyEvent,
    ErrorResponse,
    HazmatDeclaration,
    HazmatDeclarationRequest,
    HealthResponse,
    LabelAdoptRequest,
    LabelHoldReleaseRequest,
    LabelRequest,
    LabelResult,
    RateQuote,
    RateQuoteRequest,
    Shipment,
    ShipmentCreateRequest,
    ShipmentDetails,
    ShipmentListResponse,
    SupplyCreateRequest,
    SupplyItem,
    SupplyListResponse,
    SupplyRestockRequest,
    SupplyTransaction,
    TrackingInfo,
    TrackingWebhookRequest,
)
from .protocols import (
    CarrierError,
    CarrierTimeoutError,
    InsufficientQuantityError,
    InsufficientSupplyError,
    InvalidStatusTransitionError,
    PartialFailureError,
    SampleLotNotFoundError,
    ShipmentConflictError,
    ShipmentNotFoundError,
    ShipmentServiceError,
    ShipmentValidationError,
    SupplyNotFoundError,
)
from .routes_registry import SERVICE_METADATA
from .shipment_service import ShipmentService

# Initialize config manager
config_manager = ConfigManager("shipment_service")
config = config_manager.get_service_config()

# Configure logger
logger = setup_service_logger(
    "shipment_service",
    level=config.log_level.upper(),
    log_file=config.logging.log_file,
)

# Print config info (development)
if config.debug:
    config_manager.print_config_summary(show_secrets=False)

# Global variables
shipment_service: Optional[ShipmentService] = None
event_bus = None
SERVICE_PORT = config.service_port or 8260
SERVICE_VERSION = SERVICE_METADATA["version"]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle management"""
    global shipment_service, event_bus

    try:
        # Initialize NATS JetStream event bus
        if config.infrastructure.nats_enabled:
            try:
                event_bus = await get_event_bus("shipment_service", config=config_manager)
                logger.info("Event bus initialized successfully")
            except Exception as e:
                logger.warning(f"Failed to initialize event bus: {e}. Continuing without events.")
                event_bus = None

        # Create shipment service using factory
        shipment_service = create_shipment_service(config=config_manager, event_bus=event_bus)

        # Subscribe to carrier tracking relays
        if event_bus:
            try:
                handler_map = get_event_handlers(shipment_service)
                for pattern, handler_func in handler_map.items():
                    await event_bus.subscribe_to_events(
                        pattern=pattern,
                        handler=handler_func,
                        durable=f"shipment-{pattern.replace('.', '-').replace('*', 'all')}-consumer",
                    )
                    logger.info(f"Subscribed to {pattern}")
            except Exception as e:
                logger.warning(f"Failed to subscribe to events: {e}")

        logger.info(f"Shipment service started on port {SERVICE_PORT}")
        yield

    finally:
        if shipment_service:
            await shipment_service.wait_for_background_tasks()
            if shipment_service.notification_client:
                await shipment_service.notification_client.close()
            await shipment_service.carrier.close()

        if event_bus:
            try:
                await event_bus.close()
                logger.info("Shipment event bus closed")
            except Exception as e:
                logger.error(f"Error closing event bus: {e}")

        if shipment_service:
            await shipment_service.repository.close()
            logger.info("Shipment service database connections closed")


# Create FastAPI app
app = FastAPI(
    title="Shipment Service",
    description="Laboratory sample shipments: processing, hazmat, carrier labels, tracking and supplies",
    version=SERVICE_VERSION,
    lifespan=lifespan,
)


# ====================
# Exception Handlers
# ====================


def _error_response(status_code: int, detail: str, **extra) -> JSONResponse:
    body = ErrorResponse(detail=detail, **extra)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


@app.exception_handler(ShipmentNotFoundError)
@app.exception_handler(SupplyNotFoundError)
@app.exception_handler(SampleLotNotFoundError)
async def not_found_handler(request: Request, exc: ShipmentServiceError):
    return _error_response(status.HTTP_404_NOT_FOUND, str(exc))


@app.exception_handler(ShipmentValidationError)
async def validation_error_handler(request: Request, exc: ShipmentValidationError):
    extra = {}
    if isinstance(exc, InsufficientQuantityError):
        extra = dict(lot_number=exc.lot_number, available=exc.available, requested=exc.requested)
    elif isinstance(exc, InsufficientSupplyError):
        extra = dict(supply_id=exc.supply_id, available=exc.available, requested=exc.requested)
    return _error_response(status.HTTP_400_BAD_REQUEST, str(exc), field=exc.field, **extra)


@app.exception_handler(ShipmentConflictError)
async def conflict_handler(request: Request, exc: ShipmentConflictError):
    extra = {}
    if isinstance(exc, InvalidStatusTransitionError):
        extra = dict(
            current_status=exc.current.value if exc.current else None,
            target_status=exc.target.value if exc.target else None,
        )
    return _error_response(status.HTTP_409_CONFLICT, str(exc), **extra)


@app.exception_handler(CarrierError)
async def carrier_error_handler(request: Request, exc: CarrierError):
    status_code = (
        status.HTTP_504_GATEWAY_TIMEOUT if isinstance(exc, CarrierTimeoutError) else status.HTTP_502_BAD_GATEWAY
    )
    return _error_response(status_code, str(exc), carrier_code=exc.code, carrier_status=exc.status_code)


@app.exception_handler(PartialFailureError)
async def partial_failure_handler(request: Request, exc: PartialFailureError):
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        str(exc),
        partial_failure=True,
        shipment_id=exc.shipment_id,
        tracking_number=exc.tracking_number,
        label_url=exc.label_url,
        cost=str(exc.cost) if exc.cost is not None else None,
    )


@app.exception_handler(ShipmentServiceError)
async def service_error_handler(request: Request, exc: ShipmentServiceError):
    logger.error(f"Shipment service error on {request.url.path}: {exc}", exc_info=True)
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))


# ====================
# Dependency Injection
# ====================


async def get_shipment_service() -> ShipmentService:
    """Get shipment service instance"""
    if not shipment_service:
        raise HTTPException(status_code=503, detail="Shipment service not initialized")
    return shipment_service


def get_operator(x_user_id: Optional[str] = Header(default=None)) -> Optional[str]:
    """Acting lab operator, as forwarded by the gateway"""
    return x_user_id


# ====================
# Health Check
# ====================


@app.get("/api/v1/shipments/health", response_model=HealthResponse)
@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check"""
    dependencies = {}

    if shipment_service:
        db_health = await shipment_service.repository.db.health_check()
        dependencies["database"] = "healthy" if db_health else "unhealthy"
    else:
        dependencies["database"] = "unhealthy"

    if event_bus:
        dependencies["nats"] = "healthy" if event_bus.is_connected else "unhealthy"
    else:
        dependencies["nats"] = "not_configured"

    return HealthResponse(
        status="healthy" if dependencies["database"] == "healthy" else "degraded",
        service="shipment_service",
        port=SERVICE_PORT,
        version=SERVICE_VERSION,
        dependencies=dependencies,
    )


# ====================
# Shipment Requests
# ====================


@app.post("/api/v1/shipments", response_model=Shipment, status_code=status.HTTP_201_CREATED)
async def request_shipment(
    request: ShipmentCreateRequest,
    operator: Optional[str] = Depends(get_operator),
    service: ShipmentService = Depends(get_shipment_service),
):
    """Request a shipment of sample lots"""
    if request.requested_by is None and operator:
        request = request.model_copy(update={"requested_by": operator})
    return await service.request_shipment(request)


@app.get("/api/v1/shipments", response_model=ShipmentListResponse)
async def list_shipments(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    service: ShipmentService = Depends(get_shipment_service),
):
    """List shipments, newest first"""
    shipments = await service.list_shipments(status=status_filter, limit=limit, offset=offset)
    return ShipmentListResponse(shipments=shipments, count=len(shipments), limit=limit, offset=offset)


@app.get("/api/v1/shipments/processing-queue", response_model=List[Shipment])
async def get_processing_queue(
    limit: int = Query(default=100, ge=1, le=500),
    service: ShipmentService = Depends(get_shipment_service),
):
    """Shipments waiting for the lab, oldest first"""
    return await service.get_processing_queue(limit=limit)


# ====================
# Tracking
# ====================


@app.post("/api/v1/shipments/tracking/webhook", response_model=Shipment)
async def tracking_webhook(
    request: TrackingWebhookRequest,
    service: ShipmentService = Depends(get_shipment_service),
):
    """Carrier push update"""
    info = tracking_info_from_update(request)
    return await service.apply_tracking_update(request.tracking_number, info)


@app.get("/api/v1/shipments/tracking/{tracking_number}", response_model=TrackingInfo)
async def poll_tracking(
    tracking_number: str,
    service: ShipmentService = Depends(get_shipment_service),
):
    """Ask the carrier for tracking and apply it"""
    return await service.poll_tracking(tracking_number)


# ====================
# Shipment Records
# ====================


@app.get("/api/v1/shipments/{shipment_id}", response_model=Shipment)
async def get_shipment(
    shipment_id: str,
    service: ShipmentService = Depends(get_shipment_service),
):
    return await service.get_shipment(shipment_id)


@app.get("/api/v1/shipments/{shipment_id}/details", response_model=ShipmentDetails)
async def get_shipment_details(
    shipment_id: str,
    service: ShipmentService = Depends(get_shipment_service),
):
    """Shipment with per-lot inventory, hazmat declaration, custody log and supplies used"""
    return await service.get_shipment_details(shipment_id)


@app.get("/api/v1/shipments/{shipment_id}/custody", response_model=List[CustodyEvent])
async def get_custody_log(
    shipment_id: str,
    service: ShipmentService = Depends(get_shipment_service),
):
    return await service.get_custody_log(shipment_id)


@app.delete("/api/v1/shipments/{shipment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_shipment(
    shipment_id: str,
    service: ShipmentService = Depends(get_shipment_service),
):
    """Hard delete (admin)"""
    await service.delete_shipment(shipment_id)


# ====================
# Lab Processing
# ====================


@app.post("/api/v1/shipments/{shipment_id}/start-processing", response_model=Shipment)
async def start_processing(
    shipment_id: str,
    operator: Optional[str] = Depends(get_operator),
    service: ShipmentService = Depends(get_shipment_service),
):
    return await service.start_processing(shipment_id, performed_by=operator)


@app.post("/api/v1/shipments/{shipment_id}/validate-address", response_model=AddressValidationResult)
async def validate_address(
    shipment_id: str,
    request: Optional[AddressValidationRequest] = None,
    operator: Optional[str] = Depends(get_operator),
    service: ShipmentService = Depends(get_shipment_service),
):
    """Validate the delivery address (or a corrected one) with the carrier"""
    address = request.address if request else None
    return await service.validate_address(shipment_id, address=address, performed_by=operator)


@app.post("/api/v1/shipments/{shipment_id}/rate-quote", response_model=RateQuote)
async def quote_rate(
    shipment_id: str,
    request: RateQuoteRequest,
    service: ShipmentService = Depends(get_shipment_service),
):
    return await service.quote_rate(
        shipment_id,
        weight=request.weight,
        service_type=request.service_type.value,
        weight_unit=request.weight_unit.value,
    )


@app.post("/api/v1/shipments/{shipment_id}/label", response_model=LabelResult)
async def generate_label(
    shipment_id: str,
    request: LabelRequest,
    operator: Optional[str] = Depends(get_operator),
    service: ShipmentService = Depends(get_shipment_service),
):
    """Buy the carrier label; the shipment moves to shipped"""
    return await service.generate_label(
        shipment_id,
        weight=request.weight,
        service_type=request.service_type.value,
        supplies_used=request.supplies_used,
        performed_by=operator,
        weight_unit=request.weight_unit.value,
    )


@app.post("/api/v1/shipments/{shipment_id}/label/adopt", response_model=LabelResult)
async def adopt_held_label(
    shipment_id: str,
    request: Optional[LabelAdoptRequest] = None,
    operator: Optional[str] = Depends(get_operator),
    service: ShipmentService = Depends(get_shipment_service),
):
    """Record the held carrier label after a partial failure; no new carrier call"""
    return await service.adopt_held_label(
        shipment_id,
        supplies_used=request.supplies_used if request else None,
        performed_by=operator,
    )


@app.post("/api/v1/shipments/{shipment_id}/label/release-hold", response_model=Shipment)
async def release_label_hold(
    shipment_id: str,
    request: Optional[LabelHoldReleaseRequest] = None,
    operator: Optional[str] = Depends(get_operator),
    service: ShipmentService = Depends(get_shipment_service),
):
    """Clear a held label slot once the held label was voided with the carrier"""
    return await service.release_label_hold(
        shipment_id, performed_by=operator, notes=request.notes if request else None
    )


@app.post("/api/v1/shipments/{shipment_id}/cancel", response_model=Shipment)
async def cancel_shipment(
    shipment_id: str,
    request: Optional[CancelShipmentRequest] = None,
    operator: Optional[str] = Depends(get_operator),
    service: ShipmentService = Depends(get_shipment_service),
):
    reason = request.reason if request else None
    return await service.cancel_shipment(shipment_id, reason=reason, performed_by=operator)


# ====================
# Hazmat
# ====================


@app.post(
    "/api/v1/shipments/{shipment_id}/hazmat-declaration",
    response_model=HazmatDeclaration,
    status_code=status.HTTP_201_CREATED,
)
async def submit_hazmat_declaration(
    shipment_id: str,
    request: HazmatDeclarationRequest,
    operator: Optional[str] = Depends(get_operator),
    service: ShipmentService = Depends(get_shipment_service),
):
    return await service.submit_hazmat_declaration(shipment_id, request, performed_by=operator)


@app.post("/api/v1/shipments/{shipment_id}/warning-labels-printed", response_model=HazmatDeclaration)
async def mark_warning_labels_printed(
    shipment_id: str,
    operator: Optional[str] = Depends(get_operator),
    service: ShipmentService = Depends(get_shipment_service),
):
    return await service.mark_warning_labels_printed(shipment_id, performed_by=operator)


# ====================
# Supply Ledger
# ====================


@app.get("/api/v1/supplies", response_model=SupplyListResponse)
async def list_supplies(service: ShipmentService = Depends(get_shipment_service)):
    supplies = await service.list_supplies()
    return SupplyListResponse(
        supplies=supplies,
        low_stock_count=sum(1 for s in supplies if s.is_low_stock),
    )


@app.post("/api/v1/supplies", response_model=SupplyItem, status_code=status.HTTP_201_CREATED)
async def create_supply(
    request: SupplyCreateRequest,
    service: ShipmentService = Depends(get_shipment_service),
):
    return await service.create_supply(request)


@app.post("/api/v1/supplies/{supply_id}/restock", response_model=SupplyItem)
async def restock_supply(
    supply_id: str,
    request: SupplyRestockRequest,
    operator: Optional[str] = Depends(get_operator),
    service: ShipmentService = Depends(get_shipment_service),
):
    return await service.restock_supply(
        supply_id, request.quantity, performed_by=operator, notes=request.notes
    )


@app.get("/api/v1/supplies/{supply_id}/transactions", response_model=List[SupplyTransaction])
async def get_supply_transactions(
    supply_id: str,
    limit: int = Query(default=50, ge=1, le=500),
    service: ShipmentService = Depends(get_shipment_service),
):
    return await service.get_supply_transactions(supply_id, limit=limit)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "microservices.shipment_service.main:app",
        host=config.service_host,
        port=SERVICE_PORT,
        reload=config.debug,
        log_level=config.log_level.lower(),
    )
