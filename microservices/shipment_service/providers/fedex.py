"""
FedEx carrier provider

FedEx REST API over httpx: OAuth client credentials, address resolution,
rate quotes, ship (label) and tracking. Every call uses the configured
timeout; nothing is retried here.
"""

import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple

import httpx

from core.config import CarrierConfig

from ..models import (
    Address,
    AddressValidationResult,
    HazmatDeclaration,
    LabelResult,
    RateQuote,
    Shipment,
    TrackingEvent,
    TrackingInfo,
)
from ..protocols import CarrierError, CarrierTimeoutError
from ..state_machine import estimate_delivery_date
from .base import CarrierProvider
from .token_cache import OAuthTokenCache

logger = logging.getLogger(__name__)

# latestStatusDetail.code -> carrier-side status
TRACKING_CODE_MAP = {
    "OC": "processing",
    "PU": "in_transit",
    "IT": "in_transit",
    "AR": "in_transit",
    "DP": "in_transit",
    "OD": "in_transit",
    "DL": "delivered",
    "DE": "exception",
    "SE": "exception",
    "CA": "exception",
}


def map_scan_description(description: Optional[str]) -> str:
    """Map a FedEx scan description to processing / in_transit / delivered / exception"""
    text = (description or "").lower()
    if not text:
        return "in_transit"
    if "delivered" in text and "out for" not in text:
        return "delivered"
    if "exception" in text or "delay" in text:
        return "exception"
    if "information received" in text or "label created" in text or "shipment information sent" in text:
        return "processing"
    return "in_transit"


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def _decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def _address_payload(address: Address) -> Dict[str, Any]:
    street_lines = [address.street]
    if address.street2:
        street_lines.append(address.street2)
    return {
        "streetLines": street_lines,
        "city": address.city,
        "stateOrProvinceCode": address.state,
        "postalCode": address.postal_code,
        "countryCode": address.country or "US",
    }


class FedExCarrierProvider(CarrierProvider):
    name = "fedex"

    def __init__(
        self,
        config: CarrierConfig,
        http_client: Optional[httpx.AsyncClient] = None,
        token_cache: Optional[OAuthTokenCache] = None,
    ):
        self.config = config
        self._owns_client = http_client is None
        self.client = http_client or httpx.AsyncClient(
            base_url=config.base_url.rstrip("/"),
            timeout=config.timeout_seconds,
        )
        self.token_cache = token_cache or OAuthTokenCache(
            self._fetch_token,
            refresh_skew_seconds=config.token_refresh_skew_seconds,
        )

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    # =========================================================================
    # HTTP plumbing
    # =========================================================================

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self.client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(f"FedEx {path} timed out after {self.config.timeout_seconds}s")
            raise CarrierTimeoutError(
                f"Carrier did not respond within {self.config.timeout_seconds}s", code="TIMEOUT"
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"FedEx {path} transport error: {e}")
            raise CarrierError(f"Carrier unreachable: {e}", code="UNREACHABLE") from e

    @staticmethod
    def _raise_for_error(response: httpx.Response, path: str) -> None:
        if response.is_success:
            return
        code, message = None, None
        try:
            body = response.json()
        except ValueError:
            body = {}
        errors = body.get("errors") if isinstance(body, dict) else None
        if errors:
            code = errors[0].get("code")
            message = errors[0].get("message")
        logger.error(f"FedEx {path} failed: HTTP {response.status_code} {code or ''}")
        raise CarrierError(
            message or f"Carrier request failed with HTTP {response.status_code}",
            code=code,
            status_code=response.status_code,
        )

    async def _fetch_token(self) -> Tuple[str, float]:
        if not self.config.client_id or not self.config.client_secret:
            raise CarrierError("Carrier credentials are not configured", code="NOT_CONFIGURED")
        response = await self._send(
            "POST",
            "/oauth/token",
            data={
                "grant_type": "client_credentials",
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        self._raise_for_error(response, "/oauth/token")
        body = response.json()
        token = body.get("access_token")
        if not token:
            raise CarrierError("Carrier authentication returned no token", code="AUTH")
        return token, float(body.get("expires_in", 3600))

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        token = await self.token_cache.get_token()
        response = await self._send(
            "POST",
            path,
            json=payload,
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
                "X-locale": "en_US",
            },
        )
        if response.status_code == 401:
            # Next call fetches a fresh token; this one still fails
            self.token_cache.invalidate()
        self._raise_for_error(response, path)
        try:
            return response.json()
        except ValueError as e:
            raise CarrierError(f"Carrier returned invalid JSON for {path}", code="BAD_RESPONSE") from e

    # =========================================================================
    # Payload builders
    # =========================================================================

    def _shipper(self) -> Dict[str, Any]:
        c = self.config
        return {
            "contact": {
                "personName": c.shipper_name,
                "phoneNumber": c.shipper_phone,
                "companyName": c.shipper_company,
            },
            "address": {
                "streetLines": [c.shipper_street],
                "city": c.shipper_city,
                "stateOrProvinceCode": c.shipper_state,
                "postalCode": c.shipper_postal_code,
                "countryCode": c.shipper_country,
            },
        }

    @staticmethod
    def _destination(shipment: Shipment) -> Address:
        return shipment.validated_address or shipment.delivery_address

    def _dangerous_goods(self, service_type: str, hazmat: HazmatDeclaration) -> Dict[str, Any]:
        special_service = "HAZARDOUS_MATERIALS" if "GROUND" in service_type.upper() else "DANGEROUS_GOODS"
        description = {
            "id": hazmat.un_number,
            "sequenceNumber": 1,
            "properShippingName": hazmat.proper_shipping_name,
            "hazardClass": hazmat.hazard_class,
            "packingGroup": hazmat.packing_group.value if hazmat.packing_group else "II",
        }
        if hazmat.technical_name:
            description["technicalName"] = hazmat.technical_name
        return {
            "specialServiceTypes": [special_service],
            "dangerousGoodsDetail": {
                "offeror": self.config.hazmat_offeror,
                "emergencyContactNumber": hazmat.emergency_phone or self.config.hazmat_emergency_phone,
                "regulation": "DOT",
                "accessibility": "ACCESSIBLE",
                "options": ["HAZARDOUS_MATERIALS"],
                "containers": [
                    {
                        "containerType": "PACKAGE",
                        "hazardousCommodities": [
                            {
                                "description": description,
                                "quantity": {"amount": hazmat.quantity, "units": hazmat.unit.upper()},
                            }
                        ],
                    }
                ],
            },
        }

    # =========================================================================
    # Carrier operations
    # =========================================================================

    async def validate_address(self, address: Address) -> AddressValidationResult:
        body = await self._post(
            "/address/v1/addresses/resolve",
            {"addressesToValidate": [{"address": _address_payload(address)}]},
        )
        output = body.get("output") or {}
        resolved = output.get("resolvedAddresses") or []
        messages = [
            m.get("message") or m.get("code", "")
            for m in (output.get("alerts") or [])
        ]
        if not resolved:
            return AddressValidationResult(valid=False, messages=messages or ["Address could not be resolved"])

        first = resolved[0]
        street_lines = first.get("streetLinesToken") or [address.street]
        corrected = Address(
            street=street_lines[0] or address.street,
            street2=street_lines[1] if len(street_lines) > 1 else address.street2,
            city=first.get("city") or address.city,
            state=first.get("stateOrProvinceCode") or address.state,
            postal_code=first.get("postalCode") or address.postal_code,
            country=first.get("countryCode") or address.country,
        )
        for message in first.get("customerMessages") or []:
            messages.append(message.get("message") or message.get("code", ""))
        return AddressValidationResult(valid=True, corrected_address=corrected, messages=messages)

    async def get_rate(self, shipment: Shipment, weight: float, weight_unit: str, service_type: str) -> RateQuote:
        body = await self._post(
            "/rate/v1/rates/quotes",
            {
                "accountNumber": {"value": self.config.account_number},
                "requestedShipment": {
                    "shipper": {"address": self._shipper()["address"]},
                    "recipient": {"address": _address_payload(self._destination(shipment))},
                    "serviceType": service_type,
                    "pickupType": "USE_SCHEDULED_PICKUP",
                    "rateRequestType": ["ACCOUNT"],
                    "requestedPackageLineItems": [{"weight": {"units": weight_unit, "value": weight}}],
                },
            },
        )
        details = ((body.get("output") or {}).get("rateReplyDetails") or [{}])[0]
        rated = (details.get("ratedShipmentDetails") or [{}])[0]
        cost = _decimal(rated.get("totalNetCharge") or rated.get("totalBaseCharge"))
        if cost is None:
            raise CarrierError("Carrier returned no rate", code="NO_RATE")
        return RateQuote(
            service_type=service_type,
            cost=cost,
            currency=rated.get("currency", "USD"),
            weight=weight,
            weight_unit=weight_unit,
        )

    async def create_label(
        self,
        shipment: Shipment,
        weight: float,
        weight_unit: str,
        service_type: str,
        hazmat: Optional[HazmatDeclaration] = None,
    ) -> LabelResult:
        package: Dict[str, Any] = {"weight": {"units": weight_unit, "value": weight}}
        if shipment.is_hazmat and hazmat is not None:
            package["packageSpecialServices"] = self._dangerous_goods(service_type, hazmat)

        recipient = shipment.recipient
        payload = {
            "labelResponseOptions": "URL_ONLY",
            "accountNumber": {"value": self.config.account_number},
            "requestedShipment": {
                "shipper": self._shipper(),
                "recipients": [
                    {
                        "contact": {
                            "personName": recipient.name,
                            "phoneNumber": recipient.phone or "0000000000",
                            "companyName": recipient.company,
                        },
                        "address": _address_payload(self._destination(shipment)),
                    }
                ],
                "shipDatestamp": date.today().isoformat(),
                "serviceType": service_type,
                "packagingType": "YOUR_PACKAGING",
                "pickupType": "USE_SCHEDULED_PICKUP",
                "shippingChargesPayment": {"paymentType": "SENDER"},
                "labelSpecification": {
                    "labelFormatType": "COMMON2D",
                    "imageType": "PDF",
                    "labelStockType": "PAPER_4X6",
                },
                "requestedPackageLineItems": [package],
            },
        }

        logger.info(
            f"FedEx label request for {shipment.shipment_number}: service={service_type} "
            f"hazmat={shipment.is_hazmat} weight={weight}{weight_unit}"
        )
        body = await self._post("/ship/v1/shipments", payload)

        transactions = (body.get("output") or {}).get("transactionShipments") or []
        if not transactions:
            raise CarrierError("Carrier returned no shipment", code="NO_SHIPMENT")
        shipped = transactions[0]
        pieces = shipped.get("pieceResponses") or [{}]
        tracking_number = shipped.get("masterTrackingNumber") or pieces[0].get("trackingNumber")
        if not tracking_number:
            raise CarrierError("Carrier returned no tracking number", code="NO_TRACKING_NUMBER")

        documents = pieces[0].get("packageDocuments") or [{}]
        label_url = documents[0].get("url") or pieces[0].get("labelDownloadUrl")

        completed = shipped.get("completedShipmentDetail") or {}
        rating = completed.get("shipmentRating") or shipped.get("shipmentRating") or {}
        rate_details = rating.get("shipmentRateDetails") or [{}]
        cost = _decimal(rate_details[0].get("totalNetCharge")) or Decimal("0")

        delivery = _parse_date((completed.get("operationalDetail") or {}).get("deliveryDate"))
        return LabelResult(
            tracking_number=tracking_number,
            label_url=label_url,
            cost=cost,
            estimated_delivery=delivery or estimate_delivery_date(service_type),
        )

    async def get_tracking(self, tracking_number: str) -> TrackingInfo:
        body = await self._post(
            "/track/v1/trackingnumbers",
            {
                "trackingInfo": [{"trackingNumberInfo": {"trackingNumber": tracking_number}}],
                "includeDetailedScans": True,
            },
        )
        complete = ((body.get("output") or {}).get("completeTrackResults") or [{}])[0]
        results = complete.get("trackResults") or []
        if not results:
            raise CarrierError(f"No tracking results for {tracking_number}", code="NO_TRACKING")
        result = results[0]
        if result.get("error"):
            error = result["error"]
            raise CarrierError(error.get("message", "Tracking failed"), code=error.get("code"))

        events: List[TrackingEvent] = []
        for scan in result.get("scanEvents") or []:
            location = scan.get("scanLocation") or {}
            events.append(
                TrackingEvent(
                    status=TRACKING_CODE_MAP.get(scan.get("derivedStatusCode") or "", None)
                    or map_scan_description(scan.get("eventDescription")),
                    description=scan.get("eventDescription"),
                    location=location.get("city"),
                    timestamp=_parse_datetime(scan.get("date")),
                )
            )

        latest = result.get("latestStatusDetail") or {}
        status = TRACKING_CODE_MAP.get(latest.get("code") or "")
        if status is None:
            status = events[0].status if events else map_scan_description(latest.get("description"))

        estimated = None
        for entry in result.get("dateAndTimes") or []:
            if entry.get("type") == "ESTIMATED_DELIVERY":
                estimated = _parse_date(entry.get("dateTime"))
                break

        return TrackingInfo(
            tracking_number=tracking_number,
            status=status,
            events=events,
            estimated_delivery=estimated,
        )
