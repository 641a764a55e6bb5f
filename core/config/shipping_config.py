#!/usr/bin/env python3
"""Shipping workflow configuration

Carrier (FedEx) credentials and shipper identity, plus the workflow knobs
used by the shipment service.
"""
import os
from dataclasses import dataclass
from typing import Optional

def _float(val: str, default: float) -> float:
    try:
        return float(val) if val else default
    except ValueError:
        return default

def _int(val: str, default: int) -> int:
    try:
        return int(val) if val else default
    except ValueError:
        return default


@dataclass
class CarrierConfig:
    """FedEx REST API settings"""

    base_url: str = "https://apis-sandbox.fedex.com"
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    account_number: Optional[str] = None
    timeout_seconds: float = 15.0
    token_refresh_skew_seconds: int = 60

    # Shipper (the lab)
    shipper_name: str = "T-Link Laboratory"
    shipper_company: str = "T-Link"
    shipper_phone: str = "0000000000"
    shipper_street: str = ""
    shipper_city: str = ""
    shipper_state: str = ""
    shipper_postal_code: str = ""
    shipper_country: str = "US"

    # Dangerous goods
    hazmat_offeror: str = "T-Link Laboratory"
    hazmat_emergency_phone: str = ""

    @property
    def has_credentials(self) -> bool:
        return bool(self.client_id and self.client_secret and self.account_number)

    @classmethod
    def from_env(cls) -> 'CarrierConfig':
        return cls(
            base_url=os.getenv("FEDEX_BASE_URL", "https://apis-sandbox.fedex.com"),
            client_id=os.getenv("FEDEX_CLIENT_ID") or os.getenv("FEDEX_API_KEY"),
            client_secret=os.getenv("FEDEX_CLIENT_SECRET") or os.getenv("FEDEX_SECRET_KEY"),
            account_number=os.getenv("FEDEX_ACCOUNT_NUMBER"),
            timeout_seconds=_float(os.getenv("FEDEX_TIMEOUT_SECONDS", "15"), 15.0),
            token_refresh_skew_seconds=_int(os.getenv("FEDEX_TOKEN_REFRESH_SKEW", "60"), 60),
            shipper_name=os.getenv("SHIPPER_NAME", "T-Link Laboratory"),
            shipper_company=os.getenv("SHIPPER_COMPANY", "T-Link"),
            shipper_phone=os.getenv("SHIPPER_PHONE", "0000000000"),
            shipper_street=os.getenv("SHIPPER_STREET", ""),
            shipper_city=os.getenv("SHIPPER_CITY", ""),
            shipper_state=os.getenv("SHIPPER_STATE", ""),
            shipper_postal_code=os.getenv("SHIPPER_POSTAL_CODE", ""),
            shipper_country=os.getenv("SHIPPER_COUNTRY", "US"),
            hazmat_offeror=os.getenv("HAZMAT_OFFEROR", "T-Link Laboratory"),
            hazmat_emergency_phone=os.getenv("HAZMAT_EMERGENCY_PHONE", ""),
        )


@dataclass
class ShippingConfig:
    """Shipment workflow settings"""

    hazmat_threshold: float = 30.0
    label_claim_ttl_seconds: int = 300
    default_service_type: str = "FEDEX_GROUND"
    sender_name: str = "T-Link"

    notification_service_url: str = "http://localhost:8208"
    notification_timeout_seconds: float = 5.0

    @classmethod
    def from_env(cls) -> 'ShippingConfig':
        return cls(
            hazmat_threshold=_float(os.getenv("HAZMAT_THRESHOLD", "30"), 30.0),
            label_claim_ttl_seconds=_int(os.getenv("LABEL_CLAIM_TTL_SECONDS", "300"), 300),
            default_service_type=os.getenv("DEFAULT_SERVICE_TYPE", "FEDEX_GROUND"),
            sender_name=os.getenv("SENDER_NAME", "T-Link"),
            notification_service_url=os.getenv("NOTIFICATION_SERVICE_URL", "http://localhost:8208"),
            notification_timeout_seconds=_float(os.getenv("NOTIFICATION_TIMEOUT_SECONDS", "5"), 5.0),
        )
