"""
Shared Test Fixtures

Centralized factories used across all test layers.

Structure:
    - common.py: Base ID generators, timestamps
    - shipment_fixtures.py: Shipment service factories
"""

from .common import (
    make_operator_id,
    make_lot_number,
    make_email,
    make_timestamp,
)

from .shipment_fixtures import (
    make_address,
    make_recipient,
    make_line_items,
    make_create_request,
    make_create_payload,
    make_hazmat_request,
    make_supply_request,
)

__all__ = [
    "make_operator_id",
    "make_lot_number",
    "make_email",
    "make_timestamp",
    "make_address",
    "make_recipient",
    "make_line_items",
    "make_create_request",
    "make_create_payload",
    "make_hazmat_request",
    "make_supply_request",
]
