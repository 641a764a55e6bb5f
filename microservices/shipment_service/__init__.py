"""
Shipment Service

Outbound laboratory sample shipments:
- Shipment requests against sample lots (stock checked, hazmat computed)
- Lab processing: address validation, rate quotes, carrier labels
- Dangerous goods declarations and warning labels
- Carrier tracking (poll and push), forward-only
- Shipping-supply ledger and chain of custody

Port: 8260
"""

__version__ = "1.0.0"
__service__ = "shipment_service"
