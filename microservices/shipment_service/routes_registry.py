"""
Shipment Service Routes Registry

Defines service metadata and routes for API documentation.
"""

SERVICE_METADATA = {
    "service_name": "shipment_service",
    "version": "1.0.0",
    "tags": ["v1", "shipment", "logistics", "hazmat", "microservice"],
    "capabilities": [
        "shipment_requests",
        "lab_processing",
        "address_validation",
        "rate_quotes",
        "label_generation",
        "hazmat_declarations",
        "carrier_tracking",
        "supply_ledger",
        "chain_of_custody",
    ],
}

# Route definitions for API documentation
SERVICE_ROUTES = [
    # Health endpoints
    {"path": "/health", "methods": ["GET"], "description": "Health check"},
    {"path": "/api/v1/shipments/health", "methods": ["GET"], "description": "Service health check (API v1)"},

    # Shipment requests
    {"path": "/api/v1/shipments", "methods": ["POST"], "description": "Request shipment"},
    {"path": "/api/v1/shipments", "methods": ["GET"], "description": "List shipments"},
    {"path": "/api/v1/shipments/processing-queue", "methods": ["GET"], "description": "Shipments awaiting the lab"},
    {"path": "/api/v1/shipments/{shipment_id}", "methods": ["GET"], "description": "Get shipment"},
    {"path": "/api/v1/shipments/{shipment_id}", "methods": ["DELETE"], "description": "Delete shipment (admin)"},
    {"path": "/api/v1/shipments/{shipment_id}/details", "methods": ["GET"], "description": "Shipment with inventory, hazmat and custody"},
    {"path": "/api/v1/shipments/{shipment_id}/custody", "methods": ["GET"], "description": "Chain of custody"},

    # Lab processing
    {"path": "/api/v1/shipments/{shipment_id}/start-processing", "methods": ["POST"], "description": "Start processing"},
    {"path": "/api/v1/shipments/{shipment_id}/validate-address", "methods": ["POST"], "description": "Validate delivery address"},
    {"path": "/api/v1/shipments/{shipment_id}/rate-quote", "methods": ["POST"], "description": "Carrier rate quote"},
    {"path": "/api/v1/shipments/{shipment_id}/label", "methods": ["POST"], "description": "Generate shipping label"},
    {"path": "/api/v1/shipments/{shipment_id}/label/adopt", "methods": ["POST"], "description": "Adopt held label after partial failure"},
    {"path": "/api/v1/shipments/{shipment_id}/label/release-hold", "methods": ["POST"], "description": "Release held label slot"},
    {"path": "/api/v1/shipments/{shipment_id}/cancel", "methods": ["POST"], "description": "Cancel shipment"},

    # Hazmat
    {"path": "/api/v1/shipments/{shipment_id}/hazmat-declaration", "methods": ["POST"], "description": "Submit dangerous goods declaration"},
    {"path": "/api/v1/shipments/{shipment_id}/warning-labels-printed", "methods": ["POST"], "description": "Record warning labels printed"},

    # Tracking
    {"path": "/api/v1/shipments/tracking/{tracking_number}", "methods": ["GET"], "description": "Poll carrier tracking"},
    {"path": "/api/v1/shipments/tracking/webhook", "methods": ["POST"], "description": "Carrier tracking push"},

    # Supply ledger
    {"path": "/api/v1/supplies", "methods": ["GET"], "description": "List supplies"},
    {"path": "/api/v1/supplies", "methods": ["POST"], "description": "Create supply"},
    {"path": "/api/v1/supplies/{supply_id}/restock", "methods": ["POST"], "description": "Restock supply"},
    {"path": "/api/v1/supplies/{supply_id}/transactions", "methods": ["GET"], "description": "Supply ledger history"},
]


__all__ = ["SERVICE_METADATA", "SERVICE_ROUTES"]
