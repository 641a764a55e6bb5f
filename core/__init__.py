#!/usr/bin/env python3
"""
Core Module for T-Link services

Shared infrastructure used by every microservice in the repository.

COMPONENTS:
    - config/: environment-driven dataclass configuration
    - config_manager.py: per-service configuration entry point
    - logger.py: service logger setup
    - postgres_client.py: asyncpg pool wrapper
    - nats_client.py: NATS JetStream event bus

USAGE:
    from core.config_manager import ConfigManager

    config = ConfigManager("shipment_service").get_service_config()
"""

from .config_manager import ConfigManager, Environment, ServiceConfig

__all__ = [
    "ConfigManager",
    "Environment",
    "ServiceConfig",
]

__version__ = "1.0.0"
