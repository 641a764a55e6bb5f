#!/usr/bin/env python3
"""
Centralized configuration manager for microservices.

Each service creates one ``ConfigManager`` with its own name; the manager
reads the environment (already populated by ``core.config`` through
python-dotenv) and returns a ``ServiceConfig`` with the service settings and
the shared sub-configurations.

Usage:
    config_manager = ConfigManager("shipment_service")
    config = config_manager.get_service_config()
    host, port = config_manager.discover_service(
        service_name="notification_service",
        default_host="localhost",
        default_port=8208,
        env_host_key="NOTIFICATION_SERVICE_HOST",
        env_port_key="NOTIFICATION_SERVICE_PORT",
    )
"""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from core.config import CarrierConfig, InfraConfig, LoggingConfig, ShippingConfig

logger = logging.getLogger(__name__)


class Environment(str, Enum):
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Environment":
        aliases = {"dev": cls.DEVELOPMENT, "test": cls.TESTING, "prod": cls.PRODUCTION}
        if not value:
            return cls.DEVELOPMENT
        value = value.lower()
        if value in aliases:
            return aliases[value]
        try:
            return cls(value)
        except ValueError:
            return cls.DEVELOPMENT


# Default ports per service
DEFAULT_SERVICE_PORTS: Dict[str, int] = {
    "shipment_service": 8260,
    "notification_service": 8208,
}


def _bool(val: str) -> bool:
    return val.lower() == "true"

def _int(val: str, default: int) -> int:
    try:
        return int(val) if val else default
    except ValueError:
        return default


@dataclass
class ServiceConfig:
    """Resolved configuration for one service"""

    service_name: str
    environment: Environment = Environment.DEVELOPMENT
    service_host: str = "0.0.0.0"
    service_port: int = 8260
    debug: bool = False
    log_level: str = "INFO"

    logging: LoggingConfig = field(default_factory=LoggingConfig)
    infrastructure: InfraConfig = field(default_factory=InfraConfig)
    carrier: CarrierConfig = field(default_factory=CarrierConfig)
    shipping: ShippingConfig = field(default_factory=ShippingConfig)


class ConfigManager:
    """Per-service configuration entry point"""

    def __init__(self, service_name: str):
        self.service_name = service_name
        self.environment = Environment.parse(os.getenv("ENV") or os.getenv("ENVIRONMENT"))
        self._config: Optional[ServiceConfig] = None

    def get_service_config(self) -> ServiceConfig:
        if self._config is None:
            self._config = self._load()
        return self._config

    def reload(self) -> ServiceConfig:
        self._config = self._load()
        return self._config

    def _load(self) -> ServiceConfig:
        env_prefix = self.service_name.upper()
        default_port = DEFAULT_SERVICE_PORTS.get(self.service_name, 8000)
        logging_config = LoggingConfig.from_env()
        is_dev = self.environment == Environment.DEVELOPMENT

        return ServiceConfig(
            service_name=self.service_name,
            environment=self.environment,
            service_host=os.getenv(f"{env_prefix}_HOST") or os.getenv("HOST", "0.0.0.0"),
            service_port=_int(
                os.getenv(f"{env_prefix}_PORT") or os.getenv("PORT", ""), default_port
            ),
            debug=_bool(os.getenv("DEBUG", "true" if is_dev else "false")),
            log_level=logging_config.log_level,
            logging=logging_config,
            infrastructure=InfraConfig.from_env(),
            carrier=CarrierConfig.from_env(),
            shipping=ShippingConfig.from_env(),
        )

    def discover_service(
        self,
        service_name: str,
        default_host: str = "localhost",
        default_port: int = 8000,
        env_host_key: Optional[str] = None,
        env_port_key: Optional[str] = None,
    ) -> Tuple[str, int]:
        """Resolve host/port for a peer service from the environment"""
        prefix = service_name.upper()
        host = os.getenv(env_host_key or f"{prefix}_HOST") or default_host
        port = _int(os.getenv(env_port_key or f"{prefix}_PORT", ""), default_port)
        logger.debug(f"Discovered {service_name} at {host}:{port}")
        return host, port

    def get(self, key: str, default: Any = None) -> Any:
        return getattr(self.get_service_config(), key, default)

    def print_config_summary(self, show_secrets: bool = False) -> None:
        config = self.get_service_config()
        carrier = config.carrier
        secret = carrier.client_secret if show_secrets else ("***" if carrier.client_secret else None)
        logger.info(f"Configuration for {config.service_name} ({config.environment.value})")
        logger.info(f"  listen: {config.service_host}:{config.service_port} debug={config.debug}")
        logger.info(
            f"  postgres: {config.infrastructure.postgres_host}:{config.infrastructure.postgres_port}"
            f"/{config.infrastructure.postgres_db}"
        )
        logger.info(f"  nats: {config.infrastructure.resolved_nats_url} enabled={config.infrastructure.nats_enabled}")
        logger.info(f"  carrier: {carrier.base_url} client_id={carrier.client_id} secret={secret}")
        logger.info(f"  hazmat threshold: {config.shipping.hazmat_threshold}")
