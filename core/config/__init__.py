#!/usr/bin/env python3
"""Modular configuration system for T-Link

Configuration hierarchy:
- infra_config: PostgreSQL and NATS endpoints
- shipping_config: carrier credentials, shipper identity and workflow settings
- logging_config: Logging configuration
"""
import os
from dotenv import load_dotenv
from .logging_config import LoggingConfig
from .infra_config import InfraConfig
from .shipping_config import CarrierConfig, ShippingConfig

# Load environment file based on ENV. Only the development file ships with
# the repo; other environments set real variables or point ENV_FILE at one.
env = os.getenv("ENV") or os.getenv("ENVIRONMENT", "development")
env_files = {
    "development": "deployment/environments/dev.env",
    "dev": "deployment/environments/dev.env",
}
env_file = os.getenv("ENV_FILE") or env_files.get(env)
if env_file:
    load_dotenv(env_file, override=False)

__all__ = [
    'LoggingConfig',
    'InfraConfig',
    'CarrierConfig',
    'ShippingConfig',
]
