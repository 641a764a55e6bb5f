"""
Service logger setup.

Usage:
    logger = setup_service_logger("shipment_service", level="INFO")
"""

import logging
import sys
from typing import Optional

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_configured = set()


def setup_service_logger(
    service_name: str,
    level: str = "INFO",
    log_file: Optional[str] = None,
    log_format: str = DEFAULT_FORMAT,
) -> logging.Logger:
    """Configure console (and optional file) logging for a service.

    The handlers are attached to the service logger and to the ``core`` and
    ``microservices`` hierarchies so module loggers created with
    ``logging.getLogger(__name__)`` share them. Calling it again for the same
    service returns the existing logger.
    """
    logger = logging.getLogger(service_name)
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    if service_name in _configured:
        logger.setLevel(numeric_level)
        return logger

    formatter = logging.Formatter(log_format)
    handlers = []

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    handlers.append(console)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    for name in (service_name, "core", "microservices"):
        target = logging.getLogger(name)
        target.setLevel(numeric_level)
        for handler in handlers:
            target.addHandler(handler)
        target.propagate = False

    _configured.add(service_name)
    return logger
