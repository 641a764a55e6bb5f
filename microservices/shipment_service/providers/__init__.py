"""Carrier providers"""

from .base import CarrierProvider
from .fedex import FedExCarrierProvider
from .mock import MockCarrierProvider
from .token_cache import OAuthTokenCache

__all__ = [
    "CarrierProvider",
    "FedExCarrierProvider",
    "MockCarrierProvider",
    "OAuthTokenCache",
]
