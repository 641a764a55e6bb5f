"""
Unit Test Layer Configuration

Structure:
    tests/unit/
    ├── test_config.py   Env files the config loader can pick
    └── shipment/    State machine, hazmat rules, models, token cache, sandbox carrier

Usage:
    pytest tests/unit -v
    pytest -m unit -v
"""
from datetime import date

import pytest


@pytest.fixture
def monday() -> date:
    """A fixed Monday for business-day arithmetic"""
    return date(2024, 3, 4)
