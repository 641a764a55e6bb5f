"""
Root conftest.py - Global fixtures and configuration for all test layers.

Test Layers:
    - component/  : Component tests (mocked repository, carrier, event bus)
    - unit/       : Unit tests (pure functions, no I/O)
"""
import os

import pytest

# Set testing environment BEFORE any service imports
os.environ.setdefault("ENV", "testing")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ["NATS_ENABLED"] = "false"


def pytest_configure(config):
    """Configure custom markers"""
    config.addinivalue_line("markers", "unit: pure logic tests, no I/O")
    config.addinivalue_line("markers", "component: service tests with in-memory dependencies")


@pytest.fixture
def operator_id() -> str:
    return "usr_lab_operator"
