"""
Common/Shared Fixtures

Base factories and generators used across test layers.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional


def make_operator_id() -> str:
    """Generate a unique lab operator ID"""
    return f"usr_test_{uuid.uuid4().hex[:12]}"


def make_lot_number() -> str:
    """Generate a unique sample lot number"""
    return f"LOT-{uuid.uuid4().hex[:8].upper()}"


def make_email(prefix: Optional[str] = None) -> str:
    """Generate a unique email"""
    prefix = prefix or f"test_{uuid.uuid4().hex[:8]}"
    return f"{prefix}@example.com"


def make_timestamp() -> str:
    """Generate current UTC timestamp"""
    return datetime.now(timezone.utc).isoformat()
