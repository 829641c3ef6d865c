"""
Small helpers shared across the application.
"""
import time
import uuid
from datetime import datetime, timezone


def now_iso() -> str:
    """Return current UTC timestamp in ISO format."""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def new_id() -> str:
    """Return a fresh opaque document identifier."""
    return uuid.uuid4().hex


def epoch_millis() -> int:
    return int(time.time() * 1000)
