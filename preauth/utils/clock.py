"""Time helpers shared by the engine."""

from datetime import datetime, UTC
from typing import Callable


Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Return current UTC time (timezone-aware)."""
    return datetime.now(UTC)
