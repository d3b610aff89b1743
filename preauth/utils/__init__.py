# Utilities
from .logger import get_logger, configure_logging
from .clock import Clock, utc_now

__all__ = ["get_logger", "configure_logging", "Clock", "utc_now"]
