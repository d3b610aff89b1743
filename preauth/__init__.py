"""Pre-authorization fraud risk-decision engine."""

__version__ = "1.0.0"
