# HTTP API
from .main import app, create_app, lifespan

__all__ = ["app", "create_app", "lifespan"]
