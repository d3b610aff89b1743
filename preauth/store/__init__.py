# Order store implementations
from .base import OrderStore
from .memory import InMemoryOrderStore
from .postgres import PostgresOrderStore

__all__ = [
    "OrderStore",
    "InMemoryOrderStore",
    "PostgresOrderStore",
]
