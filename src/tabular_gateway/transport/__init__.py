"""Transport capability and the SQL warehouse implementation."""

from .base import Transport, TransportFactory, TransportListener
from .warehouse import WarehouseTransport, warehouse_transport_factory

__all__ = [
    "Transport",
    "TransportFactory",
    "TransportListener",
    "WarehouseTransport",
    "warehouse_transport_factory",
]
