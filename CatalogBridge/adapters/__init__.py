"""
Supplier and Marketplace Adapters

Each adapter implements the capability interface from base.py against one
vendor API. Importing this package registers every adapter with the registry.

Usage:
    from CatalogBridge.adapters import create_adapter

    adapter = create_adapter("rs24", {"login": "...", "password": "..."})
    try:
        result = await adapter.sync_products(brands=["IEK"])
    finally:
        await adapter.close()
"""

from .base import (
    AdapterCapability,
    AdapterKind,
    AdapterType,
    BaseAdapter,
    ConnectionTestResult,
    ExternalProductRecord,
    PriceQuote,
    StockLevel,
    SyncResult,
    Warehouse,
)
from .registry import AdapterRegistry, create_adapter, get_available_adapters, get_adapter_info

# Import adapter implementations to register them
from . import rs24
from . import ozon
from . import wildberries
from . import yandex

__all__ = [
    "AdapterCapability",
    "AdapterKind",
    "AdapterType",
    "BaseAdapter",
    "ConnectionTestResult",
    "ExternalProductRecord",
    "PriceQuote",
    "StockLevel",
    "SyncResult",
    "Warehouse",
    "AdapterRegistry",
    "create_adapter",
    "get_available_adapters",
    "get_adapter_info",
]
