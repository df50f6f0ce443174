"""Domain models for the group-buy order workbook importer.

Parse result models (ImportData and friends), configuration, per-file
processing context and run-level results.
"""

from .config_models import DatabaseConfig, ImportConfig
from .import_data import ImportData, Order, OrderItem, ProductType

__all__ = [
    # Configuration models
    "DatabaseConfig",
    "ImportConfig",
    # Parse result models
    "ImportData",
    "Order",
    "OrderItem",
    "ProductType",
]
