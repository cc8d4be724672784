"""
Catalog Reader Package

Usage:
    from restaurant_orders.services.catalog import SqlCatalogReader

    catalog = SqlCatalogReader(db)
    item = await catalog.get_menu_item(3)
"""

from restaurant_orders.services.catalog.base import (
    BaseCatalogReader,
    CustomizationRecord,
    LocationRecord,
    MenuItemRecord,
)
from restaurant_orders.services.catalog.sql import SqlCatalogReader

__all__ = [
    "BaseCatalogReader",
    "CustomizationRecord",
    "LocationRecord",
    "MenuItemRecord",
    "SqlCatalogReader",
]
