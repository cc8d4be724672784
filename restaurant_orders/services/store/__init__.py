"""
Order Store Package

Usage:
    from restaurant_orders.services.store import SqlOrderStore

    store = SqlOrderStore(db)
    order_id = await store.run_atomic(lambda s: s.insert_order(...))
"""

from restaurant_orders.services.store.base import (
    BaseOrderStore,
    OrderFilter,
    OrderPage,
    OrderVisibility,
)
from restaurant_orders.services.store.sql import SqlOrderStore

__all__ = [
    "BaseOrderStore",
    "OrderFilter",
    "OrderPage",
    "OrderVisibility",
    "SqlOrderStore",
]
