"""
Core module initialization.
Exports configuration, logging and error utilities.
"""

from restaurant_orders.core.config import get_settings, Settings, EnvironmentMode
from restaurant_orders.core.errors import OrderingError, ErrorCategory

__all__ = ["get_settings", "Settings", "EnvironmentMode", "OrderingError", "ErrorCategory"]
