"""
Catalog Reader Abstract Base Class

Defines the read-only interface the order lifecycle uses to look up
locations, menu items and customizations. Implementations return plain
immutable records so pricing never touches live ORM state.

Author: Khalil Bannouri
Version: 1.0.0
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional


@dataclass(frozen=True)
class LocationRecord:
    """
    Catalog view of a restaurant site.

    Attributes:
        id: Location identifier
        name: Display name
        is_active: Inactive locations reject new orders
    """
    id: int
    name: str
    is_active: bool


@dataclass(frozen=True)
class MenuItemRecord:
    """
    Catalog view of a menu item at the time it was read.

    Attributes:
        id: Menu item identifier
        location_id: The one location offering this item
        title: Display name
        price: Current unit price
        is_available: Availability flag
        category: Menu category
    """
    id: int
    location_id: int
    title: str
    price: Decimal
    is_available: bool
    category: str = ""


@dataclass(frozen=True)
class CustomizationRecord:
    """
    Catalog view of a customization at the time it was read.

    Attributes:
        id: Customization identifier
        menu_item_id: Menu item the customization was defined for
        name: Display name
        price: Current unit price
    """
    id: int
    menu_item_id: int
    name: str
    price: Decimal


class BaseCatalogReader(ABC):
    """Read-only access to the catalog."""

    @abstractmethod
    async def get_location(self, location_id: int) -> Optional[LocationRecord]:
        """Return the location or None if it does not exist."""
        pass

    @abstractmethod
    async def get_menu_item(self, menu_item_id: int) -> Optional[MenuItemRecord]:
        """Return the menu item or None if it does not exist."""
        pass

    @abstractmethod
    async def get_customization(self, customization_id: int) -> Optional[CustomizationRecord]:
        """Return the customization or None if it does not exist."""
        pass
