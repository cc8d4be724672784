"""
Pricing Engine

Computes the authoritative total of an order from a caller-supplied cart
and a snapshot of catalog records. Client-side prices are never trusted:
every unit price in the result comes from the catalog snapshot.

    line total  = unit price x quantity
                  + (sum of customization price x customization quantity) x quantity
    order total = sum of line totals

``price_cart`` is a pure function: no I/O, no mutation of its inputs.
Resolving the snapshot is the caller's job (see ``resolve_catalog_snapshot``).

Author: Khalil Bannouri
Version: 1.0.0
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Mapping, Sequence

from restaurant_orders.core.errors import (
    CustomizationNotFound,
    ItemNotFound,
    ItemUnavailable,
    LocationMismatch,
    ValidationFailure,
)
from restaurant_orders.services.catalog.base import (
    BaseCatalogReader,
    CustomizationRecord,
    MenuItemRecord,
)

CENT = Decimal("0.01")


def to_money(value: Decimal) -> Decimal:
    """Quantize an amount to cents."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


# =============================================================================
# CART (caller input)
# =============================================================================

@dataclass(frozen=True)
class CartCustomization:
    customization_id: int
    quantity: int = 1


@dataclass(frozen=True)
class CartEntry:
    menu_item_id: int
    quantity: int
    customizations: tuple[CartCustomization, ...] = ()


@dataclass(frozen=True)
class CatalogSnapshot:
    """Catalog records resolved for one cart, keyed by id."""
    menu_items: Mapping[int, MenuItemRecord] = field(default_factory=dict)
    customizations: Mapping[int, CustomizationRecord] = field(default_factory=dict)


# =============================================================================
# PRICED DRAFT (pure output)
# =============================================================================

@dataclass(frozen=True)
class PricedCustomization:
    customization_id: int
    quantity: int
    price_at_time: Decimal

    @property
    def subtotal(self) -> Decimal:
        return self.price_at_time * self.quantity


@dataclass(frozen=True)
class PricedLine:
    menu_item_id: int
    quantity: int
    price_at_time: Decimal
    customizations: tuple[PricedCustomization, ...] = ()

    @property
    def line_total(self) -> Decimal:
        extras = sum((c.subtotal for c in self.customizations), Decimal("0"))
        return to_money(self.price_at_time * self.quantity + extras * self.quantity)


@dataclass(frozen=True)
class PricedOrderDraft:
    """A validated cart annotated with snapshot prices, ready to persist."""
    location_id: int
    lines: tuple[PricedLine, ...]
    total: Decimal


# =============================================================================
# ENGINE
# =============================================================================

def _validate_cart_shape(cart: Sequence[CartEntry]) -> None:
    if not cart:
        raise ValidationFailure("Cart must contain at least one item")

    for entry in cart:
        if entry.quantity < 1:
            raise ValidationFailure(
                f"Quantity for menu item {entry.menu_item_id} must be at least 1"
            )
        for customization in entry.customizations:
            if customization.quantity < 1:
                raise ValidationFailure(
                    f"Quantity for customization {customization.customization_id} "
                    f"must be at least 1"
                )


def price_cart(
    cart: Sequence[CartEntry],
    location_id: int,
    snapshot: CatalogSnapshot,
) -> PricedOrderDraft:
    """
    Validate and price a cart against a catalog snapshot.

    Args:
        cart: Ordered cart entries
        location_id: Location the order is placed at
        snapshot: Catalog records for every id referenced by the cart

    Returns:
        PricedOrderDraft: Snapshot-priced lines and the order total

    Raises:
        ValidationFailure: Empty cart or quantity below 1
        ItemNotFound: Menu item absent from the snapshot
        ItemUnavailable: Menu item flagged unavailable
        LocationMismatch: Menu item belongs to another location
        CustomizationNotFound: Customization absent from the snapshot
    """
    _validate_cart_shape(cart)

    lines = []
    for entry in cart:
        menu_item = snapshot.menu_items.get(entry.menu_item_id)
        if menu_item is None:
            raise ItemNotFound(f"Menu item with ID {entry.menu_item_id} not found")
        if not menu_item.is_available:
            raise ItemUnavailable(f"Menu item {menu_item.title} is not available")
        if menu_item.location_id != location_id:
            raise LocationMismatch(
                f"Menu item {menu_item.title} not available at this location"
            )

        priced_customizations = []
        for ref in entry.customizations:
            # Ownership by the menu item is deliberately not checked here
            customization = snapshot.customizations.get(ref.customization_id)
            if customization is None:
                raise CustomizationNotFound(
                    f"Customization with ID {ref.customization_id} not found"
                )
            priced_customizations.append(
                PricedCustomization(
                    customization_id=customization.id,
                    quantity=ref.quantity,
                    price_at_time=to_money(customization.price),
                )
            )

        lines.append(
            PricedLine(
                menu_item_id=menu_item.id,
                quantity=entry.quantity,
                price_at_time=to_money(menu_item.price),
                customizations=tuple(priced_customizations),
            )
        )

    total = to_money(sum((line.line_total for line in lines), Decimal("0")))
    return PricedOrderDraft(location_id=location_id, lines=tuple(lines), total=total)


async def resolve_catalog_snapshot(
    catalog: BaseCatalogReader,
    cart: Sequence[CartEntry],
) -> CatalogSnapshot:
    """
    Read every catalog record a cart references, once per distinct id.

    Missing records are simply left out; ``price_cart`` reports them.
    """
    menu_items: dict[int, MenuItemRecord] = {}
    customizations: dict[int, CustomizationRecord] = {}

    for entry in cart:
        if entry.menu_item_id not in menu_items:
            item = await catalog.get_menu_item(entry.menu_item_id)
            if item is not None:
                menu_items[entry.menu_item_id] = item
        for ref in entry.customizations:
            if ref.customization_id not in customizations:
                customization = await catalog.get_customization(ref.customization_id)
                if customization is not None:
                    customizations[ref.customization_id] = customization

    return CatalogSnapshot(menu_items=menu_items, customizations=customizations)
