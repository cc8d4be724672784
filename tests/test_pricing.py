"""
Tests for the pure pricing engine.
"""

from decimal import Decimal

import pytest

from restaurant_orders.core.errors import (
    CustomizationNotFound,
    ItemNotFound,
    ItemUnavailable,
    LocationMismatch,
    ValidationFailure,
)
from restaurant_orders.services.catalog import CustomizationRecord, MenuItemRecord
from restaurant_orders.services.pricing import (
    CartCustomization,
    CartEntry,
    CatalogSnapshot,
    PricedOrderDraft,
    price_cart,
    resolve_catalog_snapshot,
    to_money,
)

LOCATION = 1
OTHER_LOCATION = 2


@pytest.fixture
def snapshot():
    return CatalogSnapshot(
        menu_items={
            10: MenuItemRecord(id=10, location_id=LOCATION, title="Burger", price=Decimal("10.00"), is_available=True),
            11: MenuItemRecord(id=11, location_id=LOCATION, title="Fries", price=Decimal("3.50"), is_available=False),
            12: MenuItemRecord(id=12, location_id=OTHER_LOCATION, title="Taco", price=Decimal("4.25"), is_available=True),
            13: MenuItemRecord(id=13, location_id=LOCATION, title="Soda", price=Decimal("1.99"), is_available=True),
        },
        customizations={
            20: CustomizationRecord(id=20, menu_item_id=10, name="Cheese", price=Decimal("2.00")),
            21: CustomizationRecord(id=21, menu_item_id=10, name="Bacon", price=Decimal("1.25")),
            22: CustomizationRecord(id=22, menu_item_id=12, name="Salsa", price=Decimal("0.75")),
        },
    )


class TestTotals:

    def test_single_line_with_customization(self, snapshot):
        cart = [CartEntry(menu_item_id=10, quantity=2, customizations=(CartCustomization(20, 1),))]

        draft = price_cart(cart, LOCATION, snapshot)

        assert isinstance(draft, PricedOrderDraft)
        assert draft.total == Decimal("24.00")
        assert draft.location_id == LOCATION
        [line] = draft.lines
        assert line.price_at_time == Decimal("10.00")
        assert line.customizations[0].price_at_time == Decimal("2.00")
        assert line.line_total == Decimal("24.00")

    def test_customization_quantity_multiplies_before_line_quantity(self, snapshot):
        cart = [
            CartEntry(
                menu_item_id=10,
                quantity=3,
                customizations=(CartCustomization(20, 2), CartCustomization(21, 1)),
            )
        ]

        draft = price_cart(cart, LOCATION, snapshot)

        # 3 x 10.00 + (2 x 2.00 + 1 x 1.25) x 3
        assert draft.total == Decimal("45.75")

    def test_multiple_lines_are_summed(self, snapshot):
        cart = [
            CartEntry(menu_item_id=10, quantity=1),
            CartEntry(menu_item_id=13, quantity=3),
            CartEntry(menu_item_id=10, quantity=1, customizations=(CartCustomization(21),)),
        ]

        draft = price_cart(cart, LOCATION, snapshot)

        assert [line.menu_item_id for line in draft.lines] == [10, 13, 10]
        assert draft.total == Decimal("10.00") + Decimal("5.97") + Decimal("11.25")

    def test_customization_ownership_is_not_checked(self, snapshot):
        cart = [CartEntry(menu_item_id=10, quantity=1, customizations=(CartCustomization(22),))]

        draft = price_cart(cart, LOCATION, snapshot)

        assert draft.total == Decimal("10.75")

    def test_to_money_rounds_half_up(self):
        assert to_money(Decimal("1.005")) == Decimal("1.01")
        assert to_money(Decimal("2")) == Decimal("2.00")


class TestRejections:

    def test_empty_cart(self, snapshot):
        with pytest.raises(ValidationFailure):
            price_cart([], LOCATION, snapshot)

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_non_positive_item_quantity(self, snapshot, quantity):
        with pytest.raises(ValidationFailure):
            price_cart([CartEntry(menu_item_id=10, quantity=quantity)], LOCATION, snapshot)

    def test_non_positive_customization_quantity(self, snapshot):
        cart = [CartEntry(menu_item_id=10, quantity=1, customizations=(CartCustomization(20, 0),))]
        with pytest.raises(ValidationFailure):
            price_cart(cart, LOCATION, snapshot)

    def test_unknown_item(self, snapshot):
        with pytest.raises(ItemNotFound):
            price_cart([CartEntry(menu_item_id=999, quantity=1)], LOCATION, snapshot)

    def test_unavailable_item(self, snapshot):
        with pytest.raises(ItemUnavailable):
            price_cart([CartEntry(menu_item_id=11, quantity=1)], LOCATION, snapshot)

    def test_item_from_another_location(self, snapshot):
        cart = [
            CartEntry(menu_item_id=10, quantity=1),
            CartEntry(menu_item_id=12, quantity=1),
        ]
        with pytest.raises(LocationMismatch):
            price_cart(cart, LOCATION, snapshot)

    def test_unknown_customization(self, snapshot):
        cart = [CartEntry(menu_item_id=10, quantity=1, customizations=(CartCustomization(999),))]
        with pytest.raises(CustomizationNotFound):
            price_cart(cart, LOCATION, snapshot)

    def test_shape_is_checked_before_catalog_lookups(self, snapshot):
        cart = [
            CartEntry(menu_item_id=999, quantity=1),
            CartEntry(menu_item_id=10, quantity=0),
        ]
        with pytest.raises(ValidationFailure):
            price_cart(cart, LOCATION, snapshot)


class TestPurity:

    def test_inputs_are_not_mutated(self, snapshot):
        cart = [CartEntry(menu_item_id=10, quantity=2, customizations=(CartCustomization(20),))]
        cart_before = list(cart)
        items_before = dict(snapshot.menu_items)

        first = price_cart(cart, LOCATION, snapshot)
        second = price_cart(cart, LOCATION, snapshot)

        assert first == second
        assert cart == cart_before
        assert dict(snapshot.menu_items) == items_before


class FakeCatalog:
    """Counts reads so snapshot resolution can be checked."""

    def __init__(self, snapshot):
        self.snapshot = snapshot
        self.item_reads = []
        self.customization_reads = []

    async def get_location(self, location_id):
        return None

    async def get_menu_item(self, menu_item_id):
        self.item_reads.append(menu_item_id)
        return self.snapshot.menu_items.get(menu_item_id)

    async def get_customization(self, customization_id):
        self.customization_reads.append(customization_id)
        return self.snapshot.customizations.get(customization_id)


class TestSnapshotResolution:

    async def test_reads_each_distinct_id_once(self, snapshot):
        catalog = FakeCatalog(snapshot)
        cart = [
            CartEntry(menu_item_id=10, quantity=1, customizations=(CartCustomization(20),)),
            CartEntry(menu_item_id=10, quantity=2, customizations=(CartCustomization(20),)),
            CartEntry(menu_item_id=13, quantity=1),
        ]

        resolved = await resolve_catalog_snapshot(catalog, cart)

        assert catalog.item_reads == [10, 13]
        assert catalog.customization_reads == [20]
        assert set(resolved.menu_items) == {10, 13}

    async def test_missing_records_are_left_for_pricing_to_report(self, snapshot):
        catalog = FakeCatalog(snapshot)
        cart = [CartEntry(menu_item_id=999, quantity=1)]

        resolved = await resolve_catalog_snapshot(catalog, cart)

        assert resolved.menu_items == {}
        with pytest.raises(ItemNotFound):
            price_cart(cart, LOCATION, resolved)
