"""
Order Integrity Verification Script

Recomputes every order's total from its snapshot lines and flags
mismatches and lines whose menu item belongs to another location.
Run from project root: python scripts/verify.py

Author: Khalil Bannouri
Version: 1.0.0
"""

import asyncio
import os
import sys
from collections import Counter
from datetime import datetime
from decimal import Decimal

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from restaurant_orders.database import async_session_maker, engine
from restaurant_orders.models import Order, OrderLine, OrderStatus
from restaurant_orders.services.pricing import to_money


def recompute_total(order: Order) -> Decimal:
    """Sum the snapshot lines the same way the pricing engine does."""
    total = Decimal("0")
    for line in order.lines:
        extras = sum(
            (c.price_at_time * c.quantity for c in line.customizations),
            Decimal("0"),
        )
        total += to_money(line.price_at_time * line.quantity + extras * line.quantity)
    return to_money(total)


async def verify_orders() -> bool:
    """Verify stored orders after a simulation."""

    print("=" * 60)
    print("ORDER INTEGRITY REPORT")
    print("=" * 60)
    print(f"Timestamp: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 60)

    async with async_session_maker() as db:
        result = await db.execute(
            select(Order)
            .options(
                selectinload(Order.lines).selectinload(OrderLine.menu_item),
                selectinload(Order.lines).selectinload(OrderLine.customizations),
            )
            .order_by(Order.id)
        )
        orders = result.scalars().all()
    await engine.dispose()

    print(f"\nSTATISTICS:")
    print(f"   Total Orders: {len(orders)}")
    statuses = Counter(order.status.value for order in orders)
    for name, count in sorted(statuses.items()):
        print(f"   {name:<12} {count}")

    mismatched = []
    cross_location = []
    empty = []
    for order in orders:
        if not order.lines:
            empty.append(order.id)
        if recompute_total(order) != to_money(order.total):
            mismatched.append(order)
        for line in order.lines:
            if line.menu_item is not None and line.menu_item.location_id != order.location_id:
                cross_location.append((order.id, line.id))

    print(f"\nCHECKS:")
    print(f"   {'OK ' if not mismatched else 'BAD'} totals matching snapshot lines "
          f"({len(orders) - len(mismatched)}/{len(orders)})")
    print(f"   {'OK ' if not cross_location else 'BAD'} lines from another location: {len(cross_location)}")
    print(f"   {'OK ' if not empty else 'BAD'} orders without lines: {len(empty)}")

    for order in mismatched[:5]:
        print(f"   Order #{order.id}: stored {order.total}, recomputed {recompute_total(order)}")
    for order_id, line_id in cross_location[:5]:
        print(f"   Order #{order_id}: line #{line_id} belongs to another location")

    if orders:
        revenue = sum(
            (order.total for order in orders if order.status != OrderStatus.CANCELLED),
            Decimal("0"),
        )
        print(f"\nREVENUE (excluding cancelled):")
        print(f"   Total: ${revenue:.2f}")

    ok = not mismatched and not cross_location and not empty
    print("\n" + "=" * 60)
    print("VERIFICATION PASSED" if ok else "VERIFICATION FOUND PROBLEMS")
    print("=" * 60)
    return ok


if __name__ == "__main__":
    passed = asyncio.run(verify_orders())
    sys.exit(0 if passed else 1)
