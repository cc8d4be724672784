"""
Demo Data Seeder

Creates tables and a small demo catalog: two locations with menu items
and customizations, plus one staff account per role.
Run from project root: python scripts/seed.py

Author: Khalil Bannouri
Version: 1.0.0
"""

import asyncio
import os
import sys
from decimal import Decimal

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from sqlalchemy import select

from restaurant_orders.core.config import setup_logging
from restaurant_orders.core.security import get_password_service
from restaurant_orders.database import async_session_maker, engine, init_db
from restaurant_orders.models import (
    Customization,
    Location,
    MenuItem,
    User,
    UserRole,
)

LOCATIONS = [
    {
        "name": "Downtown",
        "address": "12 Main St",
        "phone": "555-100-2000",
        "menu": [
            ("Pizza Margherita", "Pizza", "14.99", [("Extra Cheese", "1.50"), ("Basil", "0.50")]),
            ("Pepperoni Pizza", "Pizza", "16.99", [("Extra Cheese", "1.50")]),
            ("Caesar Salad", "Salad", "8.99", [("Grilled Chicken", "3.00")]),
            ("Tiramisu", "Dessert", "7.99", []),
        ],
    },
    {
        "name": "Harbor",
        "address": "48 Pier Rd",
        "phone": "555-300-4000",
        "menu": [
            ("Fish Tacos", "Mains", "12.50", [("Guacamole", "1.75"), ("Hot Sauce", "0.25")]),
            ("Clam Chowder", "Soup", "9.00", [("Bread Bowl", "2.00")]),
            ("Sparkling Water", "Drinks", "3.49", []),
        ],
    },
]

STAFF = [
    ("admin@example.com", "admin123", UserRole.ADMIN),
    ("kitchen@example.com", "kitchen123", UserRole.KITCHEN),
    ("waiter@example.com", "waiter123", UserRole.WAITER),
]


async def seed() -> None:
    await init_db()
    passwords = get_password_service()

    async with async_session_maker() as db:
        existing = await db.execute(select(Location.id).limit(1))
        if existing.scalar_one_or_none() is not None:
            print("Catalog already seeded, skipping locations")
        else:
            for entry in LOCATIONS:
                location = Location(name=entry["name"], address=entry["address"], phone=entry["phone"])
                db.add(location)
                await db.flush()
                for title, category, price, extras in entry["menu"]:
                    item = MenuItem(
                        title=title,
                        description="",
                        price=Decimal(price),
                        category=category,
                        location_id=location.id,
                    )
                    db.add(item)
                    await db.flush()
                    for name, extra_price in extras:
                        db.add(Customization(
                            name=name,
                            price=Decimal(extra_price),
                            category="Extras",
                            menu_item_id=item.id,
                        ))
                print(f"   Location #{location.id} {location.name}: {len(entry['menu'])} items")

        for email, password, role in STAFF:
            found = await db.execute(select(User).where(User.email == email))
            if found.scalar_one_or_none() is not None:
                continue
            db.add(User(
                email=email,
                password_hash=passwords.hash(password),
                first_name=role.value.title(),
                role=role,
            ))
            print(f"   {role.value:<8} {email} / {password}")

        await db.commit()

    await engine.dispose()


if __name__ == "__main__":
    setup_logging()
    print("=" * 60)
    print("SEEDING DEMO DATA")
    print("=" * 60)
    asyncio.run(seed())
    print("=" * 60)
    print("Done")
