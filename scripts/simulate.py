"""
Concurrency Simulation Script

Fires concurrent order placement, status changes and cancellations at a
running server to exercise the order lifecycle under load.
Run from project root after seeding: python scripts/simulate.py

Author: Khalil Bannouri
Version: 1.0.0
"""

import asyncio
import sys
import os
import random
import time
import argparse
from datetime import datetime
from typing import Any, Optional

import httpx
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Configuration
API_BASE_URL = "http://localhost:8001"
TOTAL_ORDERS = 50
KITCHEN_LOGIN = {"email": "kitchen@example.com", "password": "kitchen123"}

# Catalog ids as created by scripts/seed.py: location -> [(menu_item_id, [customization_ids])]
MENU = {
    1: [(1, [1, 2]), (2, [3]), (3, [4]), (4, [])],
    2: [(5, [5, 6]), (6, [7]), (7, [])],
}


def generate_cart(location_id: int, cross_location: bool = False) -> list[dict[str, Any]]:
    """Generate a random cart, optionally with one item from another location."""
    entries = []
    for _ in range(random.randint(1, 3)):
        item_id, extras = random.choice(MENU[location_id])
        chosen = random.sample(extras, k=random.randint(0, len(extras)))
        entries.append({
            "menu_item_id": item_id,
            "quantity": random.randint(1, 3),
            "customizations": [{"customization_id": c, "quantity": 1} for c in chosen],
        })
    if cross_location:
        other = random.choice([loc for loc in MENU if loc != location_id])
        item_id, _ = random.choice(MENU[other])
        entries.append({"menu_item_id": item_id, "quantity": 1, "customizations": []})
    return entries


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


async def register_customer(client: httpx.AsyncClient, n: int) -> str:
    """Register a throwaway customer and return its token."""
    email = f"sim{int(time.time())}_{n}_{random.randint(1000, 9999)}@example.com"
    response = await client.post(
        f"{API_BASE_URL}/api/auth/register",
        json={"email": email, "password": "simulate123", "first_name": f"Sim{n}"},
        timeout=30.0,
    )
    response.raise_for_status()
    return response.json()["token"]


async def login(client: httpx.AsyncClient, credentials: dict[str, str]) -> Optional[str]:
    response = await client.post(f"{API_BASE_URL}/api/auth/login", json=credentials)
    if response.status_code != 200:
        return None
    return response.json()["token"]


# =============================================================================
# SINGLE ORDER FLOW
# =============================================================================

async def place_order(
    client: httpx.AsyncClient,
    order_num: int,
    invalid_rate: float,
) -> dict[str, Any]:
    """Register a customer and place one order."""
    location_id = random.choice(list(MENU))
    cross_location = random.random() < invalid_rate
    start_time = time.time()

    try:
        token = await register_customer(client, order_num)
        response = await client.post(
            f"{API_BASE_URL}/api/orders",
            json={"location_id": location_id, "items": generate_cart(location_id, cross_location)},
            headers=auth_headers(token),
            timeout=30.0,
        )
        elapsed = round(time.time() - start_time, 3)

        if response.status_code == 201:
            order = response.json()["order"]
            return {
                "order_num": order_num,
                "success": True,
                "order_id": order["id"],
                "total": float(order["total"]),
                "token": token,
                "expected_failure": cross_location,
                "time": elapsed,
            }
        return {
            "order_num": order_num,
            "success": False,
            "status": response.status_code,
            "error": response.text[:100],
            "expected_failure": cross_location,
            "time": elapsed,
        }
    except httpx.HTTPError as e:
        elapsed = round(time.time() - start_time, 3)
        return {
            "order_num": order_num,
            "success": False,
            "error": str(e)[:100],
            "expected_failure": cross_location,
            "time": elapsed,
        }


async def race_cancel_and_start(
    client: httpx.AsyncClient,
    order: dict[str, Any],
    kitchen_token: str,
) -> tuple[int, int]:
    """Cancel as the customer while the kitchen starts the same order."""
    cancel, start = await asyncio.gather(
        client.patch(
            f"{API_BASE_URL}/api/orders/{order['order_id']}/cancel",
            headers=auth_headers(order["token"]),
        ),
        client.patch(
            f"{API_BASE_URL}/api/orders/{order['order_id']}/status",
            json={"status": "IN_PROGRESS"},
            headers=auth_headers(kitchen_token),
        ),
    )
    return cancel.status_code, start.status_code


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(
    num_orders: int = TOTAL_ORDERS,
    invalid_rate: float = 0.1,
) -> dict[str, Any]:
    """
    Run the concurrency simulation.

    Args:
        num_orders: Number of orders to place concurrently
        invalid_rate: Share of carts carrying an item from another location
    """
    print("=" * 70)
    print("CONCURRENCY SIMULATION - ORDER LIFECYCLE")
    print("=" * 70)
    print(f"Total Orders: {num_orders}")
    print(f"Target: {API_BASE_URL}")
    print(f"Cross-location carts: {invalid_rate:.0%}")
    print(f"Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    start_time = time.time()

    async with httpx.AsyncClient() as client:
        kitchen_token = await login(client, KITCHEN_LOGIN)
        if kitchen_token is None:
            print("\nKitchen login failed. Run: python scripts/seed.py")
            return {"total": num_orders, "successful": 0, "failed": num_orders}

        print("\nPlacing orders...\n")
        tasks = [place_order(client, i + 1, invalid_rate) for i in range(num_orders)]
        results = await asyncio.gather(*tasks)

        successful = [r for r in results if r["success"]]
        failed = [r for r in results if not r["success"]]

        print("Racing cancellations against kitchen starts...\n")
        racers = successful[: max(1, len(successful) // 5)] if successful else []
        races = await asyncio.gather(
            *[race_cancel_and_start(client, order, kitchen_token) for order in racers]
        )

    total_time = round(time.time() - start_time, 2)

    # Print results
    print("\n" + "=" * 70)
    print("SIMULATION RESULTS")
    print("=" * 70)

    print(f"\nSuccessful Orders: {len(successful)}/{num_orders}")
    print(f"Failed Orders: {len(failed)}/{num_orders}")
    print(f"Total Time: {total_time}s")

    unexpected_success = [r for r in successful if r["expected_failure"]]
    unexpected_failure = [r for r in failed if not r["expected_failure"]]
    print(f"\nCross-location carts accepted (should be 0): {len(unexpected_success)}")
    print(f"Valid carts rejected (should be 0): {len(unexpected_failure)}")

    if successful:
        avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
        min_time = min(r["time"] for r in successful)
        max_time = max(r["time"] for r in successful)
        total_revenue = sum(r.get("total", 0) for r in successful)

        print(f"\nPerformance Metrics:")
        print(f"   Average Response: {avg_time}s")
        print(f"   Fastest: {min_time}s")
        print(f"   Slowest: {max_time}s")
        print(f"   Total Revenue: ${total_revenue:.2f}")

    if races:
        cancelled = sum(1 for cancel, _ in races if cancel == 200)
        rejected = sum(1 for cancel, _ in races if cancel == 409)
        print(f"\nCancel races: {len(races)} ({cancelled} cancelled, {rejected} rejected as too late)")

    if unexpected_failure:
        print(f"\nFailed Order Details (showing first 5):")
        for f in unexpected_failure[:5]:
            print(f"   Order #{f['order_num']}: {f.get('error', 'Unknown error')}")

    print("\n" + "=" * 70)
    print("VERIFICATION STEPS")
    print("=" * 70)
    print("1. Run: python scripts/verify.py")
    print("2. Every total should match its snapshot lines")
    print("=" * 70)

    return {
        "total": num_orders,
        "successful": len(successful),
        "failed": len(failed),
        "total_time": total_time,
        "results": results,
    }


async def test_single_flows() -> bool:
    """Check the server before the simulation."""
    print("\n" + "=" * 70)
    print("TESTING INDIVIDUAL FLOWS")
    print("=" * 70)

    async with httpx.AsyncClient() as client:
        print("\n1. Health Check...")
        try:
            response = await client.get(f"{API_BASE_URL}/health")
        except httpx.HTTPError as e:
            print(f"   Failed: {e}")
            return False
        if response.status_code != 200:
            print(f"   Failed: {response.text}")
            return False
        data = response.json()
        print(f"   Status: {data.get('status')}")
        print(f"   Database: {data.get('database')}")
        print(f"   Realtime: {data.get('realtime')}")

        print("\n2. Single Order...")
        result = await place_order(client, 0, invalid_rate=0.0)
        if not result["success"]:
            print(f"   Failed: {result.get('error')}")
            return False
        print(f"   Order #{result['order_id']} created, total ${result['total']:.2f}")

    print("\n" + "=" * 70)
    return True


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Order lifecycle concurrency simulation")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of orders")
    parser.add_argument("--invalid-rate", type=float, default=0.1, help="Share of cross-location carts")
    parser.add_argument("--skip-tests", action="store_true", help="Skip individual tests")
    args = parser.parse_args()

    if not args.skip_tests:
        success = asyncio.run(test_single_flows())
        if not success:
            print("\nPre-flight tests failed. Fix issues before running simulation.")
            sys.exit(1)
        print("\nPre-flight tests passed!")

    asyncio.run(run_simulation(num_orders=args.orders, invalid_rate=args.invalid_rate))
