"""
Lunch Rush Simulation Script

Fires many concurrent orders at one group to check that none are lost
and that the summary adds up afterwards.
Run from project root: python scripts/simulate.py --store 1

Author: Khalil_Bannouri
Version: 1.0.0
"""

import asyncio
import sys
import os
import random
import time
import argparse
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import httpx
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from group_order.services.ordering import round_one_decimal

# Configuration
API_BASE_URL = "http://localhost:8001"
TOTAL_ORDERS = 50

# Sample data for random orders
CUSTOMER_NAMES = ["Amy", "Ben", "Chloe", "Daniel", "Emma", "Frank", "Grace", "Henry", "Ivy", "Jack"]
FALLBACK_ITEMS = [
    {"name": "Chicken Rice", "price": 90},
    {"name": "Beef Noodles", "price": 120},
    {"name": "Fried Rice", "price": 85},
    {"name": "Dumplings x10", "price": 70},
    {"name": "Bubble Tea", "price": 55.5},
    {"name": "Miso Soup", "price": 30},
]


def generate_order_payload(menu: list[dict]) -> dict[str, Any]:
    """Random purchaser, item and quantity."""
    item = random.choice(menu)
    return {
        "item_name": item["name"],
        "price": item["price"],
        "quantity": random.randint(1, 3),
        "customer_name": random.choice(CUSTOMER_NAMES),
    }


async def send_order(
    client: httpx.AsyncClient,
    group_id: int,
    order_num: int,
    menu: list[dict],
) -> dict[str, Any]:
    """Place one order and time it."""
    payload = generate_order_payload(menu)
    start_time = time.time()

    try:
        response = await client.post(
            f"{API_BASE_URL}/api/groups/{group_id}/orders",
            json=payload,
            timeout=30.0
        )
        elapsed = round(time.time() - start_time, 3)

        if response.status_code == 201:
            data = response.json()
            return {
                "order_num": order_num,
                "success": True,
                "order_id": data.get("id"),
                "quantity": payload["quantity"],
                "amount": payload["price"] * payload["quantity"],
                "time": elapsed,
            }
        return {
            "order_num": order_num,
            "success": False,
            "error": response.text[:100],
            "time": elapsed,
        }
    except Exception as e:
        elapsed = round(time.time() - start_time, 3)
        return {
            "order_num": order_num,
            "success": False,
            "error": str(e)[:100],
            "time": elapsed,
        }


async def load_menu(client: httpx.AsyncClient, store_id: int) -> list[dict]:
    response = await client.get(f"{API_BASE_URL}/api/stores/{store_id}/products")
    response.raise_for_status()
    menu = [{"name": p["name"], "price": p["price"]} for p in response.json()]
    return menu or FALLBACK_ITEMS


async def open_group(client: httpx.AsyncClient, store_id: int, minutes: int) -> dict:
    end_time = datetime.now(timezone.utc) + timedelta(minutes=minutes)
    response = await client.post(
        f"{API_BASE_URL}/api/groups",
        json={
            "store_id": store_id,
            "end_time": end_time.isoformat(),
            "name": f"Simulation {datetime.now().strftime('%H:%M:%S')}",
        },
    )
    response.raise_for_status()
    return response.json()


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(
    store_id: Optional[int] = None,
    group_id: Optional[int] = None,
    num_orders: int = TOTAL_ORDERS,
    minutes: int = 30,
) -> dict[str, Any]:
    """
    Run the lunch rush simulation.

    Args:
        store_id: open a new group for this store
        group_id: or use an existing group
        num_orders: Number of orders to simulate
        minutes: deadline of a newly opened group
    """
    async with httpx.AsyncClient() as client:
        if group_id is None:
            group = await open_group(client, store_id, minutes)
            group_id = group["id"]
            store_id = group["store_id"]
            print(f"🆕 Opened group #{group_id} ({group['display_name']})")
        else:
            response = await client.get(f"{API_BASE_URL}/api/groups/today")
            response.raise_for_status()
            match = [g for g in response.json()["groups"] if g["id"] == group_id]
            if not match:
                print(f"❌ Group #{group_id} is not one of today's groups")
                sys.exit(1)
            store_id = match[0]["store_id"]

        menu = await load_menu(client, store_id)

        before = (await client.get(f"{API_BASE_URL}/api/groups/{group_id}/orders")).json()

        print("=" * 70)
        print("🔥 LUNCH RUSH SIMULATION - CONCURRENT ORDERS")
        print("=" * 70)
        print(f"📋 Total Orders: {num_orders}")
        print(f"🎯 Target: {API_BASE_URL} (group #{group_id})")
        print(f"🍱 Menu Items: {len(menu)}")
        print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
        print("=" * 70)

        start_time = time.time()
        tasks = [send_order(client, group_id, i + 1, menu) for i in range(num_orders)]
        results = await asyncio.gather(*tasks)
        total_time = round(time.time() - start_time, 2)

        after = (await client.get(f"{API_BASE_URL}/api/groups/{group_id}/orders")).json()

    # Analyze results
    successful = [r for r in results if r["success"]]
    failed = [r for r in results if not r["success"]]

    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)

    print(f"\n✅ Successful Orders: {len(successful)}/{num_orders}")
    print(f"❌ Failed Orders: {len(failed)}/{num_orders}")
    print(f"⏱️  Total Time: {total_time}s")

    if successful:
        avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
        print(f"\n📈 Performance Metrics:")
        print(f"   Average Response: {avg_time}s")
        print(f"   Fastest: {min(r['time'] for r in successful)}s")
        print(f"   Slowest: {max(r['time'] for r in successful)}s")

    if failed:
        print(f"\n⚠️  Failed Order Details (showing first 5):")
        for f in failed[:5]:
            print(f"   Order #{f['order_num']}: {f.get('error', 'Unknown error')}")

    # Summary check
    expected_count = before["total_count"] + sum(r["quantity"] for r in successful)
    expected_rows = len(before["orders"]) + len(successful)
    expected_amount = round_one_decimal(
        before["total_amount"] + sum(r["amount"] for r in successful)
    )

    print("\n" + "=" * 70)
    print("🔍 SUMMARY CHECK")
    print("=" * 70)
    checks = [
        ("Order rows", expected_rows, len(after["orders"])),
        ("Portions", expected_count, after["total_count"]),
        ("Amount", expected_amount, after["total_amount"]),
    ]
    consistent = True
    for label, expected, actual in checks:
        ok = abs(expected - actual) < 0.05 if label == "Amount" else expected == actual
        consistent = consistent and ok
        print(f"   {'✅' if ok else '❌'} {label}: expected {expected}, got {actual}")
    print("=" * 70)

    return {
        "group_id": group_id,
        "total": num_orders,
        "successful": len(successful),
        "failed": len(failed),
        "total_time": total_time,
        "consistent": consistent,
        "results": results
    }


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Lunch Rush Simulation Script")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--store", type=int, help="Open a new group for this store id")
    target.add_argument("--group", type=int, help="Order into an existing group id")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of orders")
    parser.add_argument("--minutes", type=int, default=30, help="Deadline of a new group")
    args = parser.parse_args()

    outcome = asyncio.run(run_simulation(
        store_id=args.store,
        group_id=args.group,
        num_orders=args.orders,
        minutes=args.minutes,
    ))
    sys.exit(0 if outcome["consistent"] else 1)
