"""
Rush Hour Simulation Script

Simulates several order stations hammering the shared order log at once,
then lets the kitchen hand off part of the queue. Use it to check that
concurrent stations never receive the same ticket number.
Run from project root: python scripts/simulate.py

Version: 1.0.0
"""

import asyncio
import sys
import os
import random
import time
import argparse
from datetime import datetime
from typing import Any

import httpx
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Configuration
API_BASE_URL = "http://localhost:8001"
TOTAL_STATIONS = 5
BASKETS_PER_STATION = 10
ITEM_TYPES = ["apple", "banana"]


def generate_random_basket() -> list[str]:
    """Pick 1-4 items for one customer."""
    return [random.choice(ITEM_TYPES) for _ in range(random.randint(1, 4))]


# =============================================================================
# STATION SIMULATION
# =============================================================================

async def build_and_confirm(
    client: httpx.AsyncClient,
    station: int,
    basket_num: int,
    reserve_every_add: bool,
) -> dict[str, Any]:
    """Stage one basket the way a station does, then confirm it."""
    items = generate_random_basket()
    start_time = time.time()
    staged: list[dict[str, Any]] = []
    last_number: dict[str, int] = {}

    try:
        for item in items:
            if item in last_number and not reserve_every_add:
                number = last_number[item] + 1
            else:
                response = await client.post(
                    f"{API_BASE_URL}/api/tickets/{item}/next",
                    timeout=30.0,
                )
                response.raise_for_status()
                number = response.json()["ticket_number"]
            last_number[item] = number
            staged.append({"item_type": item, "ticket_number": number})

        response = await client.post(
            f"{API_BASE_URL}/api/orders",
            json={"lines": staged},
            timeout=30.0,
        )
        elapsed = round(time.time() - start_time, 3)

        if response.status_code == 200:
            return {
                "station": station,
                "basket": basket_num,
                "success": True,
                "lines": len(staged),
                "ids": [order["id"] for order in response.json()["orders"]],
                "time": elapsed,
            }
        return {
            "station": station,
            "basket": basket_num,
            "success": False,
            "status_code": response.status_code,
            "error": response.text[:100],
            "time": elapsed,
        }
    except httpx.HTTPError as e:
        elapsed = round(time.time() - start_time, 3)
        return {
            "station": station,
            "basket": basket_num,
            "success": False,
            "error": str(e)[:100],
            "time": elapsed,
        }


async def run_station(
    client: httpx.AsyncClient,
    station: int,
    baskets: int,
    reserve_every_add: bool,
) -> list[dict[str, Any]]:
    """One station confirms its baskets one after another."""
    results = []
    for basket_num in range(1, baskets + 1):
        results.append(await build_and_confirm(client, station, basket_num, reserve_every_add))
        await asyncio.sleep(random.uniform(0, 0.05))
    return results


async def run_kitchen(client: httpx.AsyncClient, line_ids: list[int]) -> dict[str, int]:
    """Hand off every given line, some of them twice."""
    counts = {"served": 0, "already_served": 0, "failed": 0}
    targets = line_ids + random.sample(line_ids, k=len(line_ids) // 5)
    random.shuffle(targets)

    async def hand_off(line_id: int) -> None:
        response = await client.post(f"{API_BASE_URL}/api/orders/{line_id}/serve", timeout=30.0)
        if response.status_code == 200:
            counts["served"] += 1
        elif response.status_code == 409:
            counts["already_served"] += 1
        else:
            counts["failed"] += 1

    await asyncio.gather(*(hand_off(line_id) for line_id in targets))
    return counts


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(
    stations: int = TOTAL_STATIONS,
    baskets: int = BASKETS_PER_STATION,
    reserve_every_add: bool = False,
    serve_ratio: float = 0.5,
) -> dict[str, Any]:
    """
    Run the rush hour simulation.

    Args:
        stations: Number of concurrent stations
        baskets: Baskets confirmed by each station
        reserve_every_add: Reserve from the sequencer on every add
        serve_ratio: Share of committed lines the kitchen hands off
    """
    print("=" * 70)
    print("🔥 RUSH HOUR SIMULATION - CONCURRENT STATIONS")
    print("=" * 70)
    print(f"📋 Stations: {stations} x {baskets} baskets")
    print(f"🎯 Target: {API_BASE_URL}")
    print(f"🔧 Reserve every add: {reserve_every_add}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    start_time = time.time()

    async with httpx.AsyncClient() as client:
        per_station = await asyncio.gather(*(
            run_station(client, station, baskets, reserve_every_add)
            for station in range(1, stations + 1)
        ))
        results = [r for station_results in per_station for r in station_results]

        committed = [line_id for r in results if r["success"] for line_id in r["ids"]]
        to_serve = random.sample(committed, k=int(len(committed) * serve_ratio))
        kitchen = await run_kitchen(client, to_serve) if to_serve else {}

    total_time = round(time.time() - start_time, 2)

    successful = [r for r in results if r["success"]]
    failed = [r for r in results if not r["success"]]
    conflicts = [r for r in failed if r.get("status_code") == 409]

    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)

    print(f"\n✅ Confirmed Baskets: {len(successful)}/{len(results)}")
    print(f"🧾 Committed Lines: {len(committed)}")
    print(f"⚔️  Ticket Conflicts: {len(conflicts)}")
    print(f"❌ Other Failures: {len(failed) - len(conflicts)}")
    print(f"⏱️  Total Time: {total_time}s")

    if kitchen:
        print(f"\n👩‍🍳 Kitchen: {kitchen['served']} served, "
              f"{kitchen['already_served']} duplicate hand-offs rejected, "
              f"{kitchen['failed']} failed")

    if successful:
        avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
        print(f"\n📈 Average basket round trip: {avg_time}s")

    if failed:
        print(f"\n⚠️  Failed Basket Details (showing first 5):")
        for f in failed[:5]:
            print(f"   Station {f['station']} basket {f['basket']}: {f.get('error', 'Unknown error')}")

    print("\n" + "=" * 70)
    print("🔍 NEXT STEP: python scripts/verify.py")
    print("=" * 70)

    return {
        "baskets": len(results),
        "successful": len(successful),
        "conflicts": len(conflicts),
        "lines": len(committed),
        "kitchen": kitchen,
        "total_time": total_time,
    }


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Rush Hour Simulation Script")
    parser.add_argument("--stations", type=int, default=TOTAL_STATIONS, help="Concurrent stations")
    parser.add_argument("--baskets", type=int, default=BASKETS_PER_STATION, help="Baskets per station")
    parser.add_argument("--reserve-every-add", action="store_true",
                        help="Reserve a ticket from the server for every line")
    parser.add_argument("--serve-ratio", type=float, default=0.5, help="Share of lines to hand off")
    args = parser.parse_args()

    asyncio.run(run_simulation(
        stations=args.stations,
        baskets=args.baskets,
        reserve_every_add=args.reserve_every_add,
        serve_ratio=args.serve_ratio,
    ))
