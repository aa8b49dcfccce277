"""
Order Log Verification Script

Verifies the invariants of the shared order log after a simulation:
unique (item, ticket_number) pairs, consistent pending counts, and
display labels that match the configured ticket count.
Run from project root: python scripts/verify.py

Version: 1.0.0
"""

import os
import sys
from datetime import datetime

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import httpx
import pandas as pd

from foodstall.core.config import get_settings

API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:8001")


def count_mislabeled(df: pd.DataFrame, ticket_count: int) -> int:
    """Rows whose display label is not their place in the 1..ticket_count cycle."""
    expected = (df["ticket_number"] - 1) % ticket_count + 1
    return int((df["display_label"] != expected).sum())


def verify_order_log() -> bool:
    """Check order log integrity through the API."""

    print("=" * 60)
    print("🔍 ORDER LOG VERIFICATION REPORT")
    print("=" * 60)
    print(f"⏰ Timestamp: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"🎯 Target: {API_BASE_URL}")
    print("=" * 60)

    try:
        response = httpx.get(f"{API_BASE_URL}/api/orders", timeout=30.0)
        response.raise_for_status()
    except httpx.HTTPError as e:
        print(f"\n❌ Could not load orders: {e}")
        return False

    payload = response.json()
    df = pd.DataFrame(payload["orders"])
    ok = True

    print(f"\n📊 STATISTICS:")
    print(f"   Total Lines: {payload['total']}")
    print(f"   Pending: {payload['pending']}")

    if df.empty:
        print("\n⚠️ Order log is empty. Run: python scripts/simulate.py")
        return True

    # Duplicate tickets
    duplicates = df.duplicated(subset=["item_type", "ticket_number"]).sum()
    if duplicates > 0:
        ok = False
        print(f"\n❌ {duplicates} duplicate (item, ticket) pairs found!")
    else:
        print(f"\n✅ No duplicate ticket numbers")

    # Pending count matches the rows
    pending_rows = int((df["status"] == "pending").sum())
    if pending_rows != payload["pending"]:
        ok = False
        print(f"❌ Pending count mismatch: {pending_rows} rows vs {payload['pending']} reported")
    else:
        print(f"✅ Pending count consistent")

    # Labels follow the physical ticket cycle
    ticket_count = get_settings().ticket_count
    mislabeled = count_mislabeled(df, ticket_count)
    if mislabeled:
        ok = False
        print(f"❌ {mislabeled} display label(s) do not match the 1..{ticket_count} cycle")
    else:
        print(f"✅ Display labels within 1..{ticket_count}")

    print(f"\n🎫 TICKETS PER ITEM:")
    summary = df.groupby("item_type")["ticket_number"].agg(["count", "min", "max"])
    print(summary.to_string())

    print(f"\n📋 RECENT LINES:")
    print("-" * 60)
    cols = ["id", "item_type", "ticket_number", "display_label", "status"]
    print(df[cols].tail(5).to_string(index=False))

    print("\n" + "=" * 60)
    print("✅ VERIFICATION COMPLETE" if ok else "❌ VERIFICATION FAILED")
    print("=" * 60)

    return ok


if __name__ == "__main__":
    sys.exit(0 if verify_order_log() else 1)
