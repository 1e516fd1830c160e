#!/usr/bin/env python3
"""
Consumer group demo for streamlog.

Two workers share one group on an "orders" log. Worker c1 "crashes" after
reading, and c2 recovers its pending entries with auto_claim.
"""

import asyncio

from streamlog import Broker, NewEntries


async def worker(broker, name, ack=True):
    """Read until the log is quiet, acknowledging when asked to."""
    handled = []
    while True:
        entries = await broker.read_group(
            "orders", "workers", name, NewEntries(count=2, block_ms=200)
        )
        if not entries:
            return handled
        for entry in entries:
            handled.append(str(entry.id))
            if ack:
                await broker.ack("orders", "workers", entry.id)


async def main():
    print("=" * 60)
    print("streamlog - Consumer Group Demo")
    print("=" * 60)

    broker = Broker("demo")
    await broker.create_group("orders", "workers", "$", mkstream=True)

    print("\n[1] Starting workers c1 (never acks) and c2...")
    workers = asyncio.gather(
        worker(broker, "c1", ack=False),
        worker(broker, "c2"),
    )

    print("\n[2] Appending 6 orders...")
    for i in range(6):
        entry_id = await broker.append("orders", {"item": f"sku-{i}", "qty": str(i + 1)})
        print(f"  appended {entry_id}")
        await asyncio.sleep(0.01)

    c1_ids, c2_ids = await workers
    print(f"\n[3] c1 handled {c1_ids} without acking")
    print(f"    c2 handled and acked {c2_ids}")

    overview = await broker.pending_overview("orders", "workers")
    print(f"\n[4] Pending: {overview.count} {overview.consumers}")

    print("\n[5] c2 reclaims c1's stale work...")
    result = await broker.auto_claim("orders", "workers", "c2", min_idle_ms=0)
    for entry in result.entries:
        print(f"  claimed {entry.id} {dict(entry.fields)}")
        await broker.ack("orders", "workers", entry.id)

    overview = await broker.pending_overview("orders", "workers")
    print(f"\n[6] Pending after recovery: {overview.count}")
    print(f"    Stats: {broker.get_stats()}")


if __name__ == "__main__":
    asyncio.run(main())
