#!/usr/bin/env python3
"""Basic Job - Two replicas, one run per tick, retries and alerts.

================================================================================
WHAT THIS SHOWS
================================================================================

Two ``CronService`` instances share one lock store, the way two replicas of
a deployment share a Redis quorum. Each tick runs on exactly one of them::

    replica-a ──┐
                ├──► lease "fleetcron:flaky-report" ──► one attempt chain
    replica-b ──┘

The job fails twice and then succeeds, so the chain shows the timer-driven
retry path and the console notifier logs one alert per failed attempt.

No Redis needed: the lock store is three in-process nodes.

Run: python examples/basic_job.py
"""

import asyncio

from fleetcron import CronService, JobDefinition, LockStoreConnection, NotifierConfig
from fleetcron.core.logging import configure_logging

calls = {"count": 0}


async def flaky_report() -> None:
    calls["count"] += 1
    if calls["count"] <= 2:
        raise RuntimeError(f"upstream not ready (call {calls['count']})")


async def main() -> None:
    configure_logging(level="INFO", json_format=False)

    print("=" * 60)
    print("fleetcron basic job")
    print("=" * 60)

    store = LockStoreConnection.in_memory(3)
    jobs = [
        JobDefinition(
            id="flaky-report",
            callback=flaky_report,
            max_attempts=3,
            retry_interval_seconds=0.2,
            lease_ttl="30s",
        )
    ]
    alerts = NotifierConfig(transport="console", message_template="{job_id} failed: {error}")

    replica_a, replica_b = CronService(), CronService()
    for service in (replica_a, replica_b):
        await service.initialize(jobs, lock_store=store, notifier=alerts, start=False)

    # === 1. Both replicas tick at the same moment ===
    print("\n[1] Concurrent tick on two replicas")
    a, b = await asyncio.gather(replica_a.trigger("flaky-report"), replica_b.trigger("flaky-report"))
    for name, result in (("replica-a", a), ("replica-b", b)):
        print(f"  {name}: {result.to_dict()}")

    # === 2. Counters ===
    print("\n[2] Stats")
    for name, service in (("replica-a", replica_a), ("replica-b", replica_b)):
        print(f"  {name}: {service.stats().to_dict()}")

    await replica_a.shutdown()
    await replica_b.shutdown()
    await store.close()


if __name__ == "__main__":
    asyncio.run(main())
