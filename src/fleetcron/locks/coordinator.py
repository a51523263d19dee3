"""Lease lock coordinator - quorum leases around a job body.

Manifesto:
    Every replica's timer fires for every tick. Exactly one of them should
    run the body. The coordinator writes a uniquely-owned, TTL-bounded
    reservation to a majority of lease nodes; whoever gets the majority runs
    the tick, everyone else skips it. Missing one tick of a periodic job is
    cheaper than queueing work and stampeding the fleet with retries, so the
    default is a single acquisition round.

Lease Flow::

    acquire(key, ttl)
      │
      ├─ token = uuid4()
      ├─ gather(node.try_acquire(key, token, ttl_ms) for node in nodes)
      ├─ validity = ttl - elapsed - drift
      │
      ├─ votes >= quorum and validity > 0 ──► Lease(key, token, validity)
      └─ otherwise ──► release partial holds, wait (delay + jitter), retry
                       ... up to acquire_attempts rounds
                       ──► LeaseAcquisitionError

    with_lease(key, ttl, options, body)
      acquire ──► await body(lease) ──► release (always)

Caveat:
    The lease is not extended while the body runs. A body that outlives
    the TTL loses exclusivity; a second instance may acquire the key and
    run concurrently. Size ``lease_ttl`` for the whole retry chain.

Guardrails:
    ❌ Releasing by key alone
    ✅ Compare-and-delete on the owner token
    ❌ Letting a release error mask the body's own error
    ✅ Body errors propagate; release errors are logged

Tags:
    fleetcron, locks, redlock, quorum, lease, distributed-locks
"""

from __future__ import annotations

import asyncio
import random
import time
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from contextlib import asynccontextmanager
from typing import TypeVar
from uuid import uuid4

from fleetcron.core.durations import format_duration
from fleetcron.core.errors import LeaseAcquisitionError
from fleetcron.core.logging import JobLogger, resolve_logger
from fleetcron.jobs.models import LeaseOptions
from fleetcron.locks.protocol import Lease, LeaseNode

T = TypeVar("T")

DEFAULT_NAMESPACE = "fleetcron:lease:"

# Fixed allowance added to the proportional drift, in seconds
_DRIFT_CONSTANT_SECONDS = 0.002


class LeaseCoordinator:
    """Acquires and releases quorum leases over a set of nodes.

    Example:
        >>> coordinator = LeaseCoordinator(connection.nodes)
        >>> async with coordinator.hold("fleetcron:lease:report", ttl_seconds=60) as lease:
        ...     await build_report()
    """

    def __init__(
        self,
        nodes: Sequence[LeaseNode],
        *,
        namespace: str = DEFAULT_NAMESPACE,
        logger: JobLogger | None = None,
    ) -> None:
        if not nodes:
            raise ValueError("LeaseCoordinator needs at least one node")
        self._nodes = list(nodes)
        self.namespace = namespace
        self._log = resolve_logger(logger)

    @property
    def quorum(self) -> int:
        return len(self._nodes) // 2 + 1

    def key_for(self, job_id: str) -> str:
        """Lease key for a job: namespace + job id."""
        return f"{self.namespace}{job_id}"

    # === Acquire / release ===

    async def _try_node(self, node: LeaseNode, key: str, token: str, ttl_ms: int) -> bool:
        try:
            return await node.try_acquire(key, token, ttl_ms)
        except Exception as e:
            self._log.warn("lease_node_error", node=node.name, key=key, op="acquire", error=str(e))
            return False

    async def _release_node(self, node: LeaseNode, key: str, token: str) -> bool:
        try:
            return await node.release(key, token)
        except Exception as e:
            self._log.warn("lease_node_error", node=node.name, key=key, op="release", error=str(e))
            return False

    async def _acquire_round(self, key: str, ttl_seconds: float, options: LeaseOptions) -> Lease | None:
        token = uuid4().hex
        ttl_ms = max(1, int(ttl_seconds * 1000))
        started = time.monotonic()

        votes = await asyncio.gather(
            *(self._try_node(node, key, token, ttl_ms) for node in self._nodes)
        )
        won = [node.name for node, vote in zip(self._nodes, votes, strict=True) if vote]

        elapsed = time.monotonic() - started
        drift = ttl_seconds * options.drift_factor + _DRIFT_CONSTANT_SECONDS
        validity = ttl_seconds - elapsed - drift

        if len(won) >= self.quorum and validity > 0:
            return Lease(
                key=key,
                token=token,
                ttl_seconds=ttl_seconds,
                validity_seconds=validity,
                nodes=won,
            )

        if won:
            await asyncio.gather(*(self._release_node(node, key, token) for node in self._nodes))
        return None

    async def acquire(
        self,
        key: str,
        ttl_seconds: float,
        options: LeaseOptions | None = None,
    ) -> Lease:
        """Acquire ``key`` on a quorum of nodes.

        Raises:
            LeaseAcquisitionError: If no round reached quorum
        """
        options = options or LeaseOptions()
        for round_number in range(1, options.acquire_attempts + 1):
            lease = await self._acquire_round(key, ttl_seconds, options)
            if lease is not None:
                self._log.debug(
                    "lease_acquired",
                    key=key,
                    ttl=format_duration(ttl_seconds),
                    validity=format_duration(lease.validity_seconds),
                    round=round_number,
                )
                return lease
            if round_number < options.acquire_attempts:
                await asyncio.sleep(
                    options.retry_delay_seconds + random.uniform(0, options.retry_jitter_seconds)
                )

        raise LeaseAcquisitionError(
            key,
            f"Unable to acquire lease {key!r} on {self.quorum}/{len(self._nodes)} nodes "
            f"after {options.acquire_attempts} attempt(s)",
        )

    async def release(self, lease: Lease) -> bool:
        """Release ``lease`` on every node. Never raises.

        Returns:
            True if at least one node still held our token
        """
        results = await asyncio.gather(
            *(self._release_node(node, lease.key, lease.token) for node in self._nodes)
        )
        released = any(results)
        if released:
            self._log.debug("lease_released", key=lease.key)
        else:
            self._log.warn("lease_already_expired", key=lease.key)
        return released

    # === Scoped usage ===

    @asynccontextmanager
    async def hold(
        self,
        key: str,
        ttl_seconds: float,
        options: LeaseOptions | None = None,
    ) -> AsyncIterator[Lease]:
        """Hold ``key`` for the duration of the ``async with`` block."""
        lease = await self.acquire(key, ttl_seconds, options)
        try:
            yield lease
        finally:
            if not lease.is_valid:
                self._log.warn(
                    "lease_outlived",
                    key=key,
                    ttl=format_duration(ttl_seconds),
                )
            await self.release(lease)

    async def with_lease(
        self,
        key: str,
        ttl_seconds: float,
        options: LeaseOptions | None,
        body: Callable[[Lease], Awaitable[T]],
    ) -> T:
        """Run ``body`` while holding ``key``.

        Raises:
            LeaseAcquisitionError: If the lease is unavailable (body not run)
            Exception: Whatever ``body`` raised, after the lease is released
        """
        async with self.hold(key, ttl_seconds, options) as lease:
            return await body(lease)
