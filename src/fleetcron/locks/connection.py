"""Lock store connection - the process-wide handle to the lease backend.

Manifesto:
    One connection per process, established once, verified before any
    job is scheduled, shared by every job's lease coordinator. A backend
    that cannot be reached at startup is a deployment error and stops the
    process; errors after that point are per-operation and recovered by
    the caller.

Lifecycle::

    LockStoreConnection.connect(options)     # PING every node, fatal on failure
          │
          ▼
    connection.nodes  ──► LeaseCoordinator(nodes)   (shared by all jobs)
          │
          ▼
    await connection.close()                 # on service shutdown

Tags:
    fleetcron, locks, connection, redis, lifecycle
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

from pydantic import BaseModel, Field

from fleetcron.core.errors import LockBackendConnectionError
from fleetcron.core.logging import JobLogger, resolve_logger
from fleetcron.locks.memory import MemoryLeaseNode
from fleetcron.locks.protocol import LeaseNode
from fleetcron.locks.redis import RedisLeaseNode


class LockStoreOptions(BaseModel):
    """Connection options for the Redis lock backend.

    One URL gives a single-node lease; three or five independent nodes
    give a quorum lease that survives the loss of a minority.
    """

    urls: list[str] = Field(default_factory=lambda: ["redis://localhost:6379/0"], min_length=1)
    socket_timeout: float | None = 5.0
    connect_timeout: float | None = 5.0


class LockStoreConnection:
    """Verified, shared set of lease nodes."""

    def __init__(self, nodes: Sequence[LeaseNode], *, logger: JobLogger | None = None) -> None:
        if not nodes:
            raise ValueError("LockStoreConnection needs at least one node")
        self._nodes = list(nodes)
        self._log = resolve_logger(logger)
        self._closed = False

    @classmethod
    async def connect(
        cls,
        options: LockStoreOptions,
        *,
        logger: JobLogger | None = None,
    ) -> LockStoreConnection:
        """Create Redis nodes for ``options`` and PING each one.

        Raises:
            LockBackendConnectionError: If any node fails its first PING
        """
        nodes = [
            RedisLeaseNode.from_url(
                url,
                socket_timeout=options.socket_timeout,
                connect_timeout=options.connect_timeout,
            )
            for url in options.urls
        ]
        connection = cls(nodes, logger=logger)
        await connection.verify()
        return connection

    @classmethod
    def in_memory(cls, count: int = 1, *, logger: JobLogger | None = None) -> LockStoreConnection:
        """Connection over ``count`` process-local nodes."""
        return cls([MemoryLeaseNode(f"memory-{i}") for i in range(count)], logger=logger)

    @property
    def nodes(self) -> list[LeaseNode]:
        return list(self._nodes)

    @property
    def closed(self) -> bool:
        return self._closed

    async def verify(self) -> None:
        """PING every node; close everything and raise if one fails."""
        results = await asyncio.gather(
            *(node.ping() for node in self._nodes), return_exceptions=True
        )
        for node, result in zip(self._nodes, results, strict=True):
            if isinstance(result, Exception) or not result:
                cause = result if isinstance(result, Exception) else None
                self._log.error(
                    "lock_backend_connect_failed",
                    node=node.name,
                    error=str(result),
                )
                await self.close()
                raise LockBackendConnectionError(
                    f"Lock backend node {node.name} is unreachable",
                    cause=cause,
                )
        self._log.info("lock_backend_connected", nodes=[node.name for node in self._nodes])

    async def close(self) -> None:
        """Close every node; close errors are logged, not raised."""
        if self._closed:
            return
        self._closed = True
        for node in self._nodes:
            try:
                await node.close()
            except Exception as e:
                self._log.warn("lock_backend_close_failed", node=node.name, error=str(e))
