"""In-process lease node.

Same contract as the Redis node, kept in a dict. Useful for single-instance
deployments that still want overlap protection between ticks of the same
job, and for tests. Not shared across processes.
"""

from __future__ import annotations

import time


class MemoryLeaseNode:
    """LeaseNode backed by a process-local dict.

    All operations run without awaiting, so they are atomic with respect to
    other tasks on the same event loop.
    """

    def __init__(self, name: str = "memory") -> None:
        self.name = name
        self._entries: dict[str, tuple[str, float]] = {}
        self.closed = False

    def _purge(self, key: str) -> None:
        entry = self._entries.get(key)
        if entry is not None and entry[1] <= time.monotonic():
            del self._entries[key]

    async def try_acquire(self, key: str, token: str, ttl_ms: int) -> bool:
        self._purge(key)
        if key in self._entries:
            return False
        self._entries[key] = (token, time.monotonic() + ttl_ms / 1000.0)
        return True

    async def release(self, key: str, token: str) -> bool:
        self._purge(key)
        entry = self._entries.get(key)
        if entry is None or entry[0] != token:
            return False
        del self._entries[key]
        return True

    async def ping(self) -> bool:
        return not self.closed

    async def close(self) -> None:
        self.closed = True
        self._entries.clear()

    def holder(self, key: str) -> str | None:
        """Token currently holding ``key``, if any."""
        self._purge(key)
        entry = self._entries.get(key)
        return entry[0] if entry else None

    def __repr__(self) -> str:
        return f"MemoryLeaseNode({self.name!r}, keys={len(self._entries)})"
