"""Lease node protocol and the Lease record.

┌──────────────────────────────────────────────────────────────────────────────┐
│  LEASE NODE PROTOCOL                                                          │
│                                                                               │
│  A node is one coordination backend (one Redis server, or the in-memory      │
│  store). The coordinator talks to N nodes and needs a majority of them to     │
│  agree before a lease is considered held.                                     │
│                                                                               │
│   ┌───────────────────┐   try_acquire(key, token, ttl_ms)  ┌─────────────┐   │
│   │ LeaseCoordinator  │ ─────────────────────────────────► │  node 1..N  │   │
│   │                   │   release(key, token)              │             │   │
│   │                   │ ─────────────────────────────────► │             │   │
│   └───────────────────┘                                    └─────────────┘   │
│                                                                               │
│  Node contract:                                                               │
│  - try_acquire: set key=token only if key is absent, with a TTL             │
│  - release: delete key only if it still holds our token                     │
│  - both are atomic on the node; the owner token stops a late holder from     │
│    deleting a lease that expired and was re-acquired by someone else         │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol, runtime_checkable


@runtime_checkable
class LeaseNode(Protocol):
    """One coordination backend node."""

    name: str

    async def try_acquire(self, key: str, token: str, ttl_ms: int) -> bool:
        """Set ``key`` to ``token`` if absent, expiring after ``ttl_ms``."""
        ...

    async def release(self, key: str, token: str) -> bool:
        """Delete ``key`` if it still holds ``token``. Returns True if deleted."""
        ...

    async def ping(self) -> bool:
        """Check the node is reachable."""
        ...

    async def close(self) -> None:
        """Release the node's connection resources."""
        ...


@dataclass
class Lease:
    """A held distributed lease.

    ``validity_seconds`` is the TTL minus acquisition time and drift
    allowance, i.e. how long the holder may safely assume exclusivity.
    """

    key: str
    token: str
    ttl_seconds: float
    validity_seconds: float
    nodes: list[str] = field(default_factory=list)
    acquired_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    _deadline: float = field(default=0.0, repr=False)

    def __post_init__(self) -> None:
        if not self._deadline:
            self._deadline = time.monotonic() + self.validity_seconds

    @property
    def remaining_seconds(self) -> float:
        return max(0.0, self._deadline - time.monotonic())

    @property
    def is_valid(self) -> bool:
        return time.monotonic() < self._deadline
