"""Distributed leases: node protocol, Redis and in-memory nodes, quorum coordinator."""

from fleetcron.locks.connection import LockStoreConnection, LockStoreOptions
from fleetcron.locks.coordinator import DEFAULT_NAMESPACE, LeaseCoordinator
from fleetcron.locks.memory import MemoryLeaseNode
from fleetcron.locks.protocol import Lease, LeaseNode
from fleetcron.locks.redis import RedisLeaseNode

__all__ = [
    "DEFAULT_NAMESPACE",
    "Lease",
    "LeaseCoordinator",
    "LeaseNode",
    "LockStoreConnection",
    "LockStoreOptions",
    "MemoryLeaseNode",
    "RedisLeaseNode",
]
