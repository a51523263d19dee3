"""Tests for quorum lease acquisition and scoped release."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from fleetcron.core.errors import LeaseAcquisitionError
from fleetcron.jobs.models import LeaseOptions
from fleetcron.locks.coordinator import DEFAULT_NAMESPACE, LeaseCoordinator
from fleetcron.locks.memory import MemoryLeaseNode


@pytest.fixture
def nodes():
    return [MemoryLeaseNode(f"node-{i}") for i in range(3)]


@pytest.fixture
def coordinator(nodes, recording_logger):
    return LeaseCoordinator(nodes, logger=recording_logger)


def broken_node(name="broken"):
    node = MagicMock()
    node.name = name
    node.try_acquire = AsyncMock(side_effect=ConnectionError("reset"))
    node.release = AsyncMock(side_effect=ConnectionError("reset"))
    return node


class TestQuorum:
    def test_quorum_sizes(self):
        assert LeaseCoordinator([MemoryLeaseNode()]).quorum == 1
        assert LeaseCoordinator([MemoryLeaseNode() for _ in range(3)]).quorum == 2
        assert LeaseCoordinator([MemoryLeaseNode() for _ in range(5)]).quorum == 3

    def test_key_for(self, coordinator):
        assert coordinator.namespace == DEFAULT_NAMESPACE
        assert coordinator.key_for("report") == "fleetcron:lease:report"

    def test_requires_nodes(self):
        with pytest.raises(ValueError):
            LeaseCoordinator([])


class TestAcquire:
    async def test_acquire_writes_token_everywhere(self, coordinator, nodes):
        lease = await coordinator.acquire("k", ttl_seconds=5)
        assert lease.nodes == ["node-0", "node-1", "node-2"]
        assert all(node.holder("k") == lease.token for node in nodes)
        assert 0 < lease.validity_seconds < 5
        assert lease.is_valid

    async def test_second_acquire_fails_fast(self, coordinator):
        await coordinator.acquire("k", ttl_seconds=5)
        with pytest.raises(LeaseAcquisitionError) as exc_info:
            await coordinator.acquire("k", ttl_seconds=5)
        assert exc_info.value.key == "k"

    async def test_minority_failure_tolerated(self, recording_logger):
        nodes = [MemoryLeaseNode("a"), MemoryLeaseNode("b"), broken_node()]
        coordinator = LeaseCoordinator(nodes, logger=recording_logger)
        lease = await coordinator.acquire("k", ttl_seconds=5)
        assert lease.nodes == ["a", "b"]
        assert recording_logger.has("lease_node_error", level="warn")

    async def test_partial_holds_released_on_failure(self, coordinator, nodes):
        await nodes[1].try_acquire("k", "someone-else", 5000)
        await nodes[2].try_acquire("k", "someone-else", 5000)
        with pytest.raises(LeaseAcquisitionError):
            await coordinator.acquire("k", ttl_seconds=5)
        assert nodes[0].holder("k") is None
        assert nodes[1].holder("k") == "someone-else"

    async def test_ttl_below_drift_never_valid(self, coordinator, nodes):
        with pytest.raises(LeaseAcquisitionError):
            await coordinator.acquire("k", ttl_seconds=0.001)
        assert all(node.holder("k") is None for node in nodes)

    async def test_retries_up_to_acquire_attempts(self):
        node = MagicMock()
        node.name = "n"
        node.try_acquire = AsyncMock(side_effect=[False, False, True])
        node.release = AsyncMock(return_value=True)
        coordinator = LeaseCoordinator([node])
        options = LeaseOptions(acquire_attempts=3, retry_delay_seconds=0.01, retry_jitter_seconds=0)
        lease = await coordinator.acquire("k", ttl_seconds=5, options=options)
        assert lease.key == "k"
        assert node.try_acquire.await_count == 3

    async def test_default_is_single_round(self):
        node = MagicMock()
        node.name = "n"
        node.try_acquire = AsyncMock(return_value=False)
        node.release = AsyncMock(return_value=False)
        coordinator = LeaseCoordinator([node])
        with pytest.raises(LeaseAcquisitionError):
            await coordinator.acquire("k", ttl_seconds=5)
        assert node.try_acquire.await_count == 1


class TestRelease:
    async def test_release_frees_key(self, coordinator, nodes):
        lease = await coordinator.acquire("k", ttl_seconds=5)
        assert await coordinator.release(lease) is True
        assert all(node.holder("k") is None for node in nodes)

    async def test_release_never_touches_other_owner(self, coordinator, nodes):
        lease = await coordinator.acquire("k", ttl_seconds=0.05)
        await asyncio.sleep(0.08)
        other = await coordinator.acquire("k", ttl_seconds=5)
        assert await coordinator.release(lease) is False
        assert all(node.holder("k") == other.token for node in nodes)

    async def test_release_errors_are_logged(self, recording_logger):
        good = MemoryLeaseNode("good")
        flaky = MagicMock()
        flaky.name = "flaky"
        flaky.try_acquire = AsyncMock(return_value=True)
        flaky.release = AsyncMock(side_effect=ConnectionError("reset"))
        coordinator = LeaseCoordinator([good, flaky], logger=recording_logger)
        lease = await coordinator.acquire("k", ttl_seconds=5)
        assert await coordinator.release(lease) is True
        assert recording_logger.has("op=release")


class TestWithLease:
    async def test_body_runs_and_lease_released(self, coordinator, nodes):
        seen = []

        async def body(lease):
            seen.append(nodes[0].holder("k") == lease.token)
            return "result"

        assert await coordinator.with_lease("k", 5, None, body) == "result"
        assert seen == [True]
        assert nodes[0].holder("k") is None

    async def test_body_error_propagates_after_release(self, coordinator, nodes):
        async def body(lease):
            raise ValueError("body failed")

        with pytest.raises(ValueError, match="body failed"):
            await coordinator.with_lease("k", 5, None, body)
        assert all(node.holder("k") is None for node in nodes)

    async def test_release_error_never_masks_body_error(self):
        node = MagicMock()
        node.name = "n"
        node.try_acquire = AsyncMock(return_value=True)
        node.release = AsyncMock(side_effect=ConnectionError("reset"))
        coordinator = LeaseCoordinator([node])

        async def body(lease):
            raise ValueError("body failed")

        with pytest.raises(ValueError, match="body failed"):
            await coordinator.with_lease("k", 5, None, body)

    async def test_body_not_run_when_lease_unavailable(self, coordinator):
        await coordinator.acquire("k", ttl_seconds=5)
        body = AsyncMock()
        with pytest.raises(LeaseAcquisitionError):
            await coordinator.with_lease("k", 5, None, body)
        body.assert_not_awaited()

    async def test_overrun_is_logged(self, coordinator, recording_logger):
        async with coordinator.hold("k", ttl_seconds=0.05):
            await asyncio.sleep(0.08)
        assert recording_logger.has("lease_outlived", level="warn")
        assert recording_logger.has("lease_already_expired", level="warn")
