"""Tests for the lock store connection lifecycle."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from fleetcron.core.errors import LockBackendConnectionError
from fleetcron.locks.connection import LockStoreConnection, LockStoreOptions


def redis_client(ping_ok=True):
    client = MagicMock()
    client.register_script.return_value = AsyncMock(return_value=1)
    if ping_ok:
        client.ping = AsyncMock(return_value=True)
    else:
        client.ping = AsyncMock(side_effect=ConnectionError("connection refused"))
    client.aclose = AsyncMock()
    return client


class TestLockStoreOptions:
    def test_defaults(self):
        options = LockStoreOptions()
        assert options.urls == ["redis://localhost:6379/0"]

    def test_requires_a_url(self):
        with pytest.raises(ValueError):
            LockStoreOptions(urls=[])


class TestLockStoreConnection:
    async def test_connect_pings_every_node(self, recording_logger):
        clients = [redis_client(), redis_client()]
        with patch("fleetcron.locks.redis.aioredis.from_url", side_effect=clients):
            connection = await LockStoreConnection.connect(
                LockStoreOptions(urls=["redis://a/0", "redis://b/0"]), logger=recording_logger
            )
        assert len(connection.nodes) == 2
        for client in clients:
            client.ping.assert_awaited_once()
        assert recording_logger.has("lock_backend_connected")

    async def test_logs_never_carry_passwords(self, recording_logger):
        with patch("fleetcron.locks.redis.aioredis.from_url", side_effect=[redis_client()]):
            await LockStoreConnection.connect(
                LockStoreOptions(urls=["redis://:s3cret@redis-a:6379/0"]), logger=recording_logger
            )
        assert recording_logger.has("redis-a:6379")
        assert not any("s3cret" in message for message in recording_logger.messages())

    async def test_unreachable_node_is_fatal(self, recording_logger):
        clients = [redis_client(), redis_client(ping_ok=False)]
        with patch("fleetcron.locks.redis.aioredis.from_url", side_effect=clients):
            with pytest.raises(LockBackendConnectionError) as exc_info:
                await LockStoreConnection.connect(
                    LockStoreOptions(urls=["redis://a/0", "redis://b/0"]), logger=recording_logger
                )
        assert isinstance(exc_info.value.cause, ConnectionError)
        assert recording_logger.has("lock_backend_connect_failed", level="error")
        for client in clients:
            client.aclose.assert_awaited_once()

    async def test_in_memory(self):
        connection = LockStoreConnection.in_memory(3)
        await connection.verify()
        assert [n.name for n in connection.nodes] == ["memory-0", "memory-1", "memory-2"]

    async def test_close_is_idempotent_and_logs_errors(self, recording_logger):
        node = MagicMock()
        node.name = "flaky"
        node.close = AsyncMock(side_effect=OSError("socket gone"))
        connection = LockStoreConnection([node], logger=recording_logger)
        await connection.close()
        await connection.close()
        assert connection.closed
        node.close.assert_awaited_once()
        assert recording_logger.has("lock_backend_close_failed", level="warn")

    def test_requires_nodes(self):
        with pytest.raises(ValueError):
            LockStoreConnection([])
