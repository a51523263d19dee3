"""Redis lease node.

Acquire is a single ``SET key token NX PX ttl``; release is a Lua
compare-and-delete so only the owner token can remove the key.

Requires: ``redis`` (``redis.asyncio``).

Tags:
    fleetcron, locks, redis, lease
"""

from __future__ import annotations

import redis.asyncio as aioredis
from redis.asyncio.connection import parse_url

from fleetcron.core.logging import get_logger

log = get_logger(__name__)

RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


def node_name(url: str) -> str:
    """Log-safe node name: scheme, host, port and db, never credentials."""
    scheme = url.split("://", 1)[0]
    parts = parse_url(url)
    if "path" in parts:
        return f"{scheme}://{parts['path']}"
    host = parts.get("host", "localhost")
    port = parts.get("port", 6379)
    return f"{scheme}://{host}:{port}/{parts.get('db', 0)}"


class RedisLeaseNode:
    """LeaseNode backed by one Redis server.

    Example::

        node = RedisLeaseNode.from_url("redis://localhost:6379/1")
        await node.ping()
        if await node.try_acquire("fleetcron:lease:report", token, 60_000):
            ...
    """

    def __init__(self, client: aioredis.Redis, *, name: str | None = None) -> None:
        self._client = client
        self.name = name or "redis"
        self._release = client.register_script(RELEASE_SCRIPT)

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        socket_timeout: float | None = 5.0,
        connect_timeout: float | None = 5.0,
    ) -> RedisLeaseNode:
        client = aioredis.from_url(
            url,
            socket_timeout=socket_timeout,
            socket_connect_timeout=connect_timeout,
        )
        return cls(client, name=node_name(url))

    @property
    def client(self) -> aioredis.Redis:
        return self._client

    async def try_acquire(self, key: str, token: str, ttl_ms: int) -> bool:
        result = await self._client.set(key, token, nx=True, px=max(1, int(ttl_ms)))
        return bool(result)

    async def release(self, key: str, token: str) -> bool:
        deleted = await self._release(keys=[key], args=[token])
        return bool(deleted)

    async def ping(self) -> bool:
        return bool(await self._client.ping())

    async def close(self) -> None:
        await self._client.aclose()
        log.debug("redis_node_closed", node=self.name)

    def __repr__(self) -> str:
        return f"RedisLeaseNode({self.name!r})"
