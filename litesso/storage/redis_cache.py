from __future__ import annotations

import contextlib
from typing import AsyncIterator, Optional

import redis.asyncio as aioredis
from redis import Redis
from redis.exceptions import RedisError, ResponseError

from litesso.logging import get_logger
from litesso.storage.errors import CacheUnavailable

logger = get_logger(__name__)

# Atomic GET + DEL for servers that predate the GETDEL command (< 6.2)
_GETDEL_SCRIPT = """
local value = redis.call('GET', KEYS[1])
if value then
    redis.call('DEL', KEYS[1])
end
return value
"""


class RedisCache:
    """Thin Redis wrapper exposing the primitives the auth core relies on.

    Every RedisError (connection refused, timeout, protocol error) is raised as
    ``CacheUnavailable`` so callers cannot mistake an outage for a miss.
    """

    DEFAULT_OPERATION_TIMEOUT = 5.0

    def __init__(self, redis_url: str, *, socket_timeout: float = DEFAULT_OPERATION_TIMEOUT):
        self.redis_url = redis_url
        self.socket_timeout = socket_timeout
        self.client = aioredis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        self._getdel_supported = True

    def verify_connection(self) -> None:
        """Assert Redis connectivity before serving requests."""
        # Short-lived sync client so the async client is not bound to a startup loop
        sync_client = Redis.from_url(
            self.redis_url,
            decode_responses=True,
            socket_timeout=self.socket_timeout,
            socket_connect_timeout=self.socket_timeout,
        )
        try:
            sync_client.ping()
        finally:
            sync_client.close()

    @contextlib.asynccontextmanager
    async def _guard(self, operation: str, key: Optional[str] = None) -> AsyncIterator[None]:
        try:
            yield
        except RedisError as exc:
            logger.error("cache_operation_failed", operation=operation, key=key, error=str(exc))
            raise CacheUnavailable(operation, key) from exc

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        async with self._guard("set", key):
            await self.client.set(key, value, ex=ttl_seconds)

    async def get(self, key: str) -> Optional[str]:
        async with self._guard("get", key):
            return await self.client.get(key)

    async def delete(self, key: str) -> int:
        async with self._guard("delete", key):
            return int(await self.client.delete(key))

    async def exists(self, key: str) -> bool:
        async with self._guard("exists", key):
            return bool(await self.client.exists(key))

    async def increment(self, key: str) -> int:
        async with self._guard("increment", key):
            return int(await self.client.incr(key))

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        async with self._guard("expire", key):
            return bool(await self.client.expire(key, ttl_seconds))

    async def get_and_delete(self, key: str) -> Optional[str]:
        """Atomically read and remove ``key``; concurrent callers see it once."""
        async with self._guard("get_and_delete", key):
            if self._getdel_supported:
                try:
                    return await self.client.getdel(key)
                except ResponseError as exc:
                    if "unknown command" not in str(exc).lower():
                        raise
                    logger.warning("cache_getdel_unsupported_using_script")
                    self._getdel_supported = False
            return await self.client.eval(_GETDEL_SCRIPT, 1, key)

    async def ping(self) -> bool:
        async with self._guard("ping"):
            return bool(await self.client.ping())

    async def close(self) -> None:
        await self.client.aclose()
