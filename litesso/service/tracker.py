from __future__ import annotations

from typing import Optional, Protocol

from litesso.logging import get_logger

logger = get_logger(__name__)

SESSION_PREFIX = "auth:session:"
BLACKLIST_PREFIX = "auth:blacklist:"


class VolatileStore(Protocol):
    """Networked key-value cache with per-key expiry.

    Implementations raise ``CacheUnavailable`` on connectivity failures and
    must make ``get_and_delete`` a single atomic operation.
    """

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None: ...

    async def get(self, key: str) -> Optional[str]: ...

    async def delete(self, key: str) -> int: ...

    async def exists(self, key: str) -> bool: ...

    async def increment(self, key: str) -> int: ...

    async def expire(self, key: str, ttl_seconds: int) -> bool: ...

    async def get_and_delete(self, key: str) -> Optional[str]: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...


def session_key_for(token: str, prefix_length: int) -> str:
    """Session key convention: a fixed-length prefix of the access token string."""
    return token[:prefix_length]


class RevocationTracker:
    """Blacklisted token ids and advisory session records.

    Store failures propagate unchanged; a failed blacklist lookup is never
    reported as "not blacklisted".
    """

    def __init__(self, cache: VolatileStore) -> None:
        self.cache = cache

    async def put_session(self, session_key: str, user_id: str, ttl_seconds: int) -> None:
        await self.cache.set(f"{SESSION_PREFIX}{session_key}", user_id, ttl_seconds)

    async def get_session(self, session_key: str) -> Optional[str]:
        return await self.cache.get(f"{SESSION_PREFIX}{session_key}")

    async def delete_session(self, session_key: str) -> None:
        await self.cache.delete(f"{SESSION_PREFIX}{session_key}")

    async def blacklist(self, token_id: str, ttl_seconds: int) -> bool:
        """Suppress ``token_id`` for ``ttl_seconds``; returns False when skipped."""
        if ttl_seconds <= 0:
            # Token already expired, nothing left to suppress
            return False
        await self.cache.set(f"{BLACKLIST_PREFIX}{token_id}", "1", ttl_seconds)
        logger.info("token_blacklisted", token_id=token_id, ttl_seconds=ttl_seconds)
        return True

    async def claim(self, token_id: str, ttl_seconds: int) -> bool:
        """Blacklist ``token_id`` atomically; True only for the first caller.

        Used for one-time rotation where two concurrent exchanges must not
        both succeed.
        """
        key = f"{BLACKLIST_PREFIX}{token_id}"
        count = await self.cache.increment(key)
        if count == 1:
            await self.cache.expire(key, ttl_seconds)
            logger.info("token_blacklisted", token_id=token_id, ttl_seconds=ttl_seconds)
        return count == 1

    async def is_blacklisted(self, token_id: str) -> bool:
        return await self.cache.exists(f"{BLACKLIST_PREFIX}{token_id}")
