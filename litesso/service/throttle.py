from __future__ import annotations

from litesso.logging import get_logger
from litesso.service.errors import TooManyAttemptsError
from litesso.service.tracker import VolatileStore

logger = get_logger(__name__)

LOGIN_FAIL_PREFIX = "auth:login_fail:"


class LoginThrottle:
    """Per (client origin, username) failed-login counter.

    The lockout window is fixed from the first failure: the TTL is attached
    only when the counter is created, later failures do not extend it.
    """

    def __init__(self, cache: VolatileStore, *, max_attempts: int, window_seconds: int) -> None:
        self.cache = cache
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds

    @staticmethod
    def key_for(client_origin: str, username: str) -> str:
        return f"{client_origin}:{username}"

    async def record_failure(self, key: str) -> int:
        count = await self.cache.increment(f"{LOGIN_FAIL_PREFIX}{key}")
        if count == 1:
            # Two concurrent first failures both set the same TTL; harmless
            await self.cache.expire(f"{LOGIN_FAIL_PREFIX}{key}", self.window_seconds)
        logger.info("login_failure_recorded", throttle_key=key, count=count)
        return count

    async def get_failure_count(self, key: str) -> int:
        raw = await self.cache.get(f"{LOGIN_FAIL_PREFIX}{key}")
        if raw is None:
            return 0
        try:
            return int(raw)
        except (TypeError, ValueError):
            logger.warning("login_failure_counter_corrupt", throttle_key=key)
            return self.max_attempts

    async def clear(self, key: str) -> None:
        await self.cache.delete(f"{LOGIN_FAIL_PREFIX}{key}")

    async def ensure_allowed(self, key: str) -> None:
        """Reject before any credential work once the limit is reached."""
        if await self.get_failure_count(key) >= self.max_attempts:
            logger.warning("login_throttled", throttle_key=key)
            raise TooManyAttemptsError()
