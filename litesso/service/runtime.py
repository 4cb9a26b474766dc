from __future__ import annotations

import threading
from typing import Optional, Union
from urllib.parse import urlparse, urlunparse

from litesso.config import Settings
from litesso.logging import get_logger
from litesso.service.auth import AuthService
from litesso.service.sso import SSOService
from litesso.storage.memory import MemoryStore
from litesso.storage.memory_cache import MemoryCache
from litesso.storage.postgres import PostgresStore
from litesso.storage.redis_cache import RedisCache

logger = get_logger(__name__)


def _mask_url_password(url: Optional[str]) -> Optional[str]:
    """Replace the password in a connection URL with ``***`` for logging."""
    if not url:
        return url
    parsed = urlparse(url)
    if not parsed.password:
        return url
    netloc = parsed.hostname or ""
    if parsed.port:
        netloc = f"{netloc}:{parsed.port}"
    netloc = f"{parsed.username or ''}:***@{netloc}"
    return urlunparse(parsed._replace(netloc=netloc))


class Runtime:
    """Holds the process-wide stores and services for the FastAPI app."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        logger.info(
            "runtime_init_started",
            use_memory_store=self.settings.use_memory_store,
            use_memory_cache=self.settings.use_memory_cache,
            test_mode=self.settings.test_mode,
        )

        self.store: Union[MemoryStore, PostgresStore]
        if self.settings.use_memory_store:
            self.store = MemoryStore()
        else:
            try:
                self.store = PostgresStore(self.settings.database_url)
            except Exception as exc:
                logger.error(
                    "runtime_store_init_failed",
                    database_url=_mask_url_password(self.settings.database_url),
                    error_type=type(exc).__name__,
                    error=str(exc),
                )
                raise

        self.cache: Union[MemoryCache, RedisCache] = self._build_cache()
        self.auth = AuthService(self.store, self.cache, self.settings)
        self.sso = SSOService(self.store, self.cache, self.settings, self.auth)
        logger.info(
            "runtime_init_complete",
            store_type=type(self.store).__name__,
            cache_type=type(self.cache).__name__,
        )

    def _build_cache(self) -> Union[MemoryCache, RedisCache]:
        if self.settings.use_memory_cache:
            return MemoryCache()
        cache = RedisCache(
            self.settings.redis_url, socket_timeout=self.settings.redis_socket_timeout
        )
        try:
            cache.verify_connection()
        except Exception as exc:
            if not self.settings.test_mode:
                raise RuntimeError(
                    "Redis is required for sessions, revocation, login throttling and SSO "
                    "tickets; start Redis or set USE_MEMORY_CACHE=true for a single process."
                ) from exc
            logger.warning(
                "redis_unavailable_using_memory_cache",
                redis_url=_mask_url_password(self.settings.redis_url),
                error=str(exc),
            )
            return MemoryCache()
        return cache

    async def close(self) -> None:
        await self.cache.close()
        if isinstance(self.store, PostgresStore):
            self.store.close()


runtime: Runtime | None = None
_runtime_lock = threading.Lock()
_settings: Settings | None = None
_settings_lock = threading.Lock()


def get_settings() -> Settings:
    """Process-wide settings, read from the environment on first use."""
    global _settings
    if _settings is None:
        with _settings_lock:
            if _settings is None:
                _settings = Settings.from_env()
    return _settings


def get_runtime() -> Runtime:
    global runtime
    if runtime is None:
        with _runtime_lock:
            if runtime is None:
                runtime = Runtime()
    return runtime


def reset_runtime_for_tests(settings: Optional[Settings] = None) -> Runtime:
    """Rebuild the runtime singleton between tests; refused outside TEST_MODE."""
    global runtime, _settings

    settings = settings or Settings.from_env()
    if not settings.test_mode:
        raise RuntimeError("runtime reset is only allowed in TEST_MODE")
    with _settings_lock:
        _settings = settings
    with _runtime_lock:
        runtime = Runtime(settings)
        return runtime
