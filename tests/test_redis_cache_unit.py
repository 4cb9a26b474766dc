import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError, TimeoutError as RedisTimeoutError

from litesso.storage.errors import CacheUnavailable
from litesso.storage.redis_cache import _GETDEL_SCRIPT, RedisCache


class FakeRedis:
    def __init__(self, *, getdel_error=None, error=None):
        self.data = {}
        self.calls = []
        self.getdel_error = getdel_error
        self.error = error

    def _maybe_fail(self):
        if self.error is not None:
            raise self.error

    async def set(self, key, value, ex=None):
        self._maybe_fail()
        self.calls.append(("set", key, value, ex))
        self.data[key] = value

    async def get(self, key):
        self._maybe_fail()
        return self.data.get(key)

    async def exists(self, key):
        self._maybe_fail()
        return int(key in self.data)

    async def getdel(self, key):
        self._maybe_fail()
        self.calls.append(("getdel", key))
        if self.getdel_error is not None:
            raise self.getdel_error
        return self.data.pop(key, None)

    async def eval(self, script, numkeys, key):
        self.calls.append(("eval", key))
        assert script == _GETDEL_SCRIPT
        return self.data.pop(key, None)


def _cache(client) -> RedisCache:
    cache: RedisCache = RedisCache.__new__(RedisCache)
    cache.redis_url = "redis://fake"
    cache.socket_timeout = 1.0
    cache.client = client
    cache._getdel_supported = True
    return cache


async def test_set_passes_ttl():
    client = FakeRedis()
    cache = _cache(client)

    await cache.set("k", "v", 30)

    assert client.calls == [("set", "k", "v", 30)]
    assert await cache.get("k") == "v"
    assert await cache.exists("k") is True


async def test_get_and_delete_uses_getdel():
    client = FakeRedis()
    client.data["sso:ticket:ST-1"] = "payload"
    cache = _cache(client)

    assert await cache.get_and_delete("sso:ticket:ST-1") == "payload"
    assert await cache.get_and_delete("sso:ticket:ST-1") is None
    assert ("eval", "sso:ticket:ST-1") not in client.calls


async def test_get_and_delete_falls_back_to_script_on_old_servers():
    client = FakeRedis(getdel_error=ResponseError("ERR unknown command 'GETDEL'"))
    client.data["k"] = "v"
    cache = _cache(client)

    assert await cache.get_and_delete("k") == "v"
    assert "k" not in client.data
    assert cache._getdel_supported is False

    # Later calls go straight to the script
    client.data["k2"] = "v2"
    assert await cache.get_and_delete("k2") == "v2"
    assert client.calls.count(("getdel", "k2")) == 0


async def test_other_response_errors_surface_as_unavailable():
    client = FakeRedis(getdel_error=ResponseError("WRONGTYPE Operation against a key"))
    cache = _cache(client)

    with pytest.raises(CacheUnavailable):
        await cache.get_and_delete("k")
    assert cache._getdel_supported is True


@pytest.mark.parametrize(
    "error", [RedisConnectionError("refused"), RedisTimeoutError("timed out")]
)
async def test_outage_is_never_a_miss(error):
    cache = _cache(FakeRedis(error=error))

    with pytest.raises(CacheUnavailable) as exc_info:
        await cache.exists("auth:blacklist:jti")
    assert exc_info.value.operation == "exists"
    assert exc_info.value.key == "auth:blacklist:jti"
    assert exc_info.value.__cause__ is error

    with pytest.raises(CacheUnavailable):
        await cache.get("auth:login_fail:x")
