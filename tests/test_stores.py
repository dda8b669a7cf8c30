import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from tg_login.core.config import Settings
from tg_login.core.errors import StoreError
from tg_login.db import MemoryStore, RedisStore, build_store

from fakes import FakeClock


@pytest.mark.asyncio
async def test_memory_store_expires_entries():
    clock = FakeClock()
    store = MemoryStore(clock=clock)

    await store.put("tg:login:a", {"status": "pending"}, 60)
    await store.put("tg:user:1", {"session_string": "s"}, 0)

    clock.advance(59)
    assert await store.get("tg:login:a") == {"status": "pending"}

    clock.advance(1)
    assert await store.get("tg:login:a") is None
    # ttl=0 never expires
    clock.advance(10 ** 6)
    assert await store.get("tg:user:1") == {"session_string": "s"}


@pytest.mark.asyncio
async def test_memory_store_put_refreshes_ttl():
    clock = FakeClock()
    store = MemoryStore(clock=clock)

    await store.put("k", {"v": 1}, 60)
    clock.advance(50)
    await store.put("k", {"v": 2}, 60)
    clock.advance(50)

    assert await store.get("k") == {"v": 2}


@pytest.mark.asyncio
async def test_memory_store_returns_copies():
    store = MemoryStore()
    value = {"status": "pending"}
    await store.put("k", value, 60)

    value["status"] = "success"
    fetched = await store.get("k")
    fetched["status"] = "failed"

    assert await store.get("k") == {"status": "pending"}


@pytest.mark.asyncio
async def test_memory_store_delete_missing_key_is_noop():
    store = MemoryStore()
    await store.delete("missing")
    assert await store.get("missing") is None


class RecordingRedis:
    def __init__(self, fail: bool = False):
        self.data = {}
        self.calls = []
        self.fail = fail

    async def set(self, key, value, ex=None):
        if self.fail:
            raise RedisConnectionError("connection refused")
        self.calls.append(("set", key, ex))
        self.data[key] = value

    async def get(self, key):
        if self.fail:
            raise RedisConnectionError("connection refused")
        return self.data.get(key)

    async def delete(self, key):
        if self.fail:
            raise RedisConnectionError("connection refused")
        self.data.pop(key, None)


@pytest.mark.asyncio
async def test_redis_store_uses_expiry_only_with_ttl():
    client = RecordingRedis()
    store = RedisStore(client)

    await store.put("tg:login:a", {"status": "pending"}, 60)
    await store.put("tg:user:1", {"session_string": "s"}, 0)

    assert client.calls == [("set", "tg:login:a", 60), ("set", "tg:user:1", None)]
    assert await store.get("tg:login:a") == {"status": "pending"}
    await store.delete("tg:login:a")
    assert await store.get("tg:login:a") is None


@pytest.mark.asyncio
async def test_redis_store_wraps_backend_errors():
    store = RedisStore(RecordingRedis(fail=True))

    with pytest.raises(StoreError):
        await store.put("k", {}, 60)
    with pytest.raises(StoreError):
        await store.get("k")
    with pytest.raises(StoreError):
        await store.delete("k")


def test_build_store_selects_backend():
    config = Settings()
    config.STORE_BACKEND = "memory"
    assert isinstance(build_store(config), MemoryStore)

    config.STORE_BACKEND = "redis"
    config.REDIS_URL = "redis://localhost:6379/0"
    assert isinstance(build_store(config), RedisStore)

    config.STORE_BACKEND = "sqlite"
    with pytest.raises(ValueError):
        build_store(config)
