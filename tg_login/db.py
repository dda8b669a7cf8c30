import json
import logging
import time
from typing import Callable, Dict, Optional, Protocol, Tuple

import redis.asyncio as redis
from redis.exceptions import RedisError

from tg_login.core.config import Settings, settings
from tg_login.core.errors import StoreError

logger = logging.getLogger(__name__)


class SessionStore(Protocol):
    """Key-value store with per-entry expiration. ttl=0 means no expiration."""

    async def put(self, key: str, value: dict, ttl: int) -> None: ...

    async def get(self, key: str) -> Optional[dict]: ...

    async def delete(self, key: str) -> None: ...


class MemoryStore:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        # key -> (value, expires_at or None)
        self._entries: Dict[str, Tuple[dict, Optional[float]]] = {}
        self._clock = clock

    def _now(self) -> float:
        return self._clock()

    def _cleanup(self) -> None:
        now = self._now()
        expired = [k for k, (_, exp) in list(self._entries.items()) if exp is not None and exp <= now]
        for k in expired:
            self._entries.pop(k, None)

    async def put(self, key: str, value: dict, ttl: int) -> None:
        expires_at = self._now() + ttl if ttl > 0 else None
        # Copy so callers can't mutate stored state behind our back
        self._entries[key] = (json.loads(json.dumps(value)), expires_at)

    async def get(self, key: str) -> Optional[dict]:
        self._cleanup()
        entry = self._entries.get(key)
        if entry is None:
            return None
        return json.loads(json.dumps(entry[0]))

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def keys(self) -> list[str]:
        self._cleanup()
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()


class RedisStore:
    def __init__(self, client: redis.Redis):
        self._redis = client

    @classmethod
    def from_url(cls, url: str) -> "RedisStore":
        return cls(redis.Redis.from_url(url, decode_responses=True))

    async def put(self, key: str, value: dict, ttl: int) -> None:
        payload = json.dumps(value)
        try:
            if ttl > 0:
                await self._redis.set(key, payload, ex=ttl)
            else:
                await self._redis.set(key, payload)
        except RedisError as e:
            logger.error(f"Redis put failed for {key}: {e}")
            raise StoreError(str(e)) from e

    async def get(self, key: str) -> Optional[dict]:
        try:
            data = await self._redis.get(key)
        except RedisError as e:
            logger.error(f"Redis get failed for {key}: {e}")
            raise StoreError(str(e)) from e
        if data is None:
            return None
        return json.loads(data)

    async def delete(self, key: str) -> None:
        try:
            await self._redis.delete(key)
        except RedisError as e:
            logger.error(f"Redis delete failed for {key}: {e}")
            raise StoreError(str(e)) from e

    async def close(self) -> None:
        await self._redis.aclose()


def build_store(config: Settings = settings) -> SessionStore:
    backend = config.STORE_BACKEND.lower()
    if backend == "redis":
        logger.info(f"Using Redis session store at {config.REDIS_URL}")
        return RedisStore.from_url(config.REDIS_URL)
    if backend == "memory":
        return MemoryStore()
    raise ValueError(f"Unknown STORE_BACKEND: {config.STORE_BACKEND}")


store = build_store()
