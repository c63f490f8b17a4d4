"""Key-value storage backends.

Two logical mounts are used by the storefront:
  kv    - tenant identity/config mappings, rate-limit windows, webhook ledger
  cache - rendered responses that must be dropped when config changes

Values are JSON-encoded. Backends:
  MemoryStorage - process-local dict (development, tests)
  RedisStorage  - redis.asyncio; shared by every instance behind the load balancer
"""

import json
from abc import ABC, abstractmethod
from typing import Any, Optional

import redis.asyncio as aioredis
import structlog

logger = structlog.get_logger(__name__)


class KeyValueStorage(ABC):
    """Async key-value store interface."""

    @abstractmethod
    async def get_item(self, key: str) -> Any:
        """Return the stored value, or None if the key is absent."""

    @abstractmethod
    async def set_item(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Store a JSON-serializable value, optionally expiring after `ttl` seconds."""

    @abstractmethod
    async def remove_item(self, key: str) -> None:
        """Remove a key. Removing an absent key is a no-op."""

    @abstractmethod
    async def get_keys(self, prefix: str = "") -> list[str]:
        """List keys starting with `prefix`."""

    async def has_item(self, key: str) -> bool:
        return await self.get_item(key) is not None

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class MemoryStorage(KeyValueStorage):
    """Process-local storage.

    Values are round-tripped through JSON so callers never hold a reference
    to the stored object. TTLs are not enforced.
    """

    def __init__(self):
        self._data: dict[str, str] = {}

    async def get_item(self, key: str) -> Any:
        raw = self._data.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    async def set_item(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        self._data[key] = json.dumps(value)

    async def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    async def get_keys(self, prefix: str = "") -> list[str]:
        return [k for k in self._data if k.startswith(prefix)]

    def clear(self) -> None:
        self._data.clear()


class RedisStorage(KeyValueStorage):
    """Redis-backed storage mounted under a key base (e.g. "kv", "cache")."""

    def __init__(self, client: aioredis.Redis, base: str):
        self._client = client
        self._base = base

    def _key(self, key: str) -> str:
        return f"{self._base}:{key}"

    async def get_item(self, key: str) -> Any:
        raw = await self._client.get(self._key(key))
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return json.loads(raw)

    async def set_item(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        await self._client.set(self._key(key), json.dumps(value), ex=ttl)

    async def remove_item(self, key: str) -> None:
        await self._client.delete(self._key(key))

    async def get_keys(self, prefix: str = "") -> list[str]:
        strip = len(self._base) + 1
        keys = []
        async for raw in self._client.scan_iter(match=f"{self._key(prefix)}*"):
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8")
            keys.append(raw[strip:])
        return keys

    async def ping(self) -> bool:
        return bool(await self._client.ping())

    async def close(self) -> None:
        await self._client.aclose()


def create_redis_client(redis_url: str, socket_timeout: float) -> aioredis.Redis:
    """Create a Redis client. Connections are opened lazily on first command."""
    return aioredis.from_url(
        redis_url,
        decode_responses=True,
        socket_timeout=socket_timeout,
        socket_connect_timeout=socket_timeout,
    )


def create_storages(settings) -> tuple[KeyValueStorage, KeyValueStorage]:
    """Build the (kv, cache) storage pair for the configured driver.

    Both Redis mounts share one client; the memory driver keeps two
    independent dicts.
    """
    driver = settings.STORAGE_DRIVER.lower()
    if driver == "redis":
        client = create_redis_client(settings.REDIS_URL, settings.REDIS_SOCKET_TIMEOUT)
        logger.info("Storage driver selected", driver="redis")
        return RedisStorage(client, "kv"), RedisStorage(client, "cache")
    if driver == "memory":
        logger.info("Storage driver selected", driver="memory")
        return MemoryStorage(), MemoryStorage()
    raise ValueError(f"Unknown STORAGE_DRIVER: {settings.STORAGE_DRIVER}")
