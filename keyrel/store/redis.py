"""
keyrel store — Redis backend.

Maps the primitive surface onto native Redis commands:
- scalars  -> GET / SET / DEL
- counters -> GET / SET / INCRBY (atomic server-side)
- sets     -> SADD / SREM / SMEMBERS / SISMEMBER / DEL

Client errors (connection, WRONGTYPE, timeouts) are logged and
propagated unmodified; there is no retry or local recovery here.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional

from .core import KVStore

logger = logging.getLogger("keyrel.store.redis")


class RedisStore(KVStore):
    """
    Redis-backed store using redis-py's asyncio client.

    Features:
    - Connection pool with configurable size
    - Native atomic INCRBY for id counters and Integer attributes
    - Optional key prefix (empty by default so the on-disk layout is
      exactly ``<Model>#<id>:<attr>``)
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        max_connections: int = 10,
        socket_timeout: float = 5.0,
        connect_timeout: float = 5.0,
        retry_on_timeout: bool = True,
        key_prefix: str = "",
        client: Optional[Any] = None,
    ):
        self._url = url
        self._max_connections = max_connections
        self._socket_timeout = socket_timeout
        self._connect_timeout = connect_timeout
        self._retry_on_timeout = retry_on_timeout
        self._key_prefix = key_prefix
        self._redis = client
        self._initialized = False
        super().__init__()

    @property
    def name(self) -> str:
        return "redis"

    @property
    def is_distributed(self) -> bool:
        return True

    async def initialize(self) -> None:
        """Connect to Redis and create connection pool."""
        if self._initialized:
            return

        if self._redis is None:
            try:
                import redis.asyncio as aioredis
            except ImportError:
                raise ImportError(
                    "Redis backend requires 'redis' package. "
                    "Install with: pip install redis[hiredis]"
                )

            self._redis = aioredis.from_url(
                self._url,
                max_connections=self._max_connections,
                socket_timeout=self._socket_timeout,
                socket_connect_timeout=self._connect_timeout,
                retry_on_timeout=self._retry_on_timeout,
                decode_responses=True,
            )

        try:
            await self._redis.ping()
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}")
            self._stats.errors += 1
            raise
        self._initialized = True
        logger.info(f"Redis store connected: {self._url}")

    async def shutdown(self) -> None:
        """Close Redis connection pool."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
        self._initialized = False

    def _full_key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    async def _call(self, command: str, *args: Any) -> Any:
        if self._redis is None:
            raise RuntimeError("RedisStore used before initialize()")
        try:
            return await getattr(self._redis, command)(*args)
        except Exception as e:
            self._stats.errors += 1
            logger.warning(f"Redis {command.upper()} error for {args[:1]}: {e}")
            raise

    async def flush(self) -> int:
        """Delete every key under this store's prefix (SCAN + DEL)."""
        count = 0
        cursor = 0
        while True:
            cursor, keys = await self._call(
                "scan", cursor, f"{self._key_prefix}*", 1000
            )
            if keys:
                await self._call("delete", *keys)
                count += len(keys)
            if cursor == 0:
                break
        return count

    # -- scalars ---------------------------------------------------------

    async def get(self, key: str) -> Optional[str]:
        self._stats.reads += 1
        return await self._call("get", self._full_key(key))

    async def put(self, key: str, value: Any) -> None:
        self._stats.writes += 1
        await self._call("set", self._full_key(key), str(value))

    async def delete(self, key: str) -> bool:
        self._stats.deletes += 1
        return bool(await self._call("delete", self._full_key(key)))

    # -- counters --------------------------------------------------------

    async def counter_get(self, key: str) -> int:
        self._stats.counter_ops += 1
        raw = await self._call("get", self._full_key(key))
        return int(raw) if raw is not None else 0

    async def counter_set(self, key: str, value: int) -> None:
        self._stats.counter_ops += 1
        await self._call("set", self._full_key(key), int(value))

    async def counter_increment(self, key: str, delta: int = 1) -> int:
        self._stats.counter_ops += 1
        return int(await self._call("incrby", self._full_key(key), delta))

    async def counter_delete(self, key: str) -> bool:
        self._stats.deletes += 1
        return bool(await self._call("delete", self._full_key(key)))

    # -- sets ------------------------------------------------------------

    async def set_add(self, key: str, *members: Any) -> int:
        if not members:
            return 0
        self._stats.set_ops += 1
        return int(await self._call("sadd", self._full_key(key), *(str(m) for m in members)))

    async def set_remove(self, key: str, *members: Any) -> int:
        if not members:
            return 0
        self._stats.set_ops += 1
        return int(await self._call("srem", self._full_key(key), *(str(m) for m in members)))

    async def set_members(self, key: str) -> List[str]:
        self._stats.set_ops += 1
        return list(await self._call("smembers", self._full_key(key)))

    async def set_is_member(self, key: str, member: Any) -> bool:
        self._stats.set_ops += 1
        return bool(await self._call("sismember", self._full_key(key), str(member)))

    async def set_delete(self, key: str) -> bool:
        self._stats.deletes += 1
        return bool(await self._call("delete", self._full_key(key)))

    # -- diagnostics -----------------------------------------------------

    async def health_check(self) -> bool:
        """Check if Redis is reachable."""
        if self._redis is None:
            return False
        try:
            await self._redis.ping()
            return True
        except Exception:
            return False
