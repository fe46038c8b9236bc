"""
Async Redis client for the shared upload-job store.

Only created when JOB_STORE_BACKEND=redis, so several API workers can
answer status polls for jobs started by any of them.
"""

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from parcelhub.config import settings
from parcelhub.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

MAX_CONNECTIONS = 20
SOCKET_TIMEOUT_SECONDS = 10


class FastRedisClient:
    """Pooled redis.asyncio client exposing the handful of calls the job store needs."""

    def __init__(self, url: str | None = None):
        self.url = url
        self.pool: ConnectionPool | None = None
        self.client: redis.Redis | None = None

    @property
    def is_ready(self) -> bool:
        return self.client is not None

    async def initialize(self) -> None:
        if self.is_ready:
            return

        redis_url = self.url or settings.REDIS_URL
        if not redis_url:
            raise RuntimeError("REDIS_URL is not configured")

        pool = ConnectionPool.from_url(
            redis_url,
            max_connections=MAX_CONNECTIONS,
            retry_on_timeout=True,
            socket_connect_timeout=SOCKET_TIMEOUT_SECONDS,
            socket_timeout=SOCKET_TIMEOUT_SECONDS,
            health_check_interval=30,
            decode_responses=True,
        )
        client = redis.Redis(connection_pool=pool)
        try:
            await client.ping()
        except redis.RedisError as e:
            logger.error("Redis unreachable at startup", error=str(e))
            await pool.disconnect()
            raise RuntimeError("Redis initialization failed") from e

        self.pool, self.client = pool, client
        logger.info("Redis client ready", max_connections=MAX_CONNECTIONS)

    async def close(self) -> None:
        client, pool = self.client, self.pool
        self.client = self.pool = None
        if client is not None:
            await client.aclose()
        if pool is not None:
            await pool.disconnect()
        logger.info("Redis client closed")

    async def _require_client(self) -> redis.Redis:
        if not self.is_ready:
            logger.warning("Redis used before startup, connecting lazily")
            await self.initialize()
        return self.client

    async def ping(self) -> bool:
        """Readiness probe; never raises."""
        try:
            client = await self._require_client()
            return bool(await client.ping())
        except (RuntimeError, redis.RedisError) as e:
            logger.error("Redis ping failed", error=str(e))
            return False

    async def get(self, key: str) -> str | None:
        client = await self._require_client()
        return await client.get(key) or None

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        """SET with an expiry in seconds; no expiry when ttl_s is falsy."""
        client = await self._require_client()
        return bool(await client.set(key, value, ex=ttl_s or None))


fast_redis = FastRedisClient()
