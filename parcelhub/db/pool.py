"""
PostgreSQL connection pool for the parcel store.

One AsyncConnectionPool per process backs the parcels, handovers, exports,
couriers and parcel_event_logs tables. Connections run in autocommit:
upload jobs commit row by row, and only handover intake opens an explicit
transaction (see transaction()).
"""

import asyncio
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from parcelhub.config import settings
from parcelhub.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

SERVICE_NAME = "database_pool"
CLOSE_TIMEOUT_SECONDS = 30.0
STATEMENT_TIMEOUT = "60s"

# Utilization thresholds for /readyz
UTILIZATION_WARN_PERCENT = 80
UTILIZATION_UNHEALTHY_PERCENT = 90


async def _probe(conn: psycopg.AsyncConnection) -> None:
    async with conn.cursor() as cur:
        await cur.execute("SELECT 1 AS ok")
        row = await cur.fetchone()
    value = row["ok"] if isinstance(row, dict) else row[0]
    if value != 1:
        raise RuntimeError(f"Database probe returned {value!r}")


class DatabasePoolManager:
    """Lifecycle (initialize/close), connection access and health of the pool."""

    def __init__(self, conninfo: str | None = None):
        self.conninfo = conninfo
        self.pool: AsyncConnectionPool | None = None
        self._initialized = False
        self._closed = False

    async def initialize(self) -> None:
        """Open the pool and verify a connection works. Called from the lifespan."""
        if self._initialized:
            logger.warning("Parcel store pool already open")
            return
        if self._closed:
            raise RuntimeError("Parcel store pool was closed; create a new manager")

        pool_config = settings.get_db_pool_config()
        logger.info(
            "Initializing database connection pool",
            environment=settings.environment,
            **pool_config,
        )

        try:
            self.pool = AsyncConnectionPool(
                conninfo=self.conninfo or settings.DATABASE_URL,
                open=False,
                check=AsyncConnectionPool.check_connection,
                configure=self._configure_connection,
                **pool_config,
            )
            await self.pool.open()
            await self.pool.wait()

            # connection() refuses to hand out connections until this is set
            self._initialized = True
            async with self.connection() as conn:
                await _probe(conn)

        except Exception as e:
            logger.error("Parcel store pool failed to open", error=str(e))
            self._initialized = False
            await self._discard_pool()
            raise RuntimeError(f"Database pool initialization failed: {e}") from e

        logger.info("Database pool ready", min_size=pool_config["min_size"], max_size=pool_config["max_size"])

    async def _discard_pool(self) -> None:
        if self.pool is None:
            return
        try:
            await self.pool.close()
        except Exception as cleanup_error:
            logger.warning("Error closing half-open pool", error=str(cleanup_error))
        self.pool = None

    async def _configure_connection(self, conn: psycopg.AsyncConnection) -> None:
        """Per-connection session setup: dict rows, autocommit, UTC, timeouts."""
        try:
            conn.row_factory = dict_row
            await conn.set_autocommit(True)

            app_name = f"parcelhub-{settings.environment}"
            await conn.execute(sql.SQL("SET application_name = {}").format(sql.Literal(app_name)))
            await conn.execute("SET timezone = 'UTC'")
            await conn.execute(
                sql.SQL("SET statement_timeout = {}").format(sql.Literal(STATEMENT_TIMEOUT))
            )
        except Exception:
            logger.exception("Session setup failed on new connection")

    async def close(self) -> None:
        """Close the pool; later connection() calls fail fast."""
        if not self._initialized or self._closed:
            return

        logger.info("Draining parcel store pool")
        try:
            if self.pool:
                await asyncio.wait_for(self.pool.close(), timeout=CLOSE_TIMEOUT_SECONDS)
            logger.info("Parcel store pool closed")
        except TimeoutError:
            logger.warning("Parcel store pool drain timed out")
        except Exception as e:
            logger.error("Parcel store pool close failed", error=str(e))
        finally:
            self._initialized = False
            self._closed = True

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """
        Borrow an autocommit connection.

        Usage:
            async with db_pool.connection() as conn:
                await conn.execute("UPDATE parcels SET status = %s WHERE id = %s", ("Delivered", 1))
        """
        if not self._initialized:
            raise RuntimeError("Database pool not initialized. Call initialize() first.")
        if self._closed:
            raise RuntimeError("Database pool is closed")

        try:
            async with self.pool.connection() as conn:
                yield conn
        except Exception as e:
            logger.error("Parcel store connection error", error=str(e), error_type=type(e).__name__)
            raise

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """Borrow a connection inside a transaction; commit on exit, rollback on error."""
        async with self.connection() as conn:
            async with conn.transaction():
                yield conn

    def _pool_stats(self) -> dict[str, Any]:
        stats = self.pool.get_stats()
        size = stats.get("pool_size", 0)
        available = stats.get("pool_available", 0)
        return {
            "pool_size": size,
            "pool_available": available,
            "pool_utilization_percent": round((size - available) / size * 100, 2) if size else 0,
            "requests_waiting": stats.get("requests_waiting", 0),
        }

    async def health_check(self) -> dict[str, Any]:
        """Probe a connection and report pool utilization."""
        if not self._initialized:
            return {"healthy": False, "error": "Pool not initialized", "service": SERVICE_NAME}
        if self._closed:
            return {"healthy": False, "error": "Pool is closed", "service": SERVICE_NAME}

        try:
            pool_stats = self._pool_stats()
            start_time = time.time()
            async with self.connection() as conn:
                await _probe(conn)
            connection_time_ms = round((time.time() - start_time) * 1000, 2)
        except Exception as e:
            logger.error("Parcel store probe failed", error=str(e))
            return {
                "healthy": False,
                "service": SERVICE_NAME,
                "error": str(e),
                "error_type": type(e).__name__,
            }

        utilization = pool_stats["pool_utilization_percent"]
        health_data = {
            "healthy": utilization < UTILIZATION_UNHEALTHY_PERCENT,
            "service": SERVICE_NAME,
            "connection_time_ms": connection_time_ms,
            "pool_stats": pool_stats,
        }

        warnings = []
        if utilization > UTILIZATION_WARN_PERCENT:
            warnings.append(f"High pool utilization: {utilization:.1f}%")
        if pool_stats["requests_waiting"]:
            warnings.append(f"Requests waiting for connections: {pool_stats['requests_waiting']}")
        if warnings:
            health_data["warnings"] = warnings

        return health_data


db_pool = DatabasePoolManager()


async def get_db_connection():
    """Pool connection context manager, used by the db helpers."""
    return db_pool.connection()


async def get_db_transaction():
    """Transactional connection context manager, used by execute_transaction()."""
    return db_pool.transaction()


async def db_health_check() -> dict[str, Any]:
    return await db_pool.health_check()
