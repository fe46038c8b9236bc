"""
Thin query helpers over the pool.

The repository layer never touches cursors directly: it hands SQL with %s
placeholders to these functions and gets dict rows back. Driver errors come
out as DatabaseError with the original psycopg error chained as __cause__.
"""

import asyncio
import functools
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import psycopg

from parcelhub.db.pool import get_db_connection, get_db_transaction
from parcelhub.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

Row = dict[str, Any]


class DatabaseError(Exception):
    """Query failure. recoverable=False means retrying will not help."""

    def __init__(self, message: str, operation: str = "unknown", recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


@asynccontextmanager
async def _wrapped(operation: str, query: Any) -> AsyncGenerator[None, None]:
    try:
        yield
    except psycopg.Error as e:
        logger.error("Query failed", operation=operation, query=str(query)[:100], error=str(e))
        raise DatabaseError(f"Query failed: {e}", operation=operation) from e


async def fetch_one(query: Any, params: tuple = ()) -> Row | None:
    """First row of the result, or None when the query matched nothing."""
    async with _wrapped("fetch_one", query):
        async with await get_db_connection() as conn:
            cursor = await conn.execute(query, params)
            return await cursor.fetchone()


async def fetch_all(query: Any, params: tuple = ()) -> list[Row]:
    async with _wrapped("fetch_all", query):
        async with await get_db_connection() as conn:
            cursor = await conn.execute(query, params)
            return await cursor.fetchall()


async def execute_query(query: Any, params: tuple = ()) -> int:
    """Run an INSERT/UPDATE/DELETE and return the affected row count."""
    async with _wrapped("execute", query):
        async with await get_db_connection() as conn:
            cursor = await conn.execute(query, params)
            return cursor.rowcount


async def execute_transaction(queries_and_params: list[tuple]) -> bool:
    """
    Run every (query, params) pair on one connection, all or nothing.

    Example:
        await execute_transaction([
            ("INSERT INTO parcels (tracking_number, handover_id) VALUES (%s, %s)", ("PH1", 7)),
            ("UPDATE handovers SET quantity = quantity + %s WHERE id = %s", (1, 7)),
        ])
    """
    statements = len(queries_and_params)
    try:
        async with await get_db_transaction() as conn:
            for query, params in queries_and_params:
                await conn.execute(query, params)
    except psycopg.Error as e:
        logger.error("Transaction rolled back", statements=statements, error=str(e))
        raise DatabaseError(f"Transaction failed: {e}", operation="transaction") from e

    logger.debug("Transaction committed", statements=statements)
    return True


def _is_transient(error: DatabaseError) -> bool:
    return isinstance(error.__cause__, psycopg.OperationalError)


def with_db_retry(max_retries: int = 3, base_delay: float = 0.1):
    """
    Retry a coroutine when a helper reports a dropped connection or similar.

    Only DatabaseErrors caused by psycopg.OperationalError are retried, with
    exponential backoff starting at base_delay. Anything else propagates on
    the first attempt.
    """

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except DatabaseError as e:
                    if not _is_transient(e):
                        raise
                    if attempt >= max_retries:
                        logger.error(
                            "Giving up on database operation",
                            operation=func.__name__,
                            attempts=attempt + 1,
                            error=str(e),
                        )
                        raise DatabaseError(
                            f"{func.__name__} failed after {max_retries} retries: {e}",
                            operation=func.__name__,
                            recoverable=False,
                        ) from e

                    delay = base_delay * (2**attempt)
                    attempt += 1
                    logger.warning(
                        "Retrying database operation",
                        operation=func.__name__,
                        attempt=attempt,
                        delay=delay,
                        error=str(e),
                    )
                    await asyncio.sleep(delay)

        return wrapper

    return decorator
