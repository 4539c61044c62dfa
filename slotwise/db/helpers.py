"""
Database helper functions for common patterns.
Reduces boilerplate in service layer.
"""

import asyncio
import functools
from typing import Any

import psycopg

from slotwise.db.pool import db_pool
from slotwise.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class DatabaseError(Exception):
    """Custom exception for database operations."""

    def __init__(self, message: str, operation: str = "unknown", recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


async def fetch_one(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> dict[str, Any] | None:
    """
    Execute query and return single row as dict.

    Args:
        query: SQL query with %s placeholders
        params: Query parameters
        connection: Optional existing connection (e.g. inside a transaction)

    Returns:
        Dict with row data or None if no results
    """
    try:
        if connection:
            async with connection.cursor() as cur:
                await cur.execute(query, params)
                return await cur.fetchone()

        async with db_pool.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(query, params)
                return await cur.fetchone()

    except psycopg.Error as e:
        logger.error("Database fetch_one error", query=query[:100], error=str(e))
        raise DatabaseError(f"Query failed: {e}", operation="fetch_one") from e


async def execute_query(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> int:
    """
    Execute query and return number of affected rows.

    Args:
        query: SQL query with %s placeholders
        params: Query parameters
        connection: Optional existing connection

    Returns:
        Number of affected rows
    """
    try:
        if connection:
            cursor = await connection.execute(query, params)
            return cursor.rowcount

        async with db_pool.connection() as conn:
            cursor = await conn.execute(query, params)
            return cursor.rowcount

    except psycopg.Error as e:
        logger.error("Database execute error", query=query[:100], error=str(e))
        raise DatabaseError(f"Query failed: {e}", operation="execute") from e


def _is_transient(error: Exception) -> bool:
    if isinstance(error, psycopg.OperationalError):
        return True
    return isinstance(error, DatabaseError) and isinstance(
        error.__cause__, psycopg.OperationalError
    )


def with_db_retry(max_retries: int = 3, base_delay: float = 0.1):
    """
    Decorator to retry database operations on temporary failures.

    Only operational errors (dropped connections, timeouts) are retried,
    whether raw or already wrapped by the helpers above. Integrity and data
    errors are wrapped in a non-recoverable DatabaseError straight away.

    Args:
        max_retries: Maximum number of retry attempts
        base_delay: Base delay between retries (exponential backoff)
    """

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)

                except (psycopg.OperationalError, DatabaseError) as e:
                    if not _is_transient(e):
                        raise
                    if attempt < max_retries:
                        delay = base_delay * (2**attempt)
                        logger.warning(
                            "Database operation failed, retrying",
                            operation=func.__name__,
                            attempt=attempt + 1,
                            max_retries=max_retries,
                            delay=delay,
                            error=str(e),
                        )
                        await asyncio.sleep(delay)
                        continue

                    logger.error(
                        "Database operation failed after all retries",
                        operation=func.__name__,
                        attempts=max_retries + 1,
                        error=str(e),
                    )
                    raise DatabaseError(
                        f"Operation failed after {max_retries} retries: {e}",
                        operation=func.__name__,
                        recoverable=False,
                    ) from e

                except (psycopg.IntegrityError, psycopg.DataError) as e:
                    logger.error(
                        "Database operation failed with permanent error",
                        operation=func.__name__,
                        error=str(e),
                    )
                    raise DatabaseError(
                        f"Permanent database error: {e}", operation=func.__name__, recoverable=False
                    ) from e

        return wrapper

    return decorator
