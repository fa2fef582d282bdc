"""
Database connection factory utilities for physbench.

Builds DSNs from settings, opens psycopg connection pools with retry on
transient failures (tenacity), and scopes statement timeouts to a transaction.
"""

from __future__ import annotations

from typing import Optional

import psycopg
from psycopg import sql
from psycopg_pool import ConnectionPool, PoolTimeout
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from physbench.config import Settings, get_settings


def build_dsn(settings: Optional[Settings] = None) -> str:
    """Compose a DSN string from settings."""
    settings = settings or get_settings()
    return (
        f"postgresql://{settings.db_user}:{settings.db_password}"
        f"@{settings.db_host}:{settings.db_port}/{settings.db_name}"
    )


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((psycopg.OperationalError, PoolTimeout)),
    reraise=True,
)
def open_pool(
    dsn: Optional[str] = None,
    min_size: Optional[int] = None,
    max_size: Optional[int] = None,
    wait_timeout: float = 30.0,
) -> ConnectionPool:
    """
    Open a synchronous connection pool and wait until it is usable.

    Retries up to 3 times with exponential backoff for transient connection errors.

    Parameters
    ----------
    dsn : str, optional
        Connection string; defaults to one built from settings.
    min_size : int, optional
        Minimum number of idle connections to keep.
    max_size : int, optional
        Maximum total connections in the pool.
    wait_timeout : float
        Seconds to wait for the first `min_size` connections.

    Returns
    -------
    ConnectionPool
        An opened pool. The caller owns it and must close it.

    Raises
    ------
    PoolTimeout
        If the pool cannot fill after all retry attempts.
    """
    settings = get_settings()
    pool = ConnectionPool(
        conninfo=dsn or build_dsn(settings),
        min_size=min_size or settings.db_pool_min_size,
        max_size=max_size or settings.db_pool_max_size,
        open=False,
    )
    pool.open()
    try:
        pool.wait(timeout=wait_timeout)
    except PoolTimeout:
        pool.close()
        raise
    return pool


def apply_statement_timeout(cur: psycopg.Cursor, timeout_ms: Optional[int]) -> None:
    """
    Set `statement_timeout` for the current transaction only.

    A value of 0 or None leaves the server default in place.
    """
    if not timeout_ms:
        return
    cur.execute(
        sql.SQL("SET LOCAL statement_timeout = {}").format(sql.Literal(int(timeout_ms)))
    )


__all__ = ["apply_statement_timeout", "build_dsn", "open_pool"]
