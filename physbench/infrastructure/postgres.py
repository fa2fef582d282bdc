"""
PostgreSQL backend built on psycopg 3 and psycopg_pool.

Each statement runs on a pooled connection inside its own transaction with a
transaction-scoped `statement_timeout`, so a failing statement never leaves a
half-applied batch behind. psycopg errors are classified into the harness
error taxonomy at this boundary.
"""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from typing import Any, Generator, Optional, Sequence

import psycopg
from psycopg import errors as pg_errors
from psycopg import sql
from psycopg_pool import ConnectionPool, PoolTimeout

from physbench.config import get_settings
from physbench.errors import (
    BackendUnavailable,
    ConstraintViolation,
    HarnessError,
    QueryTimeout,
    StatementFailed,
    VariantConflict,
)
from physbench.infrastructure.backend import AbstractBackend, StatementResult
from physbench.infrastructure.db_factory import apply_statement_timeout, open_pool


def classify_error(exc: BaseException) -> HarnessError:
    """
    Map a psycopg (or pool) exception onto the harness error taxonomy.
    """
    message = str(exc).strip() or type(exc).__name__
    # QueryCanceled is an OperationalError subclass, so it is checked first.
    if isinstance(exc, pg_errors.QueryCanceled):
        return QueryTimeout(message)
    if isinstance(exc, (pg_errors.DuplicateTable, pg_errors.DuplicateObject)):
        return VariantConflict(message)
    if isinstance(exc, psycopg.IntegrityError):
        return ConstraintViolation(message)
    if isinstance(exc, (PoolTimeout, psycopg.OperationalError, psycopg.InterfaceError)):
        return BackendUnavailable(message)
    return StatementFailed(message)


class PostgresBackend(AbstractBackend):
    """
    Backend over a psycopg ConnectionPool.

    The pool makes the backend safe to share between generation workers; the
    inherited `reservation` lock still serializes benchmark runs.
    """

    name: str = "postgres"

    def __init__(
        self,
        dsn: Optional[str] = None,
        pool: Optional[ConnectionPool] = None,
        statement_timeout_ms: Optional[int] = None,
        pool_max_size: Optional[int] = None,
    ) -> None:
        super().__init__()
        settings = get_settings()
        self._dsn = dsn
        self._pool = pool
        self._owns_pool = pool is None
        self._pool_max_size = pool_max_size
        self._pool_lock = threading.Lock()
        self.statement_timeout_ms = (
            settings.statement_timeout_ms if statement_timeout_ms is None else statement_timeout_ms
        )

    def _get_pool(self) -> ConnectionPool:
        with self._pool_lock:
            if self._pool is None:
                try:
                    self._pool = open_pool(self._dsn, max_size=self._pool_max_size)
                except (PoolTimeout, psycopg.OperationalError) as exc:
                    raise BackendUnavailable(f"cannot open connection pool: {exc}") from exc
            return self._pool

    @contextmanager
    def _cursor(self, timeout_ms: Optional[int]) -> Generator[psycopg.Cursor, None, None]:
        pool = self._get_pool()
        try:
            with pool.connection() as conn:
                with conn.transaction():
                    with conn.cursor() as cur:
                        apply_statement_timeout(cur, timeout_ms)
                        yield cur
        except (psycopg.Error, PoolTimeout) as exc:
            raise classify_error(exc) from exc

    def execute(
        self,
        statement: str,
        params: Optional[Sequence[Any]] = None,
        *,
        timeout_ms: Optional[int] = None,
    ) -> StatementResult:
        effective_timeout = self.statement_timeout_ms if timeout_ms is None else timeout_ms
        start = time.perf_counter()
        with self._cursor(effective_timeout) as cur:
            cur.execute(statement, params)
            rows = cur.fetchall() if cur.description is not None else []
            affected = cur.rowcount
        return StatementResult(
            rows_affected=affected,
            elapsed_seconds=time.perf_counter() - start,
            rows=list(rows),
        )

    def insert_rows(
        self, table: str, columns: Sequence[str], rows: Sequence[Sequence[Any]]
    ) -> int:
        if not rows:
            return 0
        copy_sql = sql.SQL("COPY {} ({}) FROM STDIN").format(
            sql.Identifier(table),
            sql.SQL(", ").join(sql.Identifier(c) for c in columns),
        )
        with self._cursor(self.statement_timeout_ms) as cur:
            with cur.copy(copy_sql) as copy:
                for row in rows:
                    copy.write_row(row)
        return len(rows)

    def object_exists(self, name: str) -> bool:
        result = self.execute("SELECT to_regclass(%s) IS NOT NULL", (name,))
        return bool(result.rows and result.rows[0][0])

    def close(self) -> None:
        with self._pool_lock:
            if self._pool is not None and self._owns_pool:
                self._pool.close()
            self._pool = None


__all__ = ["PostgresBackend", "classify_error"]
