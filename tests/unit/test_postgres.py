from __future__ import annotations

import psycopg
import pytest
from psycopg import errors as pg_errors
from psycopg_pool import PoolTimeout

from physbench.errors import (
    BackendUnavailable,
    ConstraintViolation,
    QueryTimeout,
    StatementFailed,
    VariantConflict,
)
from physbench.infrastructure.postgres import PostgresBackend, classify_error


@pytest.mark.parametrize(
    "exc, expected",
    [
        (pg_errors.QueryCanceled("canceling statement due to statement timeout"), QueryTimeout),
        (pg_errors.DuplicateTable('relation "mv" already exists'), VariantConflict),
        (pg_errors.DuplicateObject("index exists"), VariantConflict),
        (pg_errors.UniqueViolation("duplicate key"), ConstraintViolation),
        (pg_errors.CheckViolation("price check"), ConstraintViolation),
        (psycopg.OperationalError("server closed the connection"), BackendUnavailable),
        (psycopg.InterfaceError("connection already closed"), BackendUnavailable),
        (PoolTimeout("couldn't get a connection"), BackendUnavailable),
        (pg_errors.SyntaxError("syntax error at or near"), StatementFailed),
    ],
    ids=lambda value: type(value).__name__ if isinstance(value, Exception) else value.__name__,
)
def test_classify_error(exc: Exception, expected: type) -> None:
    classified = classify_error(exc)
    assert isinstance(classified, expected)
    assert str(exc) in str(classified)


class _FakeCursor:
    def __init__(self, log: list, fail_with: Exception | None = None) -> None:
        self.log = log
        self.fail_with = fail_with
        self.description = None
        self.rowcount = 0

    def execute(self, statement, params=None) -> None:
        self.log.append(statement)
        if self.fail_with is not None and "SET LOCAL" not in str(statement):
            raise self.fail_with
        if "SELECT" in str(statement):
            self.description = [("x",)]
            self.rowcount = 1

    def fetchall(self) -> list:
        return [(1,)]

    def __enter__(self) -> "_FakeCursor":
        return self

    def __exit__(self, *exc) -> None:
        return None


class _FakeConnection:
    def __init__(self, cursor: _FakeCursor) -> None:
        self._cursor = cursor

    def transaction(self) -> "_FakeConnection":
        return self

    def cursor(self) -> _FakeCursor:
        return self._cursor

    def __enter__(self) -> "_FakeConnection":
        return self

    def __exit__(self, *exc) -> None:
        return None


class _FakePool:
    def __init__(self, cursor: _FakeCursor) -> None:
        self._conn = _FakeConnection(cursor)
        self.close_calls = 0

    def connection(self) -> _FakeConnection:
        return self._conn

    def close(self) -> None:
        self.close_calls += 1


def test_execute_sets_transaction_timeout_and_returns_rows() -> None:
    log: list = []
    backend = PostgresBackend(pool=_FakePool(_FakeCursor(log)), statement_timeout_ms=1000)

    result = backend.execute("SELECT 1", timeout_ms=250)

    assert result.rows == [(1,)]
    assert result.row_count == 1
    assert "statement_timeout" in str(log[0])
    assert log[1] == "SELECT 1"


def test_execute_classifies_driver_errors() -> None:
    cursor = _FakeCursor([], fail_with=pg_errors.QueryCanceled("timeout"))
    backend = PostgresBackend(pool=_FakePool(cursor), statement_timeout_ms=0)

    with pytest.raises(QueryTimeout):
        backend.execute("SELECT pg_sleep(10)")


def test_borrowed_pool_is_not_closed() -> None:
    pool = _FakePool(_FakeCursor([]))
    with PostgresBackend(pool=pool):
        pass
    assert pool.close_calls == 0
