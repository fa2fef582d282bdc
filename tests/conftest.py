"""
Pytest configuration for physbench.

Provides fixtures for:
- Settings with fast retry/backoff for unit tests
- An in-memory fake backend implementing the Backend protocol
- Database connection management for integration tests
"""

from __future__ import annotations

import os
import threading
import time
from collections import defaultdict
from typing import Any, Callable, Dict, Generator, List, Optional, Sequence, Tuple

import psycopg
import pytest

from physbench.config import Settings
from physbench.infrastructure.backend import AbstractBackend, StatementResult
from physbench.infrastructure.postgres import PostgresBackend


class FakeBackend(AbstractBackend):
    """
    Thread-safe in-memory backend.

    Records every statement and inserted row. Failures are scripted per
    statement fragment (`fail_on`) or per insert (`fail_inserts`); `None` as
    the count means "always".
    """

    name = "fake"

    def __init__(self) -> None:
        super().__init__()
        self._lock = threading.Lock()
        self.statements: List[str] = []
        self.timeouts: List[Optional[int]] = []
        self.tables: Dict[str, List[Tuple[Any, ...]]] = defaultdict(list)
        self.columns: Dict[str, Tuple[str, ...]] = {}
        self.batches: List[Tuple[str, int]] = []
        self.insert_calls = 0
        self.existing: set = set()
        self.rows_for: Dict[str, List[Tuple[Any, ...]]] = {}
        self.delays: Dict[str, float] = {}
        self.on_insert: Optional[Callable[[int], None]] = None
        self.closed = False
        self._statement_failures: List[list] = []
        self._insert_failures: List[list] = []

    def fail_on(self, fragment: str, error: Exception, times: Optional[int] = 1) -> None:
        self._statement_failures.append([fragment, error, times])

    def fail_inserts(
        self, error: Exception, times: Optional[int] = 1, table: Optional[str] = None
    ) -> None:
        self._insert_failures.append([table, error, times])

    @staticmethod
    def _take(failures: List[list], matches: Callable[[Any], bool]) -> Optional[Exception]:
        for entry in failures:
            key, error, remaining = entry
            if not matches(key) or remaining == 0:
                continue
            if remaining is not None:
                entry[2] = remaining - 1
            return error
        return None

    def execute(
        self,
        statement: str,
        params: Optional[Sequence[Any]] = None,
        *,
        timeout_ms: Optional[int] = None,
    ) -> StatementResult:
        with self._lock:
            self.statements.append(statement)
            self.timeouts.append(timeout_ms)
            error = self._take(self._statement_failures, lambda fragment: fragment in statement)
        if error is not None:
            raise error
        for fragment, seconds in self.delays.items():
            if fragment in statement:
                time.sleep(seconds)
        rows: List[Tuple[Any, ...]] = [(1,)]
        for fragment, scripted in self.rows_for.items():
            if fragment in statement:
                rows = scripted
        return StatementResult(rows_affected=len(rows), elapsed_seconds=0.0, rows=list(rows))

    def insert_rows(
        self, table: str, columns: Sequence[str], rows: Sequence[Sequence[Any]]
    ) -> int:
        with self._lock:
            self.insert_calls += 1
            error = self._take(self._insert_failures, lambda t: t is None or t == table)
            if error is None:
                self.tables[table].extend(tuple(r) for r in rows)
                self.columns[table] = tuple(columns)
                self.batches.append((table, len(rows)))
                successful = len(self.batches)
        if error is not None:
            raise error
        if self.on_insert is not None:
            self.on_insert(successful)
        return len(rows)

    def object_exists(self, name: str) -> bool:
        return name in self.existing

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def test_settings() -> Settings:
    """
    Settings with zero backoff and short lock waits so failure paths run fast.
    """
    return Settings(
        retry_attempts=3,
        retry_backoff_seconds=0,
        retry_backoff_max_seconds=0,
        generation_batch_size=100,
        generation_workers=4,
        reservation_timeout_seconds=0.1,
        variant_lock_timeout_seconds=0.1,
        benchmark_warmup=False,
        benchmark_repetitions=1,
        log_level="DEBUG",
    )


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def backend_factory() -> Callable[[], FakeBackend]:
    return FakeBackend


# --------------------------------------------------------------------------- #
# Integration fixtures
# --------------------------------------------------------------------------- #


@pytest.fixture(scope="session")
def integration_settings() -> Settings:
    """
    Settings for integration tests, overridable via environment variables.
    """
    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "physbench"),
        retry_attempts=2,
        retry_backoff_seconds=0,
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def test_dsn(integration_settings: Settings) -> str:
    return (
        f"postgresql://{integration_settings.db_user}:{integration_settings.db_password}"
        f"@{integration_settings.db_host}:{integration_settings.db_port}"
        f"/{integration_settings.db_name}"
    )


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except psycopg.Error:
        return False


@pytest.fixture
def pg_backend(
    test_dsn: str, db_connection_available: bool
) -> Generator[PostgresBackend, None, None]:
    """
    A PostgresBackend against the test database; skips when it is unreachable.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")
    backend = PostgresBackend(dsn=test_dsn, pool_max_size=4)
    try:
        yield backend
    finally:
        backend.close()
