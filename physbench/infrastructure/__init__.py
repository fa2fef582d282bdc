"""
Infrastructure package for physbench.

Centralizes backend connectivity concerns: the statement-execution protocol,
the PostgreSQL implementation, DDL rendering and the retry policy. Keep this
layer focused on I/O, decoupled from generation and benchmarking logic.
"""

from physbench.infrastructure.backend import AbstractBackend, Backend, StatementResult
from physbench.infrastructure.db_factory import apply_statement_timeout, build_dsn, open_pool
from physbench.infrastructure.ddl import (
    create_table_statements,
    drop_table_statements,
    truncate_statements,
)
from physbench.infrastructure.postgres import PostgresBackend, classify_error
from physbench.infrastructure.retry import backend_retrying

__all__ = [
    "AbstractBackend",
    "Backend",
    "PostgresBackend",
    "StatementResult",
    "apply_statement_timeout",
    "backend_retrying",
    "build_dsn",
    "classify_error",
    "create_table_statements",
    "drop_table_statements",
    "open_pool",
    "truncate_statements",
]
