"""
Backend protocol for physbench.

The harness treats the database as an opaque request/response channel: execute
a statement, get back rows and timing, or a classified error from
`physbench.errors`. Concrete backends implement the `Backend` protocol; the
`AbstractBackend` ABC supplies the per-backend run reservation.
"""

from __future__ import annotations

import abc
import threading
from dataclasses import dataclass, field
from typing import Any, List, Optional, Protocol, Sequence, Tuple, runtime_checkable


@dataclass(frozen=True)
class StatementResult:
    """
    Outcome of one executed statement.
    """

    rows_affected: int
    elapsed_seconds: float
    rows: List[Tuple[Any, ...]] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows) if self.rows else max(self.rows_affected, 0)


@runtime_checkable
class Backend(Protocol):
    """
    Common interface the generator, variant manager and runner talk to.

    Attributes
    ----------
    name : str
        Identifier used in logs and run records.
    reservation : threading.Lock
        Held by the benchmark runner for the duration of a run so that at most
        one measured execution is in flight per backend.
    """

    name: str
    reservation: threading.Lock

    def execute(
        self,
        statement: str,
        params: Optional[Sequence[Any]] = None,
        *,
        timeout_ms: Optional[int] = None,
    ) -> StatementResult:
        """
        Execute one statement and return its rows and timing.

        Raises
        ------
        QueryTimeout
            The statement ran longer than `timeout_ms`.
        BackendUnavailable
            The connection was lost or could not be obtained.
        VariantConflict
            A DDL statement collided with an existing object.
        ConstraintViolation
            A declared constraint rejected the data.
        StatementFailed
            Any other backend-side failure.
        """
        ...

    def insert_rows(
        self, table: str, columns: Sequence[str], rows: Sequence[Sequence[Any]]
    ) -> int:
        """
        Load one batch of rows atomically and return the number written.
        """
        ...

    def object_exists(self, name: str) -> bool:
        """Whether a relation or index with this name already exists."""
        ...

    def close(self) -> None:
        ...


class AbstractBackend(abc.ABC):
    """
    Optional ABC helper for class-based implementations.
    """

    name: str = "backend"

    def __init__(self) -> None:
        self.reservation = threading.Lock()

    @abc.abstractmethod
    def execute(
        self,
        statement: str,
        params: Optional[Sequence[Any]] = None,
        *,
        timeout_ms: Optional[int] = None,
    ) -> StatementResult:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    def insert_rows(
        self, table: str, columns: Sequence[str], rows: Sequence[Sequence[Any]]
    ) -> int:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    def object_exists(self, name: str) -> bool:  # pragma: no cover - interface only
        raise NotImplementedError

    def close(self) -> None:
        return None

    def __enter__(self) -> "AbstractBackend":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = ["AbstractBackend", "Backend", "StatementResult"]
