"""
Error taxonomy for physbench.

Every failure the harness surfaces is one of these types so callers can react
to the specific kind (retry, record, abort) instead of a generic failure.
"""

from __future__ import annotations


class HarnessError(Exception):
    """Base class for all harness errors."""


class SchemaError(HarnessError):
    """Invalid schema model; raised at definition time."""


class ConstraintViolation(HarnessError):
    """A distribution rule produced (or would produce) an invalid value."""


class BackendUnavailable(HarnessError):
    """Transient loss of the backend connection. Retried, then fatal."""


class VariantConflict(HarnessError):
    """A physical-design action collides with an existing object."""


class QueryTimeout(HarnessError):
    """A statement exceeded its configured execution ceiling."""


class IncomparableRuns(HarnessError):
    """Two benchmark runs cannot be compared."""


class InvalidVariantState(HarnessError):
    """A lifecycle operation is not allowed from the variant's current state."""


class UnknownVariant(InvalidVariantState):
    """No variant is registered under the requested id."""


class ReservationTimeout(HarnessError):
    """Waiting for a backend or variant reservation exceeded its timeout."""


class StatementFailed(HarnessError):
    """The backend rejected a statement for a non-transient reason."""


class Cancelled(HarnessError):
    """A cooperative cancellation request stopped the operation."""


__all__ = [
    "HarnessError",
    "SchemaError",
    "ConstraintViolation",
    "BackendUnavailable",
    "VariantConflict",
    "QueryTimeout",
    "IncomparableRuns",
    "InvalidVariantState",
    "UnknownVariant",
    "ReservationTimeout",
    "StatementFailed",
    "Cancelled",
]
