"""
Domain models for physbench.

Configuration objects (generation specs, distribution rules, variant
definitions) and the immutable records the harness produces (generation
results, benchmark runs, comparison reports). All models are frozen so they can
be shared between threads and logged or persisted without defensive copies.
"""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Dict, Literal, Optional, Tuple, Union

from pydantic import BaseModel, Field, model_validator

_FROZEN = {"frozen": True, "populate_by_name": True}


# --------------------------------------------------------------------------- #
# Distribution rules
# --------------------------------------------------------------------------- #


class SequentialId(BaseModel):
    """`start + i` for row index `i`."""

    kind: Literal["sequential_id"] = "sequential_id"
    start: int = 1

    model_config = _FROZEN


class CyclicForeignKey(BaseModel):
    """`(i mod parent_count) + 1`: cycles over existing parent ids."""

    kind: Literal["cyclic_foreign_key"] = "cyclic_foreign_key"
    parent_count: int = Field(..., gt=0)

    model_config = _FROZEN


class TemplatedString(BaseModel):
    """Formats `template` with `prefix` and the 1-based row number `n`."""

    kind: Literal["templated_string"] = "templated_string"
    prefix: str
    template: str = "{prefix}{n}"

    model_config = _FROZEN


class NumericRange(BaseModel):
    """Pseudo-random value in `[minimum, maximum]` with `scale` decimal places."""

    kind: Literal["numeric_range"] = "numeric_range"
    minimum: Decimal
    maximum: Decimal
    scale: int = Field(2, ge=0, le=12)

    model_config = _FROZEN

    @model_validator(mode="after")
    def _ordered(self) -> "NumericRange":
        if self.minimum > self.maximum:
            raise ValueError("numeric_range minimum exceeds maximum")
        return self


class FixedDate(BaseModel):
    kind: Literal["fixed_date"] = "fixed_date"
    value: date

    model_config = _FROZEN


class RangeDate(BaseModel):
    """Pseudo-random date in `[start, end]`."""

    kind: Literal["range_date"] = "range_date"
    start: date
    end: date

    model_config = _FROZEN

    @model_validator(mode="after")
    def _ordered(self) -> "RangeDate":
        if self.start > self.end:
            raise ValueError("range_date start is after end")
        return self


DistributionRule = Annotated[
    Union[SequentialId, CyclicForeignKey, TemplatedString, NumericRange, FixedDate, RangeDate],
    Field(discriminator="kind"),
]


class GenerationSpec(BaseModel):
    """
    What to generate for one entity.

    For a fixed (entity, seed, row_count, rules) the produced rows are
    identical on every run.
    """

    entity: str
    row_count: int = Field(..., ge=0)
    seed: int = 0
    rules: Dict[str, DistributionRule]

    model_config = _FROZEN


class GenerationResult(BaseModel):
    entity: str
    rows_written: int
    batches: int
    partitions: int = 1
    duration_seconds: float = 0.0
    cancelled: bool = False

    model_config = _FROZEN


# --------------------------------------------------------------------------- #
# Variants
# --------------------------------------------------------------------------- #


class ActionType(str, Enum):
    CREATE_INDEX = "createIndex"
    CLUSTER_ON = "clusterOn"
    CREATE_MATERIALIZED_VIEW = "createMaterializedView"
    CREATE_DERIVED_TABLE = "createDerivedTable"


DERIVED_ACTIONS = frozenset({ActionType.CREATE_MATERIALIZED_VIEW, ActionType.CREATE_DERIVED_TABLE})


class VariantAction(BaseModel):
    """
    One physical-design step and how to undo it.

    `object_name` identifies the physical object the action creates; it is what
    conflicts are detected on. `rewrites` names an existing base relation the
    action reorders in place: it is claimed exclusively but never created, so it
    is not checked for existence. Derived actions carry the statements that
    repopulate them and the base entities they read from.
    """

    action_type: ActionType
    object_name: Optional[str] = None
    rewrites: Optional[str] = None
    statement: str
    reverse_statement: Optional[str] = None
    refresh_statements: Tuple[str, ...] = ()
    source_entities: Tuple[str, ...] = ()

    model_config = _FROZEN

    @property
    def is_derived(self) -> bool:
        return self.action_type in DERIVED_ACTIONS


class VariantState(str, Enum):
    DEFINED = "Defined"
    APPLYING = "Applying"
    APPLIED = "Applied"
    STALE = "Stale"
    REFRESHING = "Refreshing"
    DROPPING = "Dropping"


class Variant(BaseModel):
    """
    A physical design for one logical query, with the concrete statement that
    answers the query under this design.
    """

    variant_id: str
    query_id: str
    statement: str
    actions: Tuple[VariantAction, ...] = ()
    description: str = ""

    model_config = _FROZEN

    @property
    def has_derived_objects(self) -> bool:
        return any(a.is_derived for a in self.actions)

    @property
    def object_names(self) -> Tuple[str, ...]:
        return tuple(a.object_name for a in self.actions if a.object_name)

    @property
    def claimed_names(self) -> Tuple[str, ...]:
        """Created objects plus base relations rewritten in place."""
        return self.object_names + tuple(a.rewrites for a in self.actions if a.rewrites)


class LogicalQuery(BaseModel):
    query_id: str
    description: str

    model_config = _FROZEN


# --------------------------------------------------------------------------- #
# Benchmark records
# --------------------------------------------------------------------------- #


class RunStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class BenchmarkRun(BaseModel):
    """
    One measured execution. Immutable once recorded.
    """

    run_id: str
    variant_id: str
    query_id: str
    timestamp: datetime
    status: RunStatus
    cost_seconds: Optional[float] = Field(None, description="Wall-clock cost; None when failed.")
    row_count: Optional[int] = None
    warmup: bool = False
    stale: bool = Field(False, description="Executed against a stale derived object.")
    error: Optional[str] = None
    error_kind: Optional[str] = None
    peak_rss_bytes: Optional[int] = None
    cpu_percent: Optional[float] = None

    model_config = _FROZEN

    @property
    def failed(self) -> bool:
        return self.status is RunStatus.FAILED


class ComparisonReport(BaseModel):
    baseline_run_id: str
    optimized_run_id: str
    query_id: str
    baseline_cost: float
    optimized_cost: float
    delta: float
    percent_improvement: float
    degenerate: bool = Field(False, description="Baseline cost was zero.")
    stale_data: bool = Field(False, description="Either run read stale derived data.")

    model_config = _FROZEN

    def as_record(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


__all__ = [
    "ActionType",
    "BenchmarkRun",
    "ComparisonReport",
    "CyclicForeignKey",
    "DERIVED_ACTIONS",
    "DistributionRule",
    "FixedDate",
    "GenerationResult",
    "GenerationSpec",
    "LogicalQuery",
    "NumericRange",
    "RangeDate",
    "RunStatus",
    "SequentialId",
    "TemplatedString",
    "Variant",
    "VariantAction",
    "VariantState",
]
