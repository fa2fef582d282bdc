"""
Domain package for physbench.

Exports the schema model and the configuration/record types shared by the
generator, variant manager, runner and reporter.
"""

from physbench.domain.models import (
    ActionType,
    BenchmarkRun,
    ComparisonReport,
    CyclicForeignKey,
    FixedDate,
    GenerationResult,
    GenerationSpec,
    LogicalQuery,
    NumericRange,
    RangeDate,
    RunStatus,
    SequentialId,
    TemplatedString,
    Variant,
    VariantAction,
    VariantState,
)
from physbench.domain.schema import (
    Column,
    ColumnCheck,
    ColumnType,
    Entity,
    ForeignKey,
    OnDelete,
    Schema,
    topological_order,
)

__all__ = [
    "ActionType",
    "BenchmarkRun",
    "Column",
    "ColumnCheck",
    "ColumnType",
    "ComparisonReport",
    "CyclicForeignKey",
    "Entity",
    "FixedDate",
    "ForeignKey",
    "GenerationResult",
    "GenerationSpec",
    "LogicalQuery",
    "NumericRange",
    "OnDelete",
    "RangeDate",
    "RunStatus",
    "Schema",
    "SequentialId",
    "TemplatedString",
    "Variant",
    "VariantAction",
    "VariantState",
    "topological_order",
]
