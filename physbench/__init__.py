"""
physbench - synthetic workload generation and physical-design benchmarking.

The package populates a relational schema with deterministic synthetic data,
applies alternative physical designs (indexes, clustering, materialized views,
pre-aggregated tables) for a logical query, measures the query under each
design and reports the improvement over a baseline.
"""

from __future__ import annotations

__version__ = "0.1.0"

from physbench.config import Settings, get_settings
from physbench.domain import (
    BenchmarkRun,
    ComparisonReport,
    GenerationResult,
    GenerationSpec,
    Schema,
    Variant,
    VariantAction,
    VariantState,
)
from physbench.generation.generator import DataGenerator
from physbench.reporter import ComparisonReporter, compare_runs
from physbench.runner import BenchmarkRunner, RunLog
from physbench.utils.logging import configure_logging, get_logger
from physbench.variants.manager import VariantManager

__all__ = [
    "__version__",
    # Configuration
    "Settings",
    "get_settings",
    # Domain
    "BenchmarkRun",
    "ComparisonReport",
    "GenerationResult",
    "GenerationSpec",
    "Schema",
    "Variant",
    "VariantAction",
    "VariantState",
    # Components
    "BenchmarkRunner",
    "ComparisonReporter",
    "DataGenerator",
    "RunLog",
    "VariantManager",
    "compare_runs",
    # Logging
    "configure_logging",
    "get_logger",
]
