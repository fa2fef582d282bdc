"""
Deterministic synthetic data generation.
"""

from physbench.generation.generator import CompiledSpec, DataGenerator
from physbench.generation.partition import RowRange, plan_partitions
from physbench.generation.rules import check_value, compile_rule

__all__ = [
    "CompiledSpec",
    "DataGenerator",
    "RowRange",
    "check_value",
    "compile_rule",
    "plan_partitions",
]
